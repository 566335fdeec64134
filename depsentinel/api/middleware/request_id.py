"""Request ID middleware — tags every request and its log lines with an id."""

from __future__ import annotations

import re
import time
import uuid

import structlog
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

log = structlog.get_logger("depsentinel.api")

_RUN_PATH_RE = re.compile(r"/scans/([^/]+)")


def _is_valid_uuid(value: str) -> bool:
    try:
        uuid.UUID(value)
    except (ValueError, AttributeError):
        return False
    return True


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Reuse a well-formed incoming X-Request-ID, otherwise mint one.

    Requests addressing a single scan run also carry ``run_id`` in their
    log context, so API lines can be matched with the engine's.
    """

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        incoming = request.headers.get("x-request-id", "")
        request_id = incoming if _is_valid_uuid(incoming) else str(uuid.uuid4())

        context = {"request_id": request_id, "method": request.method, "path": request.url.path}
        run_match = _RUN_PATH_RE.search(request.url.path)
        if run_match:
            context["run_id"] = run_match.group(1)
        tokens = structlog.contextvars.bind_contextvars(**context)

        start = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception:
            log.exception("request.failed", duration_ms=round((time.perf_counter() - start) * 1000, 1))
            raise
        else:
            log.info(
                "request.completed",
                status_code=response.status_code,
                duration_ms=round((time.perf_counter() - start) * 1000, 1),
            )
            response.headers["X-Request-ID"] = request_id
            return response
        finally:
            structlog.contextvars.reset_contextvars(**tokens)
