"""ServiceError and request validation failures rendered as ``{"detail": ...}``."""

from __future__ import annotations

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from depsentinel.services import NotFoundError, ServiceError, ValidationError

log = structlog.get_logger("depsentinel.api")

# Most specific class first; an unmapped ServiceError is a 500
_STATUS_MAP: tuple[tuple[type[ServiceError], int], ...] = (
    (NotFoundError, 404),
    (ValidationError, 422),
)


def status_for(exc: ServiceError) -> int:
    for cls, status in _STATUS_MAP:
        if isinstance(exc, cls):
            return status
    return 500


def format_validation_errors(exc: RequestValidationError) -> str:
    """``body → repos: List should have at least 1 item; ...``"""
    return "; ".join(
        f"{' → '.join(str(part) for part in err['loc'])}: {err['msg']}" for err in exc.errors()
    )


async def _service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    status = status_for(exc)
    log.info("api.service_error", status_code=status, error=type(exc).__name__, detail=str(exc))
    return JSONResponse(status_code=status, content={"detail": str(exc)})


async def _validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(status_code=422, content={"detail": format_validation_errors(exc)})


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ServiceError, _service_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, _validation_error_handler)  # type: ignore[arg-type]
