"""Async GitHub API client with rate-limit handling and retries."""

from __future__ import annotations

import asyncio
import os
import time
from typing import Any

import httpx
import structlog

from depsentinel.engines.repo_source.base import (
    AuthError,
    RateLimitError,
    SourceNotFoundError,
    TransientFetchError,
)

log = structlog.get_logger("depsentinel.engine")

_MAX_RETRIES = 3
_RETRY_BASE_DELAY = 1.0  # seconds
# Longer rate-limit waits are surfaced to the caller instead of slept through
_MAX_RATE_LIMIT_WAIT = 60


class GitHubClient:
    """Thin async wrapper around the GitHub REST API."""

    def __init__(
        self,
        token: str | None = None,
        *,
        base_url: str | None = None,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        headers: dict[str, str] = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
            "User-Agent": "depsentinel",
        }
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._authenticated = bool(token)
        self._client = httpx.AsyncClient(
            base_url=base_url or os.environ.get("GITHUB_API_URL", "https://api.github.com"),
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    # ── lifecycle ──────────────────────────────────────────────────────────

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> GitHubClient:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    # ── public ─────────────────────────────────────────────────────────────

    async def get(self, path: str, params: dict[str, Any] | None = None) -> Any:
        """Single-resource GET, returns parsed JSON."""
        response = await self._request_with_retry(path, params)
        try:
            return response.json()
        except ValueError as exc:
            raise TransientFetchError(f"invalid JSON from {path}") from exc

    # ── internal ───────────────────────────────────────────────────────────

    async def _request_with_retry(
        self,
        url: str,
        params: dict[str, Any] | None = None,
    ) -> httpx.Response:
        """GET with exponential backoff on 5xx, short rate limits and timeouts.

        Terminal failures map onto the source error taxonomy: 401 and
        non-rate-limit 403 -> AuthError, 404 -> SourceNotFoundError,
        exhausted or long rate limit -> RateLimitError, anything else ->
        TransientFetchError.
        """
        last_exc: Exception | None = None
        for attempt in range(1, _MAX_RETRIES + 1):
            try:
                resp = await self._client.get(url, params=params)
            except httpx.TimeoutException:
                log.warning("github.timeout", url=url, attempt=attempt, max_retries=_MAX_RETRIES)
                last_exc = TransientFetchError(f"timeout requesting {url}")
            except httpx.TransportError as exc:
                log.warning(
                    "github.transport_error",
                    url=url,
                    error=str(exc),
                    attempt=attempt,
                    max_retries=_MAX_RETRIES,
                )
                last_exc = TransientFetchError(f"connection error requesting {url}: {exc}")
            else:
                if resp.status_code < 400:
                    return resp

                retry_after = self._rate_limit_wait(resp)
                if retry_after is not None:
                    log.warning(
                        "github.rate_limit",
                        url=url,
                        wait_seconds=retry_after,
                        attempt=attempt,
                        max_retries=_MAX_RETRIES,
                    )
                    if retry_after > _MAX_RATE_LIMIT_WAIT or attempt == _MAX_RETRIES:
                        raise RateLimitError(retry_after)
                    await asyncio.sleep(retry_after)
                    continue

                if resp.status_code < 500:
                    raise self._client_error(url, resp)

                log.warning(
                    "github.server_error",
                    url=url,
                    status=resp.status_code,
                    attempt=attempt,
                    max_retries=_MAX_RETRIES,
                )
                last_exc = TransientFetchError(f"GitHub API error {resp.status_code}")

            if attempt < _MAX_RETRIES:
                await asyncio.sleep(_RETRY_BASE_DELAY * 2 ** (attempt - 1))

        raise last_exc  # type: ignore[misc]

    def _client_error(self, url: str, resp: httpx.Response) -> Exception:
        if resp.status_code == 401:
            if self._authenticated:
                return AuthError("GitHub token is invalid or expired")
            return AuthError("GitHub authentication required for this repository")
        if resp.status_code == 403:
            return AuthError(f"access denied: {self._error_message(resp)}")
        if resp.status_code == 404:
            return SourceNotFoundError(f"not found: {url}")
        return TransientFetchError(f"GitHub API error {resp.status_code}: {self._error_message(resp)}")

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            return response.reason_phrase or str(response.status_code)
        if isinstance(body, dict) and body.get("message"):
            return str(body["message"])
        return str(response.status_code)

    @staticmethod
    def _header_int(response: httpx.Response, name: str) -> int | None:
        try:
            return int(response.headers[name])
        except (KeyError, ValueError):
            return None

    @classmethod
    def _rate_limit_wait(cls, response: httpx.Response) -> int | None:
        """Seconds to wait if *response* is a rate-limit rejection, else None.

        Primary limits report ``X-RateLimit-Remaining: 0`` and a reset
        timestamp; secondary (abuse) limits send ``Retry-After``; 429 is
        always a rate limit.
        """
        if response.status_code not in (403, 429):
            return None
        remaining = cls._header_int(response, "X-RateLimit-Remaining")
        retry_after = cls._header_int(response, "Retry-After")
        if remaining != 0 and retry_after is None and response.status_code != 429:
            return None
        if retry_after is not None:
            return max(retry_after, 1)
        reset_at = cls._header_int(response, "X-RateLimit-Reset")
        if reset_at is not None:
            return max(reset_at - int(time.time()), 1)
        return 60
