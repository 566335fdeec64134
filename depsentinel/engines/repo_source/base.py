"""RepositorySource contract, error taxonomy and the chunked fetch algorithm."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from typing import Protocol

import structlog

from depsentinel.core.config import DEFAULT_FETCH_CONCURRENCY, DEFAULT_FETCH_TIMEOUT
from depsentinel.engines.scan_orchestrator.models import RepoRef

log = structlog.get_logger("depsentinel.engine")


# ── errors ───────────────────────────────────────────────────────────────


class RepositorySourceError(Exception):
    """Base class for hosting-provider failures."""


class AuthError(RepositorySourceError):
    """Credential missing, invalid or expired."""


class RateLimitError(RepositorySourceError):
    """Raised when the provider's rate limit is exhausted."""

    def __init__(self, retry_after: int) -> None:
        self.retry_after = retry_after
        super().__init__(f"rate limit exceeded, retry after {retry_after}s")


class SourceNotFoundError(RepositorySourceError):
    """Repository, ref or object does not exist (or is not visible)."""


class TransientFetchError(RepositorySourceError):
    """Network, timeout or server-side failure for a single request."""


class UnsupportedProviderError(RepositorySourceError):
    """No source implementation for the repository's provider tag."""


# ── value types ──────────────────────────────────────────────────────────


@dataclass(frozen=True)
class TreeEntry:
    path: str
    object_id: str
    size: int | None = None
    kind: str = "blob"


@dataclass(frozen=True)
class FetchedContent:
    """Content of one object, or the error that prevented fetching it."""

    path: str
    content: str | None = None
    error: str | None = None
    error_kind: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


ProgressCallback = Callable[[int, int], None]


class RepositorySource(Protocol):
    """Per-provider access to a repository's tree and file contents."""

    async def resolve_ref(self, repo: RepoRef, ref_name: str) -> str: ...

    async def list_tree(self, repo: RepoRef, ref: str) -> list[TreeEntry]: ...

    async def fetch_contents(
        self,
        repo: RepoRef,
        entries: Sequence[TreeEntry],
        concurrency_limit: int = DEFAULT_FETCH_CONCURRENCY,
        on_progress: ProgressCallback | None = None,
    ) -> list[FetchedContent]: ...


# ── chunked bounded-concurrency fetch ────────────────────────────────────


def error_kind(exc: BaseException) -> str:
    if isinstance(exc, AuthError):
        return "auth"
    if isinstance(exc, RateLimitError):
        return "rate_limit"
    if isinstance(exc, SourceNotFoundError):
        return "not_found"
    return "transient"


async def fetch_in_chunks(
    entries: Sequence[TreeEntry],
    fetch_one: Callable[[TreeEntry], Awaitable[str]],
    *,
    concurrency_limit: int = DEFAULT_FETCH_CONCURRENCY,
    timeout: float | None = DEFAULT_FETCH_TIMEOUT,
    on_progress: ProgressCallback | None = None,
) -> list[FetchedContent]:
    """Fetch *entries* in chunks of *concurrency_limit*.

    Every fetch in a chunk runs concurrently and the next chunk starts only
    after all of them have settled, so at most *concurrency_limit* requests
    are outstanding. A single slow fetch holds up its whole chunk.

    Failures (including hitting the per-fetch *timeout*) are returned as
    ``FetchedContent(error=...)`` and never abort the batch. Results keep
    the input order.
    """
    if concurrency_limit < 1:
        raise ValueError("concurrency_limit must be >= 1")

    total = len(entries)
    completed = 0
    results: list[FetchedContent] = []

    async def _one(entry: TreeEntry) -> FetchedContent:
        nonlocal completed
        try:
            if timeout is not None:
                content = await asyncio.wait_for(fetch_one(entry), timeout=timeout)
            else:
                content = await fetch_one(entry)
            return FetchedContent(path=entry.path, content=content)
        except asyncio.TimeoutError:
            log.warning("fetch.timeout", path=entry.path, timeout=timeout)
            return FetchedContent(
                path=entry.path,
                error=f"timed out after {timeout}s",
                error_kind="transient",
            )
        except RepositorySourceError as exc:
            log.warning("fetch.failed", path=entry.path, error=str(exc))
            return FetchedContent(path=entry.path, error=str(exc), error_kind=error_kind(exc))
        except Exception as exc:  # noqa: BLE001
            log.warning("fetch.crashed", path=entry.path, error=repr(exc))
            return FetchedContent(
                path=entry.path, error=f"{type(exc).__name__}: {exc}", error_kind="transient"
            )
        finally:
            completed += 1
            if on_progress is not None:
                on_progress(completed, total)

    for start in range(0, total, concurrency_limit):
        chunk = entries[start : start + concurrency_limit]
        results.extend(await asyncio.gather(*(_one(entry) for entry in chunk)))
    return results
