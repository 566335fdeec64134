"""RepoScanWorker — drives the scan of one repository inside a run."""

from __future__ import annotations

from dataclasses import replace
from typing import Protocol

import structlog

from depsentinel.core.config import DEFAULT_FETCH_CONCURRENCY, DEFAULT_MAX_MANIFEST_BYTES
from depsentinel.engines.dependency_scanner import (
    DependencyNormalizer,
    ManifestContent,
    classify,
)
from depsentinel.engines.repo_source import (
    AuthError,
    RateLimitError,
    RepositorySourceError,
    SourceFactory,
    SourceNotFoundError,
    UnsupportedProviderError,
)
from depsentinel.engines.scan_orchestrator.cache import RepoCache, RepoCacheEntry, fingerprint
from depsentinel.engines.scan_orchestrator.models import RepoRef, RepoScanResult, ScanDepth

log = structlog.get_logger("depsentinel.engine")

# Progress milestones (percent)
_RESOLVED = 5
_LISTED = 15
_FETCHED = 80
_NORMALIZED = 95


class ProgressReporter(Protocol):
    """Writes one repository's progress slot; implemented by the coordinator."""

    async def start(self) -> None: ...

    async def step(self, percent: int, message: str) -> None: ...

    def advance(self, percent: int, message: str) -> None: ...

    async def complete(self, result: RepoScanResult) -> None: ...

    async def fail(self, message: str, error: str) -> None: ...


def failure_message(exc: BaseException) -> str:
    """Human-readable reason for a failed repository."""
    if isinstance(exc, AuthError):
        return f"Authentication required. Provide a token with access to this repository ({exc})"
    if isinstance(exc, RateLimitError):
        return f"API rate limit exceeded, retry after {exc.retry_after}s"
    if isinstance(exc, SourceNotFoundError):
        return f"Repository or ref not found ({exc})"
    if isinstance(exc, UnsupportedProviderError):
        return str(exc)
    return f"Scan failed: {exc}"


class RepoScanWorker:
    """One repository, one pass: resolve, list, classify, fetch, parse, publish.

    Only ref resolution and tree listing can fail the repository. Per-file
    fetch and parse errors end up as warnings on the services they belong
    to.
    """

    def __init__(
        self,
        repo: RepoRef,
        depth: ScanDepth,
        reporter: ProgressReporter,
        *,
        sources: SourceFactory,
        normalizer: DependencyNormalizer,
        cache: RepoCache,
        fetch_concurrency: int = DEFAULT_FETCH_CONCURRENCY,
        max_manifest_bytes: int = DEFAULT_MAX_MANIFEST_BYTES,
    ) -> None:
        self.repo = repo
        self.depth = depth
        self._reporter = reporter
        self._sources = sources
        self._normalizer = normalizer
        self._cache = cache
        self._fetch_concurrency = fetch_concurrency
        self._max_manifest_bytes = max_manifest_bytes

    async def run(self) -> RepoScanResult | None:
        """Scan the repository and report a terminal state; never raises."""
        log.info("scan.repo_started", repo=self.repo.name, depth=self.depth.value)
        await self._reporter.start()
        try:
            result = await self._scan()
        except RepositorySourceError as exc:
            log.warning("scan.repo_failed", repo=self.repo.name, error=str(exc))
            await self._reporter.fail(failure_message(exc), str(exc))
            return None
        except Exception as exc:
            log.exception("scan.repo_crashed", repo=self.repo.name)
            await self._reporter.fail(failure_message(exc), f"{type(exc).__name__}: {exc}")
            return None

        log.info(
            "scan.repo_completed",
            repo=self.repo.name,
            services=len(result.services),
            warnings=len(result.warnings),
        )
        await self._reporter.complete(result)
        return result

    async def _scan(self) -> RepoScanResult:
        source = self._sources.for_repo(self.repo)

        await self._reporter.step(_RESOLVED, "Resolving branch & tree")
        ref = await source.resolve_ref(self.repo, self.repo.default_branch)

        cached = self._cache.get(self.repo.id)
        if (
            self.depth == ScanDepth.INCREMENTAL
            and cached is not None
            and cached.ref == ref
            and cached.result is not None
        ):
            log.info("scan.repo_unchanged", repo=self.repo.name, ref=ref)
            await self._reporter.step(_LISTED, "No changes since last scan")
            await self._reporter.step(_NORMALIZED, "Reusing previous results")
            return cached.result

        entries = await source.list_tree(self.repo, ref)
        manifests = []
        for entry in entries:
            if entry.kind != "blob":
                continue
            ecosystem = classify(entry.path, entry.size, max_bytes=self._max_manifest_bytes)
            if ecosystem is not None:
                manifests.append((entry, ecosystem))
        await self._reporter.step(_LISTED, f"Indexing manifests ({len(manifests)} found)")

        def on_progress(done: int, total: int) -> None:
            percent = _LISTED + (_FETCHED - _LISTED) * done // total
            self._reporter.advance(percent, f"Fetching blobs ({done}/{total})")

        fetched = await source.fetch_contents(
            self.repo,
            [entry for entry, _ in manifests],
            concurrency_limit=self._fetch_concurrency,
            on_progress=on_progress,
        )
        await self._reporter.step(_FETCHED, "Parsing manifests")

        contents = [
            ManifestContent(
                path=entry.path,
                ecosystem=ecosystem,
                content=item.content,
                error=item.error,
            )
            for (entry, ecosystem), item in zip(manifests, fetched)
        ]
        manifest_paths = frozenset(c.path for c in contents)
        file_hashes = {c.path: fingerprint(c.content) for c in contents if c.content is not None}

        if (
            self.depth == ScanDepth.INCREMENTAL
            and cached is not None
            and cached.result is not None
            and cached.manifest_paths == manifest_paths
            and cached.file_hashes == file_hashes
            and all(c.error is None for c in contents)
        ):
            # New commit, same manifests: skip parsing and lookups
            log.info("scan.manifests_unchanged", repo=self.repo.name, ref=ref)
            await self._reporter.step(_NORMALIZED, "Manifests unchanged, reusing previous results")
            result = replace(cached.result, ref=ref)
        else:
            services = await self._normalizer.normalize(self.repo.name, contents)
            await self._reporter.step(_NORMALIZED, f"Found {len(services)} service(s)")
            result = RepoScanResult(
                repo_id=self.repo.id,
                repo_name=self.repo.name,
                ref=ref,
                services=services,
                warnings=[w for service in services for w in service.warnings],
            )

        self._cache.put(
            self.repo.id,
            RepoCacheEntry(ref=ref, manifest_paths=manifest_paths, file_hashes=file_hashes, result=result),
        )
        return result
