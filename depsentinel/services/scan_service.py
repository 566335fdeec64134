"""ScanService — the core entry points used by the API and the CLI."""

from __future__ import annotations

import hashlib
import os
from datetime import datetime, timedelta, timezone

import structlog

from depsentinel.engines.repo_source.github import parse_repo_url
from depsentinel.engines.scan_orchestrator.coordinator import RunCoordinator
from depsentinel.engines.scan_orchestrator.models import (
    PROVIDERS,
    RepoRef,
    ScanDepth,
    ScanResults,
    ScanRun,
)
from depsentinel.services import ValidationError

log = structlog.get_logger(__name__)


def repo_from_target(target: str, *, branch: str = "main") -> RepoRef:
    """Build a RepoRef from a GitHub URL / ``owner/repo`` or a local ``.zip`` path.

    Raises :class:`ValidationError` if *target* is neither.
    """
    if target.lower().endswith(".zip") or os.path.isfile(target):
        path = os.path.abspath(target)
        name = os.path.splitext(os.path.basename(path))[0]
        repo_id = hashlib.sha1(path.encode("utf-8")).hexdigest()[:12]
        return RepoRef(
            id=f"archive-{repo_id}",
            name=name,
            provider="archive",
            default_branch=branch,
            remote_url=path,
        )
    try:
        owner, name = parse_repo_url(target)
    except ValueError as exc:
        raise ValidationError(str(exc)) from exc
    return RepoRef(
        id=f"github-{owner}-{name}".lower(),
        name=f"{owner}/{name}",
        provider="github",
        default_branch=branch,
        remote_url=f"https://github.com/{owner}/{name}",
    )


class ScanService:
    """Validates input and delegates to the :class:`RunCoordinator`."""

    def __init__(self, coordinator: RunCoordinator) -> None:
        self._coordinator = coordinator

    @property
    def coordinator(self) -> RunCoordinator:
        return self._coordinator

    async def start_scan(self, repos: list[RepoRef], depth: ScanDepth = ScanDepth.FULL) -> str:
        """Start a run and return its id without waiting for it.

        Raises :class:`ValidationError` for an empty list, duplicate ids or
        an unknown provider tag.
        """
        for repo in repos:
            if repo.provider not in PROVIDERS:
                raise ValidationError(f"unknown provider {repo.provider!r} for {repo.name}")
            if not repo.id or not repo.name:
                raise ValidationError("repository id and name are required")
        return await self._coordinator.start_run(repos, depth)

    async def get_run(self, run_id: str) -> ScanRun:
        return await self._coordinator.get_run(run_id)

    async def get_results(self, run_id: str, *, include_partial: bool = False) -> ScanResults:
        return await self._coordinator.get_results(run_id, include_partial=include_partial)

    async def list_runs(self) -> list[ScanRun]:
        return await self._coordinator.list_runs()

    async def scan_and_wait(
        self, repos: list[RepoRef], depth: ScanDepth = ScanDepth.FULL
    ) -> tuple[ScanRun, ScanResults]:
        """Run a scan to completion; used by the CLI.

        Partial results are returned for failed runs.
        """
        run_id = await self.start_scan(repos, depth)
        await self._coordinator.wait(run_id)
        run = await self.get_run(run_id)
        results = await self.get_results(run_id, include_partial=True)
        return run, results

    async def evict_expired(self, retention_days: int) -> int:
        cutoff = datetime.now(timezone.utc) - timedelta(days=retention_days)
        return await self._coordinator.store.evict_older_than(cutoff)
