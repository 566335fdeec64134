"""RunCoordinator — starts runs, dispatches workers and publishes results."""

from __future__ import annotations

import asyncio
import uuid
from datetime import datetime, timezone

import structlog

from depsentinel.core.config import ScanSettings
from depsentinel.engines.dependency_scanner import DependencyNormalizer
from depsentinel.engines.dependency_scanner.technologies import summarize_technologies
from depsentinel.engines.repo_source import SourceFactory
from depsentinel.engines.scan_orchestrator.cache import RepoCache
from depsentinel.engines.scan_orchestrator.models import (
    ProgressStatus,
    RepoRef,
    RepoScanResult,
    RunStatus,
    ScanDepth,
    ScanProgress,
    ScanResults,
    ScanRun,
)
from depsentinel.engines.scan_orchestrator.store import RunStore
from depsentinel.engines.scan_orchestrator.worker import RepoScanWorker
from depsentinel.services import NotFoundError, ValidationError

log = structlog.get_logger("depsentinel.engine")


def build_results(run: ScanRun, repo_results: dict[str, RepoScanResult]) -> ScanResults:
    """Aggregate per-repository results in the run's repository order."""
    repos = {repo.id: repo_results[repo.id] for repo in run.repos if repo.id in repo_results}
    services = [service for result in repos.values() for service in result.services]
    components = [comp for service in services for comp in service.components]
    return ScanResults(
        run_id=run.id,
        repos=repos,
        services=services,
        total_services=len(services),
        total_components=len(components),
        flagged_components=sum(1 for comp in components if comp.flagged),
        eol_components=sum(1 for comp in components if comp.eol),
        technologies=summarize_technologies(services),
        partial=run.status == RunStatus.FAILED,
    )


class _RunReporter:
    """Progress writer bound to one repository slot of one run."""

    def __init__(self, coordinator: RunCoordinator, run_id: str, repo_id: str) -> None:
        self._coordinator = coordinator
        self._run_id = run_id
        self._repo_id = repo_id

    def _progress(self) -> ScanProgress:
        run = self._coordinator.store.get(self._run_id)
        if run is None:
            raise KeyError(self._run_id)
        return run.progress[self._repo_id]

    async def start(self) -> None:
        async with self._coordinator.store.lock_for(self._run_id):
            run = self._coordinator.store.get(self._run_id)
            if run.status == RunStatus.PENDING:
                run.status = RunStatus.RUNNING
            progress = run.progress[self._repo_id]
            progress.status = ProgressStatus.SCANNING
            progress.percent = 0
            progress.message = "Starting scan"

    async def step(self, percent: int, message: str) -> None:
        async with self._coordinator.store.lock_for(self._run_id):
            self.advance(percent, message)

    def advance(self, percent: int, message: str) -> None:
        # Synchronous: no await between read and write
        progress = self._progress()
        if progress.status != ProgressStatus.SCANNING:
            return
        progress.percent = max(progress.percent, min(percent, 100))
        progress.message = message

    async def complete(self, result: RepoScanResult) -> None:
        await self._coordinator._finish(
            self._run_id,
            self._repo_id,
            ProgressStatus.COMPLETED,
            message=f"Found {len(result.services)} service(s)",
            result=result,
        )

    async def fail(self, message: str, error: str) -> None:
        await self._coordinator._finish(
            self._run_id, self._repo_id, ProgressStatus.FAILED, message=message, error=error
        )


class RunCoordinator:
    """Owns the lifecycle of scan runs.

    ``start_run`` records the run and every progress slot before any worker
    starts, then schedules one task per repository and returns at once.
    Workers report through a :class:`_RunReporter`; each terminal report
    recomputes ``completed_repos`` and the run status under the run's lock,
    and the last one publishes the aggregated results.
    """

    def __init__(
        self,
        *,
        sources: SourceFactory,
        normalizer: DependencyNormalizer | None = None,
        store: RunStore | None = None,
        cache: RepoCache | None = None,
        settings: ScanSettings | None = None,
    ) -> None:
        self.settings = settings or ScanSettings()
        self.store = store or RunStore()
        self.cache = cache or RepoCache()
        self._sources = sources
        self._normalizer = normalizer or DependencyNormalizer()
        self._semaphore = (
            asyncio.Semaphore(self.settings.max_parallel_repos)
            if self.settings.max_parallel_repos > 0
            else None
        )
        self._tasks: dict[str, set[asyncio.Task]] = {}
        self._repo_results: dict[str, dict[str, RepoScanResult]] = {}

    # ── public ─────────────────────────────────────────────────────────────

    async def start_run(self, repos: list[RepoRef], depth: ScanDepth = ScanDepth.FULL) -> str:
        if not repos:
            raise ValidationError("at least one repository is required")
        ids = [repo.id for repo in repos]
        if len(set(ids)) != len(ids):
            raise ValidationError("repository ids must be unique within a run")

        run = ScanRun(
            id=uuid.uuid4().hex,
            repos=list(repos),
            depth=depth,
            started_at=datetime.now(timezone.utc),
            progress={
                repo.id: ScanProgress(repo_id=repo.id, repo_name=repo.name) for repo in repos
            },
            total_repos=len(repos),
        )
        await self.store.insert(run)
        self._repo_results[run.id] = {}
        log.info("scan.run_started", run_id=run.id, repos=len(repos), depth=depth.value)

        tasks = self._tasks.setdefault(run.id, set())
        for repo in repos:
            worker = RepoScanWorker(
                repo,
                depth,
                _RunReporter(self, run.id, repo.id),
                sources=self._sources,
                normalizer=self._normalizer,
                cache=self.cache,
                fetch_concurrency=self.settings.fetch_concurrency,
                max_manifest_bytes=self.settings.max_manifest_bytes,
            )
            task = asyncio.create_task(
                self._run_worker(run.id, worker), name=f"scan-{run.id}-{repo.id}"
            )
            tasks.add(task)
            task.add_done_callback(tasks.discard)
        return run.id

    async def get_run(self, run_id: str) -> ScanRun:
        run = await self.store.snapshot(run_id)
        if run is None:
            raise NotFoundError(f"scan run {run_id} not found")
        return run

    async def get_results(self, run_id: str, *, include_partial: bool = False) -> ScanResults:
        run = await self.get_run(run_id)
        results = self.store.get_results(run_id)
        if results is None:
            raise NotFoundError(f"results for scan run {run_id} are not ready (status: {run.status.value})")
        if results.partial and not include_partial:
            raise NotFoundError(f"scan run {run_id} failed; request partial results explicitly")
        return results

    async def list_runs(self) -> list[ScanRun]:
        return await self.store.list_runs()

    async def wait(self, run_id: str) -> None:
        """Block until every worker of *run_id* has finished."""
        tasks = list(self._tasks.get(run_id, ()))
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def shutdown(self) -> None:
        pending = [task for tasks in self._tasks.values() for task in tasks if not task.done()]
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
            log.info("scan.workers_cancelled", count=len(pending))
        self._tasks.clear()

    # ── internal ───────────────────────────────────────────────────────────

    async def _run_worker(self, run_id: str, worker: RepoScanWorker) -> None:
        # Each task runs in a copy of the context, so these bindings stay per worker
        with structlog.contextvars.bound_contextvars(run_id=run_id, repo_id=worker.repo.id):
            if self._semaphore is None:
                await worker.run()
                return
            async with self._semaphore:
                await worker.run()

    async def _finish(
        self,
        run_id: str,
        repo_id: str,
        status: ProgressStatus,
        *,
        message: str,
        error: str | None = None,
        result: RepoScanResult | None = None,
    ) -> None:
        async with self.store.lock_for(run_id):
            run = self.store.get(run_id)
            if run is None:
                return
            progress = run.progress[repo_id]
            if progress.status.terminal:
                return
            progress.status = status
            progress.message = message
            progress.error = error
            if result is not None:
                progress.percent = 100
                progress.warnings = list(result.warnings)
                self._repo_results.setdefault(run_id, {})[repo_id] = result

            run.completed_repos = sum(1 for p in run.progress.values() if p.status.terminal)
            if run.completed_repos < run.total_repos:
                return

            failed = any(p.status == ProgressStatus.FAILED for p in run.progress.values())
            run.status = RunStatus.FAILED if failed else RunStatus.COMPLETED
            run.ended_at = datetime.now(timezone.utc)
            results = build_results(run, self._repo_results.pop(run_id, {}))
            self.store.put_results(results)
            self._tasks.pop(run_id, None)

        log.info(
            "scan.run_finished",
            run_id=run_id,
            status=run.status.value,
            services=results.total_services,
            components=results.total_components,
        )
