"""RunStore — in-memory scan runs and results, with per-run locking."""

from __future__ import annotations

import asyncio
import copy
from datetime import datetime
from typing import Protocol

import structlog

from depsentinel.engines.scan_orchestrator.models import ScanResults, ScanRun

log = structlog.get_logger("depsentinel.engine")


class RunRepository(Protocol):
    """Storage contract for runs; a database-backed one would slot in here."""

    def put(self, run: ScanRun) -> None: ...

    def get(self, run_id: str) -> ScanRun | None: ...

    def list_all(self) -> list[ScanRun]: ...

    def delete_older_than(self, cutoff: datetime) -> list[str]: ...


class InMemoryRunRepository:
    def __init__(self) -> None:
        self._runs: dict[str, ScanRun] = {}

    def put(self, run: ScanRun) -> None:
        self._runs[run.id] = run

    def get(self, run_id: str) -> ScanRun | None:
        return self._runs.get(run_id)

    def list_all(self) -> list[ScanRun]:
        return list(self._runs.values())

    def delete_older_than(self, cutoff: datetime) -> list[str]:
        stale = [run_id for run_id, run in self._runs.items() if run.started_at < cutoff]
        for run_id in stale:
            del self._runs[run_id]
        return stale


class RunStore:
    """Runs, their results and one lock per run.

    The store lock only guards insertion and eviction; field updates on a
    run happen under that run's own lock so workers of different runs never
    contend.
    """

    def __init__(self, repository: RunRepository | None = None) -> None:
        self._repository = repository or InMemoryRunRepository()
        self._results: dict[str, ScanResults] = {}
        self._run_locks: dict[str, asyncio.Lock] = {}
        self._lock = asyncio.Lock()

    async def insert(self, run: ScanRun) -> None:
        async with self._lock:
            self._repository.put(run)
            self._run_locks[run.id] = asyncio.Lock()

    def lock_for(self, run_id: str) -> asyncio.Lock:
        try:
            return self._run_locks[run_id]
        except KeyError:
            raise KeyError(run_id) from None

    def get(self, run_id: str) -> ScanRun | None:
        """Live run object; mutate only while holding :meth:`lock_for`."""
        return self._repository.get(run_id)

    async def snapshot(self, run_id: str) -> ScanRun | None:
        """Deep copy of the run taken under its lock."""
        lock = self._run_locks.get(run_id)
        if lock is None:
            return None
        async with lock:
            run = self._repository.get(run_id)
            return copy.deepcopy(run) if run is not None else None

    async def list_runs(self) -> list[ScanRun]:
        """Snapshots of every run, newest first."""
        runs = self._repository.list_all()
        snapshots = [s for s in [await self.snapshot(run.id) for run in runs] if s is not None]
        return sorted(snapshots, key=lambda r: r.started_at, reverse=True)

    def put_results(self, results: ScanResults) -> None:
        self._results[results.run_id] = results

    def get_results(self, run_id: str) -> ScanResults | None:
        return self._results.get(run_id)

    async def evict_older_than(self, cutoff: datetime) -> int:
        """Drop runs started before *cutoff* together with their results."""
        async with self._lock:
            evicted = self._repository.delete_older_than(cutoff)
            for run_id in evicted:
                self._results.pop(run_id, None)
                self._run_locks.pop(run_id, None)
        if evicted:
            log.info("store.evicted", count=len(evicted), cutoff=cutoff.isoformat())
        return len(evicted)
