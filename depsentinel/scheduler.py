"""Scheduler — periodic background housekeeping for the API process."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable

import structlog

from depsentinel.core.config import ScanSettings
from depsentinel.services.scan_service import ScanService

logger = structlog.get_logger(__name__)


class EvictionLoop:
    """Runs *run_fn* every *interval* seconds, or sooner when triggered."""

    def __init__(
        self,
        name: str,
        run_fn: Callable[[], Awaitable[int]],
        interval: float,
    ) -> None:
        self.name = name
        self.run_fn = run_fn
        self.interval = interval
        self.trigger = asyncio.Event()
        self._task: asyncio.Task[None] | None = None

    async def loop(self) -> None:
        while True:
            try:
                await asyncio.wait_for(self.trigger.wait(), timeout=self.interval)
                self.trigger.clear()
            except asyncio.TimeoutError:
                pass

            try:
                processed = await self.run_fn()
                logger.info("eviction.cycle", loop=self.name, evicted=processed)
            except Exception:
                logger.exception("eviction.error", loop=self.name)

    async def start(self) -> None:
        self._task = asyncio.create_task(self.loop(), name=f"loop-{self.name}")
        logger.info("scheduler.started", loop=self.name, interval=self.interval)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        await asyncio.gather(self._task, return_exceptions=True)
        self._task = None
        logger.info("scheduler.stopped", loop=self.name)


def create_eviction_loop(scan_service: ScanService, settings: ScanSettings) -> EvictionLoop:
    """Evict runs older than the retention window on every cycle."""

    async def _evict() -> int:
        return await scan_service.evict_expired(settings.retention_days)

    return EvictionLoop("run-eviction", _evict, settings.evict_interval)
