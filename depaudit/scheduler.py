"""Scheduler — periodic background loops (stale-scan reaper)."""

from __future__ import annotations

import asyncio
import os
from collections.abc import Awaitable, Callable
from datetime import datetime, timedelta, timezone

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from depaudit.core.config import ScanConfig
from depaudit.services.scan_service import ScanService

logger = structlog.get_logger(__name__)

# extra time granted past the scan budget before a scan counts as stale
REAPER_GRACE_SEC = 60.0


class EngineLoop:
    """Single engine scheduling loop with trigger/timeout wake mechanism."""

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

    async def run_once(self) -> int:
        processed = await self.run_fn()
        logger.info("engine.cycle", engine=self.name, processed=processed)
        return processed

    async def loop(self) -> None:
        """Run the engine in an infinite loop, waking on trigger or timeout."""
        while True:
            try:
                await asyncio.wait_for(self.trigger.wait(), timeout=self.interval)
                self.trigger.clear()
            except asyncio.TimeoutError:
                pass

            try:
                await self.run_once()
            except Exception:
                logger.exception("engine.error", engine=self.name)


class Scheduler:
    """Manages lifecycle of all EngineLoop tasks."""

    def __init__(self, loops: list[EngineLoop]) -> None:
        self._loops = loops
        self._tasks: list[asyncio.Task[None]] = []

    async def start(self) -> None:
        """Start all engine loops as asyncio tasks, each triggered once right away."""
        self._tasks = [
            asyncio.create_task(loop.loop(), name=f"engine-{loop.name}") for loop in self._loops
        ]
        for loop in self._loops:
            loop.trigger.set()
        logger.info("scheduler.started", engines=[loop.name for loop in self._loops])

    async def stop(self) -> None:
        """Cancel all engine loops and wait for them to exit."""
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks.clear()
        logger.info("scheduler.stopped")


def _env_float(key: str, default: float) -> float:
    return float(os.environ.get(key, default))


def make_reaper(
    session_factory: async_sessionmaker[AsyncSession],
    scan_service: ScanService,
    config: ScanConfig,
) -> Callable[[], Awaitable[int]]:
    """Build the reaper cycle: fail scans active for longer than the scan budget.

    Catches scans orphaned by a crashed or restarted process, which no
    ``asyncio.wait_for`` will ever time out.
    """
    budget = timedelta(seconds=config.scan_timeout_sec + REAPER_GRACE_SEC)
    error = f"scan exceeded wall-clock budget of {config.scan_timeout_sec:g}s"

    async def _reap_stale_scans() -> int:
        cutoff = datetime.now(timezone.utc) - budget
        async with session_factory() as session:
            async with session.begin():
                return await scan_service.fail_stale(session, cutoff, error)

    return _reap_stale_scans


def create_scheduler(
    session_factory: async_sessionmaker[AsyncSession],
    *,
    scan_service: ScanService,
    config: ScanConfig,
) -> Scheduler:
    """Build a Scheduler with the stale-scan reaper wired in."""
    reaper_interval = _env_float("DEPAUDIT_REAPER_INTERVAL", 300)
    reaper = EngineLoop(
        "reaper", make_reaper(session_factory, scan_service, config), reaper_interval
    )
    return Scheduler([reaper])
