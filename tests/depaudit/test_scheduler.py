"""Unit tests for EngineLoop, Scheduler and the stale-scan reaper."""

from __future__ import annotations

import asyncio

import pytest

from depaudit.core.config import ScanConfig
from depaudit.scheduler import EngineLoop, Scheduler, create_scheduler, make_reaper


@pytest.fixture
def make_loop():
    """Factory for creating EngineLoop instances with a controllable run_fn."""

    def _make(
        *,
        name: str = "test",
        return_value: int = 0,
        interval: float = 100,
        side_effect: Exception | None = None,
    ) -> tuple[EngineLoop, list[int]]:
        calls: list[int] = []

        async def run_fn() -> int:
            calls.append(1)
            if side_effect is not None:
                raise side_effect
            return return_value

        loop = EngineLoop(name, run_fn, interval)
        return loop, calls

    return _make


async def _wait_until(predicate, poll: float = 0.01) -> None:
    while not predicate():
        await asyncio.sleep(poll)


async def test_loop_runs_on_timeout(make_loop):
    """Loop fires after interval timeout when no trigger is set."""
    loop, calls = make_loop(interval=0.05)

    task = asyncio.create_task(loop.loop())
    try:
        await asyncio.wait_for(_wait_until(lambda: len(calls) >= 1), timeout=1.0)
    finally:
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)


async def test_loop_runs_on_trigger(make_loop):
    """Setting trigger wakes the loop immediately."""
    loop, calls = make_loop(interval=100)

    task = asyncio.create_task(loop.loop())
    try:
        await asyncio.sleep(0.01)
        assert calls == []
        loop.trigger.set()
        await asyncio.wait_for(_wait_until(lambda: len(calls) == 1), timeout=1.0)
    finally:
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)


async def test_loop_survives_errors(make_loop):
    """An exception in run_fn is logged and the loop keeps going."""
    loop, calls = make_loop(interval=0.01, side_effect=RuntimeError("db down"))

    task = asyncio.create_task(loop.loop())
    try:
        await asyncio.wait_for(_wait_until(lambda: len(calls) >= 2), timeout=1.0)
        assert not task.done()
    finally:
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)


async def test_scheduler_start_triggers_and_stop(make_loop):
    loop, calls = make_loop(interval=100)
    scheduler = Scheduler([loop])

    await scheduler.start()
    await asyncio.wait_for(_wait_until(lambda: len(calls) == 1), timeout=1.0)
    await scheduler.stop()


# ── reaper ───────────────────────────────────────────────────────────────


async def test_reaper_fails_stale_scans(session_factory, scan_service, make_project):
    async with session_factory() as session:
        proj = await make_project(session)
        scan = await scan_service.create_pending(session, proj.id, "main")
        await session.commit()

    # a negative budget makes every active scan stale
    config = ScanConfig(scan_timeout_sec=-3600)
    reap = make_reaper(session_factory, scan_service, config)
    assert await reap() == 1

    async with session_factory() as session:
        reaped = await scan_service.get(session, scan.id)
        assert reaped.status == "failed"
        assert "wall-clock budget" in reaped.error

    assert await reap() == 0


async def test_reaper_leaves_fresh_scans(session_factory, scan_service, make_project):
    async with session_factory() as session:
        proj = await make_project(session)
        await scan_service.create_pending(session, proj.id, "main")
        await session.commit()

    reap = make_reaper(session_factory, scan_service, ScanConfig(scan_timeout_sec=600))
    assert await reap() == 0


async def test_create_scheduler_interval(monkeypatch, session_factory, scan_service):
    monkeypatch.setenv("DEPAUDIT_REAPER_INTERVAL", "42")
    scheduler = create_scheduler(session_factory, scan_service=scan_service, config=ScanConfig())
    (loop,) = scheduler._loops
    assert loop.name == "reaper"
    assert loop.interval == 42.0
