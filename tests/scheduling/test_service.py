"""
Tests for nameindex.scheduling.service.CycleScheduler.

Covers:
- One-shot run_once(): result and failure propagation
- Service ticks: skipped (and counted) while a cycle is running
- State always returns to idle
- serve() drives the backend until the stop event is set
"""

from __future__ import annotations

import asyncio
from typing import Any

import pytest
import structlog

from nameindex.core.errors import ListingError
from nameindex.scheduling.backend import AsyncioSchedulerBackend
from nameindex.scheduling.service import CycleAlreadyRunningError, CycleScheduler, SchedulerState


class _GatedCycle:
    """A cycle that blocks until ``release()``."""

    def __init__(self) -> None:
        self.started = asyncio.Event()
        self.gate = asyncio.Event()
        self.runs = 0

    async def __call__(self) -> str:
        self.runs += 1
        self.started.set()
        await self.gate.wait()
        return "done"

    def release(self) -> None:
        self.gate.set()


class _RecordingBackend:
    name = "recording"

    def __init__(self) -> None:
        self.started_with: tuple[Any, float] | None = None
        self.stopped = False

    def start(self, tick_callback, interval_seconds: float) -> None:
        self.started_with = (tick_callback, interval_seconds)

    async def stop(self) -> None:
        self.stopped = True

    @property
    def is_running(self) -> bool:
        return self.started_with is not None and not self.stopped

    def health(self) -> dict[str, Any]:
        return {"backend": self.name}


class TestRunOnce:
    @pytest.mark.asyncio
    async def test_returns_cycle_result(self):
        async def cycle() -> int:
            return 42

        scheduler = CycleScheduler(cycle, interval_seconds=60)
        assert await scheduler.run_once() == 42
        assert scheduler.state is SchedulerState.IDLE
        assert scheduler.stats.cycles_started == 1
        assert scheduler.stats.cycles_succeeded == 1
        assert scheduler.stats.last_duration_seconds is not None

    @pytest.mark.asyncio
    async def test_propagates_failure(self):
        async def cycle() -> None:
            raise ListingError("directory down")

        scheduler = CycleScheduler(cycle, interval_seconds=60)
        with pytest.raises(ListingError):
            await scheduler.run_once()
        assert scheduler.state is SchedulerState.IDLE
        assert scheduler.stats.cycles_failed == 1
        assert scheduler.stats.last_error == "directory down"

    @pytest.mark.asyncio
    async def test_rejects_concurrent_run(self):
        cycle = _GatedCycle()
        scheduler = CycleScheduler(cycle, interval_seconds=60)
        first = asyncio.create_task(scheduler.run_once())
        await cycle.started.wait()

        with pytest.raises(CycleAlreadyRunningError):
            await scheduler.run_once()

        cycle.release()
        assert await first == "done"
        assert cycle.runs == 1

    @pytest.mark.asyncio
    async def test_cycle_id_bound_while_running(self):
        seen: dict[str, Any] = {}

        async def cycle() -> None:
            seen.update(structlog.contextvars.get_contextvars())

        await CycleScheduler(cycle, interval_seconds=60, name="fetch-to-json").run_once()
        assert len(seen["cycle_id"]) == 12
        assert seen["scheduler"] == "fetch-to-json"
        assert "cycle_id" not in structlog.contextvars.get_contextvars()


class TestTick:
    @pytest.mark.asyncio
    async def test_tick_while_running_is_skipped(self):
        cycle = _GatedCycle()
        scheduler = CycleScheduler(cycle, interval_seconds=60)

        first = asyncio.create_task(scheduler.tick())
        await cycle.started.wait()
        assert scheduler.state is SchedulerState.RUNNING

        assert await scheduler.tick() is False
        assert await scheduler.tick() is False

        cycle.release()
        assert await first is True
        assert cycle.runs == 1
        assert scheduler.stats.ticks == 3
        assert scheduler.stats.cycles_skipped == 2
        assert scheduler.state is SchedulerState.IDLE

    @pytest.mark.asyncio
    async def test_tick_after_finish_runs_again(self):
        runs = []

        async def cycle() -> None:
            runs.append(1)

        scheduler = CycleScheduler(cycle, interval_seconds=60)
        assert await scheduler.tick() is True
        assert await scheduler.tick() is True
        assert len(runs) == 2
        assert scheduler.stats.cycles_skipped == 0

    @pytest.mark.asyncio
    async def test_failed_cycle_does_not_stop_service(self):
        calls = []

        async def cycle() -> None:
            calls.append(1)
            if len(calls) == 1:
                raise RuntimeError("transient")

        scheduler = CycleScheduler(cycle, interval_seconds=60)
        assert await scheduler.tick() is True
        assert scheduler.state is SchedulerState.IDLE
        assert await scheduler.tick() is True
        assert scheduler.stats.cycles_failed == 1
        assert scheduler.stats.cycles_succeeded == 1
        assert scheduler.stats.last_error is None


class TestServe:
    @pytest.mark.asyncio
    async def test_initial_cycle_then_backend(self):
        stop = asyncio.Event()
        backend = _RecordingBackend()
        runs = []

        async def cycle() -> None:
            runs.append(1)
            stop.set()

        scheduler = CycleScheduler(cycle, interval_seconds=7200, backend=backend)
        await asyncio.wait_for(scheduler.serve(stop), timeout=1)

        assert runs == [1]
        tick, interval = backend.started_with
        assert tick == scheduler.tick
        assert interval == 7200
        assert backend.stopped

    @pytest.mark.asyncio
    async def test_overlapping_interval_ticks_are_skipped(self):
        stop = asyncio.Event()
        runs = []

        async def cycle() -> None:
            runs.append(1)
            await asyncio.sleep(0.08)
            if len(runs) == 2:
                stop.set()

        scheduler = CycleScheduler(cycle, interval_seconds=0.02, backend=AsyncioSchedulerBackend())
        await asyncio.wait_for(scheduler.serve(stop), timeout=2)

        assert scheduler.stats.cycles_skipped > 0
        assert scheduler.stats.cycles_started == len(runs)
        assert scheduler.state is SchedulerState.IDLE

    @pytest.mark.asyncio
    async def test_health(self):
        async def cycle() -> None:
            return None

        scheduler = CycleScheduler(cycle, interval_seconds=60, backend=_RecordingBackend())
        await scheduler.run_once()
        health = scheduler.health()
        assert health["state"] == "idle"
        assert health["backend"] == {"backend": "recording"}
        assert health["stats"]["cycles_succeeded"] == 1
