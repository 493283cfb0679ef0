"""Cycle scheduler: runs the indexing cycle once or on a fixed interval.

States:
    idle ──(tick / initial run)──► running ──(cycle done, ok or failed)──► idle

A tick that arrives while ``running`` is skipped and counted. The state is
checked and set with no ``await`` in between, so on a single event loop two
cycles can never start together.

Failure handling differs by mode:
    - ``run_once()`` (one-shot) re-raises the cycle's error so the process
      can exit non-zero.
    - ``tick()`` (service) logs the error, returns to ``idle`` and waits for
      the next tick.
"""

from __future__ import annotations

import asyncio
import time
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from nameindex.core.errors import NameIndexError
from nameindex.core.logging import LogContext, get_logger
from nameindex.scheduling.backend import AsyncioSchedulerBackend, SchedulerBackend

logger = get_logger(__name__)

Cycle = Callable[[], Awaitable[Any]]


class SchedulerState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"


class CycleAlreadyRunningError(RuntimeError):
    """``run_once()`` was called while a cycle is in progress."""


@dataclass
class SchedulerStats:
    """Statistics for the cycle scheduler."""

    ticks: int = 0
    cycles_started: int = 0
    cycles_skipped: int = 0
    cycles_succeeded: int = 0
    cycles_failed: int = 0
    last_started: datetime | None = None
    last_finished: datetime | None = None
    last_duration_seconds: float | None = None
    last_error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "ticks": self.ticks,
            "cycles_started": self.cycles_started,
            "cycles_skipped": self.cycles_skipped,
            "cycles_succeeded": self.cycles_succeeded,
            "cycles_failed": self.cycles_failed,
            "last_started": self.last_started.isoformat() if self.last_started else None,
            "last_finished": self.last_finished.isoformat() if self.last_finished else None,
            "last_duration_seconds": self.last_duration_seconds,
            "last_error": self.last_error,
        }


class CycleScheduler:
    """Owns the idle/running state of the indexing cycle.

    Example:
        >>> scheduler = CycleScheduler(run_index_cycle, interval_seconds=7200)
        >>> await scheduler.run_once()          # one-shot
        >>> await scheduler.serve(stop_event)   # recurring service
    """

    def __init__(
        self,
        cycle: Cycle,
        *,
        interval_seconds: float,
        backend: SchedulerBackend | None = None,
        name: str = "index",
    ) -> None:
        self._cycle = cycle
        self.interval = interval_seconds
        self.backend = backend or AsyncioSchedulerBackend()
        self.name = name
        self._state = SchedulerState.IDLE
        self._stats = SchedulerStats()

    @property
    def state(self) -> SchedulerState:
        return self._state

    @property
    def stats(self) -> SchedulerStats:
        return self._stats

    def _try_acquire(self) -> bool:
        if self._state is SchedulerState.RUNNING:
            return False
        self._state = SchedulerState.RUNNING
        return True

    async def _execute(self) -> Any:
        """Run one cycle; caller holds the RUNNING state."""
        cycle_id = uuid.uuid4().hex[:12]
        started = time.monotonic()
        self._stats.cycles_started += 1
        self._stats.last_started = datetime.now(UTC)
        try:
            async with LogContext(cycle_id=cycle_id, scheduler=self.name):
                logger.info("scheduler.cycle_started")
                try:
                    result = await self._cycle()
                except Exception as e:
                    self._stats.cycles_failed += 1
                    self._stats.last_error = str(e)
                    details = e.to_dict() if isinstance(e, NameIndexError) else {"message": str(e)}
                    logger.error("scheduler.cycle_failed", error_type=type(e).__name__, details=details)
                    raise
                self._stats.cycles_succeeded += 1
                self._stats.last_error = None
                logger.info("scheduler.cycle_finished", duration_seconds=round(time.monotonic() - started, 3))
                return result
        finally:
            self._stats.last_duration_seconds = time.monotonic() - started
            self._stats.last_finished = datetime.now(UTC)
            self._state = SchedulerState.IDLE

    async def tick(self) -> bool:
        """Service tick: start a cycle unless one is running. Returns whether it started."""
        self._stats.ticks += 1
        if not self._try_acquire():
            self._stats.cycles_skipped += 1
            logger.info("scheduler.cycle_skipped", reason="already indexing", scheduler=self.name)
            return False
        try:
            await self._execute()
        except Exception:
            # already logged by _execute; the service keeps running
            pass
        return True

    async def run_once(self) -> Any:
        """One-shot: run a single cycle and propagate its failure."""
        if not self._try_acquire():
            raise CycleAlreadyRunningError(f"Scheduler {self.name!r} is already running a cycle")
        return await self._execute()

    async def serve(self, stop_event: asyncio.Event | None = None) -> None:
        """Run a cycle now, then one per interval until ``stop_event`` is set."""
        stop_event = stop_event or asyncio.Event()
        logger.info("scheduler.serving", scheduler=self.name, interval_seconds=self.interval)
        await self.tick()
        self.backend.start(self.tick, self.interval)
        try:
            await stop_event.wait()
        finally:
            await self.backend.stop()
            logger.info("scheduler.stopped", scheduler=self.name, **self._stats.to_dict())

    def health(self) -> dict[str, Any]:
        return {
            "state": self._state.value,
            "backend": self.backend.health(),
            "stats": self._stats.to_dict(),
        }
