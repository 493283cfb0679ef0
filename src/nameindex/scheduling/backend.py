"""Scheduler timing backends.

┌──────────────────────────────────────────────────────────────────────────────┐
│  BACKEND / SERVICE SPLIT                                                      │
│                                                                               │
│   AsyncioSchedulerBackend                      CycleScheduler                 │
│   ┌──────────────────────────────┐   tick()   ┌──────────────────────────┐   │
│   │ while not stopped:           │ ─────────► │ idle?    -> run cycle    │   │
│   │     await sleep(interval)    │            │ running? -> skip, count  │   │
│   │     create_task(tick())      │            └──────────────────────────┘   │
│   └──────────────────────────────┘                                            │
│                                                                               │
│  The backend only decides WHEN to tick. Each tick runs as its own task, so   │
│  a cycle that outlasts the interval meets the next tick, which the service   │
│  skips. Everything runs on one event loop; there are no threads.             │
└──────────────────────────────────────────────────────────────────────────────┘
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime
from typing import Any, Protocol, runtime_checkable

from nameindex.core.logging import get_logger

logger = get_logger(__name__)

TickCallback = Callable[[], Awaitable[Any]]


@runtime_checkable
class SchedulerBackend(Protocol):
    """Minimal contract for timing backends."""

    name: str

    def start(self, tick_callback: TickCallback, interval_seconds: float) -> None: ...

    async def stop(self) -> None: ...

    @property
    def is_running(self) -> bool: ...

    def health(self) -> dict[str, Any]: ...


class AsyncioSchedulerBackend:
    """Event-loop backend: fires ``tick_callback`` as a task every interval.

    Example:
        >>> backend = AsyncioSchedulerBackend()
        >>> backend.start(my_tick, interval_seconds=7200)  # inside a running loop
        >>> ...
        >>> await backend.stop()
    """

    name = "asyncio"

    def __init__(self) -> None:
        self._loop_task: asyncio.Task[None] | None = None
        self._tick_tasks: set[asyncio.Task[Any]] = set()
        self._tick_count = 0
        self._last_tick: datetime | None = None
        self._interval: float = 0.0

    def start(self, tick_callback: TickCallback, interval_seconds: float) -> None:
        """Start ticking; must be called from inside a running event loop."""
        if self.is_running:
            logger.warning("scheduler.backend_already_started", backend=self.name)
            return
        if interval_seconds <= 0:
            raise ValueError(f"interval_seconds must be positive, got {interval_seconds}")

        self._interval = interval_seconds
        self._loop_task = asyncio.get_running_loop().create_task(self._run(tick_callback, interval_seconds))
        logger.info("scheduler.backend_started", backend=self.name, interval_seconds=interval_seconds)

    async def _run(self, tick_callback: TickCallback, interval_seconds: float) -> None:
        while True:
            await asyncio.sleep(interval_seconds)
            self._tick_count += 1
            self._last_tick = datetime.now(UTC)
            task = asyncio.create_task(self._invoke(tick_callback))
            self._tick_tasks.add(task)
            task.add_done_callback(self._tick_tasks.discard)

    @staticmethod
    async def _invoke(tick_callback: TickCallback) -> None:
        try:
            await tick_callback()
        except Exception:
            logger.exception("scheduler.tick_failed")

    async def stop(self) -> None:
        """Stop ticking and wait for in-flight ticks to finish."""
        if self._loop_task is None:
            return
        self._loop_task.cancel()
        try:
            await self._loop_task
        except asyncio.CancelledError:
            pass
        self._loop_task = None
        if self._tick_tasks:
            await asyncio.gather(*self._tick_tasks, return_exceptions=True)
        logger.info("scheduler.backend_stopped", backend=self.name)

    @property
    def is_running(self) -> bool:
        return self._loop_task is not None and not self._loop_task.done()

    @property
    def tick_count(self) -> int:
        return self._tick_count

    @property
    def last_tick(self) -> datetime | None:
        return self._last_tick

    def health(self) -> dict[str, Any]:
        return {
            "healthy": self.is_running,
            "backend": self.name,
            "interval_seconds": self._interval,
            "tick_count": self._tick_count,
            "last_tick": self._last_tick.isoformat() if self._last_tick else None,
            "in_flight_ticks": len(self._tick_tasks),
        }
