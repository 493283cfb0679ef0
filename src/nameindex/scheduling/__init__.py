"""Recurring execution of the indexing cycle."""

from nameindex.scheduling.backend import AsyncioSchedulerBackend, SchedulerBackend, TickCallback
from nameindex.scheduling.service import (
    CycleAlreadyRunningError,
    CycleScheduler,
    SchedulerState,
    SchedulerStats,
)

__all__ = [
    "AsyncioSchedulerBackend",
    "CycleAlreadyRunningError",
    "CycleScheduler",
    "SchedulerBackend",
    "SchedulerState",
    "SchedulerStats",
    "TickCallback",
]
