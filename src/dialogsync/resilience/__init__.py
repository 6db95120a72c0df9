"""Scheduling and retry primitives."""

from dialogsync.resilience.retry import AsyncRetryConfig, fetch_with_retry
from dialogsync.resilience.scheduler import (
    AsyncioScheduler,
    ManualScheduler,
    ScheduledTask,
    Scheduler,
)

__all__ = [
    "AsyncRetryConfig",
    "AsyncioScheduler",
    "ManualScheduler",
    "ScheduledTask",
    "Scheduler",
    "fetch_with_retry",
]
