"""Delayed-callback scheduling with an explicit, cancellable task list."""

from __future__ import annotations

import asyncio
import heapq
import itertools
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Protocol

from dialogsync.observability.logging import get_logger

logger = get_logger(__name__)

Callback = Callable[[], Awaitable[None]]


@dataclass
class ScheduledTask:
    name: str
    due: float
    callback: Callback
    cancelled: bool = False
    fired: bool = False
    _task: asyncio.Task | None = field(default=None, repr=False)

    @property
    def pending(self) -> bool:
        return not (self.cancelled or self.fired)

    def cancel(self) -> None:
        self.cancelled = True
        if self._task is not None and not self._task.done():
            self._task.cancel()


class Scheduler(Protocol):
    def now(self) -> float: ...

    def call_later(self, delay: float, callback: Callback, *, name: str = "") -> ScheduledTask: ...

    def cancel_all(self) -> int: ...


class AsyncioScheduler:
    """Runs callbacks on the running event loop after a delay."""

    def __init__(self) -> None:
        self._tasks: list[ScheduledTask] = []

    def now(self) -> float:
        return asyncio.get_running_loop().time()

    @property
    def pending(self) -> list[ScheduledTask]:
        return [t for t in self._tasks if t.pending]

    def call_later(self, delay: float, callback: Callback, *, name: str = "") -> ScheduledTask:
        entry = ScheduledTask(name=name, due=self.now() + max(delay, 0.0), callback=callback)
        entry._task = asyncio.create_task(self._run(entry, max(delay, 0.0)), name=name or None)
        self._tasks = [t for t in self._tasks if t.pending]
        self._tasks.append(entry)
        return entry

    async def _run(self, entry: ScheduledTask, delay: float) -> None:
        await asyncio.sleep(delay)
        if entry.cancelled:
            return
        entry.fired = True
        try:
            await entry.callback()
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.error("scheduled_task_failed", task=entry.name, error=str(exc), exc_info=True)

    def cancel_all(self) -> int:
        cancelled = 0
        for entry in self._tasks:
            if entry.pending:
                cancelled += 1
            entry.cancel()
        self._tasks = []
        return cancelled


class ManualScheduler:
    """Scheduler driven by :meth:`advance`; time never moves on its own.

    Used in tests to step through debounce windows and refresh ladders
    deterministically.
    """

    def __init__(self, start: float = 0.0) -> None:
        self._now = start
        self._queue: list[tuple[float, int, ScheduledTask]] = []
        self._seq = itertools.count()
        self.fired: list[str] = []

    def now(self) -> float:
        return self._now

    @property
    def pending(self) -> list[ScheduledTask]:
        return sorted((e for _, _, e in self._queue if e.pending), key=lambda e: e.due)

    def call_later(self, delay: float, callback: Callback, *, name: str = "") -> ScheduledTask:
        entry = ScheduledTask(name=name, due=self._now + max(delay, 0.0), callback=callback)
        heapq.heappush(self._queue, (entry.due, next(self._seq), entry))
        return entry

    async def advance(self, seconds: float) -> int:
        """Move time forward, running every callback that falls due on the way."""
        target = self._now + seconds
        ran = 0
        while self._queue and self._queue[0][0] <= target:
            due, _, entry = heapq.heappop(self._queue)
            self._now = max(self._now, due)
            if entry.cancelled:
                continue
            entry.fired = True
            self.fired.append(entry.name)
            await entry.callback()
            ran += 1
        self._now = target
        return ran

    def cancel_all(self) -> int:
        cancelled = sum(1 for _, _, e in self._queue if e.pending)
        for _, _, entry in self._queue:
            entry.cancel()
        self._queue = []
        return cancelled
