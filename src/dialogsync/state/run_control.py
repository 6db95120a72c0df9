"""Global run-control counters and delayed refresh scheduling."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Mapping

from dialogsync.models.dialogs import DialogStatus, is_resumable, is_stoppable
from dialogsync.observability.logging import get_logger
from dialogsync.resilience.scheduler import ScheduledTask, Scheduler
from dialogsync.state.registry import DialogRegistry

logger = get_logger(__name__)


class RefreshReason(str, Enum):
    RESUME_ALL = "resume_all"
    EMERGENCY_STOP = "emergency_stop"
    RUN_STATE_MARKER_INTERRUPTED = "run_state_marker_interrupted"
    RUN_STATE_MARKER_RESUMED = "run_state_marker_resumed"


# Seconds after the trigger at which the root list is re-fetched. Resuming fans
# out across many dialogs server-side, so it settles slower than a stop.
REFRESH_LADDERS: dict[RefreshReason, tuple[float, ...]] = {
    RefreshReason.RESUME_ALL: (0.5, 1.5, 3.0, 6.0),
    RefreshReason.EMERGENCY_STOP: (0.3, 1.0, 2.5),
    RefreshReason.RUN_STATE_MARKER_INTERRUPTED: (0.3, 1.2),
    RefreshReason.RUN_STATE_MARKER_RESUMED: (0.3, 1.2),
}

DEFAULT_DEBOUNCE_S = 0.2


@dataclass(frozen=True)
class RunControlCounts:
    stoppable: int = 0
    resumable: int = 0


class RunControlAggregator:
    """Counts stoppable / resumable root dialogs.

    Only running roots count. A root is stoppable while ``proceeding`` (or
    stopping) and resumable while ``interrupted``; no root is both.
    """

    def __init__(
        self,
        scheduler: Scheduler,
        refresh: Callable[[], Awaitable[None]] | None = None,
        *,
        debounce_s: float = DEFAULT_DEBOUNCE_S,
        ladders: Mapping[RefreshReason, tuple[float, ...]] | None = None,
    ) -> None:
        self._scheduler = scheduler
        self._refresh = refresh
        self._debounce_s = debounce_s
        self._ladders = dict(ladders or REFRESH_LADDERS)
        self._last_trigger: dict[RefreshReason, float] = {}
        self._scheduled: list[ScheduledTask] = []
        self.counts = RunControlCounts()

    @property
    def stoppable_count(self) -> int:
        return self.counts.stoppable

    @property
    def resumable_count(self) -> int:
        return self.counts.resumable

    @property
    def scheduled(self) -> list[ScheduledTask]:
        return [t for t in self._scheduled if t.pending]

    def set_refresh(self, refresh: Callable[[], Awaitable[None]]) -> None:
        self._refresh = refresh

    def recompute(self, registry: DialogRegistry) -> RunControlCounts:
        stoppable = 0
        resumable = 0
        for root in registry.roots():
            if root.status != DialogStatus.RUNNING:
                continue
            if is_stoppable(root.run_state):
                stoppable += 1
            elif is_resumable(root.run_state):
                resumable += 1
        counts = RunControlCounts(stoppable=stoppable, resumable=resumable)
        if counts != self.counts:
            logger.info("run_control_counts_changed", stoppable=stoppable, resumable=resumable)
        self.counts = counts
        return counts

    def schedule_refresh(self, reason: RefreshReason | str) -> bool:
        """Schedule the refresh ladder for ``reason``.

        Returns ``False`` when the request falls inside the debounce window of
        the previous request with the same reason.
        """
        reason = RefreshReason(reason)
        now = self._scheduler.now()
        last = self._last_trigger.get(reason)
        if last is not None and now - last < self._debounce_s:
            logger.debug("run_control_refresh_debounced", reason=reason.value)
            return False
        self._last_trigger[reason] = now

        if self._refresh is None:
            logger.warning("run_control_refresh_unavailable", reason=reason.value)
            return False

        ladder = self._ladders[reason]
        self._scheduled = [t for t in self._scheduled if t.pending]
        for step, delay in enumerate(ladder):
            self._scheduled.append(
                self._scheduler.call_later(
                    delay,
                    self._run_refresh,
                    name=f"run_control_refresh:{reason.value}:{step}",
                )
            )
        logger.info("run_control_refresh_scheduled", reason=reason.value, steps=len(ladder))
        return True

    async def _run_refresh(self) -> None:
        if self._refresh is not None:
            await self._refresh()

    def teardown(self) -> int:
        cancelled = 0
        for task in self._scheduled:
            if task.pending:
                task.cancel()
                cancelled += 1
        self._scheduled = []
        if cancelled:
            logger.info("run_control_refresh_cancelled", cancelled=cancelled)
        return cancelled
