"""Local sync state: dialog registry, Q4H set and run-control counters."""

from dialogsync.state.q4h import Q4HReconciler, group_by_dialog
from dialogsync.state.registry import DialogRegistry
from dialogsync.state.run_control import (
    REFRESH_LADDERS,
    RefreshReason,
    RunControlAggregator,
    RunControlCounts,
)

__all__ = [
    "DialogRegistry",
    "Q4HReconciler",
    "REFRESH_LADDERS",
    "RefreshReason",
    "RunControlAggregator",
    "RunControlCounts",
    "group_by_dialog",
]
