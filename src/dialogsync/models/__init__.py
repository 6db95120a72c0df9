"""Wire and domain models shared by the sync engine."""

from dialogsync.models.dialogs import (
    Blocked,
    BlockedReason,
    Dead,
    DialogHierarchy,
    DialogIdent,
    DialogNode,
    DialogStatus,
    IdleWaitingUser,
    Interrupted,
    InterruptionReason,
    Proceeding,
    ProceedingStopRequested,
    RunState,
    Terminal,
    dialog_key,
    parse_run_state,
)
from dialogsync.models.messages import InboundMessage, OutboundMessage, parse_message
from dialogsync.models.questions import CallSiteRef, Q4HDialogGroup, Q4HQuestion

__all__ = [
    "Blocked",
    "BlockedReason",
    "CallSiteRef",
    "Dead",
    "DialogHierarchy",
    "DialogIdent",
    "DialogNode",
    "DialogStatus",
    "IdleWaitingUser",
    "InboundMessage",
    "Interrupted",
    "InterruptionReason",
    "OutboundMessage",
    "Proceeding",
    "ProceedingStopRequested",
    "Q4HDialogGroup",
    "Q4HQuestion",
    "RunState",
    "Terminal",
    "dialog_key",
    "parse_message",
    "parse_run_state",
]
