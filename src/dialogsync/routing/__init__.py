"""Inbound message routing."""

from dialogsync.routing.router import EventRouter, MessageScope, classify, dialog_identity
from dialogsync.routing.views import (
    BufferedDialogView,
    DialogView,
    RouteKind,
    RouteTarget,
    ScrollRequest,
    ViewState,
    resolve_view,
)

__all__ = [
    "BufferedDialogView",
    "DialogView",
    "EventRouter",
    "MessageScope",
    "RouteKind",
    "RouteTarget",
    "ScrollRequest",
    "ViewState",
    "classify",
    "dialog_identity",
    "resolve_view",
]
