"""External collaborators: data fetches, transport and notifications."""

from dialogsync.services.api import DialogApi, DialogApiClient, FixtureDialogApi
from dialogsync.services.notifications import (
    ConsoleNotifier,
    LoggingNotifier,
    Notifier,
    Toast,
    ToastKind,
)
from dialogsync.services.transport import (
    ConnectionState,
    InMemoryTransport,
    JsonlReplayTransport,
    Transport,
)

__all__ = [
    "ConnectionState",
    "ConsoleNotifier",
    "DialogApi",
    "DialogApiClient",
    "FixtureDialogApi",
    "InMemoryTransport",
    "JsonlReplayTransport",
    "LoggingNotifier",
    "Notifier",
    "Toast",
    "ToastKind",
    "Transport",
]
