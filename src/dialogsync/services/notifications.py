"""User-facing notifications (toasts)."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Protocol

from rich.console import Console

from dialogsync.observability.logging import get_logger

logger = get_logger(__name__)


class ToastKind(str, Enum):
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


@dataclass
class Toast:
    kind: ToastKind
    message: str
    created_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())


class Notifier(Protocol):
    def notify(self, kind: ToastKind, message: str) -> None: ...


class LoggingNotifier:
    """Keeps toasts in memory and mirrors them to the structured log."""

    def __init__(self) -> None:
        self.toasts: list[Toast] = []

    def notify(self, kind: ToastKind, message: str) -> None:
        kind = ToastKind(kind)
        self.toasts.append(Toast(kind=kind, message=message))
        if kind == ToastKind.ERROR:
            logger.error("toast", kind=kind.value, message=message)
        elif kind == ToastKind.WARNING:
            logger.warning("toast", kind=kind.value, message=message)
        else:
            logger.info("toast", kind=kind.value, message=message)

    def of_kind(self, kind: ToastKind) -> list[Toast]:
        return [t for t in self.toasts if t.kind == kind]


_STYLES = {
    ToastKind.ERROR: "bold red",
    ToastKind.WARNING: "yellow",
    ToastKind.INFO: "cyan",
}


class ConsoleNotifier(LoggingNotifier):
    """Prints toasts to a rich console as they arrive."""

    def __init__(self, console: Console) -> None:
        super().__init__()
        self._console = console

    def notify(self, kind: ToastKind, message: str) -> None:
        super().notify(kind, message)
        kind = ToastKind(kind)
        self._console.print(f"[{_STYLES[kind]}]{kind.value}[/]: {message}")
