"""dialogsync observability module - structured logging.

Logs are structured JSON via structlog. While the router handles a
dialog-scoped message, the dialog key (`rootId` or `rootId#selfId`) is bound in
a contextvar and stamped on every log line emitted underneath.

Usage:
    from dialogsync.observability import get_logger

    logger = get_logger(__name__)
    logger.info("q4h_snapshot_applied", held=3, pruned=1)
"""

from __future__ import annotations

from dialogsync.observability.logging import configure_logging, get_logger

__all__ = [
    "configure_logging",
    "get_logger",
    "init_observability",
]

_OBSERVABILITY_INITIALIZED = False


def init_observability(level: str | None = None) -> None:
    """Initialize logging for the process (idempotent).

    This is intentionally *not* executed on import so `dialogsync` can be used as a
    library without mutating global logging configuration.
    """
    global _OBSERVABILITY_INITIALIZED
    if _OBSERVABILITY_INITIALIZED:
        return
    if level is None:
        from dialogsync.config import settings

        level = settings.log_level
    configure_logging(level)
    _OBSERVABILITY_INITIALIZED = True
