"""Async retry helpers for dialog fetches."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, TypeVar

from dialogsync.errors import FetchFailed
from dialogsync.observability.logging import get_logger

T = TypeVar("T")

logger = get_logger(__name__)


@dataclass
class AsyncRetryConfig:
    attempts: int = 3
    backoff_seconds: float = 0.5


async def fetch_with_retry(
    fn: Callable[[], Awaitable[T]],
    config: AsyncRetryConfig | None = None,
    *,
    operation: str = "fetch",
) -> T:
    """Retry ``fn`` on :class:`FetchFailed` with linear backoff.

    Anything else (including ``AuthRejected``) propagates on the first attempt.
    """
    cfg = config or AsyncRetryConfig()
    attempt = 0
    while True:
        try:
            return await fn()
        except FetchFailed as exc:
            attempt += 1
            if attempt >= cfg.attempts:
                raise
            logger.warning(
                "fetch_retrying",
                operation=operation,
                attempt=attempt,
                status_code=exc.status_code,
                error=str(exc),
            )
            await asyncio.sleep(cfg.backoff_seconds * attempt)
