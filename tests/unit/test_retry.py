from __future__ import annotations

import pytest

from dialogsync.errors import AuthRejected, FetchFailed
from dialogsync.resilience.retry import AsyncRetryConfig, fetch_with_retry


@pytest.mark.asyncio
async def test_fetch_with_retry_returns_value_first_try() -> None:
    async def fn() -> str:
        return "ok"

    assert await fetch_with_retry(fn, AsyncRetryConfig(attempts=3, backoff_seconds=0)) == "ok"


@pytest.mark.asyncio
async def test_fetch_with_retry_retries_fetch_failures() -> None:
    attempts = 0

    async def fn() -> str:
        nonlocal attempts
        attempts += 1
        if attempts < 3:
            raise FetchFailed("transient", status_code=503)
        return "done"

    out = await fetch_with_retry(fn, AsyncRetryConfig(attempts=5, backoff_seconds=0))
    assert out == "done"
    assert attempts == 3


@pytest.mark.asyncio
async def test_fetch_with_retry_raises_after_max_attempts() -> None:
    attempts = 0

    async def fn() -> None:
        nonlocal attempts
        attempts += 1
        raise FetchFailed("always")

    with pytest.raises(FetchFailed, match="always"):
        await fetch_with_retry(fn, AsyncRetryConfig(attempts=2, backoff_seconds=0))
    assert attempts == 2


@pytest.mark.asyncio
async def test_fetch_with_retry_does_not_retry_auth_rejection() -> None:
    attempts = 0

    async def fn() -> None:
        nonlocal attempts
        attempts += 1
        raise AuthRejected()

    with pytest.raises(AuthRejected):
        await fetch_with_retry(fn, AsyncRetryConfig(attempts=5, backoff_seconds=0))
    assert attempts == 1
