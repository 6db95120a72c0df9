"""Unit tests for delayed-callback schedulers."""

from __future__ import annotations

import asyncio

import pytest

from dialogsync.resilience.scheduler import AsyncioScheduler, ManualScheduler


@pytest.mark.asyncio
async def test_manual_scheduler_runs_due_callbacks_in_order() -> None:
    scheduler = ManualScheduler()
    calls: list[str] = []

    async def record(name: str) -> None:
        calls.append(name)

    scheduler.call_later(1.0, lambda: record("late"), name="late")
    scheduler.call_later(0.5, lambda: record("early"), name="early")

    assert await scheduler.advance(0.4) == 0
    assert await scheduler.advance(0.6) == 2
    assert calls == ["early", "late"]
    assert scheduler.now() == pytest.approx(1.0)


@pytest.mark.asyncio
async def test_manual_scheduler_skips_cancelled_entries() -> None:
    scheduler = ManualScheduler()
    calls: list[str] = []

    async def record() -> None:
        calls.append("ran")

    entry = scheduler.call_later(0.1, record, name="x")
    entry.cancel()

    assert await scheduler.advance(1.0) == 0
    assert calls == []
    assert not entry.pending


@pytest.mark.asyncio
async def test_manual_scheduler_cancel_all_counts_pending() -> None:
    scheduler = ManualScheduler()

    async def noop() -> None:
        return None

    scheduler.call_later(0.1, noop)
    scheduler.call_later(0.2, noop)

    assert scheduler.cancel_all() == 2
    assert scheduler.pending == []


@pytest.mark.asyncio
async def test_asyncio_scheduler_runs_and_cancels() -> None:
    scheduler = AsyncioScheduler()
    fired = asyncio.Event()
    calls: list[str] = []

    async def quick() -> None:
        calls.append("quick")
        fired.set()

    async def slow() -> None:
        calls.append("slow")

    scheduler.call_later(0.0, quick, name="quick")
    slow_entry = scheduler.call_later(60.0, slow, name="slow")

    await asyncio.wait_for(fired.wait(), timeout=1.0)
    assert scheduler.cancel_all() == 1
    await asyncio.sleep(0)

    assert calls == ["quick"]
    assert slow_entry.cancelled
