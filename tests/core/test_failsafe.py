"""Tests for the failsafe timer."""

import asyncio
from datetime import timedelta

import pytest

from src.core.failsafe import FailsafeArmer


class Counter:
    """Awaitable callback counting its invocations."""

    def __init__(self, error: Exception | None = None) -> None:
        """Optionally fail on every call."""
        self.calls = 0
        self.error = error
        self.fired = asyncio.Event()

    async def __call__(self) -> None:
        self.calls += 1
        self.fired.set()
        if self.error is not None:
            raise self.error


@pytest.mark.asyncio
async def test_arm_fires_once():
    """An armed timer fires after its delay and is no longer armed."""
    callback = Counter()
    armer = FailsafeArmer(callback, interval_minutes=60)

    armer.arm(timedelta(seconds=0.01))
    assert armer.armed
    await asyncio.wait_for(callback.fired.wait(), 1)

    assert callback.calls == 1
    assert not armer.armed
    assert armer.next_run_at is None
    await armer.close()


@pytest.mark.asyncio
async def test_disarm_cancels_timer():
    """A disarmed timer never fires."""
    callback = Counter()
    armer = FailsafeArmer(callback, interval_minutes=60)

    armer.arm(timedelta(seconds=0.01))
    armer.disarm()
    await asyncio.sleep(0.05)

    assert callback.calls == 0
    assert not armer.armed


@pytest.mark.asyncio
async def test_rearm_replaces_pending_timer():
    """Only the most recently armed timer is pending."""
    callback = Counter()
    armer = FailsafeArmer(callback, interval_minutes=60)

    armer.arm()
    first = armer.next_run_at
    armer.arm(timedelta(seconds=0.01))
    await asyncio.wait_for(callback.fired.wait(), 1)
    await asyncio.sleep(0.02)

    assert callback.calls == 1
    assert first is not None
    await armer.close()


@pytest.mark.asyncio
async def test_default_interval_is_used():
    """Without an override the configured interval is used."""
    armer = FailsafeArmer(Counter(), interval_minutes=30)

    fires_at = armer.arm()

    assert armer.next_run_at == fires_at
    assert armer.interval == timedelta(minutes=30)
    await armer.close()
    assert not armer.armed


@pytest.mark.asyncio
async def test_callback_errors_are_contained():
    """A failing callback does not break the armer."""
    callback = Counter(RuntimeError("boom"))
    armer = FailsafeArmer(callback, interval_minutes=60)

    armer.arm(timedelta(seconds=0.01))
    await asyncio.wait_for(callback.fired.wait(), 1)
    await asyncio.sleep(0.01)

    callback.fired.clear()
    armer.arm(timedelta(seconds=0.01))
    await asyncio.wait_for(callback.fired.wait(), 1)
    assert callback.calls == 2
    await armer.close()
