"""Failsafe reconciliation timer."""

import asyncio
import contextlib
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime, timedelta

from tzlocal import get_localzone

from src import log

__all__ = ["FailsafeArmer"]


class FailsafeArmer:
    """Single owner of the failsafe full-sync timer.

    At most one timer is pending at any time: arming replaces the previous
    timer and disarming cancels it. The callback runs as a task of its own so
    a callback that re-arms the timer does not cancel itself.
    """

    def __init__(
        self, callback: Callable[[], Awaitable[None]], interval_minutes: float
    ) -> None:
        """Initialize the armer.

        Args:
            callback (Callable[[], Awaitable[None]]): Awaited when the timer fires
            interval_minutes (float): Delay between arming and firing
        """
        self.callback = callback
        self.interval = timedelta(minutes=interval_minutes)
        self.next_run_at: datetime | None = None

        self._timer: asyncio.Task | None = None
        self._tasks: set[asyncio.Task] = set()  # Prevents early GC

    @property
    def armed(self) -> bool:
        """Whether a timer is pending."""
        return self._timer is not None and not self._timer.done()

    def arm(self, delay: timedelta | None = None) -> datetime:
        """(Re)arm the timer, replacing any pending one.

        Args:
            delay (timedelta | None): Override of the configured interval

        Returns:
            datetime: When the timer fires
        """
        self.disarm()
        wait = delay if delay is not None else self.interval
        self.next_run_at = datetime.now(UTC) + wait
        self._timer = asyncio.create_task(self._wait(wait.total_seconds()))
        log.info(
            f"Next failsafe sync scheduled for: "
            f"{self.next_run_at.astimezone(get_localzone())}"
        )
        return self.next_run_at

    def disarm(self) -> None:
        """Cancel the pending timer, if any."""
        if self._timer is not None and not self._timer.done():
            self._timer.cancel()
        self._timer = None
        self.next_run_at = None

    async def _wait(self, seconds: float) -> None:
        await asyncio.sleep(seconds)
        self._timer = None
        self.next_run_at = None
        task = asyncio.create_task(self._fire())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _fire(self) -> None:
        try:
            await self.callback()
        except asyncio.CancelledError:
            raise
        except Exception:
            log.error("Failsafe sync callback failed", exc_info=True)

    async def close(self) -> None:
        """Disarm and cancel a callback that is still running."""
        self.disarm()
        for task in list(self._tasks):
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._tasks.clear()
