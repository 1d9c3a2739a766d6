"""Global web application state utilities.

Holds the reference to the reconciliation scheduler needed by route handlers.
"""

from collections.abc import Callable
from datetime import UTC, datetime
from functools import lru_cache
from typing import TYPE_CHECKING, Any

from src import log

__all__ = ["AppState", "get_app_state"]

if TYPE_CHECKING:
    from src.core.sched import ReconciliationScheduler


class AppState:
    """Container for global web application state."""

    def __init__(self) -> None:
        """Initialize empty state containers and record process start time."""
        self.scheduler: ReconciliationScheduler | None = None
        self.on_shutdown_callbacks: list[Callable[[], Any]] = []
        self.started_at: datetime = datetime.now(UTC)

    def set_scheduler(self, scheduler: "ReconciliationScheduler | None") -> None:
        """Set the scheduler.

        Args:
            scheduler (ReconciliationScheduler | None): The scheduler instance.
        """
        self.scheduler = scheduler

    def add_shutdown_callback(self, cb: Callable[[], Any]) -> None:
        """Register a shutdown callback executed during app shutdown."""
        self.on_shutdown_callbacks.append(cb)

    async def shutdown(self) -> None:
        """Run registered shutdown callbacks, logging individual failures."""
        for cb in self.on_shutdown_callbacks:
            try:
                res = cb()
                if hasattr(res, "__await__"):
                    await res
            except Exception:
                log.warning("Web: Shutdown callback failed", exc_info=True)
        self.on_shutdown_callbacks.clear()


@lru_cache(maxsize=1)
def get_app_state() -> AppState:
    """Get the singleton application state instance."""
    return AppState()
