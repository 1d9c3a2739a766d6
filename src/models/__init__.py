"""Models Initialization Module."""

from src.models.db import (
    Base,
    Housekeeping,
    NotificationLog,
    PendingDiffItem,
    RoutingRecord,
    User,
    WatchlistItem,
)

__all__ = [
    "Base",
    "Housekeeping",
    "NotificationLog",
    "PendingDiffItem",
    "RoutingRecord",
    "User",
    "WatchlistItem",
]
