"""Models for WatchlistBridge database tables."""

from src.models.db.base import Base
from src.models.db.housekeeping import Housekeeping
from src.models.db.notification_log import NotificationLog
from src.models.db.pending_diff import PendingDiffItem
from src.models.db.routing_record import RoutingRecord
from src.models.db.user import User
from src.models.db.watchlist_item import WatchlistItem

__all__ = [
    "Base",
    "Housekeeping",
    "NotificationLog",
    "PendingDiffItem",
    "RoutingRecord",
    "User",
    "WatchlistItem",
]
