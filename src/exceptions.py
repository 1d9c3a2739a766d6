"""WatchlistBridge exception classes."""


class WatchlistBridgeError(Exception):
    """Base class for all WatchlistBridge exceptions."""

    # Default HTTP status for API responses
    status_code: int = 500


# Configuration errors
class ConfigError(WatchlistBridgeError):
    """Base class for configuration-related errors."""

    status_code = 500


class CollaboratorConfigError(ConfigError, ValueError):
    """A collaborator dotted path could not be imported or instantiated."""

    status_code = 400


class MissingPlexTokenError(ConfigError, ValueError):
    """The workflow was started without a Plex token configured."""

    status_code = 400


# Database errors
class DatabaseError(WatchlistBridgeError):
    """Base class for database-related errors."""

    status_code = 500


class StoreError(DatabaseError):
    """A store operation failed and none of its changes were committed."""

    status_code = 500


class UnsupportedModeError(DatabaseError, ValueError):
    """Unsupported mode value was provided when dumping a database model."""

    status_code = 400


# Plex errors
class PlexError(WatchlistBridgeError):
    """Base class for Plex watchlist source failures."""

    status_code = 502


class PlexConnectivityError(PlexError, ConnectionError):
    """The Plex API could not be reached or rejected the token."""

    status_code = 503


class WatchlistFetchError(PlexError):
    """A complete watchlist could not be fetched."""

    status_code = 502


class FeedUnavailableError(PlexError):
    """The diff feed could not be generated or read."""

    status_code = 502


# Collaborator errors
class RoutingError(WatchlistBridgeError):
    """No eligible acquisition backend instance could be determined."""

    status_code = 502


# Scheduler errors
class SchedulerError(WatchlistBridgeError):
    """Base class for scheduler-related failures."""

    status_code = 500


class SchedulerNotInitializedError(SchedulerError, RuntimeError):
    """A scheduler instance is required but not available/initialized."""

    status_code = 503


class SchedulerUnavailableError(SchedulerError):
    """The scheduler exists but is not running (e.g., stopped or starting)."""

    status_code = 503


class WorkflowStateError(SchedulerError, RuntimeError):
    """A workflow transition was requested from a state that does not allow it."""

    status_code = 409


class SyncInProgressError(SchedulerError):
    """A reconciliation pass is already in flight."""

    status_code = 409
