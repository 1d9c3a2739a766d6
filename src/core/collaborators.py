"""Collaborator contracts and their default implementations.

The reconciliation core routes content to acquisition backends, notifies
users and cleans up backend labels through the protocols below. Concrete
implementations are configured by dotted path (``package.module:Class``).
"""

from collections.abc import Sequence
from dataclasses import dataclass
from importlib import import_module
from typing import Any, Protocol, runtime_checkable

from src import log
from src.core.guids import extract_tmdb_id, extract_tvdb_id
from src.exceptions import CollaboratorConfigError
from src.models.db import User, WatchlistItem
from src.models.watchlist import BackendKind, WatchlistEntry, normalize_user_id

__all__ = [
    "ContentRouter",
    "DryRunContentRouter",
    "ExistenceResult",
    "LabelCleaner",
    "LogNotifier",
    "Notifier",
    "RouteOptions",
    "load_collaborator",
]


@dataclass(frozen=True, slots=True)
class ExistenceResult:
    """Answer of a backend existence check.

    ``checked`` False means the backend could not answer, which is different
    from ``found`` False.
    """

    found: bool
    checked: bool = True
    instance_id: int | None = None
    error: str | None = None


@dataclass(frozen=True, slots=True)
class RouteOptions:
    """Context passed along with a routing request.

    ``user_id`` None routes on behalf of the system actor. Loosely typed ids
    (numeric strings, ``{"id": ...}`` payloads) are normalised on creation;
    anything that is not a positive id also means the system actor.
    """

    user_id: int | None = None
    is_initial_sync: bool = False

    def __post_init__(self) -> None:
        """Normalise ``user_id``."""
        object.__setattr__(self, "user_id", normalize_user_id(self.user_id))


@runtime_checkable
class ContentRouter(Protocol):
    """Places content into Sonarr or Radarr instances."""

    async def route_content(
        self, entry: WatchlistEntry, key: str, options: RouteOptions
    ) -> None:
        """Submit content to the eligible backend instances.

        Raises:
            RoutingError: If no eligible backend instance can be determined
        """
        ...

    async def check_existence(
        self, backend: BackendKind, identity_id: int
    ) -> ExistenceResult:
        """Check whether content already exists in a backend."""
        ...


@runtime_checkable
class Notifier(Protocol):
    """Delivers "added to your watchlist" notifications."""

    async def notify_watchlist_addition(
        self, user: User, entry: WatchlistEntry
    ) -> bool:
        """Notify a user; returns whether a notification was sent."""
        ...


@runtime_checkable
class LabelCleaner(Protocol):
    """Removes backend labels/tags of items that leave a watchlist."""

    async def cleanup_labels(
        self, user_id: int, items: Sequence[WatchlistItem]
    ) -> None:
        """Remove labels attached to ``items`` on behalf of ``user_id``."""
        ...


class DryRunContentRouter:
    """Router that only logs what it would request.

    Content it has "routed" is reported as existing afterwards, so repeated
    reconciliation passes behave like they would against a real backend.
    """

    def __init__(self) -> None:
        """Initialize the router with nothing routed."""
        self.routed: set[tuple[BackendKind, int]] = set()

    async def route_content(
        self, entry: WatchlistEntry, key: str, options: RouteOptions
    ) -> None:
        """Log the request and remember it."""
        backend = BackendKind.for_kind(entry.kind)
        identity_id = (
            extract_tvdb_id(entry.guids)
            if backend == BackendKind.SONARR
            else extract_tmdb_id(entry.guids)
        )
        log.info(
            f"[DRY RUN] Would request $$'{entry.title}'$$ from {backend} "
            f"$${{key: {key}, user_id: {options.user_id}, "
            f"initial: {options.is_initial_sync}}}$$"
        )
        self.routed.add((backend, identity_id))

    async def check_existence(
        self, backend: BackendKind, identity_id: int
    ) -> ExistenceResult:
        """Report content as existing once it has been routed."""
        return ExistenceResult(found=(backend, identity_id) in self.routed)


class LogNotifier:
    """Notifier that writes notifications to the application log."""

    async def notify_watchlist_addition(
        self, user: User, entry: WatchlistEntry
    ) -> bool:
        """Log the notification."""
        log.success(f"$$'{entry.title}'$$ was added for $$'{user.name}'$$")
        return True


def load_collaborator(
    dotted_path: str, options: dict[str, Any] | None = None
) -> Any:
    """Import and instantiate a collaborator.

    Args:
        dotted_path (str): ``package.module:Class`` of the implementation
        options (dict[str, Any] | None): Keyword arguments for the constructor

    Returns:
        Any: The collaborator instance

    Raises:
        CollaboratorConfigError: If the path is malformed, cannot be imported
            or the class cannot be instantiated with ``options``
    """
    module_name, sep, attr = dotted_path.partition(":")
    if not sep or not module_name or not attr:
        raise CollaboratorConfigError(
            f"Invalid collaborator path '{dotted_path}', expected 'module:Class'"
        )

    try:
        factory = getattr(import_module(module_name), attr)
    except (ImportError, AttributeError) as exc:
        raise CollaboratorConfigError(
            f"Unable to import collaborator '{dotted_path}'"
        ) from exc

    try:
        return factory(**(options or {}))
    except TypeError as exc:
        raise CollaboratorConfigError(
            f"Unable to instantiate collaborator '{dotted_path}': {exc}"
        ) from exc
