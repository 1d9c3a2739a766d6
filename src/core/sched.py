"""Scheduler Module."""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import Callable, Iterator, Sequence
from datetime import UTC, datetime, timedelta
from typing import Any

from src import log
from src.config.database import WatchlistBridgeDB
from src.config.settings import WatchlistBridgeConfig, get_config
from src.core.collaborators import (
    ContentRouter,
    LabelCleaner,
    Notifier,
    RouteOptions,
    load_collaborator,
)
from src.core.failsafe import FailsafeArmer
from src.core.guids import extract_tmdb_id, extract_tvdb_id
from src.core.plex import PlexWatchlistService
from src.core.plexapi.watchlist import PlexWatchlistClient
from src.core.queue import ChangeQueue
from src.core.store import PendingDiff, Store
from src.core.syncer import FullStateSyncer, SyncReport
from src.core.watcher import DiffFeedWatcher
from src.exceptions import (
    FeedUnavailableError,
    MissingPlexTokenError,
    PlexConnectivityError,
    RoutingError,
    SchedulerUnavailableError,
    WorkflowStateError,
)
from src.models.watchlist import (
    BackendKind,
    ContentKind,
    FeedChannel,
    WatchlistEntry,
    WorkflowStatus,
)

__all__ = ["ReconciliationScheduler"]


class ReconciliationScheduler:
    """Owns the reconciliation workflow and its timers.

    The workflow moves through ``stopped -> starting -> running -> stopping``.
    While running, up to three loops are active: the diff feed poll (or the
    fallback full-sync poll when no feed is available) and the queue flush
    check. The failsafe full sync fires a fixed time after the end of the
    most recent sync of any kind.

    Two guards keep the fast path and the slow path apart: one is held while
    a feed poll is processing changes, the other while a full pass runs. A
    tick that finds either guard held is skipped, never queued.
    """

    def __init__(
        self,
        source: PlexWatchlistService,
        store: Store,
        router: ContentRouter,
        notifier: Notifier,
        label_cleaner: LabelCleaner | None = None,
        *,
        default_can_sync: bool = True,
        feed_poll_interval: float = 10,
        queue_check_interval: float = 10,
        queue_quiescence_delay: float = 60,
        failsafe_interval: float = 20,
        fallback_poll_interval: float = 300,
        collaborator_timeout: float | None = 10,
        clock: Callable[[], float] | None = None,
    ) -> None:
        """Initialize the scheduler.

        Args:
            source (PlexWatchlistService): Upstream watchlist source
            store (Store): Watchlist store
            router (ContentRouter): Routing collaborator
            notifier (Notifier): Notification collaborator
            label_cleaner (LabelCleaner | None): Optional label cleanup collaborator
            default_can_sync (bool): ``can_sync`` of newly discovered friends
            feed_poll_interval (float): Seconds between diff feed polls
            queue_check_interval (float): Seconds between queue flush checks
            queue_quiescence_delay (float): Idle seconds before the queue drains
            failsafe_interval (float): Minutes between a sync and the failsafe
            fallback_poll_interval (float): Seconds between full syncs when no
                diff feed is available
            collaborator_timeout (float | None): Seconds each router, notifier
                or label cleaner call may take before it counts as failed
            clock (Callable[[], float] | None): Monotonic clock for the queue
        """
        self.source = source
        self.store = store
        self.router = router

        self.feed_poll_interval = feed_poll_interval
        self.queue_check_interval = queue_check_interval
        self.queue_quiescence_delay = queue_quiescence_delay
        self.fallback_poll_interval = fallback_poll_interval
        self.collaborator_timeout = collaborator_timeout

        self.queue = ChangeQueue(clock) if clock else ChangeQueue()
        self.watcher = DiffFeedWatcher(source, self.enqueue_changes)
        self.syncer = FullStateSyncer(
            source,
            store,
            router,
            notifier,
            label_cleaner,
            default_can_sync=default_can_sync,
            collaborator_timeout=collaborator_timeout,
        )
        self.failsafe = FailsafeArmer(self._run_failsafe_sync, failsafe_interval)

        self.status = WorkflowStatus.STOPPED
        self.last_report: SyncReport | None = None
        self.shutdown_event = asyncio.Event()

        self._fallback = False
        self._last_sync: datetime | None = None
        self._refresh_in_flight = False
        self._workflow_in_flight = False
        self._loop_stop = asyncio.Event()
        self._tasks: set[asyncio.Task] = set()  # Prevents early GC

    @classmethod
    def from_config(
        cls, config: WatchlistBridgeConfig | None = None
    ) -> ReconciliationScheduler:
        """Build a scheduler and its collaborators from configuration.

        Raises:
            MissingPlexTokenError: If no Plex token is configured
            CollaboratorConfigError: If a collaborator cannot be loaded
        """
        config = config or get_config()
        if config.plex_token is None:
            raise MissingPlexTokenError("A plex_token is required to start")

        client = PlexWatchlistClient(
            config.plex_token.get_secret_value(),
            request_timeout=config.request_timeout,
            bulk_request_timeout=config.bulk_request_timeout,
            max_concurrent_requests=config.max_concurrent_requests,
        )
        source = PlexWatchlistService(
            client,
            skip_friend_sync=config.skip_friend_sync,
            max_concurrent_requests=config.max_concurrent_requests,
        )
        database = WatchlistBridgeDB(config.data_path)

        label_cleaner = None
        if config.label_cleaner:
            label_cleaner = load_collaborator(
                config.label_cleaner, config.options_for(config.label_cleaner)
            )

        return cls(
            source,
            Store(database.new_session),
            load_collaborator(
                config.content_router, config.options_for(config.content_router)
            ),
            load_collaborator(config.notifier, config.options_for(config.notifier)),
            label_cleaner,
            default_can_sync=config.default_can_sync,
            feed_poll_interval=config.feed_poll_interval,
            queue_check_interval=config.queue_check_interval,
            queue_quiescence_delay=config.queue_quiescence_delay,
            failsafe_interval=config.failsafe_interval,
            fallback_poll_interval=config.fallback_poll_interval,
            collaborator_timeout=config.request_timeout,
        )

    # Status

    def get_status(self) -> WorkflowStatus:
        """Return the current workflow status."""
        return self.status

    def is_using_fallback_polling(self) -> bool:
        """Whether the workflow runs without a diff feed."""
        return self._fallback

    def get_last_successful_sync_time(self) -> datetime | None:
        """Return when the last full sync finished successfully."""
        return self._last_sync

    @property
    def sync_in_progress(self) -> bool:
        """Whether either pass guard is held."""
        return self._refresh_in_flight or self._workflow_in_flight

    def get_status_summary(self) -> dict[str, Any]:
        """Return a JSON serializable summary for status displays."""
        next_failsafe = self.failsafe.next_run_at
        return {
            "status": self.status.value,
            "fallback_polling": self._fallback,
            "last_successful_sync": (
                self._last_sync.isoformat() if self._last_sync else None
            ),
            "next_failsafe_sync": next_failsafe.isoformat() if next_failsafe else None,
            "queue_size": len(self.queue),
            "sync_in_progress": self.sync_in_progress,
            "feed_channels": [str(channel) for channel in self.watcher.channels],
            "last_report": self.last_report.to_dict() if self.last_report else None,
        }

    # Lifecycle

    async def start_workflow(self) -> bool:
        """Start the workflow.

        Connectivity is verified first and is the only fatal step. Without a
        diff feed the workflow falls back to periodic full syncs. A failing
        initial sync is logged and left to the failsafe.

        Returns:
            bool: True once the workflow is running, False if it was stopped
                while starting

        Raises:
            WorkflowStateError: If the workflow is not stopped
            PlexConnectivityError: If Plex cannot be reached
        """
        if self.status != WorkflowStatus.STOPPED:
            raise WorkflowStateError(f"Cannot start the workflow while {self.status}")

        self.failsafe.disarm()
        self.status = WorkflowStatus.STARTING
        self._loop_stop = asyncio.Event()
        log.info("Starting watchlist workflow")

        try:
            self._last_sync = await self.store.get_last_sync_time()
        except Exception:
            log.warning("Unable to restore the last sync time", exc_info=True)

        try:
            await self.source.verify_connectivity()
        except Exception as e:
            self.status = WorkflowStatus.STOPPED
            log.error(f"Unable to connect to Plex, workflow not started: {e}")
            if isinstance(e, PlexConnectivityError):
                raise
            raise PlexConnectivityError(f"Unable to connect to Plex: {e}") from e

        self._fallback = False
        try:
            await self.source.ensure_feeds()
        except FeedUnavailableError as e:
            log.warning(
                f"{e} Falling back to a full sync every "
                f"{self.fallback_poll_interval}s"
            )
            self._fallback = True

        if not self._fallback:
            self.watcher.reset()
            self.watcher.channels = list(self.source.channels)
            for channel in self.watcher.channels:
                await self.watcher.establish_baseline(channel)

        # Tracked so that stop() cancels it along with the loops.
        initial = self._spawn(
            self._guarded_full_sync(is_initial=True, reason="initial")
        )
        try:
            await asyncio.wait({initial})
        except asyncio.CancelledError:
            initial.cancel()
            raise
        if not initial.cancelled() and initial.exception() is not None:
            log.error("Initial full sync failed", exc_info=initial.exception())

        if self.status != WorkflowStatus.STARTING:
            log.info("Workflow was stopped during startup")
            return False

        self.failsafe.arm()
        if self._fallback:
            self._spawn(self._fallback_loop())
        else:
            self._spawn(self._feed_loop())
        self._spawn(self._queue_loop())

        self.status = WorkflowStatus.RUNNING
        log.success(
            "Watchlist workflow running "
            + ("in fallback polling mode" if self._fallback else "with diff feeds")
        )
        return True

    async def stop(self) -> bool:
        """Stop the workflow.

        Returns:
            bool: False if the workflow was not running or starting
        """
        if self.status not in (WorkflowStatus.RUNNING, WorkflowStatus.STARTING):
            log.debug(f"Ignoring stop request while {self.status}")
            return False

        self.status = WorkflowStatus.STOPPING
        log.info("Stopping watchlist workflow")

        self._loop_stop.set()
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        for task in tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._tasks.clear()

        await self.failsafe.close()
        self.queue.clear()

        self.status = WorkflowStatus.STOPPED
        log.info("Watchlist workflow stopped")
        return True

    def request_shutdown(self) -> None:
        """Request application shutdown from external callers."""
        if not self.shutdown_event.is_set():
            self.shutdown_event.set()

    async def wait_for_completion(self) -> None:
        """Wait until a shutdown is requested."""
        try:
            await self.shutdown_event.wait()
        except asyncio.CancelledError:
            log.info("Workflow wait interrupted")
            raise

    async def close(self) -> None:
        """Stop the workflow and release the upstream client."""
        await self.stop()
        await self.source.close()

    async def __aenter__(self) -> ReconciliationScheduler:
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit."""
        await self.close()

    # Full sync

    async def trigger_manual_full_sync(self, force_refresh: bool = False) -> bool:
        """Run an operator-initiated full sync.

        Args:
            force_refresh (bool): Merge fresh metadata over existing rows

        Returns:
            bool: False if another pass was in flight and nothing ran

        Raises:
            SchedulerUnavailableError: If the workflow is not running
        """
        if self.status != WorkflowStatus.RUNNING:
            raise SchedulerUnavailableError(
                f"Cannot sync while the workflow is {self.status}"
            )
        log.info("Manually triggering full sync")
        return await self._guarded_full_sync(
            force_refresh=force_refresh, reason="manual"
        )

    @contextlib.contextmanager
    def _pass_guard(self) -> Iterator[None]:
        self._refresh_in_flight = True
        self._workflow_in_flight = True
        try:
            yield
        finally:
            self._refresh_in_flight = False
            self._workflow_in_flight = False

    async def _guarded_full_sync(
        self,
        *,
        force_refresh: bool = False,
        is_initial: bool = False,
        reason: str = "scheduled",
    ) -> bool:
        # Checked and taken with no await in between.
        if self.sync_in_progress:
            log.debug(f"Skipping {reason} full sync, a pass is already in flight")
            return False

        with self._pass_guard():
            self.failsafe.disarm()
            try:
                self.last_report = await self.syncer.sync(
                    force_refresh=force_refresh, is_initial=is_initial
                )
                self._last_sync = datetime.now(UTC)
                try:
                    await self.store.set_last_sync_time(self._last_sync)
                except Exception:
                    log.warning("Failed to persist the last sync time", exc_info=True)
            finally:
                if self.status in (WorkflowStatus.STARTING, WorkflowStatus.RUNNING):
                    self.failsafe.arm()
        return True

    async def _run_failsafe_sync(self) -> None:
        if self.status != WorkflowStatus.RUNNING:
            return
        if self.sync_in_progress:
            log.debug("Failsafe sync deferred, a pass is already in flight")
            if not self.failsafe.armed:
                self.failsafe.arm(timedelta(seconds=self.queue_check_interval))
            return
        log.info("Running failsafe full sync")
        await self._guarded_full_sync(reason="failsafe")

    # Fast path

    async def enqueue_changes(
        self, channel: FeedChannel, entries: Sequence[WatchlistEntry]
    ) -> int:
        """Queue changes reported by the diff feed.

        New changes disarm the failsafe until the queue flush re-arms it.
        Unless some user has sync disabled, each change is routed right away
        on behalf of the system actor. Every change is also stored as a
        pending diff for matching during the next full sync.

        Returns:
            int: Number of changes that were not already queued
        """
        added = [entry for entry in entries if self.queue.add(channel, entry)]
        if not added:
            return 0

        self.failsafe.disarm()
        routed: set[WatchlistEntry] = set()
        if await self.store.has_users_with_sync_disabled():
            log.info(
                f"Deferring {len(added)} {channel} changes to the next full sync, "
                f"some users have sync disabled"
            )
        else:
            for entry in added:
                if await self._route_immediately(entry):
                    routed.add(entry)

        await self.store.save_pending_diff_items(
            PendingDiff(channel, entry, routed=entry in routed) for entry in added
        )
        log.debug(
            f"Queued {len(added)} {channel} changes, {len(routed)} routed "
            f"$${{queue_size: {len(self.queue)}}}$$"
        )
        return len(added)

    async def _route_immediately(self, entry: WatchlistEntry) -> bool:
        backend = BackendKind.for_kind(entry.kind)
        identity_id = (
            extract_tvdb_id(entry.guids)
            if entry.kind == ContentKind.SHOW
            else extract_tmdb_id(entry.guids)
        )
        if not identity_id:
            log.debug(f"Not routing $$'{entry.title}'$$ yet, it has no backend id")
            return False

        try:
            async with asyncio.timeout(self.collaborator_timeout):
                existence = await self.router.check_existence(backend, identity_id)
            if not existence.checked:
                log.warning(
                    f"Could not check whether $$'{entry.title}'$$ exists in "
                    f"{backend}, leaving it to the next full sync"
                )
                return False
            if existence.found:
                log.debug(f"$$'{entry.title}'$$ already exists in {backend}")
                return False

            async with asyncio.timeout(self.collaborator_timeout):
                await self.router.route_content(entry, entry.key, RouteOptions())
            await self.store.record_routing(entry)
        except TimeoutError:
            log.warning(
                f"Routing $$'{entry.title}'$$ timed out after "
                f"{self.collaborator_timeout}s, leaving it to the next full sync"
            )
            return False
        except RoutingError as e:
            log.warning(f"Unable to route $$'{entry.title}'$$: {e}")
            return False
        except Exception:
            log.error(f"Failed to route $$'{entry.title}'$$", exc_info=True)
            return False

        log.info(f"Routed $$'{entry.title}'$$ from the diff feed")
        return True

    # Loops

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _sleep(self, seconds: float) -> bool:
        """Wait for ``seconds``; returns False when the loops should stop."""
        with contextlib.suppress(TimeoutError):
            await asyncio.wait_for(self._loop_stop.wait(), seconds)
        return not self._loop_stop.is_set()

    async def _feed_loop(self) -> None:
        log.debug(f"Polling diff feeds every {self.feed_poll_interval}s")
        while await self._sleep(self.feed_poll_interval):
            if self.sync_in_progress:
                continue
            self._refresh_in_flight = True
            try:
                await self.watcher.poll_all()
            except asyncio.CancelledError:
                raise
            except Exception:
                log.error("Diff feed poll failed", exc_info=True)
            finally:
                self._refresh_in_flight = False

    async def _queue_loop(self) -> None:
        log.debug(f"Checking the change queue every {self.queue_check_interval}s")
        while await self._sleep(self.queue_check_interval):
            try:
                await self.check_queue()
            except asyncio.CancelledError:
                raise
            except Exception:
                log.error("Queue flush failed", exc_info=True)

    async def check_queue(self) -> bool:
        """Drain the queue and run a full sync once it has been quiescent.

        Returns:
            bool: True if a full sync ran
        """
        if self.sync_in_progress:
            return False
        if not self.queue.is_quiescent(self.queue_quiescence_delay):
            return False

        changes = self.queue.drain()
        log.info(f"Change queue quiescent, processing {len(changes)} changes")
        return await self._guarded_full_sync(reason="queue")

    async def _fallback_loop(self) -> None:
        log.debug(f"Polling full syncs every {self.fallback_poll_interval}s")
        while await self._sleep(self.fallback_poll_interval):
            try:
                await self._guarded_full_sync(reason="fallback poll")
            except asyncio.CancelledError:
                raise
            except Exception:
                log.error("Fallback full sync failed", exc_info=True)
