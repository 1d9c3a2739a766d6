"""API endpoints to trigger sync operations."""

from fastapi import APIRouter, Query
from pydantic import BaseModel

from src.exceptions import SchedulerNotInitializedError, SyncInProgressError
from src.web.state import get_app_state

__all__ = ["router"]


class OkResponse(BaseModel):
    ok: bool = True


router = APIRouter()


@router.post("", response_model=OkResponse)
async def sync_all(force_refresh: bool = Query(False)) -> OkResponse:
    """Run a full watchlist reconciliation.

    Args:
        force_refresh (bool): Merge fresh metadata over existing rows.

    Returns:
        OkResponse: Returned once the pass has finished.

    Raises:
        SchedulerNotInitializedError: If no scheduler is attached.
        SchedulerUnavailableError: If the workflow is not running.
        SyncInProgressError: If another pass is already in flight.
    """
    scheduler = get_app_state().scheduler
    if not scheduler:
        raise SchedulerNotInitializedError("Scheduler not available")
    if not await scheduler.trigger_manual_full_sync(force_refresh=force_refresh):
        raise SyncInProgressError("A sync is already in progress")
    return OkResponse(ok=True)
