"""API endpoints controlling the reconciliation workflow."""

from fastapi import APIRouter
from pydantic import BaseModel

from src.exceptions import SchedulerNotInitializedError, WorkflowStateError
from src.web.state import get_app_state

__all__ = ["router"]


class WorkflowResponse(BaseModel):
    ok: bool = True
    status: str


router = APIRouter()


@router.post("/start", response_model=WorkflowResponse)
async def start_workflow() -> WorkflowResponse:
    """Start the workflow.

    Raises:
        SchedulerNotInitializedError: If no scheduler is attached.
        WorkflowStateError: If the workflow is not stopped.
        PlexConnectivityError: If Plex cannot be reached.
    """
    scheduler = get_app_state().scheduler
    if not scheduler:
        raise SchedulerNotInitializedError("Scheduler not available")
    ok = await scheduler.start_workflow()
    return WorkflowResponse(ok=ok, status=scheduler.get_status().value)


@router.post("/stop", response_model=WorkflowResponse)
async def stop_workflow() -> WorkflowResponse:
    """Stop the workflow.

    Raises:
        SchedulerNotInitializedError: If no scheduler is attached.
        WorkflowStateError: If the workflow is neither running nor starting.
    """
    scheduler = get_app_state().scheduler
    if not scheduler:
        raise SchedulerNotInitializedError("Scheduler not available")
    if not await scheduler.stop():
        raise WorkflowStateError(
            f"Cannot stop the workflow while {scheduler.get_status()}"
        )
    return WorkflowResponse(ok=True, status=scheduler.get_status().value)
