"""API status endpoints."""

from typing import Any

from fastapi.routing import APIRouter
from pydantic import BaseModel

from src import __git_hash__, __version__
from src.web.state import get_app_state

__all__ = ["StatusResponse", "WorkflowStatusModel", "router"]


class WorkflowStatusModel(BaseModel):
    """Runtime status of the reconciliation workflow exposed to the web UI."""

    status: str
    fallback_polling: bool = False
    last_successful_sync: str | None = None
    next_failsafe_sync: str | None = None
    queue_size: int = 0
    sync_in_progress: bool = False
    feed_channels: list[str] = []
    last_report: dict[str, Any] | None = None


class StatusResponse(BaseModel):
    version: str
    git_hash: str
    workflow: WorkflowStatusModel | None = None


router = APIRouter()


@router.get("", response_model=StatusResponse)
async def status() -> StatusResponse:
    """Get the status of the application.

    Returns:
        StatusResponse: Version information and the workflow status, if a
            scheduler is attached.
    """
    response = StatusResponse(version=__version__, git_hash=__git_hash__)
    scheduler = get_app_state().scheduler
    if scheduler is not None:
        response.workflow = WorkflowStatusModel(**scheduler.get_status_summary())
    return response
