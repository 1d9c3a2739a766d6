"""API routes."""

from fastapi.routing import APIRouter

from src.web.routes.api.status import router as status_router
from src.web.routes.api.sync import router as sync_router
from src.web.routes.api.workflow import router as workflow_router

__all__ = ["router"]

router = APIRouter()


router.include_router(status_router, prefix="/status", tags=["status"])
router.include_router(sync_router, prefix="/sync", tags=["sync"])
router.include_router(workflow_router, prefix="/workflow", tags=["workflow"])
