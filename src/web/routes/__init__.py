"""Route aggregators for the web application."""

from fastapi.routing import APIRouter

from src.web.routes.api import router as api_router

__all__ = ["router"]

router = APIRouter()

router.include_router(api_router, prefix="/api", tags=[])
