"""FastAPI application factory and setup."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi.applications import FastAPI
from fastapi.responses import JSONResponse
from starlette.requests import Request

from src import __version__, log
from src.core.sched import ReconciliationScheduler
from src.exceptions import WatchlistBridgeError
from src.web.routes import router
from src.web.state import get_app_state

__all__ = ["create_app"]


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """Application lifespan context manager.

    The scheduler lifecycle belongs to the caller; the app only exposes it.

    Args:
        app (FastAPI): The FastAPI application instance.

    Returns:
        AsyncGenerator: The application lifespan context manager.
    """
    scheduler: ReconciliationScheduler | None = app.extra.get("scheduler")
    if scheduler is None:
        log.info("Web: No scheduler passed, workflow endpoints are unavailable")
    get_app_state().set_scheduler(scheduler)
    try:
        yield
    finally:
        await get_app_state().shutdown()


def create_app(scheduler: ReconciliationScheduler | None = None) -> FastAPI:
    """Create the FastAPI application.

    Args:
        scheduler (ReconciliationScheduler | None): The workflow scheduler.

    Returns:
        FastAPI: The created FastAPI application.
    """
    app = FastAPI(title="WatchlistBridge", lifespan=lifespan, version=__version__)

    if scheduler:
        app.extra["scheduler"] = scheduler
        get_app_state().set_scheduler(scheduler)

    app.include_router(router)

    @app.exception_handler(WatchlistBridgeError)
    async def domain_exception_handler(
        request: Request, exc: WatchlistBridgeError
    ) -> JSONResponse:
        """Handle WatchlistBridge errors with structured JSON responses.

        Args:
            request (Request): The incoming HTTP request.
            exc (WatchlistBridgeError): The exception instance.

        Returns:
            JSONResponse: The error payload with the exception's status code.
        """
        cls = exc.__class__
        payload = {
            "error": cls.__name__,
            "detail": str(exc) or cls.__doc__ or "",
            "path": request.url.path,
        }
        return JSONResponse(status_code=cls.status_code, content=payload)

    return app
