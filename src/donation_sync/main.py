# src/donation_sync/main.py
"""Main entry point for the donation sync service."""

from __future__ import annotations

from collections.abc import Callable

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from donation_sync.api.v1 import donations_router, sync_router
from donation_sync.core.errors import (
    InvalidTransitionError,
    RecordNotFoundError,
    StoreError,
    ValidationError,
)
from donation_sync.core.logging import setup_logging
from donation_sync.core.settings import settings
from donation_sync.services.runtime import SyncRuntime, build_runtime

RuntimeFactory = Callable[[], SyncRuntime]


def _error_handler(status_code: int) -> Callable[[Request, Exception], JSONResponse]:
    def handler(_request: Request, exc: Exception) -> JSONResponse:
        content: dict[str, object] = {"detail": str(exc)}
        problems = getattr(exc, "problems", None)
        if problems:
            content["problems"] = problems
        return JSONResponse(status_code=status_code, content=content)

    return handler


def create_app(runtime_factory: RuntimeFactory | None = None) -> FastAPI:
    """Build the API application.

    Args:
        runtime_factory: Builds the sync runtime at startup. Defaults to
            ``build_runtime`` with the global settings.
    """
    app = FastAPI(
        title=settings.app_name,
        description="Offline donation capture and sync API",
        version=settings.app_version,
    )
    app.state.runtime = None

    app.include_router(donations_router, prefix="/api/v1")
    app.include_router(sync_router, prefix="/api/v1")

    app.add_exception_handler(ValidationError, _error_handler(status.HTTP_422_UNPROCESSABLE_ENTITY))
    app.add_exception_handler(RecordNotFoundError, _error_handler(status.HTTP_404_NOT_FOUND))
    app.add_exception_handler(InvalidTransitionError, _error_handler(status.HTTP_409_CONFLICT))
    app.add_exception_handler(StoreError, _error_handler(status.HTTP_503_SERVICE_UNAVAILABLE))

    @app.on_event("startup")
    async def on_startup() -> None:
        setup_logging(settings.log_level)
        runtime = (runtime_factory or build_runtime)()
        await runtime.start()
        app.state.runtime = runtime

    @app.on_event("shutdown")
    async def on_shutdown() -> None:
        runtime: SyncRuntime | None = app.state.runtime
        if runtime is not None:
            await runtime.stop()
            app.state.runtime = None

    @app.get("/health")
    async def health_check() -> dict[str, object]:
        """Health check endpoint to verify the service is running."""
        runtime: SyncRuntime | None = app.state.runtime
        return {
            "status": "ok",
            "online": bool(runtime and runtime.monitor.is_online),
        }

    return app


app = create_app()

if __name__ == "__main__":
    import uvicorn
    uvicorn.run("donation_sync.main:app", host="0.0.0.0", port=8000, reload=settings.debug)
