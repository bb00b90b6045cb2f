"""Shared API dependencies resolving the process-wide sync services."""

from typing import Annotated

from fastapi import Depends, HTTPException, Request, status

from donation_sync.repositories.donation_store import DonationStore
from donation_sync.services.runtime import SyncRuntime
from donation_sync.services.sync_orchestrator import SyncOrchestrator


def get_runtime(request: Request) -> SyncRuntime:
    """Return the runtime started with the application.

    Raises:
        HTTPException: If the application has not finished starting.
    """
    runtime: SyncRuntime | None = getattr(request.app.state, "runtime", None)
    if runtime is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Sync runtime is not running",
        )
    return runtime


RuntimeDep = Annotated[SyncRuntime, Depends(get_runtime)]


def get_store(runtime: RuntimeDep) -> DonationStore:
    return runtime.store


def get_orchestrator(runtime: RuntimeDep) -> SyncOrchestrator:
    return runtime.orchestrator


StoreDep = Annotated[DonationStore, Depends(get_store)]
OrchestratorDep = Annotated[SyncOrchestrator, Depends(get_orchestrator)]
