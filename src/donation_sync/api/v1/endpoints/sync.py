# src/donation_sync/api/v1/endpoints/sync.py
"""Sync status and manual trigger endpoints."""

from fastapi import APIRouter

from donation_sync.api.v1.dependencies import RuntimeDep
from donation_sync.schemas.sync import (
    GatewayMetricsResponse,
    SyncNowResponse,
    SyncPassSummary,
    SyncStatusResponse,
)

router = APIRouter(prefix="/sync", tags=["sync"])


@router.get("/status", response_model=SyncStatusResponse)
async def sync_status(runtime: RuntimeDep) -> SyncStatusResponse:
    """Return the orchestrator's observable state and gateway metrics."""
    snapshot = runtime.orchestrator.status()
    last_result = (
        SyncPassSummary.model_validate(snapshot.last_result)
        if snapshot.last_result is not None
        else None
    )
    return SyncStatusResponse(
        is_online=snapshot.is_online,
        is_syncing=snapshot.is_syncing,
        pending_count=snapshot.pending_count,
        failed_count=snapshot.failed_count,
        progress=snapshot.progress,
        current_progress_label=snapshot.current_progress_label,
        last_sync_timestamp=snapshot.last_sync_timestamp,
        last_result=last_result,
        gateway=GatewayMetricsResponse(**runtime.gateway.metrics.as_dict()),
    )


@router.post("/now", response_model=SyncNowResponse)
async def sync_now(runtime: RuntimeDep) -> SyncNowResponse:
    """Start a sync pass; refused while offline or already syncing."""
    started, reason = await runtime.orchestrator.sync_now()
    return SyncNowResponse(started=started, reason=reason)
