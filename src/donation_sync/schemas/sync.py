# src/donation_sync/schemas/sync.py
"""Sync status schemas exposed to the UI layer."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class SyncPassSummary(BaseModel):
    """Outcome counters of one sync pass."""

    model_config = ConfigDict(from_attributes=True)

    attempted: int = 0
    synced: int = 0
    soft_synced: int = 0
    failed: int = 0
    failed_permanent: int = 0
    skipped: int = 0
    started_at: datetime | None = None
    finished_at: datetime | None = None


class GatewayMetricsResponse(BaseModel):
    """Request counters collected by the remote gateway."""

    request_count: int = 0
    success_count: int = 0
    error_count: int = 0
    average_response_time: float = 0.0
    success_rate: float = 0.0
    error_counts_by_type: dict[str, int] = Field(default_factory=dict)


class SyncStatusResponse(BaseModel):
    """Observable orchestrator state."""

    model_config = ConfigDict(from_attributes=True)

    is_online: bool
    is_syncing: bool
    pending_count: int
    failed_count: int
    progress: float = Field(..., ge=0.0, le=1.0)
    current_progress_label: str | None = None
    last_sync_timestamp: datetime | None = None
    last_result: SyncPassSummary | None = None
    gateway: GatewayMetricsResponse | None = None


class SyncNowResponse(BaseModel):
    """Result of a manual "sync now" request."""

    started: bool
    reason: str | None = None
