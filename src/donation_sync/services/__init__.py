# src/donation_sync/services/__init__.py
"""Sync services: gateway, connectivity, queue processing and orchestration."""

from .connectivity import ConnectivityEvent, ConnectivityMonitor, HttpHealthProbe, TcpProbe
from .gateway import DonationGateway, GatewayConfig, SubmissionResult
from .runtime import SyncRuntime, build_runtime
from .sync_orchestrator import SyncOrchestrator, SyncStatusSnapshot
from .sync_processor import SyncPassResult, SyncQueueProcessor
from .translation import build_submission, split_donor_name

__all__ = [
    "ConnectivityEvent",
    "ConnectivityMonitor",
    "HttpHealthProbe",
    "TcpProbe",
    "DonationGateway",
    "GatewayConfig",
    "SubmissionResult",
    "SyncRuntime",
    "build_runtime",
    "SyncOrchestrator",
    "SyncStatusSnapshot",
    "SyncPassResult",
    "SyncQueueProcessor",
    "build_submission",
    "split_donor_name",
]
