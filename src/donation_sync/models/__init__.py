# src/donation_sync/models/__init__.py
"""SQLAlchemy models for the donation sync engine."""

from .donation import (
    ELIGIBLE_STATUSES,
    FAILED_STATUSES,
    UNSYNCED_STATUSES,
    Donation,
    SyncStatus,
    can_transition,
)

__all__ = [
    "Donation",
    "SyncStatus",
    "ELIGIBLE_STATUSES", "FAILED_STATUSES", "UNSYNCED_STATUSES",
    "can_transition",
]
