"""SQLAlchemy model for locally recorded donations and their sync metadata."""

from datetime import datetime
from decimal import Decimal
from enum import Enum

from sqlalchemy import BigInteger, Boolean, Index, SmallInteger, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from donation_sync.db.session import Base
from donation_sync.db.time import utcnow
from donation_sync.db.types import ExactDecimal, UTCDateTime


class SyncStatus(str, Enum):
    """Sync state of a donation record.

    ``synced`` and ``failed_permanent`` are terminal for automatic processing;
    only an explicit retry moves a record out of ``failed_permanent``.
    """

    PENDING = "pending"
    SYNCING = "syncing"
    SYNCED = "synced"
    FAILED = "failed"
    FAILED_PERMANENT = "failed_permanent"

    @property
    def display(self) -> str:
        return STATUS_LABELS[self]


STATUS_LABELS: dict[SyncStatus, str] = {
    SyncStatus.PENDING: "Pending Sync",
    SyncStatus.SYNCING: "Syncing...",
    SyncStatus.SYNCED: "Synced",
    SyncStatus.FAILED: "Failed",
    SyncStatus.FAILED_PERMANENT: "Failed (Permanent)",
}

# Candidates for the next sync pass.
ELIGIBLE_STATUSES = (SyncStatus.PENDING, SyncStatus.FAILED)
FAILED_STATUSES = (SyncStatus.FAILED, SyncStatus.FAILED_PERMANENT)
UNSYNCED_STATUSES = (
    SyncStatus.PENDING,
    SyncStatus.SYNCING,
    SyncStatus.FAILED,
    SyncStatus.FAILED_PERMANENT,
)

# Allowed status transitions. Retry (back to pending) is a manual action.
ALLOWED_TRANSITIONS: dict[SyncStatus, frozenset[SyncStatus]] = {
    SyncStatus.PENDING: frozenset({SyncStatus.SYNCING, SyncStatus.PENDING}),
    SyncStatus.SYNCING: frozenset(
        {SyncStatus.SYNCED, SyncStatus.FAILED, SyncStatus.FAILED_PERMANENT}
    ),
    SyncStatus.FAILED: frozenset({SyncStatus.SYNCING, SyncStatus.PENDING}),
    SyncStatus.FAILED_PERMANENT: frozenset({SyncStatus.PENDING}),
    SyncStatus.SYNCED: frozenset(),
}


def can_transition(current: SyncStatus, target: SyncStatus) -> bool:
    """Return True when ``current -> target`` is a legal sync transition."""
    return target in ALLOWED_TRANSITIONS[current]


class Donation(Base):
    """A donation captured on the device, possibly not yet known to the server.

    The local store owns the canonical copy; other components receive
    detached ``DonationRecord`` views and mutate through store commands.
    """

    __tablename__ = "offline_donation"
    __table_args__ = (
        # Every periodic tick counts/filters by status.
        Index("ix_offline_donation_status_created", "sync_status", "created_at"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    receipt_number: Mapped[str] = mapped_column(String(40), unique=True, nullable=False)
    # Assigned by the remote API; null until synced (and after a soft success).
    server_donation_id: Mapped[int | None] = mapped_column(BigInteger, nullable=True)

    # Donor
    donor_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    organization_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_organization: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    donor_email: Mapped[str | None] = mapped_column(Text, nullable=True)
    donor_phone: Mapped[str | None] = mapped_column(Text, nullable=True)
    address1: Mapped[str | None] = mapped_column(Text, nullable=True)
    address2: Mapped[str | None] = mapped_column(Text, nullable=True)
    city: Mapped[str | None] = mapped_column(Text, nullable=True)
    state: Mapped[str | None] = mapped_column(Text, nullable=True)
    country: Mapped[str | None] = mapped_column(Text, nullable=True)
    postal_code: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Transaction
    amount: Mapped[Decimal] = mapped_column(ExactDecimal, nullable=False)
    donation_type: Mapped[str] = mapped_column(Text, nullable=False, default="General")
    payment_method: Mapped[str] = mapped_column(Text, nullable=False, default="Cash")
    payment_reference: Mapped[str | None] = mapped_column(Text, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    collector_email: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)

    # Sync metadata
    sync_status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=SyncStatus.PENDING.value
    )
    sync_attempts: Mapped[int] = mapped_column(SmallInteger, nullable=False, default=0)
    last_sync_attempt: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    synced_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    # Diagnostic for soft successes; kept apart from error_message.
    sync_note: Mapped[str | None] = mapped_column(Text, nullable=True)
