"""Local durable store for donations captured while offline.

The store owns the canonical copy of every donation. Callers receive
detached ``DonationRecord`` views; every mutation is a named command that
runs in its own transaction and is committed before the call returns.
"""
from __future__ import annotations

import logging
import random
import uuid
from collections.abc import Callable, Iterable, Iterator, Mapping
from contextlib import contextmanager
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any

import pydantic
from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from donation_sync.core.errors import (
    InvalidTransitionError,
    RecordNotFoundError,
    StoreError,
    ValidationError,
)
from donation_sync.db.time import utcnow
from donation_sync.models.donation import (
    ELIGIBLE_STATUSES,
    FAILED_STATUSES,
    UNSYNCED_STATUSES,
    Donation,
    SyncStatus,
    can_transition,
)
from donation_sync.schemas.donation import DonationCreate, DonationRecord, DonationStatistics

__all__ = ["DonationStore", "INTERRUPTED_MESSAGE"]

logger = logging.getLogger(__name__)

INTERRUPTED_MESSAGE = "interrupted"
RECEIPT_NUMBER_ATTEMPTS = 20

# Fields a caller may change through ``update``; sync metadata is command-only.
EDITABLE_FIELDS = frozenset(
    {
        "donor_name",
        "organization_name",
        "is_organization",
        "donor_email",
        "donor_phone",
        "address1",
        "address2",
        "city",
        "state",
        "country",
        "postal_code",
        "amount",
        "donation_type",
        "payment_method",
        "payment_reference",
        "notes",
    }
)
IMMUTABLE_FIELDS = frozenset({"id", "receipt_number", "created_at", "collector_email"})


def _status_values(statuses: Iterable[SyncStatus]) -> list[str]:
    return [SyncStatus(status).value for status in statuses]


class DonationStore:
    """Durable, transactional access to donation records."""

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        *,
        receipt_prefix: str = "OFF",
        cash_payment_method: str = "Cash",
        retention_days: int = 30,
        clock: Callable[[], datetime] = utcnow,
        rng: random.Random | None = None,
    ) -> None:
        """Initialize the store.

        Args:
            session_factory: Factory producing sessions bound to the local database.
            receipt_prefix: Prefix of generated receipt numbers.
            cash_payment_method: Payment method that does not need a reference.
            retention_days: Default age cutoff of ``clear_old_synced``.
            clock: Source of "now" for creation and attempt timestamps.
            rng: Random source for receipt number suffixes.
        """
        self._session_factory = session_factory
        self.receipt_prefix = receipt_prefix
        self.cash_payment_method = cash_payment_method
        self.retention_days = retention_days
        self._clock = clock
        self._rng = rng or random.Random()

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    @contextmanager
    def _session(self) -> Iterator[Session]:
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except SQLAlchemyError as exc:
            session.rollback()
            logger.error("Local store operation failed: %s", exc, exc_info=True)
            raise StoreError(f"Local store operation failed: {exc}") from exc
        except BaseException:
            session.rollback()
            raise
        finally:
            session.close()

    @staticmethod
    def _to_record(row: Donation) -> DonationRecord:
        return DonationRecord.model_validate(row)

    @staticmethod
    def _get_row(session: Session, donation_id: str) -> Donation:
        row = session.get(Donation, donation_id, with_for_update=True)
        if row is None:
            raise RecordNotFoundError(f"Donation {donation_id} not found")
        return row

    # ------------------------------------------------------------------
    # Create / read
    # ------------------------------------------------------------------

    def validate(self, fields: DonationCreate | Mapping[str, Any]) -> DonationCreate:
        """Validate donation input and apply the payment reference policy.

        Raises:
            ValidationError: If any field is missing or invalid.
        """
        if isinstance(fields, DonationCreate):
            data = fields
        else:
            try:
                data = DonationCreate.model_validate(dict(fields))
            except pydantic.ValidationError as exc:
                problems = [
                    f"{'.'.join(str(part) for part in err['loc']) or 'donation'}: {err['msg']}"
                    for err in exc.errors()
                ]
                raise ValidationError("Invalid donation", problems) from exc

        method = data.payment_method.strip().casefold()
        if method != self.cash_payment_method.casefold() and not data.payment_reference:
            raise ValidationError(
                f"Reference number is required for {data.payment_method}",
                [f"payment_reference: required when payment method is {data.payment_method}"],
            )
        return data

    def create(self, fields: DonationCreate | Mapping[str, Any]) -> DonationRecord:
        """Persist a new donation in ``pending`` state.

        Args:
            fields: Form fields, either validated already or as a plain mapping.

        Returns:
            The persisted record with its local id and receipt number.

        Raises:
            ValidationError: If the amount is not positive, no donor name is given,
                or a non-cash payment has no reference.
            StoreError: If the write cannot be committed.
        """
        data = self.validate(fields)
        created_at = self._clock()

        with self._session() as session:
            row = Donation(
                **data.model_dump(),
                id=str(uuid.uuid4()),
                receipt_number=self._new_receipt_number(session, created_at),
                created_at=created_at,
                sync_status=SyncStatus.PENDING.value,
                sync_attempts=0,
            )
            session.add(row)
            session.flush()
            record = self._to_record(row)

        logger.info("Saved offline donation %s (%s)", record.receipt_number, record.id)
        return record

    def _new_receipt_number(self, session: Session, created_at: datetime) -> str:
        timestamp = int(created_at.timestamp())
        for _ in range(RECEIPT_NUMBER_ATTEMPTS):
            candidate = f"{self.receipt_prefix}-{timestamp}-{self._rng.randint(1000, 9999)}"
            taken = session.scalar(
                select(func.count()).where(Donation.receipt_number == candidate)
            )
            if not taken:
                return candidate
        raise StoreError("Could not allocate a unique receipt number")

    def get(self, donation_id: str) -> DonationRecord | None:
        """Return a donation by local id."""
        with self._session() as session:
            row = session.get(Donation, donation_id)
            return self._to_record(row) if row is not None else None

    def require(self, donation_id: str) -> DonationRecord:
        """Return a donation by local id or raise ``RecordNotFoundError``."""
        record = self.get(donation_id)
        if record is None:
            raise RecordNotFoundError(f"Donation {donation_id} not found")
        return record

    def get_by_receipt_number(self, receipt_number: str) -> DonationRecord | None:
        """Return the donation carrying ``receipt_number``."""
        with self._session() as session:
            row = session.scalars(
                select(Donation).where(Donation.receipt_number == receipt_number).limit(1)
            ).first()
            return self._to_record(row) if row is not None else None

    def query(
        self,
        *,
        statuses: Iterable[SyncStatus] | None = None,
        newest_first: bool = False,
        created_before: datetime | None = None,
        limit: int | None = None,
    ) -> list[DonationRecord]:
        """Return donations matching the filters, ordered by creation time.

        Args:
            statuses: Restrict to these sync states.
            newest_first: Order by creation descending instead of ascending.
            created_before: Only records created strictly before this instant.
            limit: Maximum number of records.
        """
        stmt = select(Donation)
        if statuses is not None:
            stmt = stmt.where(Donation.sync_status.in_(_status_values(statuses)))
        if created_before is not None:
            stmt = stmt.where(Donation.created_at < created_before)
        if newest_first:
            stmt = stmt.order_by(Donation.created_at.desc(), Donation.id.desc())
        else:
            stmt = stmt.order_by(Donation.created_at.asc(), Donation.id.asc())
        if limit is not None:
            stmt = stmt.limit(limit)

        with self._session() as session:
            return [self._to_record(row) for row in session.scalars(stmt)]

    def list_all(self) -> list[DonationRecord]:
        """All donations, newest first."""
        return self.query(newest_first=True)

    def list_unsynced(self) -> list[DonationRecord]:
        """Donations not yet accepted by the server, newest first."""
        return self.query(statuses=UNSYNCED_STATUSES, newest_first=True)

    def list_synced(self) -> list[DonationRecord]:
        return self.query(statuses=(SyncStatus.SYNCED,), newest_first=True)

    def list_failed(self) -> list[DonationRecord]:
        return self.query(statuses=FAILED_STATUSES, newest_first=True)

    def list_eligible(self) -> list[DonationRecord]:
        """Pending and failed donations, oldest first: the next sync pass."""
        return self.query(statuses=ELIGIBLE_STATUSES)

    def count(self, statuses: Iterable[SyncStatus] | None = None) -> int:
        """Count donations without loading them."""
        stmt = select(func.count()).select_from(Donation)
        if statuses is not None:
            stmt = stmt.where(Donation.sync_status.in_(_status_values(statuses)))
        with self._session() as session:
            return int(session.scalar(stmt) or 0)

    def statistics(self) -> DonationStatistics:
        """Return badge counters and totals for the donations screen."""
        stats = DonationStatistics()
        total_amount = Decimal("0")
        unsynced_amount = Decimal("0")
        counts: dict[str, int] = {}

        with self._session() as session:
            for status, amount in session.execute(
                select(Donation.sync_status, Donation.amount)
            ):
                counts[status] = counts.get(status, 0) + 1
                total_amount += amount
                if status != SyncStatus.SYNCED.value:
                    unsynced_amount += amount

        stats.total = sum(counts.values())
        stats.synced = counts.get(SyncStatus.SYNCED.value, 0)
        stats.pending = counts.get(SyncStatus.PENDING.value, 0)
        stats.syncing = counts.get(SyncStatus.SYNCING.value, 0)
        stats.failed = sum(counts.get(status.value, 0) for status in FAILED_STATUSES)
        stats.total_amount = total_amount
        stats.unsynced_amount = unsynced_amount
        return stats

    # ------------------------------------------------------------------
    # Generic update
    # ------------------------------------------------------------------

    def update(self, record: DonationRecord) -> DonationRecord:
        """Persist edited donor/transaction fields of ``record``.

        Only the fields in ``EDITABLE_FIELDS`` are written and only while the
        record has not reached the server. Sync metadata changes go through
        the ``mark_*`` and ``reset_*`` commands.

        Raises:
            RecordNotFoundError: If the record no longer exists.
            InvalidTransitionError: If an immutable or sync field was changed,
                or the record is syncing/synced.
            ValidationError: If the edited donation is no longer valid.
        """
        with self._session() as session:
            row = self._get_row(session, record.id)
            current = self._to_record(row)

            for name in IMMUTABLE_FIELDS:
                if getattr(record, name) != getattr(current, name):
                    raise InvalidTransitionError(f"{name} cannot be changed")
            for name in DonationRecord.model_fields:
                if name in EDITABLE_FIELDS or name in IMMUTABLE_FIELDS:
                    continue
                if getattr(record, name) != getattr(current, name):
                    raise InvalidTransitionError(
                        f"{name} is sync metadata; use the sync commands to change it"
                    )

            changes = {
                name: getattr(record, name)
                for name in EDITABLE_FIELDS
                if getattr(record, name) != getattr(current, name)
            }
            if not changes:
                return current
            if current.sync_status in (SyncStatus.SYNCING, SyncStatus.SYNCED):
                raise InvalidTransitionError(
                    f"Donation {record.id} is {current.sync_status.value} and cannot be edited"
                )

            candidate = {
                name: getattr(record, name)
                for name in DonationCreate.model_fields
            }
            self.validate(candidate)

            for name, value in changes.items():
                setattr(row, name, value)
            session.flush()
            return self._to_record(row)

    # ------------------------------------------------------------------
    # Sync commands
    # ------------------------------------------------------------------

    def _transition(self, row: Donation, target: SyncStatus) -> None:
        current = SyncStatus(row.sync_status)
        if not can_transition(current, target):
            raise InvalidTransitionError(
                f"Donation {row.id} cannot move from {current.value} to {target.value}"
            )
        row.sync_status = target.value

    def mark_syncing(self, donation_id: str) -> DonationRecord:
        """Start a submission attempt: ``syncing``, attempts + 1, timestamp.

        Committed before any network I/O so a crash leaves the record ``syncing``.
        """
        with self._session() as session:
            row = self._get_row(session, donation_id)
            self._transition(row, SyncStatus.SYNCING)
            row.sync_attempts += 1
            row.last_sync_attempt = self._clock()
            session.flush()
            return self._to_record(row)

    def mark_synced(
        self,
        donation_id: str,
        server_donation_id: int | None,
        *,
        note: str | None = None,
    ) -> DonationRecord:
        """Record a successful submission.

        ``server_donation_id`` may be None for a soft success; ``note`` then
        explains why no identifier was stored.
        """
        with self._session() as session:
            row = self._get_row(session, donation_id)
            if row.server_donation_id is not None:
                raise InvalidTransitionError(
                    f"Donation {donation_id} already has server id {row.server_donation_id}"
                )
            self._transition(row, SyncStatus.SYNCED)
            row.server_donation_id = server_donation_id
            row.error_message = None
            row.sync_note = note
            row.synced_at = self._clock()
            session.flush()
            return self._to_record(row)

    def mark_failed(
        self,
        donation_id: str,
        error_message: str,
        *,
        max_attempts: int = 3,
    ) -> DonationRecord:
        """Record a failed attempt; terminal once ``max_attempts`` is reached."""
        with self._session() as session:
            row = self._get_row(session, donation_id)
            target = (
                SyncStatus.FAILED_PERMANENT
                if row.sync_attempts >= max_attempts
                else SyncStatus.FAILED
            )
            self._transition(row, target)
            row.error_message = error_message
            session.flush()
            return self._to_record(row)

    def reset_for_retry(self, donation_id: str, *, reset_attempts: bool = True) -> DonationRecord:
        """Manual retry: back to ``pending`` with the error cleared.

        Raises:
            InvalidTransitionError: If the record is synced or in flight.
        """
        with self._session() as session:
            row = self._get_row(session, donation_id)
            self._transition(row, SyncStatus.PENDING)
            row.error_message = None
            row.sync_note = None
            if reset_attempts:
                row.sync_attempts = 0
            session.flush()
            return self._to_record(row)

    def reset_all_failed(self) -> int:
        """Manual bulk retry of failed and permanently failed donations."""
        with self._session() as session:
            result = session.execute(
                update(Donation)
                .where(Donation.sync_status.in_(_status_values(FAILED_STATUSES)))
                .values(
                    sync_status=SyncStatus.PENDING.value,
                    sync_attempts=0,
                    error_message=None,
                    sync_note=None,
                )
            )
            reset = int(result.rowcount or 0)
        if reset:
            logger.info("Reset %d failed donation(s) to pending", reset)
        return reset

    def reclaim_interrupted(self) -> int:
        """Move donations left ``syncing`` by a crash back to ``failed``.

        Returns:
            Number of reclaimed donations.
        """
        with self._session() as session:
            result = session.execute(
                update(Donation)
                .where(Donation.sync_status == SyncStatus.SYNCING.value)
                .values(sync_status=SyncStatus.FAILED.value, error_message=INTERRUPTED_MESSAGE)
            )
            reclaimed = int(result.rowcount or 0)
        if reclaimed:
            logger.warning("Reclaimed %d donation(s) interrupted mid-sync", reclaimed)
        return reclaimed

    # ------------------------------------------------------------------
    # Deletion (explicit user/administrative actions only)
    # ------------------------------------------------------------------

    def delete(self, donation_id: str) -> bool:
        """Delete a donation permanently. Deleting an unknown id is not an error.

        Returns:
            True if a record was removed.
        """
        with self._session() as session:
            result = session.execute(delete(Donation).where(Donation.id == donation_id))
            deleted = bool(result.rowcount)
        if deleted:
            logger.info("Deleted donation %s", donation_id)
        return deleted

    def delete_synced(self) -> int:
        """Delete every synced donation."""
        return self._delete_synced_before(None)

    def clear_old_synced(self, older_than_days: int | None = None) -> int:
        """Delete synced donations created more than ``older_than_days`` ago.

        Falls back to the store's ``retention_days`` when no age is given.
        """
        if older_than_days is None:
            older_than_days = self.retention_days
        cutoff = self._clock() - timedelta(days=older_than_days)
        return self._delete_synced_before(cutoff)

    def _delete_synced_before(self, cutoff: datetime | None) -> int:
        stmt = delete(Donation).where(Donation.sync_status == SyncStatus.SYNCED.value)
        if cutoff is not None:
            stmt = stmt.where(Donation.created_at < cutoff)
        with self._session() as session:
            deleted = int(session.execute(stmt).rowcount or 0)
        logger.info("Deleted %d synced donation(s)", deleted)
        return deleted
