"""Sequential processing of the offline donation queue.

One pass takes the eligible donations (pending and failed, oldest first)
and submits them one at a time. Each attempt is committed as ``syncing``
before the network call so an interrupted attempt is recoverable.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime

from donation_sync.core.errors import (
    InvalidTransitionError,
    RecordNotFoundError,
    StoreError,
    TransportError,
)
from donation_sync.db.time import utcnow
from donation_sync.models.donation import SyncStatus
from donation_sync.repositories.donation_store import DonationStore
from donation_sync.schemas.donation import DonationRecord
from donation_sync.services.gateway import DonationGateway
from donation_sync.services.translation import build_submission

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int, DonationRecord], Awaitable[None] | None]


@dataclass
class SyncPassResult:
    """Counters and attempt order of one sync pass."""

    attempted: int = 0
    synced: int = 0
    soft_synced: int = 0
    failed: int = 0
    failed_permanent: int = 0
    skipped: int = 0
    started_at: datetime | None = None
    finished_at: datetime | None = None
    attempted_ids: list[str] = field(default_factory=list)


class SyncQueueProcessor:
    """Submits eligible donations through the gateway and records the outcome."""

    def __init__(
        self,
        store: DonationStore,
        gateway: DonationGateway,
        *,
        max_attempts: int = 3,
        inter_record_delay_seconds: float = 0.5,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.store = store
        self.gateway = gateway
        self.max_attempts = max_attempts
        self.inter_record_delay_seconds = max(0.0, float(inter_record_delay_seconds))
        self._clock = clock

    async def run_pass(self, on_progress: ProgressCallback | None = None) -> SyncPassResult:
        """Run one pass over the donations eligible at its start.

        Each queued donation is re-read before its attempt; one that was
        deleted, retried into another state or synced meanwhile is skipped.
        No single donation's failure stops the pass.

        Args:
            on_progress: Called with ``(index, total, record)`` before each attempt.

        Returns:
            Counters for the pass.
        """
        result = SyncPassResult(started_at=self._clock())
        queue = await asyncio.to_thread(self.store.list_eligible)
        total = len(queue)
        logger.info("Sync pass started with %d eligible donation(s)", total)

        for index, queued in enumerate(queue, start=1):
            if index > 1 and self.inter_record_delay_seconds:
                await asyncio.sleep(self.inter_record_delay_seconds)

            try:
                current = await asyncio.to_thread(self.store.get, queued.id)
            except StoreError as exc:
                logger.error("Could not load donation %s: %s", queued.id, exc)
                result.skipped += 1
                continue
            if current is None or not current.is_eligible:
                result.skipped += 1
                continue

            await self._report_progress(on_progress, index, total, current)
            await self._process(current, result)

        result.finished_at = self._clock()
        logger.info(
            "Sync pass finished: %d attempted, %d synced (%d soft), %d failed, "
            "%d permanently failed, %d skipped",
            result.attempted,
            result.synced,
            result.soft_synced,
            result.failed,
            result.failed_permanent,
            result.skipped,
        )
        return result

    @staticmethod
    async def _report_progress(
        on_progress: ProgressCallback | None,
        index: int,
        total: int,
        record: DonationRecord,
    ) -> None:
        if on_progress is None:
            return
        try:
            outcome = on_progress(index, total, record)
            if inspect.isawaitable(outcome):
                await outcome
        except Exception:
            logger.exception("Sync progress callback failed")

    async def _process(self, record: DonationRecord, result: SyncPassResult) -> None:
        try:
            attempt = await asyncio.to_thread(self.store.mark_syncing, record.id)
        except (InvalidTransitionError, RecordNotFoundError) as exc:
            logger.info("Skipping donation %s: %s", record.id, exc)
            result.skipped += 1
            return
        except StoreError as exc:
            logger.error("Could not start sync of donation %s: %s", record.id, exc)
            result.skipped += 1
            return

        result.attempted += 1
        result.attempted_ids.append(attempt.id)
        logger.debug(
            "Submitting donation %s (%s), attempt %d",
            attempt.receipt_number,
            attempt.id,
            attempt.sync_attempts,
        )

        try:
            submission = await self.gateway.submit(
                build_submission(attempt),
                idempotency_key=attempt.id,
            )
        except TransportError as exc:
            await self._record_failure(attempt, str(exc), result)
            return
        except Exception as exc:
            logger.exception("Unexpected error submitting donation %s", attempt.id)
            await self._record_failure(attempt, f"{type(exc).__name__}: {exc}", result)
            return

        try:
            await asyncio.to_thread(
                self.store.mark_synced,
                attempt.id,
                submission.server_id,
                note=submission.note,
            )
        except (StoreError, InvalidTransitionError, RecordNotFoundError) as exc:
            # Left syncing; reclaimed as interrupted by the next pass or retry.
            logger.error("Donation %s was accepted but could not be marked synced: %s",
                         attempt.id, exc)
            return

        result.synced += 1
        if submission.is_soft:
            result.soft_synced += 1
            logger.warning(
                "Donation %s synced without server id: %s", attempt.id, submission.note
            )
        else:
            logger.info(
                "Donation %s synced as server donation %s",
                attempt.receipt_number,
                submission.server_id,
            )

    async def _record_failure(
        self,
        record: DonationRecord,
        message: str,
        result: SyncPassResult,
    ) -> None:
        try:
            failed = await asyncio.to_thread(
                self.store.mark_failed,
                record.id,
                message,
                max_attempts=self.max_attempts,
            )
        except (StoreError, InvalidTransitionError, RecordNotFoundError) as exc:
            logger.error("Could not record failure of donation %s: %s", record.id, exc)
            return

        if failed.sync_status is SyncStatus.FAILED_PERMANENT:
            result.failed_permanent += 1
            logger.warning(
                "Donation %s permanently failed after %d attempt(s): %s",
                record.id,
                failed.sync_attempts,
                message,
            )
        else:
            result.failed += 1
            logger.warning("Donation %s failed to sync: %s", record.id, message)
