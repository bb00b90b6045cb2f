"""Global sync lifecycle: triggers, single-flight passes and observable status.

Three sources request a sync pass: the periodic loop, the connectivity
monitor's offline-to-online edge and the user ("sync now", save, retry).
All of them go through ``trigger_sync``, which starts a pass only if none
is running. The check and the task creation happen without an intervening
await, so on the event loop they are atomic.
"""

from __future__ import annotations

import asyncio
import contextlib
import inspect
import logging
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from donation_sync.core.errors import StoreError
from donation_sync.db.time import utcnow
from donation_sync.models.donation import ELIGIBLE_STATUSES, FAILED_STATUSES
from donation_sync.repositories.donation_store import DonationStore
from donation_sync.schemas.donation import DonationCreate, DonationRecord
from donation_sync.services.connectivity import ConnectivityEvent, ConnectivityMonitor
from donation_sync.services.sync_processor import SyncPassResult, SyncQueueProcessor

logger = logging.getLogger(__name__)

REASON_OFFLINE = "offline"
REASON_ALREADY_SYNCING = "already_syncing"


@dataclass(frozen=True)
class SyncStatusSnapshot:
    """Point-in-time view of the orchestrator for the UI layer."""

    is_online: bool
    is_syncing: bool
    pending_count: int
    failed_count: int
    progress: float
    current_progress_label: str | None
    last_sync_timestamp: datetime | None
    last_result: SyncPassResult | None


StatusListener = Callable[[SyncStatusSnapshot], Awaitable[None] | None]


class SyncOrchestrator:
    """Owns sync passes and publishes their progress."""

    def __init__(
        self,
        store: DonationStore,
        processor: SyncQueueProcessor,
        monitor: ConnectivityMonitor,
        *,
        sync_interval_seconds: float = 300.0,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            store: Local durable store shared with the processor.
            processor: Runs individual sync passes.
            monitor: Connectivity source; its flips trigger syncs.
            sync_interval_seconds: Period of the background trigger.
            clock: Source of ``last_sync_timestamp``.
        """
        self.store = store
        self.processor = processor
        self.monitor = monitor
        self.sync_interval_seconds = max(0.05, float(sync_interval_seconds))
        self._clock = clock

        self._pass_task: asyncio.Task[None] | None = None
        self._reclaiming = False
        self._periodic_task: asyncio.Task[None] | None = None
        self._stopping = asyncio.Event()
        self._unsubscribe_monitor: Callable[[], None] | None = None
        self._listeners: list[StatusListener] = []

        self._pending_count = 0
        self._failed_count = 0
        self._progress = 0.0
        self._progress_label: str | None = None
        self._last_sync_timestamp: datetime | None = None
        self._last_result: SyncPassResult | None = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def init(self) -> None:
        """Reclaim interrupted attempts and start monitoring and the periodic loop."""
        reclaimed = await asyncio.to_thread(self.store.reclaim_interrupted)
        if reclaimed:
            logger.info("Recovered %d interrupted donation(s) for retry", reclaimed)
        await self.refresh_counts()

        if self._unsubscribe_monitor is None:
            self._unsubscribe_monitor = self.monitor.subscribe(self._on_connectivity)
        await self.monitor.start()

        if self._periodic_task is None or self._periodic_task.done():
            self._stopping.clear()
            self._periodic_task = asyncio.create_task(self._run_periodic())
        logger.info("Sync orchestrator started")

    async def shutdown(self) -> None:
        """Stop triggers, wait for an in-flight pass and release the gateway."""
        self._stopping.set()
        if self._periodic_task is not None:
            await self._periodic_task
            self._periodic_task = None

        if self._unsubscribe_monitor is not None:
            self._unsubscribe_monitor()
            self._unsubscribe_monitor = None
        await self.monitor.stop()

        await self.wait_idle()
        await self.processor.gateway.close()
        logger.info("Sync orchestrator stopped")

    # ------------------------------------------------------------------
    # Triggers
    # ------------------------------------------------------------------

    @property
    def is_syncing(self) -> bool:
        return self._pass_task is not None and not self._pass_task.done()

    def trigger_sync(self, *, reason: str = "manual") -> bool:
        """Start a sync pass unless one is running or the device is offline.

        Must be called from the event loop thread.

        Returns:
            True if a new pass was started.
        """
        if self.is_syncing or self._reclaiming:
            logger.debug("Sync trigger (%s) ignored: pass already running", reason)
            return False
        if not self.monitor.is_online:
            logger.debug("Sync trigger (%s) ignored: offline", reason)
            return False

        self._pass_task = asyncio.create_task(self._run_pass(reason))
        return True

    async def sync_now(self) -> tuple[bool, str | None]:
        """User-initiated sync.

        Returns:
            ``(started, reason)``; ``reason`` explains a refusal.
        """
        if not self.monitor.is_online:
            logger.info("Sync now refused: offline")
            return False, REASON_OFFLINE
        if not self.trigger_sync(reason="manual"):
            return False, REASON_ALREADY_SYNCING
        return True, None

    async def wait_idle(self) -> None:
        """Wait for the in-flight pass, if any."""
        task = self._pass_task
        if task is not None and not task.done():
            await asyncio.shield(task)

    async def _run_pass(self, reason: str) -> None:
        logger.info("Starting sync pass (%s)", reason)
        self._progress = 0.0
        self._progress_label = None
        await self._notify()

        try:
            # No other pass can be in flight, so any syncing record is stale.
            await asyncio.to_thread(self.store.reclaim_interrupted)
            result = await self.processor.run_pass(self._on_progress)
        except Exception:
            logger.exception("Sync pass aborted")
        else:
            self._last_result = result
            self._last_sync_timestamp = self._clock()
            self._progress = 1.0
        finally:
            self._progress_label = None
            # Let is_syncing report False to listeners.
            self._pass_task = None
            await self.refresh_counts()

    async def _on_progress(self, index: int, total: int, record: DonationRecord) -> None:
        self._progress = (index - 1) / total if total else 0.0
        self._progress_label = f"Syncing donation {index} of {total}"
        await self._notify()

    async def _on_connectivity(self, event: ConnectivityEvent) -> None:
        await self._notify()
        if event.online:
            self.trigger_sync(reason="connectivity")

    async def _run_periodic(self) -> None:
        while not self._stopping.is_set():
            with contextlib.suppress(asyncio.TimeoutError):
                await asyncio.wait_for(self._stopping.wait(), timeout=self.sync_interval_seconds)
            if self._stopping.is_set():
                return
            if not self.monitor.is_online or self.is_syncing:
                continue
            await self.refresh_counts()
            if self._pending_count > 0:
                self.trigger_sync(reason="periodic")

    # ------------------------------------------------------------------
    # UI actions
    # ------------------------------------------------------------------

    async def record_donation(self, fields: DonationCreate | Mapping[str, Any]) -> DonationRecord:
        """Save a donation locally and sync it right away when online."""
        record = await asyncio.to_thread(self.store.create, fields)
        await self.refresh_counts()
        self.trigger_sync(reason="saved")
        return record

    async def retry(self, donation_id: str, *, reset_attempts: bool = True) -> DonationRecord:
        """Return a failed donation to ``pending`` and sync when online."""
        await self._reclaim_if_idle()
        record = await asyncio.to_thread(
            self.store.reset_for_retry, donation_id, reset_attempts=reset_attempts
        )
        await self.refresh_counts()
        self.trigger_sync(reason="retry")
        return record

    async def retry_all(self) -> int:
        """Return every failed donation to ``pending`` and sync when online."""
        await self._reclaim_if_idle()
        reset = await asyncio.to_thread(self.store.reset_all_failed)
        await self.refresh_counts()
        if reset:
            self.trigger_sync(reason="retry")
        return reset

    async def _reclaim_if_idle(self) -> None:
        """Release records left ``syncing`` by a pass whose store write failed."""
        if self.is_syncing or self._reclaiming:
            return
        self._reclaiming = True
        try:
            await asyncio.to_thread(self.store.reclaim_interrupted)
        finally:
            self._reclaiming = False

    # ------------------------------------------------------------------
    # Observable state
    # ------------------------------------------------------------------

    async def refresh_counts(self) -> None:
        """Reload badge counters from the store and notify listeners."""
        try:
            self._pending_count = await asyncio.to_thread(self.store.count, ELIGIBLE_STATUSES)
            self._failed_count = await asyncio.to_thread(self.store.count, FAILED_STATUSES)
        except StoreError as exc:
            logger.error("Could not refresh sync counters: %s", exc)
        await self._notify()

    def status(self) -> SyncStatusSnapshot:
        return SyncStatusSnapshot(
            is_online=self.monitor.is_online,
            is_syncing=self.is_syncing,
            pending_count=self._pending_count,
            failed_count=self._failed_count,
            progress=self._progress,
            current_progress_label=self._progress_label,
            last_sync_timestamp=self._last_sync_timestamp,
            last_result=self._last_result,
        )

    def subscribe(self, listener: StatusListener) -> Callable[[], None]:
        """Register ``listener`` for status changes; returns an unsubscribe callable."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            with contextlib.suppress(ValueError):
                self._listeners.remove(listener)

        return _unsubscribe

    async def _notify(self) -> None:
        snapshot = self.status()
        for listener in list(self._listeners):
            try:
                outcome = listener(snapshot)
                if inspect.isawaitable(outcome):
                    await outcome
            except Exception:
                logger.exception("Sync status listener %r failed", listener)
