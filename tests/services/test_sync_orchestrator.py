from __future__ import annotations

import asyncio

import pytest

from donation_sync.core.errors import InvalidTransitionError, StoreError, TransportError
from donation_sync.models import SyncStatus
from donation_sync.repositories.donation_store import INTERRUPTED_MESSAGE
from donation_sync.services.sync_orchestrator import SyncOrchestrator


async def _wait_for(predicate, timeout: float = 2.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.01)


@pytest.mark.asyncio
async def test_back_to_back_triggers_run_one_pass(orchestrator, monitor, store, gateway, donation_fields):
    store.create(donation_fields())
    await monitor.check_now()

    assert orchestrator.trigger_sync() is True
    assert orchestrator.trigger_sync() is False
    await orchestrator.wait_idle()

    assert gateway.submit.await_count == 1


@pytest.mark.asyncio
async def test_concurrent_triggers_are_single_flight(orchestrator, monitor, store, gateway, donation_fields):
    for i in range(3):
        store.create(donation_fields(donor_name=f"Donor {i}"))
    await monitor.check_now()

    async def trigger():
        return orchestrator.trigger_sync(reason="test")

    started = await asyncio.gather(*(trigger() for _ in range(10)))
    await orchestrator.wait_idle()

    assert started.count(True) == 1
    assert gateway.submit.await_count == 3


@pytest.mark.asyncio
async def test_sync_now_refused_while_offline(orchestrator, probe, store, gateway, donation_fields):
    probe.reachable = False
    store.create(donation_fields())

    assert await orchestrator.sync_now() == (False, "offline")
    await orchestrator.wait_idle()
    gateway.submit.assert_not_awaited()


@pytest.mark.asyncio
async def test_sync_now_reports_running_pass(orchestrator, monitor, store, gateway, donation_fields):
    store.create(donation_fields())
    await monitor.check_now()

    assert await orchestrator.sync_now() == (True, None)
    assert await orchestrator.sync_now() == (False, "already_syncing")
    await orchestrator.wait_idle()


@pytest.mark.asyncio
async def test_init_reclaims_interrupted_record_before_resubmitting(orchestrator, store, gateway, donation_fields):
    record = store.create(donation_fields())
    store.mark_syncing(record.id)

    await orchestrator.init()
    try:
        await _wait_for(lambda: store.get(record.id).sync_status is SyncStatus.SYNCED)
    finally:
        await orchestrator.shutdown()

    synced = store.get(record.id)
    assert synced.sync_attempts == 2
    assert gateway.submit.await_count == 1


@pytest.mark.asyncio
async def test_init_while_offline_only_reclaims(orchestrator, probe, store, gateway, donation_fields):
    probe.reachable = False
    record = store.create(donation_fields())
    store.mark_syncing(record.id)

    await orchestrator.init()
    await orchestrator.shutdown()

    reclaimed = store.get(record.id)
    assert reclaimed.sync_status is SyncStatus.FAILED
    assert reclaimed.error_message == INTERRUPTED_MESSAGE
    gateway.submit.assert_not_awaited()
    gateway.close.assert_awaited_once()


@pytest.mark.asyncio
async def test_connectivity_edge_triggers_sync(orchestrator, probe, store, gateway, donation_fields):
    probe.reachable = False
    record = store.create(donation_fields())
    await orchestrator.init()
    try:
        assert orchestrator.status().is_online is False
        probe.reachable = True
        await orchestrator.monitor.check_now()
        await orchestrator.wait_idle()
    finally:
        await orchestrator.shutdown()

    assert store.get(record.id).sync_status is SyncStatus.SYNCED


@pytest.mark.asyncio
async def test_periodic_trigger_syncs_pending_records(store, processor, monitor, donation_fields):
    orchestrator = SyncOrchestrator(store, processor, monitor, sync_interval_seconds=0.05)
    await monitor.check_now()
    record = store.create(donation_fields())

    await orchestrator.init()
    try:
        await _wait_for(lambda: store.get(record.id).sync_status is SyncStatus.SYNCED)
    finally:
        await orchestrator.shutdown()


@pytest.mark.asyncio
async def test_record_donation_syncs_when_online(orchestrator, monitor, store, donation_fields):
    await monitor.check_now()

    record = await orchestrator.record_donation(donation_fields())
    await orchestrator.wait_idle()

    assert store.get(record.id).sync_status is SyncStatus.SYNCED
    assert orchestrator.status().pending_count == 0


@pytest.mark.asyncio
async def test_record_donation_offline_stays_pending(orchestrator, store, gateway, donation_fields):
    record = await orchestrator.record_donation(donation_fields())
    await orchestrator.wait_idle()

    assert store.get(record.id).sync_status is SyncStatus.PENDING
    assert orchestrator.status().pending_count == 1
    gateway.submit.assert_not_awaited()


@pytest.mark.asyncio
async def test_status_reports_progress(orchestrator, monitor, store, donation_fields):
    for i in range(2):
        store.create(donation_fields(donor_name=f"Donor {i}"))
    await monitor.check_now()
    snapshots = []
    orchestrator.subscribe(snapshots.append)

    orchestrator.trigger_sync()
    await orchestrator.wait_idle()

    labels = [s.current_progress_label for s in snapshots if s.current_progress_label]
    assert labels == ["Syncing donation 1 of 2", "Syncing donation 2 of 2"]
    assert [s.progress for s in snapshots if s.current_progress_label] == [0.0, 0.5]

    final = orchestrator.status()
    assert final.is_syncing is False
    assert final.progress == 1.0
    assert final.pending_count == 0
    assert final.last_sync_timestamp is not None
    assert final.last_result.synced == 2


@pytest.mark.asyncio
async def test_retry_returns_permanent_failure_to_pending(orchestrator, store, donation_fields):
    record = store.create(donation_fields())
    for _ in range(3):
        store.mark_syncing(record.id)
        store.mark_failed(record.id, "timeout")

    retried = await orchestrator.retry(record.id)

    assert retried.sync_status is SyncStatus.PENDING
    assert retried.sync_attempts == 0
    assert orchestrator.status().failed_count == 0


@pytest.mark.asyncio
async def test_retry_of_synced_record_is_rejected(orchestrator, store, donation_fields):
    record = store.create(donation_fields())
    store.mark_syncing(record.id)
    store.mark_synced(record.id, 10)

    with pytest.raises(InvalidTransitionError):
        await orchestrator.retry(record.id)


@pytest.mark.asyncio
async def test_retry_all_counts_reset_records(orchestrator, store, donation_fields):
    for _ in range(2):
        record = store.create(donation_fields())
        store.mark_syncing(record.id)
        store.mark_failed(record.id, "timeout", max_attempts=1)

    assert await orchestrator.retry_all() == 2
    assert orchestrator.status().pending_count == 2


async def _strand_in_syncing(orchestrator, monitor, store, gateway, record, mocker):
    """Run a pass whose submission and failure bookkeeping both fail."""
    submit = gateway.submit.side_effect
    gateway.submit.side_effect = TransportError("gateway timeout", status_code=504)
    mocker.patch.object(store, "mark_failed", side_effect=StoreError("disk full"))
    await monitor.check_now()

    orchestrator.trigger_sync()
    await orchestrator.wait_idle()

    mocker.stopall()
    gateway.submit.side_effect = submit
    assert store.get(record.id).sync_status is SyncStatus.SYNCING


@pytest.mark.asyncio
async def test_retry_recovers_record_left_syncing(orchestrator, monitor, store, gateway, donation_fields, mocker):
    record = store.create(donation_fields())
    await _strand_in_syncing(orchestrator, monitor, store, gateway, record, mocker)

    retried = await orchestrator.retry(record.id)
    assert retried.sync_status is SyncStatus.PENDING
    await orchestrator.wait_idle()

    assert store.get(record.id).sync_status is SyncStatus.SYNCED
    assert gateway.submit.await_count == 2


@pytest.mark.asyncio
async def test_next_pass_recovers_record_left_syncing(orchestrator, monitor, store, gateway, donation_fields, mocker):
    record = store.create(donation_fields())
    await _strand_in_syncing(orchestrator, monitor, store, gateway, record, mocker)

    assert orchestrator.trigger_sync() is True
    await orchestrator.wait_idle()

    synced = store.get(record.id)
    assert synced.sync_status is SyncStatus.SYNCED
    assert synced.sync_attempts == 2
    assert orchestrator.status().failed_count == 0
