from __future__ import annotations

import re
from decimal import Decimal

import pytest
from sqlalchemy.exc import OperationalError

from donation_sync.core.errors import (
    InvalidTransitionError,
    RecordNotFoundError,
    StoreError,
    ValidationError,
)
from donation_sync.db.session import build_engine, build_session_factory, create_tables
from donation_sync.models import SyncStatus
from donation_sync.repositories.donation_store import INTERRUPTED_MESSAGE, DonationStore


def test_create_persists_pending_record(store, donation_fields):
    record = store.create(donation_fields(amount="125.50"))

    assert record.sync_status is SyncStatus.PENDING
    assert record.sync_attempts == 0
    assert record.amount == Decimal("125.50")
    assert record.server_donation_id is None
    assert re.fullmatch(r"OFF-\d+-\d{4}", record.receipt_number)
    assert store.get(record.id) == record


def test_create_survives_engine_restart(tmp_path, donation_fields):
    url = f"sqlite:///{tmp_path / 'donations.db'}"
    engine = build_engine(url)
    create_tables(engine)
    created = DonationStore(build_session_factory(engine)).create(
        donation_fields(amount="10.05", notes="Temple festival")
    )
    engine.dispose()

    reopened = build_engine(url)
    try:
        restored = DonationStore(build_session_factory(reopened)).get(created.id)
    finally:
        reopened.dispose()

    assert restored == created
    assert restored.sync_status is SyncStatus.PENDING


def test_non_cash_payment_without_reference_is_rejected(store, donation_fields):
    with pytest.raises(ValidationError) as excinfo:
        store.create(donation_fields(amount="125.50", payment_method="Check"))

    assert "Reference number is required" in str(excinfo.value)
    assert store.count() == 0


def test_non_cash_payment_with_reference_is_accepted(store, donation_fields):
    record = store.create(
        donation_fields(payment_method="Zelle", payment_reference="ZL-7781")
    )
    assert record.payment_reference == "ZL-7781"


def test_cash_method_comparison_ignores_case(store, donation_fields):
    assert store.create(donation_fields(payment_method="cash")).payment_reference is None


def test_amount_trailing_zeros_are_accepted(store, donation_fields):
    record = store.create(donation_fields(amount="51.500"))

    assert record.amount == Decimal("51.50")
    assert str(store.get(record.id).amount) == "51.50"


@pytest.mark.parametrize("amount", ["0", "-5", "1.005"])
def test_invalid_amount_is_rejected(store, donation_fields, amount):
    with pytest.raises(ValidationError) as excinfo:
        store.create(donation_fields(amount=amount))
    assert excinfo.value.problems


def test_name_or_organization_is_required(store, donation_fields):
    with pytest.raises(ValidationError):
        store.create(donation_fields(donor_name="  ", organization_name=None))

    record = store.create(
        donation_fields(donor_name=None, organization_name="Sunrise Trust", is_organization=True)
    )
    assert record.display_name == "Sunrise Trust"


def test_query_orders_by_creation(store, donation_fields):
    first = store.create(donation_fields(donor_name="First"))
    second = store.create(donation_fields(donor_name="Second"))
    third = store.create(donation_fields(donor_name="Third"))

    assert [r.id for r in store.list_eligible()] == [first.id, second.id, third.id]
    assert [r.id for r in store.list_all()] == [third.id, second.id, first.id]
    assert [r.id for r in store.query(newest_first=True, limit=1)] == [third.id]


def test_delete_is_idempotent(store, donation_fields):
    record = store.create(donation_fields())

    assert store.delete(record.id) is True
    assert store.delete(record.id) is False
    assert store.delete("missing") is False
    assert store.get(record.id) is None


def test_count_and_statistics(store, donation_fields):
    synced = store.create(donation_fields(amount="100"))
    failed = store.create(donation_fields(amount="20.50"))
    store.create(donation_fields(amount="5"))

    store.mark_syncing(synced.id)
    store.mark_synced(synced.id, 900)
    store.mark_syncing(failed.id)
    store.mark_failed(failed.id, "timeout")

    assert store.count() == 3
    assert store.count([SyncStatus.PENDING, SyncStatus.FAILED]) == 2

    stats = store.statistics()
    assert (stats.total, stats.synced, stats.pending, stats.failed) == (3, 1, 1, 1)
    assert stats.total_amount == Decimal("125.50")
    assert stats.unsynced_amount == Decimal("25.50")


def test_sync_commands_follow_state_machine(store, donation_fields):
    record = store.create(donation_fields())

    with pytest.raises(InvalidTransitionError):
        store.mark_synced(record.id, 1)

    syncing = store.mark_syncing(record.id)
    assert syncing.sync_status is SyncStatus.SYNCING
    assert syncing.sync_attempts == 1
    assert syncing.last_sync_attempt is not None

    synced = store.mark_synced(record.id, 4242)
    assert synced.server_donation_id == 4242
    assert synced.synced_at is not None
    assert synced.error_message is None

    with pytest.raises(InvalidTransitionError):
        store.mark_syncing(record.id)
    with pytest.raises(InvalidTransitionError):
        store.reset_for_retry(record.id)


def test_soft_success_keeps_note_without_server_id(store, donation_fields):
    record = store.create(donation_fields())
    store.mark_syncing(record.id)

    synced = store.mark_synced(record.id, None, note="Unparseable response body (HTTP 200)")

    assert synced.sync_status is SyncStatus.SYNCED
    assert synced.server_donation_id is None
    assert synced.sync_note == "Unparseable response body (HTTP 200)"
    assert synced.error_message is None


def test_third_failure_is_permanent(store, donation_fields):
    record = store.create(donation_fields())

    for _ in range(2):
        store.mark_syncing(record.id)
        assert store.mark_failed(record.id, "boom", max_attempts=3).sync_status is SyncStatus.FAILED

    store.mark_syncing(record.id)
    final = store.mark_failed(record.id, "boom", max_attempts=3)

    assert final.sync_status is SyncStatus.FAILED_PERMANENT
    assert final.sync_attempts == 3
    assert store.list_eligible() == []

    with pytest.raises(InvalidTransitionError):
        store.mark_syncing(record.id)


def test_reset_for_retry_can_keep_attempts(store, donation_fields):
    record = store.create(donation_fields())
    store.mark_syncing(record.id)
    store.mark_failed(record.id, "boom")

    kept = store.reset_for_retry(record.id, reset_attempts=False)
    assert kept.sync_status is SyncStatus.PENDING
    assert kept.sync_attempts == 1
    assert kept.error_message is None


def test_reset_all_failed(store, donation_fields):
    records = [store.create(donation_fields()) for _ in range(3)]
    for record in records[:2]:
        store.mark_syncing(record.id)
        store.mark_failed(record.id, "boom", max_attempts=1)

    assert store.reset_all_failed() == 2
    assert store.count([SyncStatus.PENDING]) == 3
    assert all(r.sync_attempts == 0 for r in store.list_all())


def test_reclaim_interrupted_moves_syncing_to_failed(store, donation_fields):
    record = store.create(donation_fields())
    store.mark_syncing(record.id)

    assert store.reclaim_interrupted() == 1

    reclaimed = store.get(record.id)
    assert reclaimed.sync_status is SyncStatus.FAILED
    assert reclaimed.error_message == INTERRUPTED_MESSAGE
    assert reclaimed.sync_attempts == 1


def test_unknown_id_raises_not_found(store):
    with pytest.raises(RecordNotFoundError):
        store.mark_syncing("nope")
    with pytest.raises(RecordNotFoundError):
        store.require("nope")


def test_update_edits_pending_record(store, donation_fields):
    record = store.create(donation_fields())

    updated = store.update(record.model_copy(update={"notes": "Corrected", "city": "Pune"}))

    assert updated.notes == "Corrected"
    assert store.get(record.id).city == "Pune"


def test_update_rejects_sync_metadata_and_synced_records(store, donation_fields):
    record = store.create(donation_fields())

    with pytest.raises(InvalidTransitionError):
        store.update(record.model_copy(update={"sync_status": SyncStatus.SYNCED}))
    with pytest.raises(InvalidTransitionError):
        store.update(record.model_copy(update={"receipt_number": "OFF-1-1111"}))

    store.mark_syncing(record.id)
    store.mark_synced(record.id, 7)
    synced = store.get(record.id)
    with pytest.raises(InvalidTransitionError):
        store.update(synced.model_copy(update={"notes": "late edit"}))


def test_update_revalidates_payment_reference(store, donation_fields):
    record = store.create(donation_fields())

    with pytest.raises(ValidationError):
        store.update(record.model_copy(update={"payment_method": "Check"}))


def test_clear_old_synced_only_removes_old_synced(store, clock, donation_fields):
    old = store.create(donation_fields())
    store.mark_syncing(old.id)
    store.mark_synced(old.id, 1)
    old_pending = store.create(donation_fields())

    clock.advance(days=40)
    recent = store.create(donation_fields())
    store.mark_syncing(recent.id)
    store.mark_synced(recent.id, 2)

    assert store.clear_old_synced(30) == 1
    assert {r.id for r in store.list_all()} == {old_pending.id, recent.id}
    assert store.delete_synced() == 1
    assert [r.id for r in store.list_all()] == [old_pending.id]


def test_clear_old_synced_defaults_to_configured_retention(engine, clock, donation_fields):
    store = DonationStore(build_session_factory(engine), clock=clock, retention_days=7)
    old = store.create(donation_fields())
    store.mark_syncing(old.id)
    store.mark_synced(old.id, 1)

    clock.advance(days=10)
    recent = store.create(donation_fields())
    store.mark_syncing(recent.id)
    store.mark_synced(recent.id, 2)

    assert store.clear_old_synced() == 1
    assert [r.id for r in store.list_all()] == [recent.id]


def test_database_errors_surface_as_store_error(store, mocker):
    session = mocker.MagicMock()
    session.scalar.side_effect = OperationalError("SELECT 1", {}, Exception("disk I/O error"))
    mocker.patch.object(store, "_session_factory", return_value=session)

    with pytest.raises(StoreError):
        store.count()

    session.rollback.assert_called_once()
    session.commit.assert_not_called()
    session.close.assert_called_once()


def test_receipt_numbers_use_creation_epoch(store, donation_fields, clock):
    start = clock.now
    record = store.create(donation_fields())

    assert record.created_at == start
    assert record.receipt_number.startswith(f"OFF-{int(start.timestamp())}-")
