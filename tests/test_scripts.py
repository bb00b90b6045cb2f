from __future__ import annotations

import pytest

from donation_sync.db.session import build_engine
from donation_sync.models import SyncStatus
from donation_sync.scripts import ensure_db, sync_once
from donation_sync.services.runtime import build_runtime


def test_ensure_db_creates_schema(tmp_path, capsys):
    url = f"sqlite:///{tmp_path / 'local.db'}"

    ensure_db.main(["--url", url])
    ensure_db.main(["--url", url, "--drop-tables"])

    output = capsys.readouterr().out
    assert "offline_donation" in output
    assert "dropped all tables" in output


@pytest.mark.asyncio
async def test_sync_once_syncs_when_reachable(tmp_path, test_settings, gateway, probe, donation_fields):
    engine = build_engine(f"sqlite:///{tmp_path / 'once.db'}")
    runtime = build_runtime(test_settings, engine=engine, gateway=gateway, probe=probe)
    record = runtime.store.create(donation_fields())
    runtime.store.mark_syncing(record.id)

    result = await sync_once.run_once(runtime)

    assert result is not None
    assert result.synced == 1
    assert runtime.store.get(record.id).sync_status is SyncStatus.SYNCED
    gateway.close.assert_awaited_once()


@pytest.mark.asyncio
async def test_sync_once_offline_returns_none(tmp_path, test_settings, gateway, donation_fields):
    engine = build_engine(f"sqlite:///{tmp_path / 'once.db'}")
    runtime = build_runtime(test_settings, engine=engine, gateway=gateway, probe=None)
    record = runtime.store.create(donation_fields())

    assert await sync_once.run_once(runtime) is None
    assert runtime.store.get(record.id).sync_status is SyncStatus.PENDING
    gateway.submit.assert_not_awaited()
