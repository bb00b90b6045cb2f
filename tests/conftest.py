# tests/conftest.py
from __future__ import annotations

from collections.abc import Callable, Generator, Iterator
from datetime import UTC, datetime, timedelta
from itertools import count
from typing import Any
from unittest.mock import AsyncMock

import pytest
from sqlalchemy.engine import Engine

from donation_sync.core.settings import Settings
from donation_sync.db.session import build_engine, build_session_factory, create_tables, drop_tables
from donation_sync.repositories.donation_store import DonationStore
from donation_sync.services.connectivity import ConnectivityMonitor
from donation_sync.services.gateway import DonationGateway, GatewayMetrics, SubmissionResult
from donation_sync.services.sync_orchestrator import SyncOrchestrator
from donation_sync.services.sync_processor import SyncQueueProcessor

TEST_DB_URL = "sqlite://"


class FakeClock:
    """Deterministic clock advancing one second per reading."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2025, 3, 1, 9, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        current = self.now
        self.now = current + timedelta(seconds=1)
        return current

    def advance(self, **delta: float) -> None:
        self.now += timedelta(**delta)


class StaticProbe:
    """Probe whose reachability is set by the test."""

    def __init__(self, reachable: bool = True) -> None:
        self.reachable = reachable
        self.calls = 0
        self.closed = False

    async def probe(self) -> bool:
        self.calls += 1
        return self.reachable

    async def close(self) -> None:
        self.closed = True


@pytest.fixture()
def engine() -> Generator[Engine, None, None]:
    engine = build_engine(TEST_DB_URL)
    create_tables(engine)
    try:
        yield engine
    finally:
        drop_tables(engine)
        engine.dispose()


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def store(engine: Engine, clock: FakeClock) -> DonationStore:
    return DonationStore(build_session_factory(engine), clock=clock)


@pytest.fixture()
def donation_fields() -> Callable[..., dict[str, Any]]:
    def _factory(**overrides: Any) -> dict[str, Any]:
        fields: dict[str, Any] = {
            "donor_name": "Asha Rao",
            "donor_email": "asha@example.org",
            "amount": "51.00",
            "donation_type": "General",
            "payment_method": "Cash",
            "collector_email": "collector@example.org",
        }
        fields.update(overrides)
        return fields

    return _factory


@pytest.fixture()
def gateway() -> AsyncMock:
    """Gateway double answering every submission with a new server id."""
    server_ids = count(1001)
    gateway = AsyncMock(spec=DonationGateway)
    gateway.metrics = GatewayMetrics()

    async def _submit(request: Any, *, idempotency_key: str | None = None) -> SubmissionResult:
        return SubmissionResult(server_id=next(server_ids), amount=request.donation.donation_amt)

    gateway.submit.side_effect = _submit
    return gateway


@pytest.fixture()
def processor(store: DonationStore, gateway: AsyncMock) -> SyncQueueProcessor:
    return SyncQueueProcessor(store, gateway, max_attempts=3, inter_record_delay_seconds=0)


@pytest.fixture()
def probe() -> StaticProbe:
    return StaticProbe(reachable=True)


@pytest.fixture()
def monitor(probe: StaticProbe) -> ConnectivityMonitor:
    return ConnectivityMonitor(probe, poll_interval_seconds=60, stable_samples=1)


@pytest.fixture()
def orchestrator(
    store: DonationStore,
    processor: SyncQueueProcessor,
    monitor: ConnectivityMonitor,
) -> Iterator[SyncOrchestrator]:
    yield SyncOrchestrator(store, processor, monitor, sync_interval_seconds=3600)


@pytest.fixture()
def test_settings() -> Settings:
    return Settings(
        DATABASE_URL=TEST_DB_URL,
        CONNECTIVITY_PROBE="none",
        SYNC_INTER_RECORD_DELAY_SECONDS=0,
        SYNC_INTERVAL_SECONDS=3600,
        CONNECTIVITY_POLL_INTERVAL_SECONDS=60,
    )
