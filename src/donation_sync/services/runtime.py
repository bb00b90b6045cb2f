"""Construction of the process-wide sync services."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy import Engine

from donation_sync.core.settings import Settings, settings
from donation_sync.db.session import build_engine, build_session_factory, create_tables
from donation_sync.repositories.donation_store import DonationStore
from donation_sync.services.connectivity import (
    ConnectivityMonitor,
    ConnectivityProbe,
    build_probe,
)
from donation_sync.services.gateway import DonationGateway, load_gateway_config
from donation_sync.services.sync_orchestrator import SyncOrchestrator
from donation_sync.services.sync_processor import SyncQueueProcessor

logger = logging.getLogger(__name__)

_DEFAULT_PROBE = object()


@dataclass
class SyncRuntime:
    """Explicitly constructed services sharing one local store."""

    settings: Settings
    engine: Engine
    store: DonationStore
    gateway: DonationGateway
    monitor: ConnectivityMonitor
    processor: SyncQueueProcessor
    orchestrator: SyncOrchestrator

    async def start(self) -> None:
        await self.orchestrator.init()

    async def stop(self) -> None:
        await self.orchestrator.shutdown()
        self.engine.dispose()


def build_runtime(
    source: Settings | None = None,
    *,
    engine: Engine | None = None,
    gateway: DonationGateway | None = None,
    probe: ConnectivityProbe | None | object = _DEFAULT_PROBE,
    create_schema: bool = True,
) -> SyncRuntime:
    """Wire store, gateway, monitor, processor and orchestrator.

    Args:
        source: Settings to build from. Defaults to the global settings.
        engine: Existing engine, e.g. an in-memory test database.
        gateway: Gateway override, e.g. a test double.
        probe: Connectivity probe override; None means always offline.
        create_schema: Create missing tables on the engine.
    """
    source = source or settings
    engine = engine or build_engine(source.effective_database_url, echo=source.sql_debug)
    if create_schema:
        create_tables(engine)

    store = DonationStore(
        build_session_factory(engine),
        receipt_prefix=source.receipt_number_prefix,
        cash_payment_method=source.cash_payment_method,
        retention_days=source.synced_retention_days,
    )
    gateway = gateway or DonationGateway(load_gateway_config(source))
    monitor = ConnectivityMonitor(
        build_probe(source) if probe is _DEFAULT_PROBE else probe,  # type: ignore[arg-type]
        poll_interval_seconds=source.connectivity_poll_interval_seconds,
        stable_samples=source.connectivity_stable_samples,
    )
    processor = SyncQueueProcessor(
        store,
        gateway,
        max_attempts=source.sync_max_attempts,
        inter_record_delay_seconds=source.sync_inter_record_delay_seconds,
    )
    orchestrator = SyncOrchestrator(
        store,
        processor,
        monitor,
        sync_interval_seconds=source.sync_interval_seconds,
    )
    logger.debug("Sync runtime built for %s", engine.url.render_as_string(hide_password=True))
    return SyncRuntime(
        settings=source,
        engine=engine,
        store=store,
        gateway=gateway,
        monitor=monitor,
        processor=processor,
        orchestrator=orchestrator,
    )
