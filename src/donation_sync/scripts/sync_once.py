"""Run a single sync pass from the command line."""
from __future__ import annotations

import argparse
import asyncio
import sys

from donation_sync.core.errors import DonationSyncError
from donation_sync.core.logging import setup_logging
from donation_sync.core.settings import settings
from donation_sync.services.runtime import SyncRuntime, build_runtime
from donation_sync.services.sync_processor import SyncPassResult


async def run_once(runtime: SyncRuntime) -> SyncPassResult | None:
    """Reclaim interrupted attempts, probe once and run a pass when online.

    Returns:
        The pass result, or None when the remote API is unreachable.
    """
    try:
        reclaimed = await asyncio.to_thread(runtime.store.reclaim_interrupted)
        if reclaimed:
            print(f"[sync_once] reclaimed {reclaimed} interrupted donation(s)")

        runtime.monitor.stable_samples = 1
        await runtime.monitor.check_now()
        if not runtime.monitor.is_online:
            return None
        return await runtime.processor.run_pass()
    finally:
        await runtime.monitor.stop()
        await runtime.gateway.close()
        runtime.engine.dispose()


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Sync pending offline donations once")
    parser.add_argument(
        "--url",
        default=None,
        help="Override database URL (defaults to effective settings URL)",
    )
    args = parser.parse_args(argv)

    setup_logging(settings.log_level)
    source = settings
    if args.url:
        source = settings.model_copy(
            update={"database_url": args.url, "use_testing_database": False}
        )

    try:
        result = asyncio.run(run_once(build_runtime(source)))
    except DonationSyncError as exc:
        print(f"[sync_once] ERROR: {exc}", file=sys.stderr)
        sys.exit(1)

    if result is None:
        print("[sync_once] remote API unreachable; nothing synced", file=sys.stderr)
        sys.exit(2)
    print(
        f"[sync_once] attempted={result.attempted} synced={result.synced} "
        f"soft={result.soft_synced} failed={result.failed} "
        f"permanent={result.failed_permanent} skipped={result.skipped}"
    )


if __name__ == "__main__":
    main()
