"""Utility script to create or reset the local donation store schema."""
from __future__ import annotations

import argparse
import sys

from sqlalchemy import inspect
from sqlalchemy.exc import SQLAlchemyError

from donation_sync.core.settings import settings
from donation_sync.db.session import build_engine, create_tables, drop_tables


def ensure_schema(db_url: str, *, drop: bool = False) -> list[str]:
    """Create missing tables, optionally dropping existing ones first.

    Returns:
        Names of the tables present afterwards.
    """
    engine = build_engine(db_url)
    try:
        if drop:
            drop_tables(engine)
            print("[ensure_db] dropped all tables")
        create_tables(engine)
        return sorted(inspect(engine).get_table_names())
    finally:
        engine.dispose()


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Ensure or reset the local donation store")
    parser.add_argument(
        "--drop-tables",
        action="store_true",
        help="Drop all tables before creating them. Deletes every local donation.",
    )
    parser.add_argument(
        "--url",
        default=None,
        help="Override database URL (defaults to effective settings URL)",
    )
    args = parser.parse_args(argv)

    db_url = args.url or settings.effective_database_url
    try:
        tables = ensure_schema(db_url, drop=args.drop_tables)
    except SQLAlchemyError as exc:
        print(f"[ensure_db] ERROR: {exc}", file=sys.stderr)
        sys.exit(1)
    print(f"[ensure_db] tables: {', '.join(tables)}")


if __name__ == "__main__":
    main()
