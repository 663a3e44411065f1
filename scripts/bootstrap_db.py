"""CLI for creating the service schema.

Usage::

    uv run python -m scripts.bootstrap_db [--copy-legacy] [--schema NAME]

Creates the service schema and its tables if missing. With
``--copy-legacy`` development data is copied from the monolith tables
into service tables that are still empty.
"""

from __future__ import annotations

import argparse
import sys

from sqlalchemy import Engine, create_engine
from sqlalchemy.exc import SQLAlchemyError

from leadgen_service.config import Settings, settings
from leadgen_service.storage.bootstrap import copy_legacy_data, create_schema
from leadgen_service.storage.database import schema_map


def get_sync_engine(cfg: Settings) -> Engine:
    """Create sync engine for CLI operations.

    Uses the same database URL as the async app (psycopg v3
    handles both sync and async natively).
    """
    return create_engine(
        cfg.database_url,
        execution_options={"schema_translate_map": schema_map(cfg)},
    )


def run(cfg: Settings, *, copy_legacy: bool) -> dict[str, int]:
    """Bootstrap in one transaction; returns rows copied per table."""
    engine = get_sync_engine(cfg)
    try:
        with engine.begin() as conn:
            create_schema(conn, cfg)
            return copy_legacy_data(conn, cfg) if copy_legacy else {}
    finally:
        engine.dispose()


def main(argv: list[str] | None = None) -> None:
    """Parse arguments and run the bootstrap."""
    parser = argparse.ArgumentParser(description="Leadgen schema bootstrap")
    parser.add_argument(
        "--copy-legacy",
        action="store_true",
        help="Copy dev data from monolith tables into empty service tables",
    )
    parser.add_argument("--schema", help="Service schema (default: PG_SCHEMA)")
    args = parser.parse_args(argv)

    cfg = settings
    if args.schema:
        cfg = settings.model_copy(update={"pg_schema": args.schema})

    try:
        copied = run(cfg, copy_legacy=args.copy_legacy)
    except (ValueError, SQLAlchemyError) as exc:
        print(f"Bootstrap failed: {exc}", file=sys.stderr)
        sys.exit(1)

    print(f"Schema ready: {cfg.pg_schema}")
    for table, rows in copied.items():
        print(f"  copied {rows} rows into {table}")


if __name__ == "__main__":
    main()
