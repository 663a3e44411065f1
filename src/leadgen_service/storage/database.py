"""Async engine, session factory and the per-request unit of work.

The engine owns a bounded connection pool. Both the service schema and the
legacy monolith schema are pinned through ``schema_translate_map`` so that
every statement issued through it lands in the right namespace without
relying on the connection's ``search_path``.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from leadgen_service.config import Settings
from leadgen_service.storage.orm import LEGACY_SCHEMA


def schema_map(cfg: Settings) -> dict[str | None, str]:
    """Map declared (placeholder) schemas to the configured ones."""
    return {None: cfg.pg_schema, LEGACY_SCHEMA: cfg.legacy_schema}


def build_engine(cfg: Settings) -> AsyncEngine:
    """Create the pooled async engine for the given settings."""
    return create_async_engine(
        cfg.database_url,
        pool_size=cfg.db_pool_size,
        max_overflow=cfg.db_max_overflow,
        pool_pre_ping=True,
        execution_options={"schema_translate_map": schema_map(cfg)},
    )


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@asynccontextmanager
async def unit_of_work(
    factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession]:
    """Acquire one pooled connection for a block of work.

    Uncommitted work is rolled back on error and the connection goes
    back to the pool on every exit path.
    """
    async with factory() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise
