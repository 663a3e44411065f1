"""Shared fixtures for integration tests requiring live PostgreSQL.

Each test gets a throwaway service schema, created with the same
bootstrap the application runs at startup and dropped afterwards.
"""

from __future__ import annotations

import uuid
from collections.abc import AsyncGenerator

import pytest
from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
)

from leadgen_service.config import Settings, settings
from leadgen_service.storage.bootstrap import bootstrap
from leadgen_service.storage.database import build_engine, build_session_factory


@pytest.fixture()
def it_settings() -> Settings:
    schema = f"leadgen_it_{uuid.uuid4().hex[:8]}"
    return settings.model_copy(update={"pg_schema": schema, "db_pool_size": 2})


@pytest.fixture()
async def async_engine(it_settings: Settings) -> AsyncGenerator[AsyncEngine]:
    """Engine pinned to a fresh schema; the schema is dropped on teardown."""
    engine = build_engine(it_settings)
    await bootstrap(engine, it_settings)
    yield engine
    async with engine.begin() as conn:
        await conn.execute(
            text(f'DROP SCHEMA IF EXISTS "{it_settings.pg_schema}" CASCADE')
        )
    await engine.dispose()


@pytest.fixture()
def session_factory(
    async_engine: AsyncEngine,
) -> async_sessionmaker[AsyncSession]:
    return build_session_factory(async_engine)
