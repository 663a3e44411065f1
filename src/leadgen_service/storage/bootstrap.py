"""Create the service schema and tables, optionally seeding from the monolith.

Tables are created with ``Base.metadata.create_all`` (idempotent), so
running the bootstrap against an existing schema is a no-op. The legacy
copy only fills tables that are still empty and keeps source ids.
"""

from __future__ import annotations

import re

import structlog
from sqlalchemy import Connection, func, select, text
from sqlalchemy.ext.asyncio import AsyncEngine

from leadgen_service.config import Settings
from leadgen_service.storage.orm import Base, Commission, Prospect, QrScan, QrTag

logger = structlog.get_logger()

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]{0,62}$")


def _checked_identifier(name: str) -> str:
    """Schema names are interpolated into DDL; accept plain identifiers only."""
    if not _IDENTIFIER.match(name):
        raise ValueError(f"Invalid schema name: {name!r}")
    return name


def create_schema(conn: Connection, cfg: Settings) -> None:
    schema = _checked_identifier(cfg.pg_schema)
    conn.execute(text(f'CREATE SCHEMA IF NOT EXISTS "{schema}"'))
    Base.metadata.create_all(conn)
    logger.info("schema_ready", schema=schema)


# Source column names follow the monolith's camelCase conventions.
_COPY_STATEMENTS: dict[str, str] = {
    "qr_tags": """
        INSERT INTO "{target}".qr_tags
            (id, tenant_id, campaign_id, car_id, owner_user_id, code, status,
             created_at, updated_at)
        SELECT id, tenant_id, "campaignId", "carId", "ownerUserId",
               COALESCE("slug", id::text),
               CASE WHEN active THEN 'active' ELSE 'inactive' END,
               NOW(), NOW()
        FROM "{source}".qr_tags
        ON CONFLICT (id) DO NOTHING
    """,
    "qr_scans": """
        INSERT INTO "{target}".qr_scans
            (id, tenant_id, qr_tag_id, ts, ip, ua, geo_json)
        SELECT s.id,
               (SELECT t.tenant_id FROM "{source}".qr_tags t
                WHERE t.id = s."qrTagId"),
               s."qrTagId", s.ts, NULL::inet, s.ua,
               jsonb_build_object(
                   'referer', s.referer, 'device', s.device,
                   'geoCity', s."geoCity", 'botFlag', s."botFlag",
                   'isDuplicate', s."isDuplicate")
        FROM "{source}".qr_scans s
        ON CONFLICT (id) DO NOTHING
    """,
    "prospects": """
        INSERT INTO "{target}".prospects
            (id, tenant_id, qr_tag_id, campaign_id, assigned_agent_id, status,
             payload_json, verified_at, created_at)
        SELECT id, tenant_id, "qrTagId", "campaignId", "assignedAgentId",
               LOWER(COALESCE("leadStatus"::text, 'new')),
               jsonb_build_object(
                   'firstName', "firstName", 'lastName', "lastName",
                   'email', email, 'phone', phone, 'company', company,
                   'jobTitle', "jobTitle", 'source', "leadSource",
                   'score', score, 'interests', interests::jsonb,
                   'notes', notes, 'location', location::jsonb,
                   'preferences', preferences::jsonb),
               "conversionDate",
               COALESCE("createdAt", NOW())
        FROM "{source}".prospects
        ON CONFLICT (id) DO NOTHING
    """,
    "commissions": """
        INSERT INTO "{target}".commissions
            (id, tenant_id, prospect_id, agent_id, amount_cents, status,
             created_at)
        SELECT c.id, c.tenant_id, c."prospectId", c."agentId",
               ROUND(COALESCE(c.amount, 0) * 100)::int,
               LOWER(COALESCE(c.status::text, 'pending')),
               COALESCE(c."earnedDate", NOW())
        FROM "{source}".commissions c
        JOIN "{target}".prospects p ON p.id = c."prospectId"
        ON CONFLICT (id) DO NOTHING
    """,
}

# Copy order respects foreign keys between the service tables.
_COPY_MODELS = (QrTag, QrScan, Prospect, Commission)


def copy_legacy_data(conn: Connection, cfg: Settings) -> dict[str, int]:
    """Copy development data from the monolith into empty service tables.

    Returns:
        Rows copied per table; tables that already had rows are skipped.
    """
    target = _checked_identifier(cfg.pg_schema)
    source = _checked_identifier(cfg.legacy_schema)
    copied: dict[str, int] = {}
    for model in _COPY_MODELS:
        table = model.__tablename__
        existing = conn.execute(select(func.count()).select_from(model)).scalar_one()
        if existing:
            logger.info("legacy_copy_skipped", table=table, existing_rows=existing)
            continue
        sql = _COPY_STATEMENTS[table].format(target=target, source=source)
        result = conn.execute(text(sql))
        copied[table] = result.rowcount or 0
        logger.info("legacy_copy_done", table=table, rows=copied[table])
    return copied


async def bootstrap(
    engine: AsyncEngine,
    cfg: Settings,
    *,
    copy_legacy: bool = False,
) -> dict[str, int]:
    """Create schema and tables; copy legacy rows when asked."""
    async with engine.begin() as conn:
        await conn.run_sync(create_schema, cfg)
        if not copy_legacy:
            return {}
        return await conn.run_sync(copy_legacy_data, cfg)
