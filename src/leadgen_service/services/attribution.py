"""Best-effort vehicle/driver attribution for scans.

A scan's tag may be linked to a car. The car's driver assignment is read
from the monolith's fleet tables. Attribution is an enrichment: every
failure here is logged and swallowed so the scan itself still succeeds.
"""

from __future__ import annotations

import asyncio
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum
from typing import Protocol

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from leadgen_service.storage.orm import cars

logger = structlog.get_logger()


class AttributionBasis(StrEnum):
    NONE = "none"
    ASSIGNMENT_WINDOW = "assignment_window"
    CURRENT_DRIVER = "current_driver"


@dataclass(frozen=True)
class Attribution:
    car_id: uuid.UUID | None = None
    driver_id: uuid.UUID | None = None
    basis: AttributionBasis = AttributionBasis.NONE


EMPTY_ATTRIBUTION = Attribution()


@dataclass(frozen=True)
class VehicleAssignment:
    car_id: uuid.UUID
    driver_id: uuid.UUID | None
    assignment_start: datetime | None
    assignment_end: datetime | None

    def covers(self, ts: datetime) -> bool:
        """True if ``ts`` falls inside a bounded assignment window."""
        if self.driver_id is None or self.assignment_start is None:
            return False
        if ts < self.assignment_start:
            return False
        return self.assignment_end is None or ts < self.assignment_end


class FleetAssignments(Protocol):
    async def get_assignment(self, car_id: uuid.UUID) -> VehicleAssignment | None: ...


class SqlFleetAssignments:
    """Reads the legacy ``cars`` table (read only)."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_assignment(self, car_id: uuid.UUID) -> VehicleAssignment | None:
        stmt = select(
            cars.c.id,
            cars.c.current_driver_id,
            cars.c.assignment_start,
            cars.c.assignment_end,
        ).where(cars.c.id == car_id)
        row = (await self._session.execute(stmt)).first()
        if row is None:
            return None
        return VehicleAssignment(
            car_id=row.id,
            driver_id=row.current_driver_id,
            assignment_start=row.assignment_start,
            assignment_end=row.assignment_end,
        )


class AttributionEngine:
    """Resolve {car, driver} for a scan at scan time."""

    def __init__(
        self,
        fleet_factory: Callable[[AsyncSession], FleetAssignments] = SqlFleetAssignments,
        *,
        timeout_seconds: float = 2.0,
    ) -> None:
        self._fleet_factory = fleet_factory
        self._timeout = timeout_seconds

    async def _lookup(
        self, session: AsyncSession, car_id: uuid.UUID, scanned_at: datetime
    ) -> Attribution:
        assignment = await self._fleet_factory(session).get_assignment(car_id)
        if assignment is None or assignment.driver_id is None:
            return Attribution(car_id=car_id)
        if assignment.covers(scanned_at):
            basis = AttributionBasis.ASSIGNMENT_WINDOW
        else:
            # Outside any known window the currently recorded driver is used.
            basis = AttributionBasis.CURRENT_DRIVER
            logger.info(
                "attribution_outside_window",
                car_id=str(car_id),
                driver_id=str(assignment.driver_id),
            )
        return Attribution(car_id=car_id, driver_id=assignment.driver_id, basis=basis)

    async def resolve(
        self,
        session: AsyncSession,
        car_id: uuid.UUID | None,
        scanned_at: datetime,
    ) -> Attribution:
        """Never raises; returns an empty result when nothing can be resolved."""
        if car_id is None:
            return EMPTY_ATTRIBUTION
        try:
            return await asyncio.wait_for(
                self._lookup(session, car_id, scanned_at), timeout=self._timeout
            )
        except Exception as exc:
            logger.warning(
                "attribution_failed",
                car_id=str(car_id),
                error=type(exc).__name__,
                exc_info=True,
            )
            try:
                await session.rollback()
            except Exception:
                logger.warning("attribution_rollback_failed", exc_info=True)
            return Attribution(car_id=car_id)
