from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, List, Mapping, Optional, Protocol, Sequence

from sqlalchemy import delete, func, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncEngine

from .document import ChecklistKind
from .rows import ElementRow, InspectionRow, NewZone, RoomCounts, ZoneRow
from .schema import (ELEMENT_VALUE_COLUMNS, elements, inspections, properties,
                     zones)

LOGGER = logging.getLogger("checklist_sync.store")

INSPECTION_COMPLETED = "completed"


class ChecklistStore(Protocol):
    """Relational store holding inspections, zones and elements."""

    async def get_inspection(
        self, property_id: str, kind: ChecklistKind
    ) -> Optional[InspectionRow]: ...

    async def create_inspection(
        self, property_id: str, kind: ChecklistKind
    ) -> InspectionRow: ...

    async def list_zones(self, inspection_id: str) -> List[ZoneRow]: ...

    async def create_zone(self, zone: NewZone) -> ZoneRow: ...

    async def list_elements(self, zone_ids: Sequence[str]) -> List[ElementRow]: ...

    async def upsert_elements(self, rows: Sequence[ElementRow]) -> int: ...

    async def delete_elements(self, zone_id: str, names: Sequence[str]) -> int: ...

    async def count_elements(self, zone_ids: Sequence[str]) -> int: ...

    async def complete_inspection(
        self, inspection_id: str, metadata: Mapping[str, Any]
    ) -> None: ...


class PropertyService(Protocol):
    async def get_room_counts(self, property_id: str) -> RoomCounts: ...


def build_upsert_statement(rows: Sequence[ElementRow]):
    """INSERT ... ON CONFLICT (zone_id, element_name) DO UPDATE for ``rows``."""
    stmt = pg_insert(elements).values([row.values() for row in rows])
    return stmt.on_conflict_do_update(
        index_elements=[elements.c.zone_id, elements.c.element_name],
        set_={
            **{column: stmt.excluded[column] for column in ELEMENT_VALUE_COLUMNS},
            "updated_at": func.now(),
        },
    )


def build_delete_statement(zone_id: str, names: Sequence[str]):
    return delete(elements).where(
        elements.c.zone_id == zone_id, elements.c.element_name.in_(list(names))
    )


def _inspection_type(kind: ChecklistKind) -> str:
    return ChecklistKind(kind).value


class SqlChecklistStore:
    """``ChecklistStore`` and ``PropertyService`` backed by SQLAlchemy Core."""

    def __init__(self, engine: AsyncEngine) -> None:
        self._engine = engine

    async def get_inspection(
        self, property_id: str, kind: ChecklistKind
    ) -> Optional[InspectionRow]:
        stmt = select(inspections).where(
            inspections.c.property_id == property_id,
            inspections.c.inspection_type == _inspection_type(kind),
        )
        async with self._engine.connect() as conn:
            row = (await conn.execute(stmt)).mappings().first()
        return InspectionRow.model_validate(dict(row)) if row else None

    async def create_inspection(
        self, property_id: str, kind: ChecklistKind
    ) -> InspectionRow:
        stmt = (
            pg_insert(inspections)
            .values(property_id=property_id, inspection_type=_inspection_type(kind))
            .on_conflict_do_nothing(
                index_elements=[inspections.c.property_id, inspections.c.inspection_type]
            )
            .returning(*inspections.c)
        )
        async with self._engine.begin() as conn:
            row = (await conn.execute(stmt)).mappings().first()
        if row is not None:
            LOGGER.info(
                "Created %s inspection for property %s",
                _inspection_type(kind),
                property_id,
            )
            return InspectionRow.model_validate(dict(row))

        # Someone else created it first.
        existing = await self.get_inspection(property_id, kind)
        if existing is None:
            raise RuntimeError(
                f"Inspection lookup failed for {(property_id, _inspection_type(kind))}"
            )
        return existing

    async def list_zones(self, inspection_id: str) -> List[ZoneRow]:
        stmt = (
            select(zones)
            .where(zones.c.inspection_id == inspection_id)
            .order_by(zones.c.zone_type, zones.c.ordinal, zones.c.zone_name)
        )
        async with self._engine.connect() as conn:
            rows = (await conn.execute(stmt)).mappings().all()
        return [ZoneRow.model_validate(dict(row)) for row in rows]

    async def create_zone(self, zone: NewZone) -> ZoneRow:
        stmt = zones.insert().values(**zone.model_dump()).returning(*zones.c)
        async with self._engine.begin() as conn:
            row = (await conn.execute(stmt)).mappings().one()
        return ZoneRow.model_validate(dict(row))

    async def list_elements(self, zone_ids: Sequence[str]) -> List[ElementRow]:
        if not zone_ids:
            return []
        stmt = select(elements).where(elements.c.zone_id.in_(list(zone_ids)))
        async with self._engine.connect() as conn:
            rows = (await conn.execute(stmt)).mappings().all()
        return [ElementRow.model_validate(dict(row)) for row in rows]

    async def upsert_elements(self, rows: Sequence[ElementRow]) -> int:
        if not rows:
            return 0
        async with self._engine.begin() as conn:
            await conn.execute(build_upsert_statement(rows))
        return len(rows)

    async def delete_elements(self, zone_id: str, names: Sequence[str]) -> int:
        if not names:
            return 0
        async with self._engine.begin() as conn:
            result = await conn.execute(build_delete_statement(zone_id, names))
        return result.rowcount or 0

    async def count_elements(self, zone_ids: Sequence[str]) -> int:
        if not zone_ids:
            return 0
        stmt = select(func.count()).select_from(elements).where(
            elements.c.zone_id.in_(list(zone_ids))
        )
        async with self._engine.connect() as conn:
            return int((await conn.execute(stmt)).scalar_one())

    async def complete_inspection(
        self, inspection_id: str, metadata: Mapping[str, Any]
    ) -> None:
        async with self._engine.begin() as conn:
            current = (
                await conn.execute(
                    select(inspections.c.metadata).where(inspections.c.id == inspection_id)
                )
            ).scalar_one_or_none()
            merged = dict(current or {})
            merged.update(metadata)
            await conn.execute(
                update(inspections)
                .where(inspections.c.id == inspection_id)
                .values(
                    inspection_status=INSPECTION_COMPLETED,
                    completed_at=datetime.now(timezone.utc),
                    metadata=merged,
                )
            )

    async def get_room_counts(self, property_id: str) -> RoomCounts:
        stmt = select(properties.c.bedrooms, properties.c.bathrooms).where(
            properties.c.id == property_id
        )
        async with self._engine.connect() as conn:
            row = (await conn.execute(stmt)).mappings().first()
        if row is None:
            LOGGER.warning("Property %s not found; assuming no rooms", property_id)
            return RoomCounts()
        return RoomCounts(bedrooms=row["bedrooms"] or 0, bathrooms=row["bathrooms"] or 0)
