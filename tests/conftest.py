from __future__ import annotations

import asyncio
import uuid
from typing import Any, Dict, List, Mapping, Optional, Sequence, Set

import pytest

from checklist_sync.document import ChecklistKind, MediaRef
from checklist_sync.errors import NotifierError, StorageError
from checklist_sync.media import MediaUploader
from checklist_sync.models import SyncConfig
from checklist_sync.orchestrator import ChecklistSession, Notice
from checklist_sync.rows import (ElementRow, InspectionRow, NewZone,
                                 RoomCounts, ZoneRow)

STORAGE_BASE = "https://storage.test/object/public/inspection-images"

# Smallest valid JPEG-ish payload; content is irrelevant to the engine.
JPEG_BYTES = b"\xff\xd8\xff\xe0fake-jpeg\xff\xd9"
MP4_BYTES = b"\x00\x00\x00\x18ftypmp42fake"


def photo(name: str = "photo.jpg") -> MediaRef:
    return MediaRef.from_bytes(JPEG_BYTES, "image/jpeg", name)


def video(name: str = "clip.mp4") -> MediaRef:
    return MediaRef.from_bytes(MP4_BYTES, "video/mp4", name)


class FakeStore:
    """In-memory ChecklistStore and PropertyService."""

    def __init__(self) -> None:
        self.inspections: Dict[tuple, InspectionRow] = {}
        self.zones: Dict[str, ZoneRow] = {}
        self.elements: Dict[tuple, ElementRow] = {}
        self.room_counts: Dict[str, RoomCounts] = {}
        # Number of list_zones calls that still miss freshly created zones.
        self.visibility_lag = 0
        self._lagging: Set[str] = set()
        self.fail_upserts = 0
        self.fail_zone_types: Set[str] = set()
        self.fail_zone_creation = False
        self.forced_counts: List[int] = []
        self.gate: Optional[asyncio.Event] = None
        self.waiting = False
        self.upsert_calls: List[List[ElementRow]] = []
        self.created_zones: List[NewZone] = []
        self.list_zone_calls = 0

    async def get_inspection(
        self, property_id: str, kind: ChecklistKind
    ) -> Optional[InspectionRow]:
        return self.inspections.get((property_id, ChecklistKind(kind).value))

    async def create_inspection(
        self, property_id: str, kind: ChecklistKind
    ) -> InspectionRow:
        key = (property_id, ChecklistKind(kind).value)
        if key not in self.inspections:
            self.inspections[key] = InspectionRow(
                id=str(uuid.uuid4()),
                property_id=property_id,
                inspection_type=key[1],
                inspection_status="in_progress",
            )
        return self.inspections[key]

    async def list_zones(self, inspection_id: str) -> List[ZoneRow]:
        self.list_zone_calls += 1
        if self.visibility_lag > 0:
            self.visibility_lag -= 1
            hidden = set(self._lagging)
        else:
            self._lagging.clear()
            hidden = set()
        return [
            zone
            for zone in self.zones.values()
            if zone.inspection_id == inspection_id and zone.id not in hidden
        ]

    async def create_zone(self, zone: NewZone) -> ZoneRow:
        if self.fail_zone_creation:
            raise RuntimeError("insert into zones rejected")
        row = ZoneRow(id=str(uuid.uuid4()), **zone.model_dump())
        self.zones[row.id] = row
        self._lagging.add(row.id)
        self.created_zones.append(zone)
        return row

    async def list_elements(self, zone_ids: Sequence[str]) -> List[ElementRow]:
        wanted = set(zone_ids)
        return [row for row in self.elements.values() if row.zone_id in wanted]

    async def upsert_elements(self, rows: Sequence[ElementRow]) -> int:
        self.upsert_calls.append(list(rows))
        if self.gate is not None:
            self.waiting = True
            await self.gate.wait()
        if self.fail_upserts > 0:
            self.fail_upserts -= 1
            raise RuntimeError("connection reset by peer")
        if any(self.zones[row.zone_id].zone_type in self.fail_zone_types for row in rows):
            raise RuntimeError("deadlock detected")
        for row in rows:
            existing = self.elements.get(row.key)
            element_id = existing.id if existing else str(uuid.uuid4())
            self.elements[row.key] = row.model_copy(update={"id": element_id})
        return len(rows)

    async def delete_elements(self, zone_id: str, names: Sequence[str]) -> int:
        removed = 0
        for name in names:
            if self.elements.pop((zone_id, name), None) is not None:
                removed += 1
        return removed

    async def count_elements(self, zone_ids: Sequence[str]) -> int:
        if self.forced_counts:
            return self.forced_counts.pop(0)
        wanted = set(zone_ids)
        return sum(1 for row in self.elements.values() if row.zone_id in wanted)

    async def complete_inspection(
        self, inspection_id: str, metadata: Mapping[str, Any]
    ) -> None:
        for key, inspection in self.inspections.items():
            if inspection.id == inspection_id:
                merged = dict(inspection.metadata or {})
                merged.update(metadata)
                self.inspections[key] = inspection.model_copy(
                    update={"inspection_status": "completed", "metadata": merged}
                )

    async def get_room_counts(self, property_id: str) -> RoomCounts:
        return self.room_counts.get(property_id, RoomCounts())

    # Helpers for assertions.
    def elements_of_zone(self, zone_id: str) -> Dict[str, ElementRow]:
        return {
            row.element_name: row
            for row in self.elements.values()
            if row.zone_id == zone_id
        }

    def zones_of_type(self, zone_type: str) -> List[ZoneRow]:
        return sorted(
            (zone for zone in self.zones.values() if zone.zone_type == zone_type),
            key=lambda zone: (zone.ordinal or 0, zone.zone_name),
        )


class FakeStorage:
    def __init__(self) -> None:
        self.fail_ids: Set[str] = set()
        self.uploads: List[tuple] = []

    async def upload(self, path: str, data: bytes, content_type: str) -> str:
        if any(media_id in path for media_id in self.fail_ids):
            raise StorageError(f"Network error uploading {path}")
        self.uploads.append((path, data, content_type))
        return f"{STORAGE_BASE}/{path}"


class FakeNotifier:
    def __init__(self) -> None:
        self.fail = False
        self.photo_batches: List[tuple] = []
        self.finalized: List[dict] = []

    async def notify_photos(self, property_id, kind, photos) -> bool:
        if self.fail:
            raise NotifierError("Webhook answered HTTP 502", status_code=502)
        self.photo_batches.append((property_id, kind, list(photos)))
        return True

    async def notify_finalized(self, payload) -> bool:
        if self.fail:
            raise NotifierError("Webhook answered HTTP 502", status_code=502)
        self.finalized.append(dict(payload))
        return True


@pytest.fixture
def store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def storage() -> FakeStorage:
    return FakeStorage()


@pytest.fixture
def notifier() -> FakeNotifier:
    return FakeNotifier()


@pytest.fixture
def sleeps() -> List[float]:
    return []


@pytest.fixture
def fake_sleep(sleeps):
    async def _sleep(delay: float) -> None:
        sleeps.append(delay)

    return _sleep


@pytest.fixture
def notices() -> List[Notice]:
    return []


@pytest.fixture
def make_session(store, storage, notifier, notices, fake_sleep):
    def _make(
        kind: ChecklistKind = ChecklistKind.INITIAL,
        property_id: str = "prop-1",
        bedrooms: int = 0,
        bathrooms: int = 0,
        config: Optional[SyncConfig] = None,
    ) -> ChecklistSession:
        store.room_counts[property_id] = RoomCounts(
            bedrooms=bedrooms, bathrooms=bathrooms
        )
        return ChecklistSession(
            store,
            property_id,
            kind,
            uploader=MediaUploader(storage, max_concurrency=2),
            notifier=notifier,
            properties=store,
            config=config or SyncConfig(),
            on_notice=notices.append,
            sleep=fake_sleep,
        )

    return _make
