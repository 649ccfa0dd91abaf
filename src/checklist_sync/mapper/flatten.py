"""Flatten checklist sections into zone elements."""

from __future__ import annotations

import logging
from typing import Dict, List, Optional, Sequence

from ..document import (CategorizedItem, DynamicItem, Furniture, ItemUnit,
                        Question, Section, UploadSlot)
from ..errors import MappingError
from ..rows import ElementRow
from .common import (FURNITURE, FURNITURE_DETAIL, PHOTOS_PREFIX,
                     VIDEOS_PREFIX, durable_urls, encode_bad_elements,
                     is_reserved_name, status_to_condition)

LOGGER = logging.getLogger("checklist_sync.mapper.flatten")


class ZoneElements:
    """Collects the elements of one zone, keeping element names unique."""

    def __init__(self, zone_id: str, bad_elements_in_notes: bool = False) -> None:
        self.zone_id = zone_id
        self.bad_elements_in_notes = bad_elements_in_notes
        self._rows: Dict[str, ElementRow] = {}

    @property
    def rows(self) -> List[ElementRow]:
        return list(self._rows.values())

    def add(self, name: str, **values) -> None:
        if name in self._rows:
            raise MappingError(
                f"Element {name!r} would be written twice to zone {self.zone_id}"
            )
        self._rows[name] = ElementRow(zone_id=self.zone_id, element_name=name, **values)

    def _answer(self, node, quantity: Optional[int] = None) -> dict:
        bad_elements = list(node.bad_elements)
        if self.bad_elements_in_notes:
            notes = encode_bad_elements(node.notes, bad_elements)
            stored_bad_elements = None
        else:
            notes = node.notes or None
            stored_bad_elements = bad_elements or None
        return {
            "condition": status_to_condition(node.status),
            "notes": notes,
            "image_urls": durable_urls(node.photos),
            "quantity": quantity,
            "bad_elements": stored_bad_elements,
        }

    def upload_slot(self, slot: UploadSlot) -> None:
        # Both elements exist even without media so the zone stays self-describing.
        self.add(f"{PHOTOS_PREFIX}{slot.id}", image_urls=durable_urls(slot.photos))
        self.add(f"{VIDEOS_PREFIX}{slot.id}", video_urls=durable_urls(slot.videos))

    def question(self, question: Question) -> None:
        if is_reserved_name(question.id):
            raise MappingError(
                f"Question id {question.id!r} collides with a reserved element name"
            )
        self.add(question.id, **self._answer(question))

    def item(self, item: CategorizedItem) -> None:
        if item.count == 0:
            return
        base = f"{item.category.value}-{item.id}"
        if item.count == 1:
            self.add(base, **self._answer(item, quantity=1))
            return
        unit: ItemUnit
        for index, unit in enumerate(item.active_units()):
            self.add(f"{base}-{index + 1}", **self._answer(unit, quantity=1))

    def furniture(self, furniture: Furniture) -> None:
        self.add(FURNITURE, exists=furniture.exists)
        if furniture.exists and furniture.question is not None:
            self.add(FURNITURE_DETAIL, **self._answer(furniture.question))

    def bundle(
        self,
        slots: Sequence[UploadSlot],
        questions: Sequence[Question],
        items: Sequence[CategorizedItem],
        furniture: Optional[Furniture],
    ) -> None:
        for slot in slots:
            self.upload_slot(slot)
        for question in questions:
            self.question(question)
        for item in items:
            self.item(item)
        if furniture is not None:
            self.furniture(furniture)


def flatten_dynamic_item(
    item: DynamicItem, zone_id: str, bad_elements_in_notes: bool = False
) -> List[ElementRow]:
    collector = ZoneElements(zone_id, bad_elements_in_notes)
    slots = [item.upload_slot] if item.upload_slot else []
    collector.bundle(slots, item.questions, item.items, item.furniture)
    return collector.rows


def flatten_section(
    section_id: str,
    section: Section,
    zone_ids: Sequence[str],
    bad_elements_in_notes: bool = False,
) -> List[ElementRow]:
    """Return the elements for ``section``.

    Fixed sections are written to ``zone_ids[0]``. For bedrooms and bathrooms
    ``zone_ids[i]`` is the zone assigned to ``section.dynamic_items[i]``.
    Pending media is skipped; only durable URLs reach the elements.
    """
    if not zone_ids:
        raise MappingError(f"No zone available for section {section_id!r}")

    if section.dynamic_items:
        if len(zone_ids) < len(section.dynamic_items):
            raise MappingError(
                f"Section {section_id!r} has {len(section.dynamic_items)} rooms "
                f"but only {len(zone_ids)} zones"
            )
        rows: List[ElementRow] = []
        for item, zone_id in zip(section.dynamic_items, zone_ids):
            rows.extend(flatten_dynamic_item(item, zone_id, bad_elements_in_notes))
        LOGGER.debug(
            "Flattened %s rooms of %s into %s elements",
            len(section.dynamic_items),
            section_id,
            len(rows),
        )
        return rows

    collector = ZoneElements(zone_ids[0], bad_elements_in_notes)
    collector.bundle(
        section.upload_slots, section.questions, section.items, section.furniture
    )
    LOGGER.debug("Flattened %s into %s elements", section_id, len(collector.rows))
    return collector.rows
