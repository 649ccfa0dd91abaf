"""Rebuild a checklist document from zones and elements."""

from __future__ import annotations

import logging
import re
from typing import Dict, Iterable, List, Optional, Sequence

from ..document import (CategorizedItem, ChecklistDocument, ChecklistKind,
                        DynamicItem, Furniture, ItemCategory, ItemUnit,
                        Question, Section, UploadSlot)
from ..rows import ElementRow, ZoneRow
from ..template import (BEDROOMS, SectionTemplate, load_template,
                        new_dynamic_item, new_section, normalize_dynamic_item)
from .common import (FURNITURE, FURNITURE_DETAIL, PHOTOS_PREFIX,
                     VIDEOS_PREFIX, condition_to_status, decode_bad_elements,
                     split_item_name, urls_to_media)

LOGGER = logging.getLogger("checklist_sync.mapper.hydrate")

_DIGITS_RE = re.compile(r"(\d+)")
_NUMBER_RE = re.compile(r"\d+")


def _natural_key(value: str) -> tuple:
    return tuple(
        (0, int(part), "") if part.isdigit() else (1, 0, part.lower())
        for part in _DIGITS_RE.split(value)
        if part
    )


def zone_position(zone: ZoneRow) -> Optional[int]:
    """The room number of ``zone``: its ordinal, else the last number in its name."""
    if zone.ordinal is not None:
        return zone.ordinal
    numbers = _NUMBER_RE.findall(zone.zone_name)
    return int(numbers[-1]) if numbers else None


def zone_sort_key(zone: ZoneRow) -> tuple:
    """Room number first, then natural order of the zone name.

    A zone without any number sorts as room 0, ahead of numbered rooms.
    """
    return (
        zone_position(zone) or 0,
        _natural_key(zone.zone_name),
        zone.id,
    )


def sort_zones(zones: Iterable[ZoneRow]) -> List[ZoneRow]:
    return sorted(zones, key=zone_sort_key)


class BundleBuilder:
    """Applies elements of one zone onto a section or a dynamic item."""

    def __init__(
        self,
        slots: List[UploadSlot],
        questions: List[Question],
        items: List[CategorizedItem],
        furniture: Optional[Furniture],
        known_items: Dict[ItemCategory, set],
        furniture_question_id: str = FURNITURE,
        single_slot: bool = False,
    ) -> None:
        self.slots = slots
        self.questions = questions
        self.items = items
        self.furniture = furniture
        self.known_items = known_items
        self.furniture_question_id = furniture_question_id
        self.single_slot = single_slot

    def apply(self, elements: Sequence[ElementRow]) -> None:
        for element in sorted(elements, key=lambda row: row.element_name):
            self._apply_one(element)
        for item in self.items:
            _settle_units(item)

    def _slot(self, slot_id: str) -> UploadSlot:
        # A room has exactly one slot: the zone, not the slot name, ties it to the room.
        if self.single_slot and self.slots:
            return self.slots[0]
        for slot in self.slots:
            if slot.id == slot_id:
                return slot
        slot = UploadSlot(id=slot_id)
        self.slots.append(slot)
        return slot

    def _question(self, question_id: str) -> Question:
        for question in self.questions:
            if question.id == question_id:
                return question
        question = Question(id=question_id)
        self.questions.append(question)
        return question

    def _item(self, category: ItemCategory, item_id: str) -> CategorizedItem:
        for item in self.items:
            if item.category == category and item.id == item_id:
                return item
        item = CategorizedItem(id=item_id, category=category)
        self.items.append(item)
        return item

    def _apply_one(self, element: ElementRow) -> None:
        name = element.element_name
        if name.startswith(PHOTOS_PREFIX):
            slot = self._slot(name[len(PHOTOS_PREFIX):])
            slot.photos = urls_to_media(element.image_urls)
        elif name.startswith(VIDEOS_PREFIX):
            self._slot(name[len(VIDEOS_PREFIX):]).videos = urls_to_media(
                element.video_urls, is_video=True
            )
        elif name == FURNITURE:
            if self.furniture is None:
                self.furniture = Furniture()
            self.furniture.exists = element.exists
        elif name == FURNITURE_DETAIL:
            if self.furniture is None:
                self.furniture = Furniture(exists=True)
            question = self.furniture.question or Question(id=self.furniture_question_id)
            _fill_answer(question, element)
            self.furniture.question = question
        else:
            known = set().union(*self.known_items.values()) if self.known_items else None
            parsed = split_item_name(name, known)
            if parsed is None:
                _fill_answer(self._question(name), element)
                return
            category, item_id, unit_index = parsed
            item = self._item(category, item_id)
            if unit_index is None:
                _fill_answer(item, element)
                item.count = max(item.count, 1)
            else:
                while len(item.units) <= unit_index:
                    item.units.append(ItemUnit())
                _fill_answer(item.units[unit_index], element)
                item.count = max(item.count, unit_index + 1)


def _fill_answer(node, element: ElementRow) -> None:
    notes, legacy_bad_elements = decode_bad_elements(element.notes)
    node.status = condition_to_status(element.condition)
    node.notes = notes
    node.bad_elements = (
        list(element.bad_elements) if element.bad_elements else legacy_bad_elements
    )
    node.photos = urls_to_media(element.image_urls)


def _settle_units(item: CategorizedItem) -> None:
    if item.count == 1 and item.units:
        # Only the first unit survived: fold it back into the single-unit fields.
        first = item.units[0]
        if item.status is None and not item.notes and not item.photos:
            item.status = first.status
            item.notes = first.notes
            item.bad_elements = first.bad_elements
            item.photos = first.photos
        item.units = []
    elif item.count > 1:
        while len(item.units) < item.count:
            item.units.append(ItemUnit())


def _hydrate_fixed(
    template: SectionTemplate,
    zones: Sequence[ZoneRow],
    elements_by_zone: Dict[str, List[ElementRow]],
) -> Section:
    section = new_section(template.id)
    known_items = load_template().known_items(template.id)
    furniture_question_id = (
        template.bundle.furniture.question_id
        if template.bundle.furniture and template.bundle.furniture.question_id
        else FURNITURE
    )
    builder = BundleBuilder(
        section.upload_slots,
        section.questions,
        section.items,
        section.furniture,
        known_items,
        furniture_question_id,
    )
    for zone in zones:
        builder.apply(elements_by_zone.get(zone.id, []))
    section.furniture = builder.furniture
    return section


def _hydrate_dynamic(
    template: SectionTemplate,
    zones: Sequence[ZoneRow],
    elements_by_zone: Dict[str, List[ElementRow]],
    expected_count: Optional[int],
) -> Section:
    known_items = load_template().known_items(template.id)
    furniture_question_id = (
        template.bundle.furniture.question_id
        if template.bundle.furniture and template.bundle.furniture.question_id
        else FURNITURE
    )
    dynamic_items: List[DynamicItem] = []
    for index, zone in enumerate(zones):
        item = new_dynamic_item(template.id, index)
        builder = BundleBuilder(
            [item.upload_slot],
            item.questions,
            item.items,
            item.furniture,
            known_items,
            furniture_question_id,
            single_slot=True,
        )
        builder.apply(elements_by_zone.get(zone.id, []))
        item.furniture = builder.furniture
        normalize_dynamic_item(template.id, item, index)
        dynamic_items.append(item)

    count = max(expected_count or 0, len(zones))
    # Rooms without a zone yet are provisioned when they are first saved.
    for index in range(len(dynamic_items), count):
        dynamic_items.append(new_dynamic_item(template.id, index))

    return Section(id=template.id, dynamic_items=dynamic_items, dynamic_count=count)


def hydrate_sections(
    zones: Sequence[ZoneRow],
    elements: Sequence[ElementRow],
    bedroom_count: Optional[int],
    bathroom_count: Optional[int],
    kind: ChecklistKind = ChecklistKind.INITIAL,
) -> Dict[str, Section]:
    template = load_template()

    elements_by_zone: Dict[str, List[ElementRow]] = {}
    zone_ids = {zone.id for zone in zones}
    for element in elements:
        if element.zone_id not in zone_ids:
            LOGGER.debug(
                "Element %s references unknown zone %s",
                element.element_name,
                element.zone_id,
            )
            continue
        elements_by_zone.setdefault(element.zone_id, []).append(element)

    zones_by_type: Dict[str, List[ZoneRow]] = {}
    for zone in zones:
        if template.for_zone_type(zone.zone_type) is None:
            LOGGER.warning(
                "Ignoring zone %s of unknown type %s", zone.id, zone.zone_type
            )
            continue
        zones_by_type.setdefault(zone.zone_type, []).append(zone)

    sections: Dict[str, Section] = {}
    for section_id in template.section_order(kind):
        section_template = template.section(section_id)
        section_zones = sort_zones(zones_by_type.get(section_template.zone_type, []))
        if section_template.is_dynamic:
            expected = (
                bedroom_count if section_template.dynamic == BEDROOMS else bathroom_count
            )
            sections[section_id] = _hydrate_dynamic(
                section_template, section_zones, elements_by_zone, expected
            )
        else:
            sections[section_id] = _hydrate_fixed(
                section_template, section_zones, elements_by_zone
            )
    return sections


def hydrate(
    zones: Sequence[ZoneRow],
    elements: Sequence[ElementRow],
    bedroom_count: Optional[int],
    bathroom_count: Optional[int],
    property_id: str = "",
    kind: ChecklistKind = ChecklistKind.INITIAL,
) -> ChecklistDocument:
    """Rebuild the document for ``zones`` and their ``elements``.

    Bedrooms and bathrooms are matched to their zones purely by zone order
    (room number, then natural name order); zone ``i`` becomes room ``i``.
    """
    sections = hydrate_sections(zones, elements, bedroom_count, bathroom_count, kind)
    LOGGER.debug(
        "Hydrated %s sections from %s zones and %s elements",
        len(sections),
        len(zones),
        len(elements),
    )
    return ChecklistDocument(property_id=property_id, kind=kind, sections=sections)
