"""Flatten then hydrate gives back the document the user entered."""

import uuid

import pytest

from checklist_sync.document import (ChecklistKind, Furniture, ItemCategory,
                                     ItemUnit, Question, Status)
from checklist_sync.mapper import flatten_section, hydrate
from checklist_sync.mapper.common import url_to_media
from checklist_sync.rows import ZoneRow
from checklist_sync.template import empty_document, load_template

from .conftest import STORAGE_BASE


def _url(ext="jpg"):
    return f"{STORAGE_BASE}/p/i/z/1700000000000_{uuid.uuid4()}.{ext}"


def _item(items, category, item_id):
    return next(i for i in items if i.category == category and i.id == item_id)


def _filled_document(kind=ChecklistKind.INITIAL):
    document = empty_document("prop-1", kind, bedrooms=2, bathrooms=1)
    sections = document.sections

    entorno = sections["entorno-zonas-comunes"]
    entorno.upload_slots[0].photos = [url_to_media(_url()), url_to_media(_url("png"))]
    entorno.upload_slots[1].videos = [url_to_media(_url("mp4"), is_video=True)]
    entorno.questions[0].status = Status.GOOD
    entorno.questions[1].status = Status.NEEDS_REPAIR
    entorno.questions[1].notes = "peeling paint"
    entorno.questions[1].bad_elements = ["fachada", "portal"]
    entorno.questions[1].photos = [url_to_media(_url())]

    salon = sections["salon"]
    _item(salon.items, ItemCategory.CARPENTRY, "ventanas").count = 1
    _item(salon.items, ItemCategory.CARPENTRY, "ventanas").status = Status.GOOD
    radiators = _item(salon.items, ItemCategory.CLIMATIZATION, "radiadores")
    radiators.count = 3
    radiators.units = [
        ItemUnit(status=Status.GOOD),
        ItemUnit(status=Status.NEEDS_REPAIR, notes="valve", bad_elements=["valvula"]),
        ItemUnit(status=Status.NOT_APPLICABLE, photos=[url_to_media(_url())]),
    ]
    salon.furniture = Furniture(
        exists=True,
        question=Question(id="mobiliario", status=Status.NEEDS_REPLACEMENT),
    )

    cocina = sections["cocina"]
    _item(cocina.items, ItemCategory.APPLIANCE, "horno").count = 1
    _item(cocina.items, ItemCategory.APPLIANCE, "horno").notes = "old"

    rooms = sections["habitaciones"].dynamic_items
    rooms[0].questions[0].status = Status.GOOD
    rooms[1].questions[0].status = Status.NEEDS_REPAIR
    rooms[1].upload_slot.photos = [url_to_media(_url())]
    rooms[1].furniture.question.status = Status.GOOD
    _item(rooms[1].items, ItemCategory.CARPENTRY, "armarios").count = 2
    _item(rooms[1].items, ItemCategory.CARPENTRY, "armarios").units = [
        ItemUnit(status=Status.GOOD),
        ItemUnit(status=Status.GOOD),
    ]

    bath = sections["banos"].dynamic_items[0]
    bath.questions[2].status = Status.NEEDS_REPLACEMENT
    bath.questions[2].notes = "cracked"
    return document


def _store(document, bad_elements_in_notes=False, reverse_zone_order=False):
    template = load_template()
    zones, elements = [], []
    for section_id, section in document.sections.items():
        section_template = template.section(section_id)
        if section_template.is_dynamic:
            section_zones = [
                ZoneRow(
                    id=f"{section_id}-{n}",
                    inspection_id="insp",
                    zone_type=section_template.zone_type,
                    zone_name=f"{section_template.zone_name} {n}",
                    ordinal=n,
                )
                for n in range(1, len(section.dynamic_items) + 1)
            ]
        else:
            section_zones = [
                ZoneRow(
                    id=section_id,
                    inspection_id="insp",
                    zone_type=section_template.zone_type,
                    zone_name=section_template.zone_name,
                )
            ]
        if not section_zones:
            continue
        zones.extend(section_zones)
        elements.extend(
            flatten_section(
                section_id,
                section,
                [zone.id for zone in section_zones],
                bad_elements_in_notes,
            )
        )
    if reverse_zone_order:
        zones.reverse()
        elements.reverse()
    return zones, elements


@pytest.mark.parametrize("bad_elements_in_notes", [False, True])
def test_document_survives_flatten_and_hydrate(bad_elements_in_notes):
    document = _filled_document()
    zones, elements = _store(document, bad_elements_in_notes)

    restored = hydrate(zones, elements, 2, 1, property_id="prop-1", kind=document.kind)

    assert restored == document


def test_rooms_keep_their_data_whatever_order_zones_come_back_in():
    document = _filled_document(ChecklistKind.FINAL)
    zones, elements = _store(document, reverse_zone_order=True)

    restored = hydrate(zones, elements, 2, 1, property_id="prop-1", kind=document.kind)

    assert restored.sections["habitaciones"] == document.sections["habitaciones"]


def test_second_round_trip_is_stable():
    document = _filled_document()
    zones, elements = _store(document)
    once = hydrate(zones, elements, 2, 1, property_id="prop-1", kind=document.kind)
    zones, elements = _store(once)

    twice = hydrate(zones, elements, 2, 1, property_id="prop-1", kind=document.kind)

    assert twice == once


def test_zero_count_items_are_not_stored_but_come_back_at_zero():
    document = _filled_document()
    zones, elements = _store(document)

    names = {row.element_name for row in elements if row.zone_id == "cocina"}
    assert "appliance-nevera" not in names

    restored = hydrate(zones, elements, 2, 1, property_id="prop-1", kind=document.kind)
    nevera = _item(restored.sections["cocina"].items, ItemCategory.APPLIANCE, "nevera")
    assert nevera.count == 0
