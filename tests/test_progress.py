import pytest

from checklist_sync.document import ChecklistKind, ItemCategory, ItemUnit, Status
from checklist_sync.progress import (_round_half_up, all_sections_progress,
                                     overall_progress, section_groups,
                                     section_progress)
from checklist_sync.template import empty_document, new_section

from .conftest import photo


def _item(section, category, item_id):
    return next(
        item for item in section.items if item.category == category and item.id == item_id
    )


def test_fresh_section_only_counts_furniture_declared_absent():
    salon = new_section("salon")

    assert section_groups(salon) == (1, 3)
    assert section_progress(salon) == 33


def test_answering_questions_and_adding_media_completes_section():
    salon = new_section("salon")
    for question in salon.questions:
        question.status = Status.GOOD
    assert section_progress(salon) == 67

    salon.upload_slots[0].photos = [photo()]
    assert section_progress(salon) == 100


def test_counted_items_add_a_group_per_category():
    salon = new_section("salon")
    for question in salon.questions:
        question.status = Status.GOOD
    salon.upload_slots[0].photos = [photo()]
    radiators = _item(salon, ItemCategory.CLIMATIZATION, "radiadores")
    radiators.count = 2
    radiators.units = [ItemUnit(status=Status.GOOD), ItemUnit()]

    assert section_groups(salon) == (3, 4)
    assert section_progress(salon) == 75

    radiators.units[1].status = Status.NEEDS_REPAIR
    assert section_progress(salon) == 100


def test_rooms_need_their_furniture_answered():
    rooms = new_section("habitaciones", dynamic_count=1)
    room = rooms.dynamic_items[0]
    room.upload_slot.photos = [photo()]
    for question in room.questions:
        question.status = Status.GOOD

    assert section_groups(rooms) == (2, 3)

    room.furniture.question.status = Status.NEEDS_REPLACEMENT
    assert section_progress(rooms) == 100


def test_section_without_rooms_or_missing_counts_as_zero():
    assert section_progress(new_section("banos")) == 0
    assert section_progress(None) == 0


def test_overall_progress_averages_every_section_in_order():
    document = empty_document("p", ChecklistKind.FINAL, bedrooms=1, bathrooms=1)

    progress = all_sections_progress(document)

    assert list(progress)[0] == "entorno-zonas-comunes"
    assert len(progress) == 8
    assert overall_progress(document) == _round_half_up(sum(progress.values()) / 8)
    assert overall_progress(None) == 0


@pytest.mark.parametrize("value, expected", [(0.5, 1), (2.5, 3), (66.4, 66), (99.5, 100)])
def test_rounding_is_half_up(value, expected):
    assert _round_half_up(value) == expected
