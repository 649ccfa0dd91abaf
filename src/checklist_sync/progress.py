"""Completion percentages of a checklist, counted per group of fields."""

from __future__ import annotations

import math
from typing import Dict, List, Optional, Sequence, Tuple

from .document import (CategorizedItem, ChecklistDocument, Furniture,
                       ItemCategory, Question, Section, UploadSlot)
from .template import load_template


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _item_answered(item: CategorizedItem) -> bool:
    if item.status is not None:
        return True
    units = item.active_units()
    return bool(units) and all(unit.status is not None for unit in units)


def _bundle_groups(
    slots: Sequence[UploadSlot],
    questions: Sequence[Question],
    items: Sequence[CategorizedItem],
    furniture: Optional[Furniture],
) -> List[bool]:
    groups: List[bool] = []
    if slots:
        groups.append(any(slot.photos or slot.videos for slot in slots))
    if questions:
        groups.append(all(question.status is not None for question in questions))
    for category in ItemCategory:
        counted = [
            item for item in items if item.category == category and item.count > 0
        ]
        if counted:
            groups.append(all(_item_answered(item) for item in counted))
    if furniture is not None:
        groups.append(
            furniture.exists is False
            or (
                furniture.exists is True
                and furniture.question is not None
                and furniture.question.status is not None
            )
        )
    return groups


def section_groups(section: Section) -> Tuple[int, int]:
    """Return ``(completed, total)`` groups of ``section``."""
    groups = _bundle_groups(
        section.upload_slots, section.questions, section.items, section.furniture
    )
    for item in section.dynamic_items:
        slots = [item.upload_slot] if item.upload_slot else []
        groups.extend(_bundle_groups(slots, item.questions, item.items, item.furniture))
    return sum(groups), len(groups)


def section_progress(section: Optional[Section]) -> int:
    if section is None:
        return 0
    completed, total = section_groups(section)
    if total == 0:
        return 0
    return _round_half_up(completed / total * 100)


def all_sections_progress(document: Optional[ChecklistDocument]) -> Dict[str, int]:
    if document is None:
        return {}
    order = load_template().section_order(document.kind)
    return {
        section_id: section_progress(document.sections.get(section_id))
        for section_id in order
    }


def overall_progress(document: Optional[ChecklistDocument]) -> int:
    """Average of every section, missing or empty sections counting as 0."""
    progress = all_sections_progress(document)
    if not progress:
        return 0
    return _round_half_up(sum(progress.values()) / len(progress))
