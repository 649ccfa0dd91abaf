"""The closed checklist schema: sections, their zones and default nodes."""

from __future__ import annotations

from dataclasses import dataclass, field
from functools import lru_cache
from importlib import resources
from typing import Any, Dict, List, Optional, Tuple

import yaml

from .document import (CategorizedItem, ChecklistDocument, ChecklistKind,
                       DynamicItem, Furniture, ItemCategory, Question,
                       Section, UploadSlot)

TEMPLATE_RESOURCE = "checklist_template.yaml"
BEDROOMS = "bedrooms"
BATHROOMS = "bathrooms"


@dataclass(frozen=True)
class FurnitureTemplate:
    exists: Optional[bool] = None
    question_id: Optional[str] = None


@dataclass(frozen=True)
class BundleTemplate:
    """Default slots, questions, items and furniture of a section or room."""

    upload_slots: Tuple[str, ...] = ()
    questions: Tuple[str, ...] = ()
    items: Tuple[Tuple[ItemCategory, str], ...] = ()
    furniture: Optional[FurnitureTemplate] = None


@dataclass(frozen=True)
class SectionTemplate:
    id: str
    zone_type: str
    zone_name: str
    bundle: BundleTemplate = field(default_factory=BundleTemplate)
    dynamic: Optional[str] = None

    @property
    def is_dynamic(self) -> bool:
        return self.dynamic is not None


@dataclass(frozen=True)
class ChecklistTemplate:
    sections: Dict[str, SectionTemplate]
    order: Dict[ChecklistKind, Tuple[str, ...]]

    def section(self, section_id: str) -> SectionTemplate:
        try:
            return self.sections[section_id]
        except KeyError:
            raise KeyError(f"Unknown checklist section {section_id!r}") from None

    def for_zone_type(self, zone_type: str) -> Optional[SectionTemplate]:
        for template in self.sections.values():
            if template.zone_type == zone_type:
                return template
        return None

    def section_order(self, kind: ChecklistKind) -> Tuple[str, ...]:
        return self.order[kind]

    def known_items(self, section_id: str) -> Dict[ItemCategory, set]:
        known: Dict[ItemCategory, set] = {}
        for category, item_id in self.section(section_id).bundle.items:
            known.setdefault(category, set()).add(item_id)
        return known


def _parse_bundle(raw: Dict[str, Any]) -> BundleTemplate:
    items: List[Tuple[ItemCategory, str]] = []
    for category, ids in (raw.get("items") or {}).items():
        items.extend((ItemCategory(category), item_id) for item_id in ids or [])

    furniture = None
    raw_furniture = raw.get("furniture")
    if isinstance(raw_furniture, dict):
        furniture = FurnitureTemplate(
            exists=raw_furniture.get("exists"),
            question_id=raw_furniture.get("question"),
        )

    return BundleTemplate(
        upload_slots=tuple(raw.get("upload_slots") or ()),
        questions=tuple(raw.get("questions") or ()),
        items=tuple(items),
        furniture=furniture,
    )


def parse_template(raw: Dict[str, Any]) -> ChecklistTemplate:
    sections: Dict[str, SectionTemplate] = {}
    for entry in raw.get("sections") or []:
        dynamic = entry.get("dynamic")
        bundle_raw = entry.get("dynamic_item") if dynamic else entry
        sections[entry["id"]] = SectionTemplate(
            id=entry["id"],
            zone_type=entry["zone_type"],
            zone_name=entry["zone_name"],
            bundle=_parse_bundle(bundle_raw or {}),
            dynamic=dynamic,
        )

    order = {
        ChecklistKind(kind): tuple(ids) for kind, ids in (raw.get("order") or {}).items()
    }
    for kind in ChecklistKind:
        order.setdefault(kind, tuple(sections))
    return ChecklistTemplate(sections=sections, order=order)


@lru_cache(maxsize=1)
def load_template() -> ChecklistTemplate:
    with (
        resources.files("checklist_sync")
        .joinpath(TEMPLATE_RESOURCE)
        .open("r", encoding="utf-8") as fh
    ):
        return parse_template(yaml.safe_load(fh))


def dynamic_slot_id(section_id: str, index: int) -> str:
    return f"fotos-video-{section_id}-{index + 1}"


def dynamic_item_id(section_id: str, index: int) -> str:
    return f"{section_id}-{index + 1}"


def _new_items(bundle: BundleTemplate) -> List[CategorizedItem]:
    return [
        CategorizedItem(id=item_id, category=category)
        for category, item_id in bundle.items
    ]


def _new_furniture(bundle: BundleTemplate) -> Optional[Furniture]:
    if bundle.furniture is None:
        return None
    question = (
        Question(id=bundle.furniture.question_id)
        if bundle.furniture.question_id
        else None
    )
    return Furniture(exists=bundle.furniture.exists, question=question)


def new_dynamic_item(section_id: str, index: int) -> DynamicItem:
    bundle = load_template().section(section_id).bundle
    return DynamicItem(
        id=dynamic_item_id(section_id, index),
        upload_slot=UploadSlot(id=dynamic_slot_id(section_id, index)),
        questions=[Question(id=question_id) for question_id in bundle.questions],
        items=_new_items(bundle),
        furniture=_new_furniture(bundle),
    )


def normalize_dynamic_item(section_id: str, item: DynamicItem, index: int) -> None:
    """Fill in the default structure a room or bathroom must always have."""
    bundle = load_template().section(section_id).bundle
    if item.upload_slot is None:
        item.upload_slot = UploadSlot(id=dynamic_slot_id(section_id, index))

    present = {(existing.category, existing.id) for existing in item.items}
    for category, item_id in bundle.items:
        if (category, item_id) not in present:
            item.items.append(CategorizedItem(id=item_id, category=category))

    if bundle.furniture is not None:
        if item.furniture is None:
            item.furniture = _new_furniture(bundle)
        elif item.furniture.question is None and bundle.furniture.question_id:
            item.furniture.question = Question(id=bundle.furniture.question_id)


def new_section(section_id: str, dynamic_count: int = 0) -> Section:
    template = load_template().section(section_id)
    if template.is_dynamic:
        return Section(
            id=section_id,
            dynamic_items=[
                new_dynamic_item(section_id, index) for index in range(dynamic_count)
            ],
            dynamic_count=dynamic_count,
        )

    bundle = template.bundle
    return Section(
        id=section_id,
        upload_slots=[UploadSlot(id=slot_id) for slot_id in bundle.upload_slots],
        questions=[Question(id=question_id) for question_id in bundle.questions],
        items=_new_items(bundle),
        furniture=_new_furniture(bundle),
    )


def dynamic_count_for(template: SectionTemplate, bedrooms: int, bathrooms: int) -> int:
    if template.dynamic == BEDROOMS:
        return max(0, bedrooms)
    if template.dynamic == BATHROOMS:
        return max(0, bathrooms)
    return 0


def empty_document(
    property_id: str,
    kind: ChecklistKind,
    bedrooms: int = 0,
    bathrooms: int = 0,
) -> ChecklistDocument:
    template = load_template()
    sections = {
        section_id: new_section(
            section_id,
            dynamic_count_for(template.section(section_id), bedrooms, bathrooms),
        )
        for section_id in template.section_order(kind)
    }
    return ChecklistDocument(property_id=property_id, kind=kind, sections=sections)
