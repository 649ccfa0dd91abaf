"""In-memory checklist document.

The document is a tree: sections hold upload slots, questions, counted items,
an optional furniture node and, for bedrooms/bathrooms, one dynamic item per
physical room. Nothing in this module performs I/O.
"""

from __future__ import annotations

import base64
import binascii
import mimetypes
from datetime import datetime
from enum import Enum
from typing import Dict, Iterator, List, Optional, Tuple
from uuid import uuid4

from pydantic import BaseModel, Field, model_validator

MAX_ITEM_COUNT = 20
DURABLE_PREFIXES = ("http://", "https://")


class Status(str, Enum):
    GOOD = "good"
    NEEDS_REPAIR = "needs-repair"
    NEEDS_REPLACEMENT = "needs-replacement"
    NOT_APPLICABLE = "not-applicable"


class ChecklistKind(str, Enum):
    INITIAL = "initial"
    FINAL = "final"


class ItemCategory(str, Enum):
    CARPENTRY = "carpentry"
    CLIMATIZATION = "climatization"
    STORAGE = "storage"
    APPLIANCE = "appliance"
    SECURITY = "security"
    SYSTEM = "system"


def new_media_id() -> str:
    return str(uuid4())


class MediaRef(BaseModel):
    """A photo or video: inline (pending upload) or a durable URL."""

    id: str = Field(default_factory=new_media_id)
    mime_type: str = "image/jpeg"
    payload: str
    name: Optional[str] = None

    @property
    def is_durable(self) -> bool:
        return self.payload.startswith(DURABLE_PREFIXES)

    @property
    def is_pending(self) -> bool:
        return bool(self.payload) and not self.is_durable

    @property
    def is_image(self) -> bool:
        return self.content_type.startswith("image/")

    @property
    def is_video(self) -> bool:
        return self.content_type.startswith("video/")

    @property
    def content_type(self) -> str:
        # Inline payloads may carry their own MIME type ("data:image/png;base64,...").
        if self.payload.startswith("data:") and ";" in self.payload:
            return self.payload[5 : self.payload.index(";")] or self.mime_type
        return self.mime_type

    @property
    def extension(self) -> str:
        if self.name and "." in self.name:
            return self.name.rsplit(".", 1)[1].lower()
        guessed = mimetypes.guess_extension(self.content_type) or ""
        if guessed in {".jpe", ".jpeg"}:
            return "jpg"
        return guessed.lstrip(".") or ("mp4" if self.is_video else "jpg")

    def decode(self) -> bytes:
        """Return the binary content of a pending ref."""
        if not self.is_pending:
            raise ValueError(f"Media {self.id} has no inline payload")
        data = self.payload.split(",", 1)[1] if "," in self.payload else self.payload
        try:
            return base64.b64decode(data, validate=False)
        except (binascii.Error, ValueError) as exc:
            raise ValueError(f"Media {self.id} payload is not valid base64") from exc

    @classmethod
    def from_bytes(
        cls, data: bytes, mime_type: str, name: Optional[str] = None
    ) -> "MediaRef":
        encoded = base64.b64encode(data).decode("ascii")
        return cls(
            mime_type=mime_type,
            payload=f"data:{mime_type};base64,{encoded}",
            name=name,
        )


class UploadSlot(BaseModel):
    id: str
    photos: List[MediaRef] = Field(default_factory=list)
    videos: List[MediaRef] = Field(default_factory=list)


class Question(BaseModel):
    id: str
    status: Optional[Status] = None
    notes: Optional[str] = None
    bad_elements: List[str] = Field(default_factory=list)
    photos: List[MediaRef] = Field(default_factory=list)


class ItemUnit(BaseModel):
    status: Optional[Status] = None
    notes: Optional[str] = None
    bad_elements: List[str] = Field(default_factory=list)
    photos: List[MediaRef] = Field(default_factory=list)


class CategorizedItem(BaseModel):
    """An item counted per physical unit (windows, radiators, appliances...)."""

    id: str
    category: ItemCategory
    count: int = Field(default=0, ge=0, le=MAX_ITEM_COUNT)
    status: Optional[Status] = None
    notes: Optional[str] = None
    bad_elements: List[str] = Field(default_factory=list)
    photos: List[MediaRef] = Field(default_factory=list)
    units: List[ItemUnit] = Field(default_factory=list)

    @model_validator(mode="after")
    def _pad_units(self) -> "CategorizedItem":
        if self.count > 1:
            while len(self.units) < self.count:
                self.units.append(ItemUnit())
        return self

    def active_units(self) -> List[ItemUnit]:
        """Units that are persisted for the current count."""
        if self.count <= 1:
            return []
        units = list(self.units[: self.count])
        while len(units) < self.count:
            units.append(ItemUnit())
        return units


class Furniture(BaseModel):
    exists: Optional[bool] = None
    question: Optional[Question] = None


class DynamicItem(BaseModel):
    """One bedroom or bathroom."""

    id: str
    upload_slot: Optional[UploadSlot] = None
    questions: List[Question] = Field(default_factory=list)
    items: List[CategorizedItem] = Field(default_factory=list)
    furniture: Optional[Furniture] = None


class Section(BaseModel):
    id: str
    upload_slots: List[UploadSlot] = Field(default_factory=list)
    questions: List[Question] = Field(default_factory=list)
    items: List[CategorizedItem] = Field(default_factory=list)
    furniture: Optional[Furniture] = None
    dynamic_items: List[DynamicItem] = Field(default_factory=list)
    dynamic_count: Optional[int] = None

    def media_lists(self) -> Iterator[Tuple[Optional[int], List[MediaRef]]]:
        """Yield every list holding media refs with the dynamic item index owning it."""
        yield from _bundle_media(
            None, self.upload_slots, self.questions, self.items, self.furniture
        )
        for index, item in enumerate(self.dynamic_items):
            slots = [item.upload_slot] if item.upload_slot else []
            yield from _bundle_media(
                index, slots, item.questions, item.items, item.furniture
            )


def _bundle_media(
    owner: Optional[int],
    slots: List[UploadSlot],
    questions: List[Question],
    items: List[CategorizedItem],
    furniture: Optional[Furniture],
) -> Iterator[Tuple[Optional[int], List[MediaRef]]]:
    for slot in slots:
        yield owner, slot.photos
        yield owner, slot.videos
    for question in questions:
        yield owner, question.photos
    for item in items:
        yield owner, item.photos
        for unit in item.active_units():
            yield owner, unit.photos
    if furniture is not None and furniture.question is not None:
        yield owner, furniture.question.photos


class ChecklistDocument(BaseModel):
    property_id: str
    kind: ChecklistKind
    sections: Dict[str, Section] = Field(default_factory=dict)
    updated_at: Optional[datetime] = None


def _question_has_data(question: Optional[Question]) -> bool:
    if question is None:
        return False
    return bool(
        question.status or question.notes or question.bad_elements or question.photos
    )


def _item_has_data(item: CategorizedItem) -> bool:
    if item.count > 0:
        return True
    return bool(item.status or item.notes or item.photos)


def section_has_data(section: Section) -> bool:
    """True when the user entered anything worth persisting in ``section``."""
    if any(slot.photos or slot.videos for slot in section.upload_slots):
        return True
    if any(_question_has_data(q) for q in section.questions):
        return True
    if any(_item_has_data(item) for item in section.items):
        return True
    if section.furniture and (
        section.furniture.exists or _question_has_data(section.furniture.question)
    ):
        return True
    for dynamic in section.dynamic_items:
        slot = dynamic.upload_slot
        if slot and (slot.photos or slot.videos):
            return True
        if any(_question_has_data(q) for q in dynamic.questions):
            return True
        if any(_item_has_data(item) for item in dynamic.items):
            return True
        if dynamic.furniture and _question_has_data(dynamic.furniture.question):
            return True
    return False


def has_user_data(document: Optional[ChecklistDocument]) -> bool:
    if document is None:
        return False
    return any(section_has_data(section) for section in document.sections.values())
