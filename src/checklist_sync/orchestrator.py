"""Save orchestration for one checklist document.

A :class:`ChecklistSession` owns the in-memory document of one property and
checklist kind. It provisions zones, uploads pending media, flattens sections
into elements and writes them with a single batch upsert per section. Only one
save runs at a time; a save requested while another is in flight is dropped.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import date, datetime, timezone
from enum import Enum
from functools import partial
from typing import (Any, Awaitable, Callable, Dict, List, Mapping, Optional,
                    Set, Union)

from dateutil import parser as dtparse
from pydantic import BaseModel, field_validator

from .document import (ChecklistDocument, ChecklistKind, Section,
                       has_user_data)
from .errors import (ChecklistSyncError, FinalizeError, MappingError,
                     NotifierError, ProvisioningError, SaveAllError,
                     UpsertError, ZonesNotVisibleError)
from .mapper import flatten_section, hydrate
from .mapper.common import CATEGORY_PREFIXES
from .media import (MediaUploader, apply_urls, archived_photos,
                    collect_pending)
from .models import SyncConfig
from .notifier import ArchivedPhoto, WorkflowNotifier
from .progress import all_sections_progress, overall_progress
from .provisioning import ZoneProvisioner
from .rows import ElementRow, RoomCounts
from .store import ChecklistStore, PropertyService
from .template import BATHROOMS, BEDROOMS, empty_document, load_template

LOGGER = logging.getLogger("checklist_sync.session")


class SaveState(str, Enum):
    IDLE = "idle"
    SAVING = "saving"
    SAVING_ALL = "saving-all"


class NoticeLevel(str, Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


@dataclass(frozen=True)
class Notice:
    """User-facing feedback, optionally with an action that retries the operation."""

    level: NoticeLevel
    message: str
    section_id: Optional[str] = None
    retry: Optional[Callable[[], Awaitable[Any]]] = None


_NOTICE_LOG_LEVELS = {
    NoticeLevel.INFO: logging.INFO,
    NoticeLevel.WARNING: logging.WARNING,
    NoticeLevel.ERROR: logging.ERROR,
}


def log_notice(notice: Notice) -> None:
    LOGGER.log(_NOTICE_LOG_LEVELS[notice.level], "%s", notice.message)


def _normalize_date(value: Any) -> Optional[str]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    try:
        return dtparse.parse(str(value)).date().isoformat()
    except (ValueError, OverflowError) as exc:
        raise ValueError(f"Unrecognised date {value!r}") from exc


class FinalizeFields(BaseModel):
    estimated_visit_date: Optional[str] = None
    auto_visit_date: Optional[str] = None
    next_reno_steps: Optional[str] = None

    @field_validator("estimated_visit_date", "auto_visit_date", mode="before")
    @classmethod
    def _dates(cls, value: Any) -> Optional[str]:
        return _normalize_date(value)


class ChecklistSession:
    """Single-writer owner of one checklist document."""

    def __init__(
        self,
        store: ChecklistStore,
        property_id: str,
        kind: ChecklistKind,
        uploader: Optional[MediaUploader] = None,
        notifier: Optional[WorkflowNotifier] = None,
        properties: Optional[PropertyService] = None,
        config: Optional[SyncConfig] = None,
        on_notice: Optional[Callable[[Notice], None]] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._store = store
        self.property_id = property_id
        self.kind = ChecklistKind(kind)
        self._uploader = uploader
        self._notifier = notifier
        self._properties = properties
        self._config = config or SyncConfig()
        self._on_notice = on_notice or log_notice
        self.provisioner = ZoneProvisioner(
            store, property_id, self.kind, self._config, sleep=sleep
        )
        self.state = SaveState.IDLE
        self.current_section: Optional[str] = None
        self.room_counts = RoomCounts()
        self._document: Optional[ChecklistDocument] = None
        self._dirty: Set[str] = set()
        self._edits: Dict[str, int] = {}
        self._background: Set[asyncio.Task] = set()

    # Document access -----------------------------------------------------

    def get_document(self) -> Optional[ChecklistDocument]:
        return self._document

    @property
    def dirty_sections(self) -> Set[str]:
        return set(self._dirty)

    def _notify(self, notice: Notice) -> None:
        self._on_notice(notice)

    async def load(self) -> ChecklistDocument:
        """Read the stored checklist; an empty document if nothing is saved yet."""
        if self._properties is not None:
            self.room_counts = await self._properties.get_room_counts(self.property_id)

        inspection = await self.provisioner.refresh()
        if inspection is None:
            self._document = self._empty_document()
            return self._document

        try:
            zones = await self.provisioner.ensure_zones(
                self.room_counts.bedrooms, self.room_counts.bathrooms
            )
        except ZonesNotVisibleError as exc:
            # Never show stored data against zones we cannot read.
            self._document = self._empty_document()
            self._notify(
                Notice(NoticeLevel.WARNING, str(exc), retry=self.load)
            )
            return self._document
        except ProvisioningError as exc:
            self._notify(Notice(NoticeLevel.ERROR, str(exc), retry=self.load))
            raise

        elements = await self._store.list_elements([zone.id for zone in zones])
        self._document = hydrate(
            zones,
            elements,
            self.room_counts.bedrooms,
            self.room_counts.bathrooms,
            property_id=self.property_id,
            kind=self.kind,
        )
        self._dirty.clear()
        LOGGER.info(
            "Loaded %s checklist of %s: %s zones, %s elements",
            self.kind.value,
            self.property_id,
            len(zones),
            len(elements),
        )
        return self._document

    def _empty_document(self) -> ChecklistDocument:
        return empty_document(
            self.property_id,
            self.kind,
            self.room_counts.bedrooms,
            self.room_counts.bathrooms,
        )

    def update_section(
        self, section_id: str, partial_section: Union[Section, Mapping[str, Any]]
    ) -> Section:
        """Replace ``section_id`` in memory with a deep copy of the given value.

        A mapping is merged over the current section first. Nothing is
        persisted until the next save.
        """
        if self._document is None:
            raise RuntimeError("No document loaded; call load() first")
        load_template().section(section_id)

        if isinstance(partial_section, Section):
            section = partial_section.model_copy(deep=True)
        else:
            current = self._document.sections.get(section_id)
            merged = current.model_dump() if current is not None else {}
            merged.update(dict(partial_section))
            merged["id"] = section_id
            section = Section.model_validate(merged).model_copy(deep=True)

        self._document.sections[section_id] = section
        self._document.updated_at = datetime.now(timezone.utc)
        self._dirty.add(section_id)
        self._edits[section_id] = self._edits.get(section_id, 0) + 1
        self.current_section = section_id
        return section

    # Saving --------------------------------------------------------------

    async def save_current_section(self, section_id: Optional[str] = None) -> bool:
        """Persist one section. Returns False when dropped because a save is running."""
        target = section_id or self.current_section
        if target is None:
            raise ValueError("No section to save")
        if self.state != SaveState.IDLE:
            LOGGER.warning(
                "Save of %s ignored: a %s is already in progress",
                target,
                self.state.value,
            )
            return False

        self.state = SaveState.SAVING
        try:
            await self._save_section(target)
        finally:
            self.state = SaveState.IDLE
        return True

    async def save_all_sections(self) -> bool:
        """Save every section in order, then re-read the document once.

        A failing section does not stop the sweep; :class:`SaveAllError`
        names the failed sections afterwards.
        """
        if self.state != SaveState.IDLE:
            LOGGER.warning("Save-all ignored: a %s is in progress", self.state.value)
            return False
        if self._document is None:
            raise RuntimeError("No document loaded; call load() first")

        self.state = SaveState.SAVING_ALL
        failed: List[str] = []
        try:
            for section_id in load_template().section_order(self.kind):
                try:
                    await self._save_section(section_id)
                except ChecklistSyncError as exc:
                    LOGGER.error(
                        "Section %s failed during save-all: %s", section_id, exc
                    )
                    failed.append(section_id)
            try:
                await self._rehydrate()
            except ChecklistSyncError as exc:
                LOGGER.warning("Could not re-read the checklist after saving: %s", exc)
        finally:
            self.state = SaveState.IDLE

        if failed:
            error = SaveAllError(failed)
            self._notify(
                Notice(NoticeLevel.ERROR, str(error), retry=self.save_all_sections)
            )
            raise error
        LOGGER.info("Saved all %s sections", self.kind.value)
        return True

    async def _save_section(self, section_id: str) -> None:
        document = self._document
        if document is None:
            raise RuntimeError("No document loaded; call load() first")
        template = load_template().section(section_id)
        section = document.sections.get(section_id)
        if section is None:
            LOGGER.debug("Section %s not in document; nothing to save", section_id)
            return
        edits_before = self._edits.get(section_id, 0)
        retry = partial(self.save_current_section, section_id)

        try:
            if not self.provisioner.zones:
                await self.provisioner.ensure_zones(*self._document_room_counts())
            needed = len(section.dynamic_items) if template.is_dynamic else 1
            zone_ids = await self.provisioner.zones_for_section(section_id, needed)
        except ProvisioningError as exc:
            self._notify(Notice(NoticeLevel.ERROR, str(exc), section_id, retry))
            raise

        if template.is_dynamic and not section.dynamic_items:
            LOGGER.debug("Section %s has no rooms; nothing to save", section_id)
            self._mark_saved(section_id, edits_before)
            return

        working = section.model_copy(deep=True)
        pending = collect_pending(working)
        urls: Dict[str, Optional[str]] = {}
        if pending and self._uploader is None:
            LOGGER.warning(
                "%s pending media in %s but no uploader configured",
                len(pending),
                section_id,
            )
        elif pending:
            inspection = self.provisioner.inspection
            urls = await self._uploader.upload(
                pending,
                self.property_id,
                zone_ids,
                inspection.id if inspection else None,
            )
            failures = sum(1 for url in urls.values() if not url)
            if failures:
                self._notify(
                    Notice(
                        NoticeLevel.WARNING,
                        f"{failures} of {len(pending)} files in {section_id} could not "
                        "be uploaded and will be retried on the next save",
                        section_id,
                        retry,
                    )
                )
            apply_urls(working, urls)
            live = document.sections.get(section_id)
            if live is not None:
                apply_urls(live, urls)

        try:
            rows = flatten_section(
                section_id, working, zone_ids, self._config.bad_elements_in_notes
            )
        except MappingError as exc:
            self._notify(Notice(NoticeLevel.ERROR, str(exc), section_id))
            raise

        try:
            await self._upsert(section_id, rows)
        except UpsertError as exc:
            self._notify(Notice(NoticeLevel.ERROR, str(exc), section_id, retry))
            raise
        written_zones = zone_ids[: len(working.dynamic_items)] or zone_ids[:1]
        await self._delete_uncounted(written_zones, rows)

        self._mark_saved(section_id, edits_before)
        LOGGER.info("Saved %s: %s elements", section_id, len(rows))

        photos = archived_photos(pending, urls)
        if photos:
            self._spawn(self._notify_photos(photos))

        new_media = any(urls.values())
        if new_media and self.state != SaveState.SAVING_ALL:
            await self._rehydrate()

    def _mark_saved(self, section_id: str, edits_before: int) -> None:
        if self._edits.get(section_id, 0) != edits_before:
            # Edited while the save was running.
            return
        live = self._document.sections.get(section_id) if self._document else None
        if live is not None and collect_pending(live):
            return
        self._dirty.discard(section_id)

    def _document_room_counts(self) -> tuple:
        bedrooms = self.room_counts.bedrooms
        bathrooms = self.room_counts.bathrooms
        template = load_template()
        sections = self._document.sections if self._document else {}
        for section_id, section in sections.items():
            section_template = template.section(section_id)
            if section_template.dynamic == BEDROOMS:
                bedrooms = max(bedrooms, len(section.dynamic_items))
            elif section_template.dynamic == BATHROOMS:
                bathrooms = max(bathrooms, len(section.dynamic_items))
        return bedrooms, bathrooms

    async def _upsert(self, section_id: str, rows: List[ElementRow]) -> None:
        attempts = 1 + self._config.upsert_retries
        last_error: Optional[Exception] = None
        for attempt in range(1, attempts + 1):
            try:
                await self._store.upsert_elements(rows)
                return
            except Exception as exc:
                last_error = exc
                LOGGER.warning(
                    "Upsert of %s failed (attempt %s/%s): %s",
                    section_id,
                    attempt,
                    attempts,
                    exc,
                )
        raise UpsertError(section_id, str(last_error)) from last_error

    async def _delete_uncounted(
        self, zone_ids: List[str], rows: List[ElementRow]
    ) -> None:
        """Drop item elements of ``zone_ids`` that the last flatten did not emit."""
        emitted = {row.key for row in rows}
        stale: Dict[str, List[str]] = {}
        for element in await self._store.list_elements(zone_ids):
            if element.key in emitted:
                continue
            if element.element_name.startswith(CATEGORY_PREFIXES):
                stale.setdefault(element.zone_id, []).append(element.element_name)
        for zone_id, names in stale.items():
            removed = await self._store.delete_elements(zone_id, names)
            LOGGER.debug("Removed %s uncounted elements from zone %s", removed, zone_id)

    async def _rehydrate(self) -> None:
        """Re-read the document, keeping sections with unsaved edits as they are."""
        previous = self._document
        inspection = await self.provisioner.refresh()
        if inspection is None:
            return
        zones = self.provisioner.zones
        elements = await self._store.list_elements([zone.id for zone in zones])
        bedrooms, bathrooms = self._document_room_counts()
        document = hydrate(
            zones,
            elements,
            bedrooms,
            bathrooms,
            property_id=self.property_id,
            kind=self.kind,
        )
        if previous is not None:
            for section_id in self._dirty:
                if section_id in previous.sections:
                    document.sections[section_id] = previous.sections[section_id]
            document.updated_at = previous.updated_at
        self._document = document
        LOGGER.debug("Re-read %s checklist from %s zones", self.kind.value, len(zones))

    # Finalisation --------------------------------------------------------

    async def finalize(
        self, extra_fields: Union[FinalizeFields, Mapping[str, Any], None] = None
    ) -> bool:
        """Save everything, check it reached the store, then complete the inspection."""
        fields = (
            extra_fields
            if isinstance(extra_fields, FinalizeFields)
            else FinalizeFields.model_validate(dict(extra_fields or {}))
        )
        retry = partial(self.finalize, fields)
        if self._document is None:
            raise RuntimeError("No document loaded; call load() first")

        await self.provisioner.refresh()
        if not self.provisioner.zones:
            self._notify(
                Notice(
                    NoticeLevel.ERROR,
                    "The checklist has no zones yet; save a section and try again",
                    retry=retry,
                )
            )
            return False

        if not await self._save_all_for_finalize(retry):
            return False

        zone_ids = [zone.id for zone in self.provisioner.zones]
        count = await self._store.count_elements(zone_ids)
        if count == 0 and has_user_data(self._document):
            LOGGER.warning(
                "Store reports no elements for %s although the checklist has data; "
                "saving again",
                self.property_id,
            )
            if not await self._save_all_for_finalize(retry):
                return False
            zone_ids = [zone.id for zone in self.provisioner.zones]
            count = await self._store.count_elements(zone_ids)
            if count == 0:
                error = FinalizeError(
                    "The checklist could not be stored; save each section manually "
                    "before finalising"
                )
                self._notify(Notice(NoticeLevel.ERROR, str(error), retry=retry))
                raise error

        inspection = self.provisioner.inspection
        completed_at = datetime.now(timezone.utc)
        progress = overall_progress(self._document)
        metadata = fields.model_dump(exclude_none=True)
        metadata["completed_at"] = completed_at.isoformat()
        metadata["progress"] = progress
        await self._store.complete_inspection(inspection.id, metadata)
        LOGGER.info(
            "Finalised %s checklist of %s (%s%% complete)",
            self.kind.value,
            self.property_id,
            progress,
        )

        if self._notifier is not None:
            payload = {
                "property_id": self.property_id,
                "checklist_type": self.kind.value,
                "inspection_id": inspection.id,
                "completed_at": completed_at.isoformat(),
                "progress": progress,
                "sections": all_sections_progress(self._document),
                **fields.model_dump(exclude_none=True),
            }
            await self._guard_notifier(self._notifier.notify_finalized(payload))
        return True

    async def _save_all_for_finalize(self, retry) -> bool:
        try:
            saved = await self.save_all_sections()
        except SaveAllError:
            return False
        if not saved:
            self._notify(
                Notice(
                    NoticeLevel.WARNING,
                    "A save is still running; finalise again once it completes",
                    retry=retry,
                )
            )
        return saved

    # Notifications -------------------------------------------------------

    async def _notify_photos(self, photos: List[ArchivedPhoto]) -> None:
        if self._notifier is None:
            return
        await self._guard_notifier(
            self._notifier.notify_photos(self.property_id, self.kind, photos)
        )

    async def _guard_notifier(self, call: Awaitable[bool]) -> None:
        try:
            await call
        except NotifierError as exc:
            self._notify(
                Notice(NoticeLevel.WARNING, f"Workflow notification failed: {exc}")
            )

    def _spawn(self, coro: Awaitable[None]) -> None:
        task = asyncio.ensure_future(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def drain(self) -> None:
        """Wait for background notifications to finish."""
        if self._background:
            await asyncio.gather(*list(self._background))
