"""Make sure the inspection and the zones a save writes to exist."""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Awaitable, Callable, Dict, Iterable, List, Optional

from .document import ChecklistKind
from .errors import ProvisioningError, ZonesNotVisibleError
from .mapper.hydrate import sort_zones, zone_position
from .models import SyncConfig
from .rows import InspectionRow, NewZone, ZoneRow
from .store import ChecklistStore
from .template import SectionTemplate, dynamic_count_for, load_template

LOGGER = logging.getLogger("checklist_sync.provisioning")


class ProvisioningState(str, Enum):
    NO_INSPECTION = "no-inspection"
    INSPECTION_CREATING = "inspection-creating"
    ZONES_MISSING = "zones-missing"
    ZONES_CREATING = "zones-creating"
    READY = "ready"
    FAILED = "failed"


def dynamic_zone_name(template: SectionTemplate, ordinal: int) -> str:
    return f"{template.zone_name} {ordinal}"


class ZoneProvisioner:
    """State machine that provisions the inspection row and its zones.

    ``Ready`` is only reached once zones that were just created can be read
    back. Read-after-write lag is covered by a bounded retry; after the cap
    :class:`ZonesNotVisibleError` is raised instead of waiting forever.
    """

    def __init__(
        self,
        store: ChecklistStore,
        property_id: str,
        kind: ChecklistKind,
        config: Optional[SyncConfig] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._store = store
        self.property_id = property_id
        self.kind = ChecklistKind(kind)
        self._config = config or SyncConfig()
        self._sleep = sleep
        self.state = ProvisioningState.NO_INSPECTION
        self.inspection: Optional[InspectionRow] = None
        self.zones: List[ZoneRow] = []
        # Created but not yet returned by list_zones.
        self._unconfirmed: Dict[str, ZoneRow] = {}

    def _transition(self, state: ProvisioningState) -> None:
        if state != self.state:
            LOGGER.info(
                "Provisioning %s/%s: %s -> %s",
                self.property_id,
                self.kind.value,
                self.state.value,
                state.value,
            )
        self.state = state

    async def refresh(self) -> Optional[InspectionRow]:
        """Re-read the inspection and its zones without creating anything."""
        self.inspection = await self._store.get_inspection(self.property_id, self.kind)
        if self.inspection is None:
            self.zones = []
            self._transition(ProvisioningState.NO_INSPECTION)
            return None
        self.zones = await self._store.list_zones(self.inspection.id)
        self._transition(
            ProvisioningState.READY if self.zones else ProvisioningState.ZONES_MISSING
        )
        return self.inspection

    async def ensure_inspection(self) -> InspectionRow:
        if self.inspection is not None:
            return self.inspection
        if await self.refresh() is not None:
            return self.inspection

        self._transition(ProvisioningState.INSPECTION_CREATING)
        try:
            await self._store.create_inspection(self.property_id, self.kind)
        except Exception as exc:
            self._transition(ProvisioningState.FAILED)
            raise ProvisioningError(
                f"Could not create the {self.kind.value} inspection for "
                f"{self.property_id}: {exc}"
            ) from exc

        if await self.refresh() is None:
            self._transition(ProvisioningState.FAILED)
            raise ProvisioningError(
                f"Inspection for {self.property_id} was created but cannot be read back"
            )
        return self.inspection

    def zones_of_type(self, zone_type: str) -> List[ZoneRow]:
        known = {zone.id: zone for zone in self.zones}
        for zone_id, zone in self._unconfirmed.items():
            known.setdefault(zone_id, zone)
        return sort_zones(zone for zone in known.values() if zone.zone_type == zone_type)

    async def ensure_zones(self, bedrooms: int, bathrooms: int) -> List[ZoneRow]:
        """Create every missing zone of all sections in one pass."""
        inspection = await self.ensure_inspection()
        template = load_template()

        missing: List[NewZone] = []
        for section in template.sections.values():
            existing = self.zones_of_type(section.zone_type)
            if section.is_dynamic:
                wanted = dynamic_count_for(section, bedrooms, bathrooms)
                missing.extend(
                    self._new_dynamic_zones(inspection, section, existing, wanted)
                )
            elif not existing:
                missing.append(
                    NewZone(
                        inspection_id=inspection.id,
                        zone_type=section.zone_type,
                        zone_name=section.zone_name,
                    )
                )

        if missing:
            await self._create(missing)
        elif self._unconfirmed:
            await self._wait_visible()
        else:
            self._transition(ProvisioningState.READY)
        return list(self.zones)

    async def zones_for_section(self, section_id: str, needed: int = 1) -> List[str]:
        """Zone ids for ``section_id``, creating the ones still missing.

        For bedrooms and bathrooms ``needed`` is the number of rooms being
        saved; extra zones are created one at a time at save time since room
        counts can change after the inspection started.
        """
        template = load_template().section(section_id)
        inspection = await self.ensure_inspection()
        existing = self.zones_of_type(template.zone_type)

        if template.is_dynamic:
            missing = self._new_dynamic_zones(inspection, template, existing, needed)
        elif existing:
            missing = []
        else:
            missing = [
                NewZone(
                    inspection_id=inspection.id,
                    zone_type=template.zone_type,
                    zone_name=template.zone_name,
                )
            ]

        if missing:
            await self._create(missing)
        elif self._unconfirmed:
            await self._wait_visible()
        return [zone.id for zone in self.zones_of_type(template.zone_type)]

    def _new_dynamic_zones(
        self,
        inspection: InspectionRow,
        template: SectionTemplate,
        existing: List[ZoneRow],
        wanted: int,
    ) -> List[NewZone]:
        """Zones for the rooms past ``existing``, numbered after the last stored room."""
        last = max((zone_position(zone) or 0 for zone in existing), default=0)
        last = max(last, len(existing))
        return [
            self._new_dynamic_zone(inspection, template, last + offset)
            for offset in range(1, wanted - len(existing) + 1)
        ]

    def _new_dynamic_zone(
        self, inspection: InspectionRow, template: SectionTemplate, ordinal: int
    ) -> NewZone:
        return NewZone(
            inspection_id=inspection.id,
            zone_type=template.zone_type,
            zone_name=dynamic_zone_name(template, ordinal),
            ordinal=ordinal,
        )

    async def _create(self, new_zones: Iterable[NewZone]) -> None:
        self._transition(ProvisioningState.ZONES_CREATING)
        for zone in new_zones:
            try:
                created = await self._store.create_zone(zone)
            except Exception as exc:
                self._transition(ProvisioningState.FAILED)
                raise ProvisioningError(
                    f"Could not create zone {zone.zone_name!r}: {exc}"
                ) from exc
            self._unconfirmed[created.id] = created
            LOGGER.debug("Created zone %s (%s)", zone.zone_name, zone.zone_type)
        await self._wait_visible()

    async def _wait_visible(self) -> None:
        zone_ids = set(self._unconfirmed)
        attempts = self._config.zone_visibility_attempts
        delay = self._config.zone_visibility_backoff
        for attempt in range(1, attempts + 1):
            zones = await self._store.list_zones(self.inspection.id)
            visible = {zone.id for zone in zones}
            if zone_ids <= visible:
                self.zones = zones
                self._unconfirmed.clear()
                self._transition(ProvisioningState.READY)
                return
            if attempt < attempts:
                LOGGER.debug(
                    "%s of %s new zones visible (attempt %s/%s), retrying in %.1fs",
                    len(zone_ids & visible),
                    len(zone_ids),
                    attempt,
                    attempts,
                    delay,
                )
                await self._sleep(delay)
                delay = min(delay * 2, self._config.zone_visibility_backoff_max)

        self._transition(ProvisioningState.FAILED)
        raise ZonesNotVisibleError(
            f"{len(zone_ids)} zones were created but are not visible yet; "
            "try again in a moment",
            attempts=attempts,
        )
