"""Flat relational rows: inspections, zones and elements."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class InspectionRow(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    property_id: str
    inspection_type: str
    inspection_status: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None
    completed_at: Optional[datetime] = None


class ZoneRow(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    inspection_id: str
    zone_type: str
    zone_name: str
    ordinal: Optional[int] = None


class NewZone(BaseModel):
    inspection_id: str
    zone_type: str
    zone_name: str
    ordinal: Optional[int] = None


class ElementRow(BaseModel):
    """One flattened fact of a zone, unique on ``(zone_id, element_name)``."""

    model_config = ConfigDict(from_attributes=True)

    id: Optional[str] = None
    zone_id: str
    element_name: str
    condition: Optional[str] = None
    notes: Optional[str] = None
    image_urls: Optional[List[str]] = None
    video_urls: Optional[List[str]] = None
    quantity: Optional[int] = None
    exists: Optional[bool] = None
    bad_elements: Optional[List[str]] = None

    @property
    def key(self) -> tuple:
        return (self.zone_id, self.element_name)

    def values(self) -> Dict[str, Any]:
        return self.model_dump(exclude={"id"})


class RoomCounts(BaseModel):
    bedrooms: int = Field(default=0, ge=0)
    bathrooms: int = Field(default=0, ge=0)
