from __future__ import annotations

from sqlalchemy import (Boolean, Column, DateTime, ForeignKey, Integer,
                        MetaData, Table, Text, UniqueConstraint, text)
from sqlalchemy.dialects.postgresql import ARRAY, JSONB, UUID

metadata = MetaData()

# Read-only: owned by the property service.
properties = Table(
    "properties",
    metadata,
    Column("id", Text, primary_key=True),
    Column("bedrooms", Integer),
    Column("bathrooms", Integer),
)

inspections = Table(
    "property_inspections",
    metadata,
    Column(
        "id",
        UUID(as_uuid=False),
        primary_key=True,
        server_default=text("gen_random_uuid()"),
    ),
    Column("property_id", Text, nullable=False),
    Column("inspection_type", Text, nullable=False),
    Column("inspection_status", Text, server_default=text("'in_progress'")),
    Column("metadata", JSONB),
    Column("completed_at", DateTime(timezone=True)),
    Column("created_at", DateTime(timezone=True), server_default=text("now()")),
    UniqueConstraint("property_id", "inspection_type", name="uq_inspection_kind"),
)

zones = Table(
    "inspection_zones",
    metadata,
    Column(
        "id",
        UUID(as_uuid=False),
        primary_key=True,
        server_default=text("gen_random_uuid()"),
    ),
    Column(
        "inspection_id",
        UUID(as_uuid=False),
        ForeignKey("property_inspections.id", ondelete="CASCADE"),
        nullable=False,
    ),
    Column("zone_type", Text, nullable=False),
    Column("zone_name", Text, nullable=False),
    Column("ordinal", Integer),
    Column("created_at", DateTime(timezone=True), server_default=text("now()")),
)

elements = Table(
    "inspection_elements",
    metadata,
    Column(
        "id",
        UUID(as_uuid=False),
        primary_key=True,
        server_default=text("gen_random_uuid()"),
    ),
    Column(
        "zone_id",
        UUID(as_uuid=False),
        ForeignKey("inspection_zones.id", ondelete="CASCADE"),
        nullable=False,
    ),
    Column("element_name", Text, nullable=False),
    Column("condition", Text),
    Column("notes", Text),
    Column("image_urls", ARRAY(Text)),
    Column("video_urls", ARRAY(Text)),
    Column("quantity", Integer),
    Column("exists", Boolean),
    Column("bad_elements", ARRAY(Text)),
    Column("updated_at", DateTime(timezone=True), server_default=text("now()")),
    UniqueConstraint("zone_id", "element_name", name="uq_element_zone_name"),
)

ELEMENT_VALUE_COLUMNS = (
    "condition",
    "notes",
    "image_urls",
    "video_urls",
    "quantity",
    "exists",
    "bad_elements",
)
