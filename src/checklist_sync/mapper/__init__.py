"""Pure conversions between checklist documents and zone elements."""

from .common import decode_bad_elements, encode_bad_elements
from .flatten import flatten_dynamic_item, flatten_section
from .hydrate import hydrate, hydrate_sections, sort_zones

__all__ = [
    "decode_bad_elements",
    "encode_bad_elements",
    "flatten_dynamic_item",
    "flatten_section",
    "hydrate",
    "hydrate_sections",
    "sort_zones",
]
