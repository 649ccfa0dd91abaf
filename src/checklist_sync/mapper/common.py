"""Shared helpers for mapping checklist nodes to and from elements."""

from __future__ import annotations

import re
import uuid
from typing import Iterable, List, Optional, Sequence, Tuple

from ..document import ItemCategory, MediaRef, Status

PHOTOS_PREFIX = "fotos-"
VIDEOS_PREFIX = "videos-"
FURNITURE = "mobiliario"
FURNITURE_DETAIL = "mobiliario-detalle"
CATEGORY_PREFIXES = tuple(f"{category.value}-" for category in ItemCategory)
RESERVED_PREFIXES = (PHOTOS_PREFIX, VIDEOS_PREFIX) + CATEGORY_PREFIXES
RESERVED_NAMES = (FURNITURE, FURNITURE_DETAIL)

BAD_ELEMENTS_MARKER = "Bad elements:"
BAD_ELEMENTS_RE = re.compile(r"(?:^|\n)Bad elements:[ \t]*(.*)$")
UNIT_SUFFIX_RE = re.compile(r"^(?P<item>.+)-(?P<unit>\d+)$")
UPLOADED_NAME_RE = re.compile(
    r"^\d+_(?P<id>[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12})\."
)

LEGACY_CONDITIONS = {
    "buen_estado": Status.GOOD,
    "necesita_reparacion": Status.NEEDS_REPAIR,
    "necesita_reemplazo": Status.NEEDS_REPLACEMENT,
    "no_aplica": Status.NOT_APPLICABLE,
}

IMAGE_TYPES = {
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "png": "image/png",
    "webp": "image/webp",
    "heic": "image/heic",
}
VIDEO_TYPES = {
    "mp4": "video/mp4",
    "webm": "video/webm",
    "mov": "video/quicktime",
    "quicktime": "video/quicktime",
}


def status_to_condition(status: Optional[Status]) -> Optional[str]:
    return status.value if status is not None else None


def condition_to_status(condition: Optional[str]) -> Optional[Status]:
    if not condition:
        return None
    try:
        return Status(condition)
    except ValueError:
        return LEGACY_CONDITIONS.get(condition)


def is_reserved_name(name: str) -> bool:
    return name in RESERVED_NAMES or name.startswith(RESERVED_PREFIXES)


def encode_bad_elements(
    notes: Optional[str], bad_elements: Sequence[str]
) -> Optional[str]:
    """Append the ``Bad elements:`` marker line to ``notes``."""
    if not bad_elements:
        return notes or None
    marker = f"{BAD_ELEMENTS_MARKER} {', '.join(bad_elements)}"
    if notes:
        return f"{notes}\n{marker}"
    return marker


def decode_bad_elements(notes: Optional[str]) -> Tuple[Optional[str], List[str]]:
    """Split ``notes`` into the free text and the list encoded in the marker line."""
    if not notes:
        return None, []
    match = BAD_ELEMENTS_RE.search(notes)
    if match is None:
        return notes, []
    bad_elements = [part.strip() for part in match.group(1).split(",") if part.strip()]
    remainder = notes[: match.start()]
    return (remainder or None), bad_elements


def durable_urls(refs: Iterable[MediaRef]) -> Optional[List[str]]:
    """URLs of the refs that already reached storage, ``None`` if there are none."""
    urls = [ref.payload for ref in refs if ref.is_durable]
    return urls or None


def _filename(url: str) -> str:
    return url.split("?", 1)[0].rstrip("/").rsplit("/", 1)[-1]


def media_id_for_url(url: str) -> str:
    """Recover the MediaRef id embedded in an uploaded object name."""
    match = UPLOADED_NAME_RE.match(_filename(url))
    if match:
        return match.group("id").lower()
    return str(uuid.uuid5(uuid.NAMESPACE_URL, url))


def url_to_media(url: str, is_video: bool = False) -> MediaRef:
    filename = _filename(url)
    extension = filename.rsplit(".", 1)[-1].lower() if "." in filename else ""
    if is_video:
        mime_type = VIDEO_TYPES.get(extension, "video/mp4")
    else:
        mime_type = IMAGE_TYPES.get(extension, "image/jpeg")
    return MediaRef(
        id=media_id_for_url(url),
        mime_type=mime_type,
        payload=url,
        name=filename or ("video.mp4" if is_video else "photo.jpg"),
    )


def urls_to_media(
    urls: Optional[Sequence[str]], is_video: bool = False
) -> List[MediaRef]:
    return [url_to_media(url, is_video) for url in urls or [] if url]


def split_item_name(
    name: str, known_ids: Optional[set] = None
) -> Optional[Tuple[ItemCategory, str, Optional[int]]]:
    """Parse ``<category>-<item>[-<unit>]`` into (category, item id, unit index)."""
    for category in ItemCategory:
        prefix = f"{category.value}-"
        if not name.startswith(prefix):
            continue
        rest = name[len(prefix):]
        # A known item id wins over the unit suffix reading ("toma-2" may be an id).
        if known_ids and rest in known_ids:
            return category, rest, None
        match = UNIT_SUFFIX_RE.match(rest)
        if match and int(match.group("unit")) >= 1:
            return category, match.group("item"), int(match.group("unit")) - 1
        return category, rest, None
    return None
