"""Upload pending media and write durable URLs back by identity."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional, Protocol, Sequence

from .document import MediaRef, Section
from .errors import StorageError
from .models import DEFAULT_UPLOAD_CONCURRENCY
from .notifier import ArchivedPhoto

LOGGER = logging.getLogger("checklist_sync.media")

UPDATES_FOLDER = "updates"


class MediaStorage(Protocol):
    async def upload(self, path: str, data: bytes, content_type: str) -> str: ...


@dataclass(frozen=True)
class PendingMedia:
    ref: MediaRef
    owner: Optional[int] = None  # dynamic item index, None for the section itself


def collect_pending(section: Section) -> List[PendingMedia]:
    """Every pending ref of ``section`` in one flat batch, each id once."""
    seen = set()
    pending: List[PendingMedia] = []
    for owner, refs in section.media_lists():
        for ref in refs:
            if ref.is_pending and ref.id not in seen:
                seen.add(ref.id)
                pending.append(PendingMedia(ref=ref, owner=owner))
    return pending


def object_name(ref: MediaRef, now_ms: Optional[int] = None) -> str:
    stamp = now_ms if now_ms is not None else int(time.time() * 1000)
    return f"{stamp}_{ref.id}.{ref.extension}"


class MediaUploader:
    """Uploads a batch of pending refs concurrently.

    The result maps each ``MediaRef.id`` to its durable URL, or to ``None``
    when that one file failed. A failed file never aborts the batch.
    """

    def __init__(
        self, storage: MediaStorage, max_concurrency: int = DEFAULT_UPLOAD_CONCURRENCY
    ) -> None:
        self._storage = storage
        self._semaphore = asyncio.Semaphore(max(1, max_concurrency))

    async def upload(
        self,
        pending: Sequence[PendingMedia],
        property_id: str,
        zone_ids: Sequence[str],
        inspection_id: Optional[str] = None,
    ) -> Dict[str, Optional[str]]:
        if not pending:
            return {}
        folder = inspection_id or UPDATES_FOLDER

        async def _upload_one(item: PendingMedia) -> Optional[str]:
            zone_id = _zone_for(item.owner, zone_ids)
            path = f"{property_id}/{folder}/{zone_id}/{object_name(item.ref)}"
            async with self._semaphore:
                try:
                    data = item.ref.decode()
                    return await self._storage.upload(path, data, item.ref.content_type)
                except (StorageError, ValueError) as exc:
                    LOGGER.warning("Upload of media %s failed: %s", item.ref.id, exc)
                    return None

        results = await asyncio.gather(*(_upload_one(item) for item in pending))
        urls = {item.ref.id: url for item, url in zip(pending, results)}
        uploaded = sum(1 for url in urls.values() if url)
        LOGGER.info("Uploaded %s of %s media files", uploaded, len(pending))
        return urls


def _zone_for(owner: Optional[int], zone_ids: Sequence[str]) -> str:
    if not zone_ids:
        return "unassigned"
    if owner is None or owner >= len(zone_ids):
        return zone_ids[0]
    return zone_ids[owner]


def _durable(ref: MediaRef, url: str) -> MediaRef:
    return MediaRef(
        id=ref.id,
        mime_type=ref.content_type,
        payload=url,
        name=url.split("?", 1)[0].rsplit("/", 1)[-1] or ref.name,
    )


def apply_urls(section: Section, urls: Mapping[str, Optional[str]]) -> int:
    """Replace, in place, every ref whose id has a URL in ``urls``.

    Refs without a URL (failed or not part of the batch) are left untouched,
    so they stay pending for the next save. Returns the number replaced.
    """
    if not urls:
        return 0
    replaced = 0
    for _, refs in section.media_lists():
        for index, ref in enumerate(refs):
            url = urls.get(ref.id)
            if url and not ref.is_durable:
                refs[index] = _durable(ref, url)
                replaced += 1
    return replaced


def archived_photos(
    pending: Sequence[PendingMedia], urls: Mapping[str, Optional[str]]
) -> List[ArchivedPhoto]:
    """Newly uploaded images to hand to the archival webhook; videos excluded."""
    photos: List[ArchivedPhoto] = []
    for item in pending:
        url = urls.get(item.ref.id)
        if url and item.ref.is_image:
            photos.append(
                ArchivedPhoto(url=url, filename=url.rsplit("/", 1)[-1])
            )
    return photos
