from __future__ import annotations

import logging
from typing import Any, Mapping, Optional, Sequence

import httpx
from pydantic import BaseModel

from .document import ChecklistKind
from .errors import NotifierError
from .models import NotifierConfig

LOGGER = logging.getLogger("checklist_sync.notifier")


class ArchivedPhoto(BaseModel):
    url: str
    filename: str


class WorkflowNotifier:
    """Fire-and-forget JSON webhooks for photo archival and finalisation.

    An unset webhook URL disables that notification. Failures raise
    :class:`NotifierError`; callers decide how loud to be about them.
    """

    def __init__(
        self,
        config: NotifierConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._config = config
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def __aenter__(self) -> "WorkflowNotifier":
        self._client = httpx.AsyncClient(
            timeout=self._config.timeout, transport=self._transport
        )
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def notify_photos(
        self,
        property_id: str,
        kind: ChecklistKind,
        photos: Sequence[ArchivedPhoto],
    ) -> bool:
        if not photos:
            LOGGER.debug("No photos to archive for %s", property_id)
            return False
        payload = {
            "property_id": property_id,
            "checklist_type": ChecklistKind(kind).value,
            "images": [photo.model_dump() for photo in photos],
        }
        return await self._post(self._config.photos_webhook_url, payload)

    async def notify_finalized(self, payload: Mapping[str, Any]) -> bool:
        return await self._post(self._config.finalize_webhook_url, payload)

    async def _post(self, url: Optional[str], payload: Mapping[str, Any]) -> bool:
        if not url:
            return False
        if self._client is None:
            raise RuntimeError("HTTP client is not ready")
        try:
            response = await self._client.post(url, json=dict(payload))
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise NotifierError(
                f"Webhook {url} answered HTTP {exc.response.status_code}",
                status_code=exc.response.status_code,
            ) from exc
        except httpx.RequestError as exc:
            raise NotifierError(f"Webhook {url} unreachable: {exc}") from exc
        LOGGER.info("Webhook %s accepted the notification", url)
        return True
