from __future__ import annotations

import asyncio
import logging
from typing import Optional

import httpx

from .errors import StorageError
from .models import StorageConfig

LOGGER = logging.getLogger("checklist_sync.storage")


class ObjectStorageClient:
    """Async HTTP client with retry and backoff logic for the object storage."""

    def __init__(
        self, config: StorageConfig, transport: Optional[httpx.AsyncBaseTransport] = None
    ) -> None:
        self._config = config
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        self._headers = {}
        if config.api_key:
            self._headers["Authorization"] = f"Bearer {config.api_key}"
            self._headers["apikey"] = config.api_key

    async def __aenter__(self) -> "ObjectStorageClient":
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

    def public_url(self, path: str) -> str:
        return (
            f"{self._config.url.rstrip('/')}/object/public/"
            f"{self._config.bucket}/{path.lstrip('/')}"
        )

    async def upload(self, path: str, data: bytes, content_type: str) -> str:
        """Store ``data`` at ``path`` in the bucket and return its public URL."""
        if self._client is None:
            raise RuntimeError("HTTP client is not ready")

        url = (
            f"{self._config.url.rstrip('/')}/object/"
            f"{self._config.bucket}/{path.lstrip('/')}"
        )
        headers = dict(self._headers)
        headers["Content-Type"] = content_type
        headers["x-upsert"] = "false"

        max_attempts = max(1, self._config.max_retries + 1)
        base_backoff = max(self._config.backoff_factor, 0.0) or 1.0
        backoff_ceiling = (
            self._config.backoff_max
            if self._config.backoff_max and self._config.backoff_max > 0
            else float("inf")
        )
        sleep_time = base_backoff

        attempt = 0
        while attempt < max_attempts:
            attempt += 1
            try:
                LOGGER.debug("Uploading %s (attempt %s/%s)", path, attempt, max_attempts)
                response = await self._client.post(url, headers=headers, content=data)
                response.raise_for_status()
                return self.public_url(path)
            except httpx.HTTPStatusError as exc:
                status_code = exc.response.status_code
                if status_code == 404:
                    raise StorageError(
                        f"Bucket {self._config.bucket!r} not found at {self._config.url}"
                    ) from exc

                retryable_status = status_code >= 500 or status_code in {408, 429}
                if not self._should_retry(attempt, max_attempts, retryable_status):
                    LOGGER.error(
                        "HTTP %s uploading %s; response preview: %s",
                        status_code,
                        path,
                        exc.response.text[:500],
                    )
                    raise StorageError(f"HTTP {status_code} uploading {path}") from exc
                wait_time = min(sleep_time, backoff_ceiling)
                LOGGER.warning(
                    "HTTP %s uploading %s (attempt %s/%s). Retrying in %.1fs",
                    status_code,
                    path,
                    attempt,
                    max_attempts,
                    wait_time,
                )
                await asyncio.sleep(wait_time)
                sleep_time = self._next_backoff(sleep_time, base_backoff, backoff_ceiling)
            except httpx.RequestError as exc:
                if not self._should_retry(attempt, max_attempts, True):
                    raise StorageError(f"Network error uploading {path}: {exc}") from exc
                wait_time = min(sleep_time, backoff_ceiling)
                LOGGER.warning(
                    "Network error uploading %s (attempt %s/%s): %s. Retrying in %.1fs",
                    path,
                    attempt,
                    max_attempts,
                    exc,
                    wait_time,
                )
                await asyncio.sleep(wait_time)
                sleep_time = self._next_backoff(sleep_time, base_backoff, backoff_ceiling)

        raise StorageError(f"Failed to upload {path} after {max_attempts} attempts")

    @staticmethod
    def _should_retry(attempt: int, max_attempts: int, retryable: bool) -> bool:
        return retryable and attempt < max_attempts

    @staticmethod
    def _next_backoff(current: float, base: float, ceiling: float) -> float:
        next_value = max(current, base) * 2
        if ceiling > 0:
            next_value = min(next_value, ceiling)
        return max(next_value, base)
