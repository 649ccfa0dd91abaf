from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

DEFAULT_DB_CONNECT_TIMEOUT = 60.0
DEFAULT_STORAGE_BUCKET = "inspection-images"
DEFAULT_STORAGE_TIMEOUT = 60.0
DEFAULT_STORAGE_MAX_RETRIES = 2
DEFAULT_STORAGE_BACKOFF_FACTOR = 0.5
DEFAULT_STORAGE_BACKOFF_MAX = 8.0
DEFAULT_UPLOAD_CONCURRENCY = 4
DEFAULT_NOTIFIER_TIMEOUT = 60.0
DEFAULT_ZONE_VISIBILITY_ATTEMPTS = 5
DEFAULT_ZONE_VISIBILITY_BACKOFF = 0.5
DEFAULT_ZONE_VISIBILITY_BACKOFF_MAX = 4.0
DEFAULT_UPSERT_RETRIES = 1
DEFAULT_SCHEMA_RESOURCE = "schema.sql"


@dataclass(frozen=True)
class DatabaseConfig:
    url: str
    connect_timeout: float = DEFAULT_DB_CONNECT_TIMEOUT
    schema_resource: str = DEFAULT_SCHEMA_RESOURCE


@dataclass(frozen=True)
class StorageConfig:
    url: str
    api_key: Optional[str] = None
    bucket: str = DEFAULT_STORAGE_BUCKET
    timeout: float = DEFAULT_STORAGE_TIMEOUT
    max_retries: int = DEFAULT_STORAGE_MAX_RETRIES
    backoff_factor: float = DEFAULT_STORAGE_BACKOFF_FACTOR
    backoff_max: float = DEFAULT_STORAGE_BACKOFF_MAX
    max_concurrency: int = DEFAULT_UPLOAD_CONCURRENCY


@dataclass(frozen=True)
class NotifierConfig:
    photos_webhook_url: Optional[str] = None
    finalize_webhook_url: Optional[str] = None
    timeout: float = DEFAULT_NOTIFIER_TIMEOUT


@dataclass(frozen=True)
class SyncConfig:
    zone_visibility_attempts: int = DEFAULT_ZONE_VISIBILITY_ATTEMPTS
    zone_visibility_backoff: float = DEFAULT_ZONE_VISIBILITY_BACKOFF
    zone_visibility_backoff_max: float = DEFAULT_ZONE_VISIBILITY_BACKOFF_MAX
    upsert_retries: int = DEFAULT_UPSERT_RETRIES
    bad_elements_in_notes: bool = False


@dataclass(frozen=True)
class AppConfig:
    database: DatabaseConfig
    storage: StorageConfig
    notifier: NotifierConfig = field(default_factory=NotifierConfig)
    sync: SyncConfig = field(default_factory=SyncConfig)
    log_level: str = "INFO"
