"""Configuration loading for the checklist synchronisation engine."""

from __future__ import annotations

import os
from typing import Optional

from dotenv import load_dotenv

from .models import (DEFAULT_DB_CONNECT_TIMEOUT, DEFAULT_NOTIFIER_TIMEOUT,
                     DEFAULT_STORAGE_BACKOFF_FACTOR,
                     DEFAULT_STORAGE_BACKOFF_MAX, DEFAULT_STORAGE_BUCKET,
                     DEFAULT_STORAGE_MAX_RETRIES, DEFAULT_STORAGE_TIMEOUT,
                     DEFAULT_UPLOAD_CONCURRENCY, DEFAULT_UPSERT_RETRIES,
                     DEFAULT_ZONE_VISIBILITY_ATTEMPTS,
                     DEFAULT_ZONE_VISIBILITY_BACKOFF,
                     DEFAULT_ZONE_VISIBILITY_BACKOFF_MAX, AppConfig,
                     DatabaseConfig, NotifierConfig, StorageConfig,
                     SyncConfig)

TRUTHY = {"1", "true", "yes", "on"}


def _int(value: Optional[str], default: int) -> int:
    try:
        return int(value) if value is not None else default
    except ValueError:
        return default


def _float(value: Optional[str], default: float) -> float:
    try:
        return float(value) if value is not None else default
    except ValueError:
        return default


def _bool(value: Optional[str], default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in TRUTHY


def _database_url() -> str:
    url = os.getenv("CHECKLIST_DATABASE_URL")
    if url:
        return url

    pg_user = os.getenv("POSTGRES_USER")
    pg_password = os.getenv("POSTGRES_PASSWORD")
    pg_db = os.getenv("POSTGRES_DB")
    pg_host = os.getenv("POSTGRES_HOST", os.getenv("PGHOST", "localhost"))
    pg_port = os.getenv("POSTGRES_PORT", os.getenv("PGPORT", "5432"))
    if not (pg_user and pg_password and pg_db):
        raise RuntimeError(
            "CHECKLIST_DATABASE_URL or POSTGRES_USER, POSTGRES_PASSWORD and "
            "POSTGRES_DB environment variables are required"
        )
    return f"postgresql+asyncpg://{pg_user}:{pg_password}@{pg_host}:{pg_port}/{pg_db}"


def load_config(use_dotenv: bool = True) -> AppConfig:
    """Load the engine configuration from environment variables."""
    if use_dotenv:
        load_dotenv()

    storage_url = os.getenv("STORAGE_URL", "").strip()
    if not storage_url:
        raise RuntimeError("STORAGE_URL environment variable must not be empty")

    return AppConfig(
        database=DatabaseConfig(
            url=_database_url(),
            connect_timeout=_float(
                os.getenv("DATABASE_CONNECT_TIMEOUT"), DEFAULT_DB_CONNECT_TIMEOUT
            ),
        ),
        storage=StorageConfig(
            url=storage_url.rstrip("/"),
            api_key=os.getenv("STORAGE_API_KEY") or None,
            bucket=os.getenv("STORAGE_BUCKET", DEFAULT_STORAGE_BUCKET),
            timeout=_float(os.getenv("STORAGE_TIMEOUT"), DEFAULT_STORAGE_TIMEOUT),
            max_retries=max(
                0, _int(os.getenv("STORAGE_MAX_RETRIES"), DEFAULT_STORAGE_MAX_RETRIES)
            ),
            backoff_factor=_float(
                os.getenv("STORAGE_BACKOFF_FACTOR"), DEFAULT_STORAGE_BACKOFF_FACTOR
            ),
            backoff_max=_float(
                os.getenv("STORAGE_BACKOFF_MAX"), DEFAULT_STORAGE_BACKOFF_MAX
            ),
            max_concurrency=max(
                1, _int(os.getenv("UPLOAD_CONCURRENCY"), DEFAULT_UPLOAD_CONCURRENCY)
            ),
        ),
        notifier=NotifierConfig(
            photos_webhook_url=os.getenv("PHOTOS_WEBHOOK_URL") or None,
            finalize_webhook_url=os.getenv("FINALIZE_WEBHOOK_URL") or None,
            timeout=_float(os.getenv("NOTIFIER_TIMEOUT"), DEFAULT_NOTIFIER_TIMEOUT),
        ),
        sync=SyncConfig(
            # The cap bounds how long we wait for freshly created zones to be readable.
            zone_visibility_attempts=max(
                1,
                _int(
                    os.getenv("ZONE_VISIBILITY_ATTEMPTS"),
                    DEFAULT_ZONE_VISIBILITY_ATTEMPTS,
                ),
            ),
            zone_visibility_backoff=_float(
                os.getenv("ZONE_VISIBILITY_BACKOFF"), DEFAULT_ZONE_VISIBILITY_BACKOFF
            ),
            zone_visibility_backoff_max=_float(
                os.getenv("ZONE_VISIBILITY_BACKOFF_MAX"),
                DEFAULT_ZONE_VISIBILITY_BACKOFF_MAX,
            ),
            upsert_retries=max(
                0, _int(os.getenv("UPSERT_RETRIES"), DEFAULT_UPSERT_RETRIES)
            ),
            bad_elements_in_notes=_bool(os.getenv("CHECKLIST_BAD_ELEMENTS_IN_NOTES")),
        ),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
    )
