"""
Utilities to bootstrap the PostgreSQL schema for the checklist store.
"""

from __future__ import annotations

from importlib import resources
from typing import Optional

import psycopg

from .models import DEFAULT_SCHEMA_RESOURCE

SENTINEL_TABLE = "public.inspection_elements"


def plain_dsn(url: str) -> str:
    """Strip the SQLAlchemy driver suffix (``postgresql+asyncpg://``) for psycopg."""
    scheme, sep, rest = url.partition("://")
    if not sep:
        return url
    return f"{scheme.split('+', 1)[0]}://{rest}"


def read_schema(resource: str = DEFAULT_SCHEMA_RESOURCE) -> str:
    return (
        resources.files("checklist_sync").joinpath(resource).read_text(encoding="utf-8")
    )


def schema_exists(dsn: str, table: str = SENTINEL_TABLE) -> bool:
    """Return True if the sentinel table already exists."""
    with psycopg.connect(plain_dsn(dsn), autocommit=True) as conn:
        with conn.cursor() as cur:
            cur.execute("SELECT to_regclass(%s)", (table,))
            return cur.fetchone()[0] is not None


def apply_schema(dsn: str, resource: Optional[str] = None) -> bool:
    """
    Execute the packaged schema SQL against the given database.

    Returns True if the schema was applied, False if it already existed.
    """
    ddl = read_schema(resource or DEFAULT_SCHEMA_RESOURCE)

    if schema_exists(dsn):
        return False

    with psycopg.connect(plain_dsn(dsn), autocommit=True) as conn:
        with conn.cursor() as cur:
            cur.execute(ddl)
    return True
