"""Synchronise inspection checklists with the zone/element store."""

from .document import ChecklistDocument, ChecklistKind, Section, Status
from .orchestrator import (ChecklistSession, FinalizeFields, Notice,
                           NoticeLevel, SaveState)

__all__ = [
    "ChecklistDocument",
    "ChecklistKind",
    "ChecklistSession",
    "FinalizeFields",
    "Notice",
    "NoticeLevel",
    "SaveState",
    "Section",
    "Status",
]
