"""Exception hierarchy shared by the synchronisation engine."""

from __future__ import annotations

from typing import Iterable, Optional


class ChecklistSyncError(Exception):
    """Base exception for checklist synchronisation errors."""


class MappingError(ChecklistSyncError):
    """Raised when a document node cannot be encoded as an element."""


class ProvisioningError(ChecklistSyncError):
    """Raised when the inspection or its zones cannot be created."""


class ZonesNotVisibleError(ProvisioningError):
    """Raised when created zones are still not readable after the retry cap."""

    def __init__(self, message: str, attempts: int) -> None:
        super().__init__(message)
        self.attempts = attempts


class StorageError(ChecklistSyncError):
    """Raised when the object storage rejects or cannot complete a request."""


class UpsertError(ChecklistSyncError):
    """Raised when a section's elements could not be written after retrying."""

    def __init__(self, section_id: str, message: str) -> None:
        super().__init__(f"Saving section {section_id!r} failed: {message}")
        self.section_id = section_id


class SaveAllError(ChecklistSyncError):
    """Raised at the end of a sweep when one or more sections failed."""

    def __init__(self, failed_sections: Iterable[str]) -> None:
        self.failed_sections = tuple(failed_sections)
        super().__init__(
            "Sections could not be saved: " + ", ".join(self.failed_sections)
        )


class FinalizeError(ChecklistSyncError):
    """Raised when a checklist cannot be finalised."""


class NotifierError(ChecklistSyncError):
    """Raised when the workflow notifier webhook call fails."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code
