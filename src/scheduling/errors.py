"""
Scheduling error taxonomy.

Only InvalidInputError and PersistenceCapacityExceededError are meant to
reach callers. The rest are raised and caught inside the engine so that a
degraded computation falls back instead of blocking review.
"""

from __future__ import annotations

from typing import Any


class SchedulingError(Exception):
    """Base class for practice-scheduler errors."""


class InvalidInputError(SchedulingError, ValueError):
    """Malformed section, outcome or scheduled-session record."""


class ComputationDegenerateError(SchedulingError):
    """A tau or interval computation produced a non-finite or non-positive value."""


class AdaptiveSubsystemUnavailableError(SchedulingError):
    """Calibration or stability data could not be consulted."""


class OrphanedReferenceError(SchedulingError):
    """A section's owning piece cannot be resolved."""

    def __init__(self, section_id: str, piece_id: str | None = None):
        self.section_id = section_id
        self.piece_id = piece_id
        if piece_id:
            message = f"Section {section_id} references missing piece {piece_id}"
        else:
            message = f"Section {section_id} is not linked to a piece"
        super().__init__(message)


class CapacityExceededError(SchedulingError):
    """The profile store refused a write because it is full."""

    def __init__(self, message: str, storage_info: dict[str, Any] | None = None):
        super().__init__(message)
        self.storage_info = storage_info or {}


class PersistenceCapacityExceededError(CapacityExceededError):
    """Saving failed even after cleanup; the user must export and prune data."""

    USER_MESSAGE = (
        "Storage is full and automatic cleanup could not free enough space. "
        "Please export your data and remove old pieces before continuing."
    )

    def __init__(self, storage_info: dict[str, Any] | None = None):
        super().__init__(self.USER_MESSAGE, storage_info)
