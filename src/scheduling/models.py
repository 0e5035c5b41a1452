"""
Practice Scheduling Data Model.

Records exchanged between the scheduling engine and its collaborators:
- Section / Piece - practicable material and its owner
- SessionOutcome - immutable result of one practice session
- ScheduledSession - a planned, not yet completed review
- StabilityRecord / CalibrationTable - per-profile adaptive state
- ProfileState - the whole document read and written per user

All records are pydantic models so a profile round-trips through JSON
without losing information.
"""

from __future__ import annotations

from datetime import date, datetime
from enum import Enum, IntEnum
from typing import Any, Iterator
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from src.scheduling.errors import InvalidInputError

# =============================================================================
# Enumerations
# =============================================================================


class Difficulty(str, Enum):
    """Difficulty class of a section."""

    EASY = "Easy"
    AVERAGE = "Average"
    DIFFICULT = "Difficult"
    MASTERED = "Mastered"

    @classmethod
    def _missing_(cls, value: object) -> Difficulty | None:
        if isinstance(value, str):
            key = value.strip().lower()
            key = {"hard": "difficult", "challenging": "difficult", "simple": "easy"}.get(key, key)
            for member in cls:
                if member.value.lower() == key:
                    return member
        return None


class LifecycleState(IntEnum):
    """Section lifecycle; the integer values are the stored representation."""

    ACTIVE = 0
    MAINTENANCE = 1
    INACTIVE = 2

    @classmethod
    def parse(cls, value: str | int) -> LifecycleState:
        if isinstance(value, str) and not value.strip().isdigit():
            try:
                return cls[value.strip().upper()]
            except KeyError:
                raise InvalidInputError(f"Unknown lifecycle state: {value!r}") from None
        try:
            return cls(int(value))
        except ValueError:
            raise InvalidInputError(f"Unknown lifecycle state: {value!r}") from None


class Performance(str, Enum):
    """Qualitative result of a practice session."""

    POOR = "Poor"
    FAIR = "Fair"
    GOOD = "Good"
    EXCELLENT = "Excellent"
    INCOMPLETE = "Incomplete"  # No success after extended effort

    @classmethod
    def _missing_(cls, value: object) -> Performance | None:
        if isinstance(value, str):
            for member in cls:
                if member.value.lower() == value.strip().lower():
                    return member
        return None


class SessionStatus(str, Enum):
    PLANNED = "Planned"
    COMPLETED = "Completed"


class ExperienceLevel(str, Enum):
    """Musician experience, drives the demographic tau baseline."""

    BEGINNER = "beginner"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"
    PROFESSIONAL = "professional"


class MemoryZone(str, Enum):
    """Coarse progress bucket derived from the practice stage."""

    EXPLORATION = "Exploration"
    CONSOLIDATION = "Consolidation"
    MASTERY = "Mastery"
    OVERLEARNING = "Overlearning"

    @classmethod
    def for_stage(cls, stage: int) -> MemoryZone:
        if stage < 3:
            return cls.EXPLORATION
        if stage <= 5:
            return cls.CONSOLIDATION
        if stage <= 8:
            return cls.MASTERY
        return cls.OVERLEARNING


class OutcomeKind(str, Enum):
    INCOMPLETE = "Incomplete"
    TARGET_REACHED = "TargetReached"
    PARTIAL_PROGRESS = "PartialProgress"


# Fixed score table (0-10 scale)
PERFORMANCE_SCORES: dict[Performance, float] = {
    Performance.POOR: 2.5,
    Performance.FAIR: 5.0,
    Performance.GOOD: 7.5,
    Performance.EXCELLENT: 9.5,
    Performance.INCOMPLETE: 0.0,
}
DEFAULT_PERFORMANCE_SCORE = 5.0

DEFAULT_TARGET_REPETITIONS = 6


def _new_id() -> str:
    return str(uuid4())


# =============================================================================
# Records
# =============================================================================


class Section(BaseModel):
    """A practicable unit of material, owned by a Piece."""

    model_config = ConfigDict(validate_assignment=True)

    id: str = Field(default_factory=_new_id)
    name: str = ""
    piece_id: str | None = None
    difficulty: Difficulty = Difficulty.AVERAGE
    lifecycle_state: LifecycleState = LifecycleState.ACTIVE
    practice_schedule_stage: int = Field(default=0, ge=0)
    completed_repetitions: int = Field(default=0, ge=0)
    target_repetitions: int = Field(default=DEFAULT_TARGET_REPETITIONS, gt=0)
    interval: int = Field(default=1, ge=0)
    next_review_date: date | None = None
    last_practice_date: date | None = None
    is_overdue: bool = False

    @property
    def memory_zone(self) -> MemoryZone:
        return MemoryZone.for_stage(self.practice_schedule_stage)

    def is_due(self, today: date | None = None) -> bool:
        """Active or Maintenance sections with a next review on or before today."""
        if self.lifecycle_state == LifecycleState.INACTIVE or self.next_review_date is None:
            return False
        return self.next_review_date <= (today or date.today())


class Piece(BaseModel):
    """A music piece; owns its sections."""

    model_config = ConfigDict(validate_assignment=True)

    id: str = Field(default_factory=_new_id)
    title: str
    sections: list[Section] = Field(default_factory=list)

    def find_section(self, section_id: str) -> Section | None:
        for section in self.sections:
            if section.id == section_id:
                return section
        return None


class SessionOutcome(BaseModel):
    """Result of one completed practice session. Never mutated after creation."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=_new_id)
    section_id: str
    practiced_at: datetime
    performance: Performance
    repetitions: int = Field(default=0, ge=0)
    execution_failures: int = Field(default=0, ge=0)  # Attempts before first success
    memory_failures: int = Field(default=0, ge=0)  # Streak resets during the session
    duration_seconds: int = Field(default=0, ge=0)
    deleted: bool = False

    @property
    def score(self) -> float:
        """Numeric performance score on the 0-10 scale."""
        return PERFORMANCE_SCORES.get(self.performance, DEFAULT_PERFORMANCE_SCORE)


class ScheduledSession(BaseModel):
    """A planned review entry for a section."""

    id: str = Field(default_factory=_new_id)
    section_id: str
    piece_id: str | None = None
    scheduled_date: date
    status: SessionStatus = SessionStatus.PLANNED
    estimated_duration_minutes: int = Field(default=5, ge=0)
    tau_value: float = Field(default=0.0, ge=0.0)

    @property
    def is_pending(self) -> bool:
        return self.status == SessionStatus.PLANNED


class StabilityRecord(BaseModel):
    """Memory stability (S), difficulty (D) and review history for one section."""

    section_id: str
    stability: float | None = None  # None until the first review
    difficulty: float = Field(default=0.3, ge=0.0, le=1.0)
    last_review: datetime | None = None
    review_count: int = Field(default=0, ge=0)

    @property
    def is_new(self) -> bool:
        return self.stability is None or self.review_count == 0


class CalibrationEntry(BaseModel):
    """Personal tau adjustment for one difficulty class."""

    adjustment_factor: float = 1.0
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    session_count: int = Field(default=0, ge=0)


class CalibrationTable(BaseModel):
    """Per-user calibration state, keyed by difficulty class value."""

    user_id: str
    total_sessions: int = 0
    difficulty_adjustments: dict[str, CalibrationEntry] = Field(default_factory=dict)


class ProfileState(BaseModel):
    """Everything persisted for one user profile, read and written as a unit."""

    user_id: str
    experience: ExperienceLevel = ExperienceLevel.INTERMEDIATE
    pieces: list[Piece] = Field(default_factory=list)
    outcomes: list[SessionOutcome] = Field(default_factory=list)
    scheduled_sessions: list[ScheduledSession] = Field(default_factory=list)
    stability: dict[str, StabilityRecord] = Field(default_factory=dict)
    calibration: CalibrationTable | None = None
    updated_at: datetime | None = None

    def iter_sections(self) -> Iterator[tuple[Piece, Section]]:
        for piece in self.pieces:
            for section in piece.sections:
                yield piece, section

    def find_piece(self, piece_id: str) -> Piece | None:
        for piece in self.pieces:
            if piece.id == piece_id:
                return piece
        return None

    def find_section(self, section_id: str) -> Section | None:
        for _, section in self.iter_sections():
            if section.id == section_id:
                return section
        return None

    def outcomes_for(self, section_id: str, include_deleted: bool = False) -> list[SessionOutcome]:
        """Outcomes for a section, oldest first."""
        history = [
            o for o in self.outcomes
            if o.section_id == section_id and (include_deleted or not o.deleted)
        ]
        return sorted(history, key=lambda o: o.practiced_at)

    def active_outcomes(self) -> list[SessionOutcome]:
        return [o for o in self.outcomes if not o.deleted]


# =============================================================================
# Boundary parsing
# =============================================================================


def _parse(model: type[BaseModel], data: dict[str, Any], label: str) -> Any:
    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise InvalidInputError(f"Invalid {label}: {e}") from e


def parse_section(data: dict[str, Any]) -> Section:
    """Validate an external section record."""
    return _parse(Section, data, "section")


def parse_outcome(data: dict[str, Any]) -> SessionOutcome:
    """Validate an external session outcome record."""
    return _parse(SessionOutcome, data, "session outcome")


def parse_scheduled_session(data: dict[str, Any]) -> ScheduledSession:
    """Validate an external scheduled-session record."""
    return _parse(ScheduledSession, data, "scheduled session")
