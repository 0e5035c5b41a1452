"""
Memory Stability Tracker - per-section S / D / R model.

Each section carries:
- Stability (S): half-life-like durability of the memory, in days
- Difficulty (D): 0.0 (easy) to 1.0 (hard), resists growth of S
- Retrievability (R): exp(-t / S), recall probability after t days

Updates are retrievability weighted, in the SM-2+/FSRS family: a
strong session while the passage is still well retained grows S less
than a strong session after it had nearly faded (the spacing effect).
Weak sessions shrink S and raise D.

Holding elapsed time fixed, the new S is non-decreasing in session
quality across the whole score range, including the success/failure
boundary.
"""

from __future__ import annotations

import math
from datetime import datetime, timedelta
from typing import Any

from loguru import logger

from src.scheduling.models import SessionOutcome, StabilityRecord

# =============================================================================
# Constants
# =============================================================================

INITIAL_STABILITY = 1.8
DEFAULT_DIFFICULTY = 0.3
STABILITY_GROWTH = 1.3
SUCCESS_THRESHOLD = 0.6  # Normalized score (6/10) separating growth from decay
FAILURE_FLOOR_FACTOR = 0.3  # S multiplier for a session scored 0

DIFFICULTY_DECREASE = 0.05
DIFFICULTY_INCREASE = 0.1
MIN_DIFFICULTY = 0.01
MAX_DIFFICULTY = 0.99

MIN_STABILITY = 0.5
MAX_STABILITY = 3650.0

RETRIEVABILITY_THRESHOLD = 0.8
MASTERY_STABILITY_DAYS = 60.0

SHORT_SESSION_SECONDS = 120
LONG_SESSION_SECONDS = 900


def retrievability(stability: float | None, elapsed_days: float) -> float:
    """Recall probability exp(-t/S); 1.0 when no time has passed."""
    if elapsed_days <= 0:
        return 1.0
    if stability is None or stability <= 0:
        return 0.0
    return max(0.01, math.exp(-elapsed_days / stability))


def _days_between(start: datetime | None, end: datetime) -> float:
    if start is None:
        return 0.0
    return max(0.0, (end - start).total_seconds() / 86400.0)


class MemoryStabilityTracker:
    """
    Running S / D estimate for every section of one profile.

    The tracker mutates the dictionary it is given, which is the
    profile's own stability map, so saving the profile persists it.
    """

    def __init__(
        self,
        records: dict[str, StabilityRecord] | None = None,
        initial_stability: float = INITIAL_STABILITY,
        default_difficulty: float = DEFAULT_DIFFICULTY,
        growth_rate: float = STABILITY_GROWTH,
    ):
        self._records = records if records is not None else {}
        self.initial_stability = initial_stability
        self.default_difficulty = default_difficulty
        self.growth_rate = growth_rate

    def get(self, section_id: str) -> StabilityRecord | None:
        return self._records.get(section_id)

    def update(self, section_id: str, outcome: SessionOutcome) -> StabilityRecord:
        """
        Fold one session outcome into the section's stability record.

        Args:
            section_id: Section the outcome belongs to
            outcome: Completed session (soft-deleted outcomes are ignored)

        Returns:
            The updated record
        """
        existing = self._records.get(section_id)
        if outcome.deleted:
            logger.debug(f"Skipping deleted outcome {outcome.id} for stability of {section_id}")
            return existing or StabilityRecord(section_id=section_id, difficulty=self.default_difficulty)

        record = existing or StabilityRecord(section_id=section_id, difficulty=self.default_difficulty)
        q = min(max(outcome.score / 10.0, 0.0), 1.0)
        now = outcome.practiced_at

        if record.is_new:
            new_stability = self.initial_stability * (0.5 + q)
            current_r = 1.0
        else:
            elapsed = _days_between(record.last_review, now)
            current_r = retrievability(record.stability, elapsed)
            new_stability = record.stability * self._stability_multiplier(q, current_r, record.difficulty)

        new_stability *= self._duration_factor(outcome.duration_seconds)
        new_stability = min(max(new_stability, MIN_STABILITY), MAX_STABILITY)
        new_difficulty = self._next_difficulty(q, record.difficulty)

        last_review = now
        if record.last_review is not None and record.last_review > now:
            last_review = record.last_review

        updated = record.model_copy(update={
            "stability": new_stability,
            "difficulty": new_difficulty,
            "last_review": last_review,
            "review_count": record.review_count + 1,
        })
        self._records[section_id] = updated

        logger.debug(
            f"Stability {section_id}: S {record.stability} -> {new_stability:.2f}d, "
            f"D {record.difficulty:.2f} -> {new_difficulty:.2f}, R={current_r:.3f}, q={q:.2f}"
        )
        return updated

    def _stability_multiplier(self, q: float, r: float, difficulty: float) -> float:
        if q >= SUCCESS_THRESHOLD:
            strength = (q - SUCCESS_THRESHOLD) / (1.0 - SUCCESS_THRESHOLD)
            growth = self.growth_rate * math.sqrt(1.0 - r + 0.1) * (1.0 - difficulty * 0.3)
            return 1.0 + growth * strength
        # Linear from 0.3 (score 0) up to 1.0 at the success threshold
        return FAILURE_FLOOR_FACTOR + (1.0 - FAILURE_FLOOR_FACTOR) * (q / SUCCESS_THRESHOLD)

    def _next_difficulty(self, q: float, difficulty: float) -> float:
        if q >= SUCCESS_THRESHOLD:
            strength = (q - SUCCESS_THRESHOLD) / (1.0 - SUCCESS_THRESHOLD)
            return max(MIN_DIFFICULTY, difficulty - DIFFICULTY_DECREASE * strength)
        severity = 1.0 - q / SUCCESS_THRESHOLD
        return min(MAX_DIFFICULTY, difficulty + DIFFICULTY_INCREASE * severity)

    def _duration_factor(self, duration_seconds: int) -> float:
        if 0 < duration_seconds < SHORT_SESSION_SECONDS:
            return 0.98
        if duration_seconds > LONG_SESSION_SECONDS:
            return 1.02
        return 1.0

    # =========================================================================
    # Read-only queries
    # =========================================================================

    def get_stats(self, section_id: str, now: datetime | None = None) -> dict[str, Any]:
        """
        Memory statistics for a section.

        Returns:
            Dict with is_new, stability, difficulty, current_retrievability,
            review_count, days_since_last_review, learning_progress,
            retention_strength, optimal_next_review
        """
        now = now or datetime.now()
        record = self._records.get(section_id)
        if record is None or record.is_new:
            return {
                "is_new": True,
                "stability": record.stability if record else None,
                "difficulty": record.difficulty if record else self.default_difficulty,
                "current_retrievability": 1.0,
                "review_count": record.review_count if record else 0,
                "days_since_last_review": None,
                "learning_progress": 0.0,
                "retention_strength": "new",
                "optimal_next_review": None,
            }

        elapsed = _days_between(record.last_review, now)
        r = retrievability(record.stability, elapsed)
        if r >= RETRIEVABILITY_THRESHOLD:
            strength = "strong"
        elif r >= 0.5:
            strength = "moderate"
        else:
            strength = "weak"

        optimal_days = -record.stability * math.log(RETRIEVABILITY_THRESHOLD)
        return {
            "is_new": False,
            "stability": record.stability,
            "difficulty": record.difficulty,
            "current_retrievability": r,
            "review_count": record.review_count,
            "days_since_last_review": elapsed,
            "learning_progress": min(1.0, record.stability / MASTERY_STABILITY_DAYS),
            "retention_strength": strength,
            "optimal_next_review": (record.last_review + timedelta(days=optimal_days)).date(),
        }

    def predict_retention_curve(
        self, section_id: str, days: int = 30, now: datetime | None = None
    ) -> list[tuple[int, float]]:
        """Predicted retrievability for each of the next `days` days."""
        now = now or datetime.now()
        record = self._records.get(section_id)
        if record is None or record.is_new:
            return []
        elapsed = _days_between(record.last_review, now)
        return [(day, retrievability(record.stability, elapsed + day)) for day in range(days + 1)]

    def forget(self, section_id: str) -> None:
        """Drop the record of a deleted section."""
        self._records.pop(section_id, None)
