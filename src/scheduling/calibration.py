"""
Personalized Calibration Store - per-user tau adjustment by difficulty.

Compares the retention the model expected at review time with the
retention implied by the session score. Users who forget sooner than
predicted drift below 1.0 (shorter intervals); users who retain longer
drift above 1.0.

Confidence grows with sample count and saturates, so the first few
sessions barely move the schedule unless the rapid-calibration phase
is active.
"""

from __future__ import annotations

import math
from typing import Any

from loguru import logger

from src.scheduling.errors import AdaptiveSubsystemUnavailableError
from src.scheduling.models import CalibrationEntry, CalibrationTable, Difficulty, SessionOutcome

# =============================================================================
# Constants
# =============================================================================

LEARNING_RATE = 0.1
RAPID_LEARNING_RATE = 0.35
RAPID_CALIBRATION_SESSIONS = 5
RAPID_SECTION_SESSIONS = 3
MIN_SESSIONS_FOR_CALIBRATION = 10

CONFIDENCE_SCALE = 12.0  # 1 - exp(-n / 12): ~0.57 at 10, ~0.92 at 30 sessions
RAPID_CONFIDENCE_CAP = 0.6

MIN_FACTOR = 0.3
MAX_FACTOR = 3.0
MIN_TARGET_FACTOR = 0.7
MAX_TARGET_FACTOR = 1.3
DEVIATION_SENSITIVITY = 2.0


def observed_retention(score: float) -> float:
    """Retention implied by a 0-10 session score, in [0.1, 1.0]."""
    return min(max(0.2 + (score / 10.0) * 0.75, 0.1), 1.0)


def confidence_for(session_count: int) -> float:
    """Saturating confidence for a sample count."""
    if session_count <= 0:
        return 0.0
    return 1.0 - math.exp(-session_count / CONFIDENCE_SCALE)


def _key(difficulty: Difficulty | str) -> str:
    if isinstance(difficulty, Difficulty):
        return difficulty.value
    return Difficulty(difficulty).value


class PersonalizedCalibrationStore:
    """
    Calibration table for one user profile.

    Holds the profile's CalibrationTable by reference, so saving the
    profile persists every update.
    """

    def __init__(
        self,
        table: CalibrationTable | None = None,
        learning_rate: float = LEARNING_RATE,
        rapid_learning_rate: float = RAPID_LEARNING_RATE,
        rapid_sessions: int = RAPID_CALIBRATION_SESSIONS,
        min_sessions_for_calibration: int = MIN_SESSIONS_FOR_CALIBRATION,
    ):
        self.table = table
        self.learning_rate = learning_rate
        self.rapid_learning_rate = rapid_learning_rate
        self.rapid_sessions = rapid_sessions
        self.min_sessions_for_calibration = min_sessions_for_calibration

    def initialize_for_user(self, user_id: str) -> CalibrationTable:
        """Create an empty table for the user unless one already exists."""
        if self.table is None or self.table.user_id != user_id:
            if self.table is not None:
                logger.warning(f"Replacing calibration table of {self.table.user_id} with new table for {user_id}")
            self.table = CalibrationTable(user_id=user_id)
            logger.info(f"Calibration initialized for user {user_id}")
        return self.table

    def _require_table(self) -> CalibrationTable:
        if self.table is None:
            raise AdaptiveSubsystemUnavailableError("Calibration store used before initialize_for_user()")
        return self.table

    def record_outcome(
        self,
        difficulty: Difficulty | str,
        outcome: SessionOutcome,
        expected_retention: float | None = None,
        section_sessions: int | None = None,
        directional: bool = True,
    ) -> CalibrationEntry:
        """
        Update the adjustment factor for a difficulty class.

        Args:
            difficulty: Difficulty class of the practised section
            outcome: Completed session outcome
            expected_retention: Retention the model predicted at review time
                (defaults to the neutral 0.8 target)
            section_sessions: Sessions seen so far for the section, used to
                detect the rapid-calibration phase of a newly tracked section
            directional: False when the session carries no decay signal
                (first or same-day practice); the session is counted but
                the factor is left unchanged

        Returns:
            The updated calibration entry
        """
        table = self._require_table()
        key = _key(difficulty)
        entry = table.difficulty_adjustments.get(key, CalibrationEntry())

        if outcome.deleted:
            logger.debug(f"Skipping deleted outcome {outcome.id} for calibration")
            return entry

        if not directional:
            count = entry.session_count + 1
            updated = CalibrationEntry(
                adjustment_factor=entry.adjustment_factor,
                confidence=confidence_for(count),
                session_count=count,
            )
            table.difficulty_adjustments[key] = updated
            table.total_sessions += 1
            logger.debug(f"Calibration {key}: no decay signal, factor kept at {entry.adjustment_factor:.3f} (n={count})")
            return updated

        expected =0.8 if expected_retention is None or not math.isfinite(expected_retention) else expected_retention
        observed = observed_retention(outcome.score)
        deviation = observed - expected
        target = min(max(1.0 + DEVIATION_SENSITIVITY * deviation, MIN_TARGET_FACTOR), MAX_TARGET_FACTOR)

        rapid = entry.session_count < self.rapid_sessions or (
            section_sessions is not None and section_sessions <= RAPID_SECTION_SESSIONS
        )
        rate = self.rapid_learning_rate if rapid else self.learning_rate

        factor = entry.adjustment_factor + rate * (target - entry.adjustment_factor)
        factor = min(max(factor, MIN_FACTOR), MAX_FACTOR)
        count = entry.session_count + 1

        updated = CalibrationEntry(
            adjustment_factor=factor,
            confidence=confidence_for(count),
            session_count=count,
        )
        table.difficulty_adjustments[key] = updated
        table.total_sessions += 1

        logger.debug(
            f"Calibration {key}: expected R={expected:.2f}, observed R={observed:.2f}, "
            f"factor {entry.adjustment_factor:.3f} -> {factor:.3f} (rate={rate}, n={count})"
        )
        return updated

    def get_adjustment_factor(self, difficulty: Difficulty | str) -> float:
        """Confidence-weighted tau multiplier; 1.0 while uncalibrated."""
        if self.table is None:
            return 1.0
        entry = self.table.difficulty_adjustments.get(_key(difficulty))
        if entry is None or entry.session_count == 0:
            return 1.0

        weight = entry.confidence
        if entry.session_count <= self.rapid_sessions:
            weight = max(weight, min(RAPID_CONFIDENCE_CAP, entry.session_count / 3.0))

        effective = 1.0 + (entry.adjustment_factor - 1.0) * weight
        return min(max(effective, MIN_FACTOR), MAX_FACTOR)

    def get_calibration_stats(self) -> dict[str, Any]:
        """
        Summary of the calibration table.

        Returns:
            Dict with total_sessions, is_calibrated and difficulty_adjustments
            mapping class -> {factor, confidence, sessions}
        """
        table = self.table
        if table is None:
            return {"total_sessions": 0, "is_calibrated": False, "difficulty_adjustments": {}}
        return {
            "total_sessions": table.total_sessions,
            "is_calibrated": table.total_sessions >= self.min_sessions_for_calibration,
            "difficulty_adjustments": {
                key: {
                    "factor": entry.adjustment_factor,
                    "confidence": entry.confidence,
                    "sessions": entry.session_count,
                }
                for key, entry in table.difficulty_adjustments.items()
            },
        }

    def reset(self) -> None:
        """Explicit data wipe: forget every learned adjustment."""
        table = self._require_table()
        table.difficulty_adjustments.clear()
        table.total_sessions = 0
        logger.info(f"Calibration reset for user {table.user_id}")
