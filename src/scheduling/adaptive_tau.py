"""
Adaptive Tau Calculator - one decay-rate value per scheduling decision.

Pipeline (each step adjusts the previous one):
1. Demographic baseline - experience level, difficulty class and a
   stage-aware growth curve (mastered sections climb 7 -> 14 -> 30 -> 60)
2. Personalization - the user's calibrated factor for the difficulty class
3. Adaptive blend - tracked memory stability and recent session scores,
   weighted by how much evidence supports each

Any failure in steps 2-3 degrades to the step-1 baseline. The result
is always a finite tau in [1, 180] days.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from loguru import logger

from src.scheduling.errors import (
    AdaptiveSubsystemUnavailableError,
    ComputationDegenerateError,
    InvalidInputError,
)
from src.scheduling.forgetting_curve import BASE_TAU_DAYS, clamp_tau
from src.scheduling.models import Difficulty, ExperienceLevel

if TYPE_CHECKING:
    from src.scheduling.calibration import PersonalizedCalibrationStore
    from src.scheduling.stability import MemoryStabilityTracker

# =============================================================================
# Demographic baseline constants
# =============================================================================

MUSIC_MATERIAL_FACTOR = 3.0  # Motor + auditory material decays slower than word lists
MAX_SAFE_REPETITIONS = 1000
MAX_REPETITION_BONUS = 2.0

EXPERIENCE_MULTIPLIERS = {
    ExperienceLevel.BEGINNER: 0.8,
    ExperienceLevel.INTERMEDIATE: 1.0,
    ExperienceLevel.ADVANCED: 1.1,
    ExperienceLevel.PROFESSIONAL: 1.3,
}

DIFFICULTY_MODIFIERS = {
    Difficulty.DIFFICULT: 0.6,
    Difficulty.AVERAGE: 1.0,
    Difficulty.EASY: 1.7,
}

REPETITION_BONUS_FACTORS = {
    Difficulty.DIFFICULT: 1.3,
    Difficulty.AVERAGE: 1.0,
    Difficulty.EASY: 0.9,
}

# (highest stage, tau days) for mastered sections; later stages get the last value
MASTERED_TAU_LADDER = ((3, 7.0), (4, 14.0), (5, 30.0))
MASTERED_TAU_CEILING = 60.0

# =============================================================================
# Adaptive blend constants
# =============================================================================

STABILITY_MIN_REVIEWS = 2
STABILITY_FULL_CONFIDENCE_REVIEWS = 5.0
STABILITY_TO_TAU = 0.7
STABILITY_WEIGHT = 0.5

PERFORMANCE_MIN_SESSIONS = 2
PERFORMANCE_WINDOW = 3
PERFORMANCE_WEIGHT = 0.3
POOR_AVERAGE_SCORE = 4.0
STRONG_AVERAGE_SCORE = 7.5

EXPECTED_SCORE = 6.0
IMMEDIATE_ADJUSTMENT_DEVIATION = 2.5
RAPID_PHASE_USER_SESSIONS = 5
RAPID_PHASE_SECTION_SESSIONS = 3


@dataclass
class TauContext:
    """Per-decision inputs beyond difficulty and repetition count."""

    section_id: str | None = None
    stage: int = 0
    experience: ExperienceLevel = ExperienceLevel.INTERMEDIATE
    recent_scores: list[float] = field(default_factory=list)  # Oldest first
    use_adaptive_systems: bool = True


@dataclass
class TauBreakdown:
    """How a tau value was assembled."""

    baseline: float
    personalization: float = 1.0
    personalized: float = 0.0
    adaptive_tau: float | None = None
    adaptive_confidence: float = 0.0
    sources: list[str] = field(default_factory=list)
    tau: float = 0.0
    fell_back: bool = False


def _require_finite(value: float, label: str) -> float:
    if value is None or not math.isfinite(value) or value <= 0:
        raise ComputationDegenerateError(f"{label} is not a positive finite number: {value}")
    return value


def _coerce_difficulty(difficulty: Difficulty | str) -> Difficulty:
    if isinstance(difficulty, Difficulty):
        return difficulty
    try:
        return Difficulty(difficulty)
    except ValueError:
        raise InvalidInputError(f"Unknown difficulty class: {difficulty!r}") from None


def repetition_bonus(repetitions: int, difficulty: Difficulty) -> float:
    """Logarithmic tau growth with repetitions, in [1.0, 2.0]."""
    reps = min(max(repetitions, 0), MAX_SAFE_REPETITIONS)
    factor = REPETITION_BONUS_FACTORS.get(difficulty, 1.0)
    bonus = (1.0 + math.log(1 + reps) * 0.15) * factor
    return min(MAX_REPETITION_BONUS, max(1.0, bonus))


def mastered_tau(stage: int) -> float:
    """Graduated tau for mastered sections: 7 -> 14 -> 30 -> 60 days."""
    for max_stage, tau in MASTERED_TAU_LADDER:
        if stage <= max_stage:
            return tau
    return MASTERED_TAU_CEILING


class AdaptiveTauCalculator:
    """
    Integrates baseline, personal calibration and memory stability.

    Scoped to one profile: the calibration store and stability tracker
    passed in belong to that profile alone.
    """

    def __init__(
        self,
        calibration: PersonalizedCalibrationStore | None = None,
        stability: MemoryStabilityTracker | None = None,
    ):
        self.calibration = calibration
        self.stability = stability

    def baseline_tau(
        self,
        difficulty: Difficulty | str,
        repetition_count: int,
        stage: int = 0,
        experience: ExperienceLevel = ExperienceLevel.INTERMEDIATE,
    ) -> float:
        """
        Stage-aware demographic baseline. Never fails.

        Args:
            difficulty: Difficulty class of the section
            repetition_count: Completed repetitions (clamped to [0, 1000])
            stage: Practice schedule stage, drives the mastered ladder
            experience: Experience level of the user

        Returns:
            Tau in days, within [1, 180]
        """
        difficulty = _coerce_difficulty(difficulty)
        experience = ExperienceLevel(experience)
        multiplier = EXPERIENCE_MULTIPLIERS.get(experience, 1.0)

        if difficulty == Difficulty.MASTERED:
            tau = mastered_tau(stage) * multiplier
        else:
            tau = BASE_TAU_DAYS * multiplier * MUSIC_MATERIAL_FACTOR * DIFFICULTY_MODIFIERS[difficulty]
            if repetition_count > 0:
                tau *= repetition_bonus(repetition_count, difficulty)

        if not math.isfinite(tau) or tau <= 0:
            logger.warning(f"Invalid baseline tau {tau}, using {BASE_TAU_DAYS}d")
            return BASE_TAU_DAYS

        tau = clamp_tau(tau)
        logger.debug(
            f"Baseline tau: difficulty={difficulty.value}, reps={repetition_count}, "
            f"stage={stage}, experience={experience.value} -> {tau:.3f}d"
        )
        return tau

    def calculate_integrated_tau(
        self,
        difficulty: Difficulty | str,
        repetition_count: int,
        context: TauContext | None = None,
    ) -> float:
        """Tau for one scheduling decision; always finite and positive."""
        return self.calculate_with_breakdown(difficulty, repetition_count, context).tau

    def calculate_with_breakdown(
        self,
        difficulty: Difficulty | str,
        repetition_count: int,
        context: TauContext | None = None,
    ) -> TauBreakdown:
        context = context or TauContext()
        difficulty = _coerce_difficulty(difficulty)
        baseline = self.baseline_tau(difficulty, repetition_count, context.stage, context.experience)

        if not context.use_adaptive_systems:
            return TauBreakdown(baseline=baseline, personalized=baseline, tau=baseline)

        try:
            factor = self._personalization_factor(difficulty)
            personalized = _require_finite(baseline * factor, "personalized tau")
            breakdown = TauBreakdown(baseline=baseline, personalization=factor, personalized=personalized)
            self._blend_adaptive(breakdown, context)
            breakdown.tau = clamp_tau(_require_finite(breakdown.tau, "integrated tau"))
        except (AdaptiveSubsystemUnavailableError, ComputationDegenerateError) as e:
            logger.warning(f"Adaptive tau degraded to baseline for {context.section_id}: {e}")
            return TauBreakdown(baseline=baseline, personalized=baseline, tau=baseline, fell_back=True)
        except Exception as e:
            logger.warning(f"Adaptive tau subsystem failed for {context.section_id}, using baseline: {e}")
            return TauBreakdown(baseline=baseline, personalized=baseline, tau=baseline, fell_back=True)

        logger.debug(
            f"Integrated tau {context.section_id}: baseline={baseline:.2f}, x{breakdown.personalization:.3f}, "
            f"adaptive={breakdown.adaptive_tau}, conf={breakdown.adaptive_confidence:.2f} -> {breakdown.tau:.2f}d"
        )
        return breakdown

    def _personalization_factor(self, difficulty: Difficulty) -> float:
        if self.calibration is None:
            raise AdaptiveSubsystemUnavailableError("no calibration store")
        return _require_finite(self.calibration.get_adjustment_factor(difficulty), "calibration factor")

    def _blend_adaptive(self, breakdown: TauBreakdown, context: TauContext) -> None:
        """Blend stability and performance evidence into breakdown.tau."""
        if self.stability is None:
            raise AdaptiveSubsystemUnavailableError("no stability tracker")

        personalized = breakdown.personalized
        weighted_sum = 0.0
        total_weight = 0.0
        confidences: list[float] = []

        record = self.stability.get(context.section_id) if context.section_id else None
        if record is not None and not record.is_new and record.review_count >= STABILITY_MIN_REVIEWS:
            confidence = min(1.0, record.review_count / STABILITY_FULL_CONFIDENCE_REVIEWS)
            stability_tau = record.stability * STABILITY_TO_TAU * (1.0 + record.difficulty * 0.3)
            weight = confidence * STABILITY_WEIGHT
            weighted_sum += _require_finite(stability_tau, "stability tau") * weight
            total_weight += weight
            confidences.append(confidence)
            breakdown.sources.append("stability")

        scores = context.recent_scores[-PERFORMANCE_WINDOW:]
        if len(scores) >= PERFORMANCE_MIN_SESSIONS:
            average = sum(scores) / len(scores)
            if average < POOR_AVERAGE_SCORE:
                performance_tau = personalized * 0.7
            elif average > STRONG_AVERAGE_SCORE:
                performance_tau = personalized * 1.4
            else:
                performance_tau = personalized
            confidence = min(1.0, len(scores) / PERFORMANCE_WINDOW)
            weight = confidence * PERFORMANCE_WEIGHT
            weighted_sum += performance_tau * weight
            total_weight += weight
            confidences.append(confidence)
            breakdown.sources.append("performance")

        if total_weight <= 0:
            breakdown.tau = personalized
            return

        adaptive_tau = weighted_sum / total_weight
        confidence = sum(confidences) / len(confidences)
        if len(confidences) >= 2:
            confidence *= 1.2
        confidence = min(1.0, confidence)

        if confidence < 0.1:
            tau = personalized
        elif confidence > 0.8:
            tau = 0.9 * adaptive_tau + 0.1 * personalized
        else:
            tau = personalized * (1.0 - confidence) + adaptive_tau * confidence

        breakdown.adaptive_tau = adaptive_tau
        breakdown.adaptive_confidence = confidence
        breakdown.tau = tau

    # =========================================================================
    # Calibration phase signals
    # =========================================================================

    def requires_immediate_adjustment(self, recent_scores: list[float]) -> bool:
        """True when the last three scores stray far from an average session."""
        if len(recent_scores) < 2:
            return False
        window = recent_scores[-PERFORMANCE_WINDOW:]
        average = sum(window) / len(window)
        return abs(average - EXPECTED_SCORE) > IMMEDIATE_ADJUSTMENT_DEVIATION

    @staticmethod
    def is_rapid_calibration_phase(total_user_sessions: int, section_sessions: int) -> bool:
        return (
            total_user_sessions <= RAPID_PHASE_USER_SESSIONS
            or section_sessions <= RAPID_PHASE_SECTION_SESSIONS
        )
