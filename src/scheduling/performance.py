"""
Performance Adjuster - turns session quality into an interval multiplier.

Three signals are blended:
1. Sigmoid factor - smooth S-curve centred on an average session
2. Confidence factor - super-linear reward for strong sessions
3. Cognitive-load factor - sharp penalty for overloaded sessions

Poor sessions shorten the next interval sharply; excellent sessions
extend it generously, but the result always stays within [0.3, 2.5].
"""

from __future__ import annotations

import math

from loguru import logger

from src.scheduling.models import DEFAULT_PERFORMANCE_SCORE, PERFORMANCE_SCORES, Performance

# =============================================================================
# Constants
# =============================================================================

MIN_ADJUSTMENT = 0.3
MAX_ADJUSTMENT = 2.5

SIGMOID_STEEPNESS = 6.0
SIGMOID_EXPONENT_LIMIT = 50.0
SIGMOID_FLOOR = 0.4
SIGMOID_SPAN = 1.6  # Maps [0, 1] onto [0.4, 2.0]

WEIGHT_SIGMOID = 0.5
WEIGHT_CONFIDENCE = 0.3
WEIGHT_COGNITIVE_LOAD = 0.2


def score_for(performance: Performance | str | None) -> float:
    """Fixed 0-10 score for a qualitative performance; unknown values score 5.0."""
    if performance is None:
        return DEFAULT_PERFORMANCE_SCORE
    if not isinstance(performance, Performance):
        try:
            performance = Performance(performance)
        except ValueError:
            return DEFAULT_PERFORMANCE_SCORE
    return PERFORMANCE_SCORES.get(performance, DEFAULT_PERFORMANCE_SCORE)


class PerformanceAdjuster:
    """Maps performance scores to interval adjustment factors."""

    def score_for(self, performance: Performance | str | None) -> float:
        return score_for(performance)

    def adjustment_factor(self, score: float) -> float:
        """
        Interval multiplier for a 0-10 performance score.

        Args:
            score: Performance score (values outside 0-10 are clamped)

        Returns:
            Factor in [0.3, 2.5], non-decreasing in score
        """
        if score is None or not math.isfinite(score):
            logger.warning(f"Non-finite performance score {score}, using neutral {DEFAULT_PERFORMANCE_SCORE}")
            score = DEFAULT_PERFORMANCE_SCORE

        n = min(max(score / 10.0, 0.0), 1.0)

        combined = (
            WEIGHT_SIGMOID * self._sigmoid_factor(n)
            + WEIGHT_CONFIDENCE * self._confidence_factor(n)
            + WEIGHT_COGNITIVE_LOAD * self._cognitive_load_factor(n)
        )
        factor = min(max(combined, MIN_ADJUSTMENT), MAX_ADJUSTMENT)
        logger.debug(f"Performance adjustment: score={score:.1f} -> factor={factor:.3f}")
        return factor

    def factor_for(self, performance: Performance | str | None) -> float:
        """Shortcut: adjustment factor for a qualitative performance."""
        return self.adjustment_factor(self.score_for(performance))

    # =========================================================================
    # Signals
    # =========================================================================

    def _sigmoid_factor(self, n: float) -> float:
        x = (n - 0.5) * SIGMOID_STEEPNESS
        x = min(max(x, -SIGMOID_EXPONENT_LIMIT), SIGMOID_EXPONENT_LIMIT)
        sig = 1.0 / (1.0 + math.exp(-x))
        return SIGMOID_FLOOR + SIGMOID_SPAN * sig

    def _confidence_factor(self, n: float) -> float:
        if n <= 0.5:
            return 0.6 + 0.8 * n
        return 1.0 + math.pow((n - 0.5) * 2.0, 1.5) * 0.8

    def _cognitive_load_factor(self, n: float) -> float:
        if n < 0.3:
            # Severity-scaled floor: 0.3 at n=0, approaching 0.7 at n=0.3
            severity = (0.3 - n) / 0.3
            return 0.3 + 0.4 * (1.0 - severity)
        if n < 0.7:
            return 0.8 + 0.4 * n
        # Continues from the mid-band value at 0.7 (1.08)
        return 1.08 + (n - 0.7) * 0.5
