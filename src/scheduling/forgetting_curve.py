"""
Forgetting Curve Model - Ebbinghaus intervals with safety rails.

Core relation: R(t) = exp(-t / tau), so the interval at which recall
drops to a target R* is t = -tau * ln(R*).

Musical material uses a second, floored curve for reactivation
planning: R(t) = 0.80 * exp(-t / tau) + 0.15, reflecting that motor
memory for a learned passage never fully decays to zero.

Based on research from:
- Ebbinghaus (1885) memory retention curve
- Murre & Dros (2015) replication of the forgetting curve
- Cepeda et al. (2008) spacing gap / retention interval ratios
"""

from __future__ import annotations

import math
from dataclasses import dataclass

from loguru import logger

from src.scheduling.models import Difficulty, Performance

# =============================================================================
# Constants
# =============================================================================

BASE_TAU_DAYS = 3.0
MIN_TAU_DAYS = 1.0
MAX_TAU_DAYS = 180.0

MIN_RETENTION_TARGET = 0.01
MAX_RETENTION_TARGET = 0.99

MIN_INTERVAL_DAYS = 1.0
MAX_INTERVAL_DAYS = 365.0
TAU_CAP_MULTIPLIER = 5.0  # Beyond 5 tau the retention estimate is unreliable
FALLBACK_INTERVAL_DAYS = 1.0

# Floored practice curve
CURVE_AMPLITUDE = 0.80
CURVE_ASYMPTOTE = 0.15

RETENTION_TARGETS = {
    "difficult": 0.85,
    "hard": 0.85,
    "challenging": 0.85,
    "easy": 0.70,
    "simple": 0.70,
    "mastered": 0.65,
    "review": 0.65,
    "maintain": 0.65,
}
DEFAULT_RETENTION_TARGET = 0.80

# Lower targets after strong sessions stretch the next interval
PERFORMANCE_RETENTION_TARGETS = {
    Performance.POOR: 0.90,
    Performance.FAIR: 0.85,
    Performance.GOOD: 0.80,
    Performance.EXCELLENT: 0.70,
}


@dataclass(frozen=True)
class ClampResult:
    """Interval after scientific bounds, with the binding constraint."""

    days: float
    reason: str  # none | invalid→min | min_consolidation | safety_max_365 | cap_5x_tau

    @property
    def was_clamped(self) -> bool:
        return self.reason != "none"


class ForgettingCurveModel:
    """
    Maps (tau, retention target) to review intervals and back.

    Pure computation: no state beyond the configured bounds, so one
    instance can be shared by every scheduling decision of a profile.
    """

    def __init__(
        self,
        min_interval: float = MIN_INTERVAL_DAYS,
        max_interval: float = MAX_INTERVAL_DAYS,
        tau_cap_multiplier: float = TAU_CAP_MULTIPLIER,
    ):
        self.min_interval = min_interval
        self.max_interval = max_interval
        self.tau_cap_multiplier = tau_cap_multiplier

    def interval_for(self, tau: float, retention_target: float) -> float:
        """
        Days until recall probability decays to the retention target.

        Args:
            tau: Decay-rate parameter in days (must be positive)
            retention_target: Acceptable recall probability, clamped to [0.01, 0.99]

        Returns:
            Positive finite interval in days (1-day fallback on degenerate input)
        """
        if not math.isfinite(retention_target):
            logger.warning(
                f"Non-finite retention target {retention_target}, "
                f"using {FALLBACK_INTERVAL_DAYS}d fallback"
            )
            return FALLBACK_INTERVAL_DAYS

        target = min(max(retention_target, MIN_RETENTION_TARGET), MAX_RETENTION_TARGET)
        try:
            days = -tau * math.log(target)
        except (TypeError, OverflowError) as e:
            logger.warning(f"Interval computation failed for tau={tau}: {e}")
            return FALLBACK_INTERVAL_DAYS

        if not math.isfinite(days) or days <= 0:
            logger.warning(
                f"Degenerate interval {days} for tau={tau}, R*={target:.3f}; "
                f"using {FALLBACK_INTERVAL_DAYS}d fallback"
            )
            return FALLBACK_INTERVAL_DAYS
        return days

    def retention_for_interval(self, tau: float, days: float) -> float:
        """Predicted recall probability after `days` (inverse of interval_for)."""
        if days <= 0:
            return 1.0
        if not math.isfinite(tau) or tau <= 0:
            return 0.0
        return math.exp(-days / tau)

    def clamp_to_scientific_bounds(self, raw_days: float, tau: float | None = None) -> ClampResult:
        """
        Enforce [1, 365] days and the 5 x tau cap.

        Tau is first clamped to its own safe range, so the cap can never
        fall below the 1-day floor.
        """
        days = raw_days
        reason = "none"

        if not math.isfinite(days) or days <= 0.0:
            days = self.min_interval
            reason = "invalid→min"

        if days < self.min_interval:
            days = self.min_interval
            reason = "min_consolidation"

        if days > self.max_interval:
            days = self.max_interval
            reason = "safety_max_365"

        if tau is not None:
            tau_cap = clamp_tau(tau) * self.tau_cap_multiplier
            if days > tau_cap:
                days = tau_cap
                reason = "cap_5x_tau" if reason == "none" else reason + "+cap_5x_tau"

        if reason == "none":
            logger.debug(f"Clamp: interval {raw_days:.2f}d unchanged (tau={tau})")
        else:
            logger.warning(f"Clamp: interval {raw_days}d -> {days:.2f}d reason={reason} (tau={tau})")
        return ClampResult(days=days, reason=reason)

    # =========================================================================
    # Floored practice curve
    # =========================================================================

    def retention_curve(self, days: float, tau: float) -> float:
        """Retention on the floored curve 0.80 * exp(-t/tau) + 0.15."""
        safe_tau = clamp_tau(tau)
        return CURVE_AMPLITUDE * math.exp(-max(days, 0.0) / safe_tau) + CURVE_ASYMPTOTE

    def floored_interval_for(self, tau: float, retention_target: float) -> float:
        """Raw days until the floored curve decays to the target (0 if never above it)."""
        safe_tau = clamp_tau(tau)
        ratio = (retention_target - CURVE_ASYMPTOTE) / CURVE_AMPLITUDE
        if not math.isfinite(ratio) or ratio <= 0 or ratio >= 1:
            logger.debug(f"Retention target {retention_target} outside the floored curve, same-day review")
            return 0.0
        return -safe_tau * math.log(ratio)

    def reactivation_interval(self, tau: float, retention_target: float) -> int:
        """
        Whole days until the floored curve reaches the target, in [0, 365].

        Zero is allowed so a reactivated section can be practised today.
        """
        days = round(self.floored_interval_for(tau, retention_target))
        return int(min(max(days, 0), MAX_INTERVAL_DAYS))


# =============================================================================
# Module helpers
# =============================================================================


def clamp_tau(tau: float) -> float:
    """Clamp tau to [1, 180] days; non-finite input falls back to the base tau."""
    if tau is None or not math.isfinite(tau):
        logger.warning(f"Non-finite tau {tau}, using base tau {BASE_TAU_DAYS}d")
        return BASE_TAU_DAYS
    return min(max(tau, MIN_TAU_DAYS), MAX_TAU_DAYS)


def retention_target_for(difficulty: Difficulty | str | None) -> float:
    """Retention target a section of this difficulty is scheduled against."""
    if difficulty is None:
        return DEFAULT_RETENTION_TARGET
    key = difficulty.value if isinstance(difficulty, Difficulty) else str(difficulty)
    return RETENTION_TARGETS.get(key.strip().lower(), DEFAULT_RETENTION_TARGET)


def retention_target_for_performance(performance: Performance) -> float:
    return PERFORMANCE_RETENTION_TARGETS.get(performance, DEFAULT_RETENTION_TARGET)
