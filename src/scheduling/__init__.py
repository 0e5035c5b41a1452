"""
Adaptive Practice Scheduling.

Provides the scheduling engine for music practice sections:
- Forgetting-curve intervals with scientific bounds
- Performance-based interval adjustment
- Memory stability tracking (S / D / R)
- Personalized tau calibration per difficulty class
- Section lifecycle control (Active / Maintenance / Inactive)
- SQLite profile persistence
"""

from src.scheduling.adaptive_tau import AdaptiveTauCalculator, TauContext
from src.scheduling.calibration import PersonalizedCalibrationStore
from src.scheduling.forgetting_curve import ForgettingCurveModel
from src.scheduling.lifecycle import SectionLifecycleController, TransitionResult
from src.scheduling.models import (
    Difficulty,
    LifecycleState,
    Performance,
    ProfileState,
    ScheduledSession,
    Section,
    SessionOutcome,
)
from src.scheduling.performance import PerformanceAdjuster
from src.scheduling.profile_store import ProfileStore
from src.scheduling.scheduler import PracticeScheduler
from src.scheduling.stability import MemoryStabilityTracker

__all__ = [
    "AdaptiveTauCalculator",
    "TauContext",
    "PersonalizedCalibrationStore",
    "ForgettingCurveModel",
    "SectionLifecycleController",
    "TransitionResult",
    "Difficulty",
    "LifecycleState",
    "Performance",
    "ProfileState",
    "ScheduledSession",
    "Section",
    "SessionOutcome",
    "PerformanceAdjuster",
    "ProfileStore",
    "PracticeScheduler",
    "MemoryStabilityTracker",
]
