"""
Practice Scheduler - what happens after a section has been practised.

Flow for one completed session:
1. Record the outcome in the profile history
2. Update memory stability, then personal calibration
3. Compute the next interval
   - Incomplete session or foundation stage (< 3): next day
   - Otherwise: integrated tau -> forgetting-curve interval for the
     performance-based retention target -> performance adjustment -> clamp
4. Advance the stage when the repetition target is reached
5. Replace the pending scheduled session and save the profile
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import date, timedelta

from loguru import logger

from src.scheduling.adaptive_tau import AdaptiveTauCalculator, TauContext
from src.scheduling.calibration import PersonalizedCalibrationStore
from src.scheduling.errors import AdaptiveSubsystemUnavailableError, InvalidInputError
from src.scheduling.forgetting_curve import (
    ClampResult,
    ForgettingCurveModel,
    retention_target_for_performance,
)
from src.scheduling.models import (
    DEFAULT_TARGET_REPETITIONS,
    LifecycleState,
    OutcomeKind,
    Performance,
    ProfileState,
    ScheduledSession,
    Section,
    SessionOutcome,
    SessionStatus,
    StabilityRecord,
)
from src.scheduling.performance import PerformanceAdjuster
from src.scheduling.session_store import PieceIndex, ScheduledSessionStore
from src.scheduling.stability import MemoryStabilityTracker

FOUNDATION_STAGE_LIMIT = 3
INCOMPLETE_MIN_SECONDS = 120
RECENT_SCORE_WINDOW = 3
MAINTENANCE_MIN_INTERVAL_DAYS = 7


@dataclass
class CompletionResult:
    """Scheduling decision taken after a session."""

    section_id: str
    outcome_kind: OutcomeKind
    interval: int
    next_review_date: date | None
    stage_advanced: bool
    stability: StabilityRecord
    tau: float | None = None
    raw_interval: float | None = None
    adjustment_factor: float | None = None
    clamp: ClampResult | None = None
    scheduled_session: ScheduledSession | None = None


def classify_outcome(outcome: SessionOutcome, target_repetitions: int) -> OutcomeKind:
    """Incomplete, TargetReached or PartialProgress."""
    if outcome.performance == Performance.INCOMPLETE:
        return OutcomeKind.INCOMPLETE
    if outcome.repetitions == 0 and outcome.duration_seconds >= INCOMPLETE_MIN_SECONDS:
        return OutcomeKind.INCOMPLETE
    if outcome.repetitions >= target_repetitions:
        return OutcomeKind.TARGET_REACHED
    return OutcomeKind.PARTIAL_PROGRESS


class PracticeScheduler:
    """Turns completed sessions into next review dates for one profile."""

    def __init__(
        self,
        profile: ProfileState,
        sessions: ScheduledSessionStore,
        pieces: PieceIndex,
        tau_calculator: AdaptiveTauCalculator,
        stability: MemoryStabilityTracker,
        calibration: PersonalizedCalibrationStore,
        curve: ForgettingCurveModel | None = None,
        adjuster: PerformanceAdjuster | None = None,
        persist: Callable[[ProfileState], None] | None = None,
        target_repetitions: int = DEFAULT_TARGET_REPETITIONS,
        foundation_stage_limit: int = FOUNDATION_STAGE_LIMIT,
        maintenance_min_days: int = MAINTENANCE_MIN_INTERVAL_DAYS,
    ):
        self.profile = profile
        self.sessions = sessions
        self.pieces = pieces
        self.tau_calculator = tau_calculator
        self.stability = stability
        self.calibration = calibration
        self.curve = curve or ForgettingCurveModel()
        self.adjuster = adjuster or PerformanceAdjuster()
        self._persist = persist
        self.target_repetitions = target_repetitions
        self.foundation_stage_limit = foundation_stage_limit
        self.maintenance_min_days = maintenance_min_days

    def recent_scores(self, section_id: str, limit: int = RECENT_SCORE_WINDOW) -> list[float]:
        """Scores of the latest non-deleted outcomes, oldest first."""
        history = self.profile.outcomes_for(section_id)
        return [o.score for o in history[-limit:]]

    def tau_context(self, section: Section) -> TauContext:
        return TauContext(
            section_id=section.id,
            stage=section.practice_schedule_stage,
            experience=self.profile.experience,
            recent_scores=self.recent_scores(section.id),
        )

    def complete_session(
        self,
        section: Section,
        outcome: SessionOutcome,
        today: date | None = None,
    ) -> CompletionResult:
        """
        Apply a completed session to its section and plan the next review.

        Args:
            section: The practised section (mutated in place)
            outcome: The session outcome; must reference the section
            today: Scheduling date (defaults to the outcome's date)

        Returns:
            CompletionResult with the interval decision

        Raises:
            InvalidInputError: outcome belongs to another section
            PersistenceCapacityExceededError: profile could not be saved
        """
        if outcome.section_id != section.id:
            raise InvalidInputError(
                f"Outcome {outcome.id} belongs to section {outcome.section_id}, not {section.id}"
            )
        today = today or outcome.practiced_at.date()
        kind = classify_outcome(outcome, section.target_repetitions)
        previous_sessions = len(self.profile.outcomes_for(section.id))

        expected_retention = None
        if section.last_practice_date is not None:
            elapsed = (today - section.last_practice_date).days
            if elapsed > 0:
                prior_tau = self.tau_calculator.calculate_integrated_tau(
                    section.difficulty, section.completed_repetitions, self.tau_context(section)
                )
                expected_retention = self.curve.retention_for_interval(prior_tau, elapsed)
            else:
                logger.debug(f"Same-day session on {section.id}, no decay to calibrate against")

        self.profile.outcomes.append(outcome)
        stability_record = self.stability.update(section.id, outcome)
        try:
            self.calibration.record_outcome(
                section.difficulty,
                outcome,
                expected_retention,
                section_sessions=previous_sessions + 1,
                directional=expected_retention is not None,
            )
        except AdaptiveSubsystemUnavailableError as e:
            logger.warning(f"Calibration not updated for {section.id}: {e}")

        if kind != OutcomeKind.INCOMPLETE:
            section.completed_repetitions += 1
        result = CompletionResult(
            section_id=section.id,
            outcome_kind=kind,
            interval=1,
            next_review_date=None,
            stage_advanced=False,
            stability=stability_record,
        )

        if kind == OutcomeKind.INCOMPLETE:
            logger.info(f"Incomplete session on {section.id}, reviewing again tomorrow")
        elif section.practice_schedule_stage < self.foundation_stage_limit:
            logger.debug(f"Foundation stage {section.practice_schedule_stage} for {section.id}, next-day review")
        else:
            self._forgetting_curve_interval(section, outcome, result)

        interval = result.interval
        if section.lifecycle_state == LifecycleState.MAINTENANCE and interval < self.maintenance_min_days:
            interval = self.maintenance_min_days
            result.interval = interval

        section.interval = interval
        section.last_practice_date = today
        section.is_overdue = False
        if section.lifecycle_state == LifecycleState.INACTIVE:
            section.next_review_date = None
        else:
            section.next_review_date = today + timedelta(days=interval)
        result.next_review_date = section.next_review_date

        if kind != OutcomeKind.INCOMPLETE and section.completed_repetitions >= section.target_repetitions:
            section.practice_schedule_stage += 1
            section.completed_repetitions = 0
            section.target_repetitions = self.target_repetitions
            result.stage_advanced = True
            logger.info(f"Section {section.id} advanced to stage {section.practice_schedule_stage}")

        result.scheduled_session = self._reschedule(section, today, result.tau)

        if self._persist is not None:
            self._persist(self.profile)
        return result

    def _forgetting_curve_interval(
        self, section: Section, outcome: SessionOutcome, result: CompletionResult
    ) -> None:
        tau = self.tau_calculator.calculate_integrated_tau(
            section.difficulty, section.completed_repetitions, self.tau_context(section)
        )
        target = retention_target_for_performance(outcome.performance)
        raw = self.curve.interval_for(tau, target)
        factor = self.adjuster.adjustment_factor(outcome.score)
        clamp = self.curve.clamp_to_scientific_bounds(raw * factor, tau)

        result.tau = tau
        result.raw_interval = raw
        result.adjustment_factor = factor
        result.clamp = clamp
        result.interval = max(1, int(round(clamp.days)))
        logger.debug(
            f"Interval {section.id}: tau={tau:.2f}d, R*={target}, raw={raw:.2f}d, "
            f"x{factor:.3f}, clamp={clamp.reason} -> {result.interval}d"
        )

    def _reschedule(self, section: Section, today: date, tau: float | None) -> ScheduledSession | None:
        """Close out due pending sessions and plan the next one."""
        for pending in self.sessions.get_all_pending(section.id):
            self.sessions.remove(pending.id)
            if pending.scheduled_date <= today:
                self.sessions.add(pending.model_copy(update={"status": SessionStatus.COMPLETED}))

        if section.next_review_date is None:
            return None

        piece = self.pieces.find_owning_piece(section.id)
        session = ScheduledSession(
            section_id=section.id,
            piece_id=piece.id if piece else section.piece_id,
            scheduled_date=section.next_review_date,
            tau_value=tau or 0.0,
        )
        self.sessions.add(session)
        return session

    # =========================================================================
    # History and due queries
    # =========================================================================

    def soft_delete_outcome(self, outcome_id: str) -> SessionOutcome | None:
        """Exclude an outcome from calibration and display, keeping it for audit."""
        for index, outcome in enumerate(self.profile.outcomes):
            if outcome.id == outcome_id:
                deleted = outcome.model_copy(update={"deleted": True})
                self.profile.outcomes[index] = deleted
                logger.info(f"Soft-deleted outcome {outcome_id}")
                if self._persist is not None:
                    self._persist(self.profile)
                return deleted
        return None

    def due_sections(self, today: date | None = None) -> list[Section]:
        today = today or date.today()
        due = [section for _, section in self.profile.iter_sections() if section.is_due(today)]
        return sorted(due, key=lambda s: s.next_review_date)

    def refresh_overdue(self, today: date | None = None) -> int:
        """Flag sections whose review date has passed; returns the count."""
        today = today or date.today()
        count = 0
        for _, section in self.profile.iter_sections():
            overdue = section.is_due(today) and section.next_review_date < today
            section.is_overdue = overdue
            count += overdue
        return count
