"""
Unit tests for PracticeScheduler.

Tests:
- Outcome classification
- Foundation-stage and incomplete next-day reviews
- Forgetting-curve interval for consolidated sections
- Stage advancement and scheduled-session replacement
- Soft deletion and due queries
"""

import math
from datetime import date, datetime, timedelta

import pytest

from src.scheduling.adaptive_tau import AdaptiveTauCalculator
from src.scheduling.calibration import PersonalizedCalibrationStore
from src.scheduling.errors import InvalidInputError
from src.scheduling.models import (
    LifecycleState,
    OutcomeKind,
    Performance,
    ScheduledSession,
    SessionStatus,
)
from src.scheduling.scheduler import PracticeScheduler, classify_outcome
from src.scheduling.session_store import PieceIndex, ProfileScheduledSessions
from src.scheduling.stability import MemoryStabilityTracker

TODAY = date(2024, 3, 1)
PRACTICED_AT = datetime(2024, 3, 1, 18, 0)


@pytest.fixture
def saved():
    return []


@pytest.fixture
def scheduler(profile_with_section, saved):
    profile = profile_with_section
    calibration = PersonalizedCalibrationStore()
    profile.calibration = calibration.initialize_for_user(profile.user_id)
    stability = MemoryStabilityTracker(profile.stability)
    return PracticeScheduler(
        profile=profile,
        sessions=ProfileScheduledSessions(profile.scheduled_sessions),
        pieces=PieceIndex(profile.pieces),
        tau_calculator=AdaptiveTauCalculator(calibration, stability),
        stability=stability,
        calibration=calibration,
        persist=saved.append,
    )


@pytest.fixture
def section(profile_with_section):
    return profile_with_section.pieces[0].sections[0]


class TestClassifyOutcome:
    def test_incomplete_performance(self, make_outcome):
        assert classify_outcome(make_outcome("s", Performance.INCOMPLETE, repetitions=3), 6) == OutcomeKind.INCOMPLETE

    def test_long_session_without_success(self, make_outcome):
        outcome = make_outcome("s", Performance.POOR, repetitions=0, duration_seconds=150)
        assert classify_outcome(outcome, 6) == OutcomeKind.INCOMPLETE

    def test_short_session_without_success_is_partial(self, make_outcome):
        outcome = make_outcome("s", Performance.POOR, repetitions=0, duration_seconds=30)
        assert classify_outcome(outcome, 6) == OutcomeKind.PARTIAL_PROGRESS

    def test_target_reached(self, make_outcome):
        assert classify_outcome(make_outcome("s", repetitions=6), 6) == OutcomeKind.TARGET_REACHED


class TestNextDayReviews:
    """Foundation stages and incomplete sessions come back tomorrow."""

    def test_foundation_stage(self, scheduler, section, make_outcome, saved):
        result = scheduler.complete_session(section, make_outcome(section.id, Performance.EXCELLENT, PRACTICED_AT))

        assert result.interval == 1
        assert section.next_review_date == TODAY + timedelta(days=1)
        assert section.completed_repetitions == 1
        assert section.last_practice_date == TODAY
        assert result.tau is None
        assert saved == [scheduler.profile]

    def test_incomplete_does_not_count(self, scheduler, section, make_outcome):
        section.practice_schedule_stage = 4
        section.completed_repetitions = 2

        result = scheduler.complete_session(section, make_outcome(section.id, Performance.INCOMPLETE, PRACTICED_AT))

        assert result.outcome_kind == OutcomeKind.INCOMPLETE
        assert result.interval == 1
        assert section.completed_repetitions == 2
        assert section.practice_schedule_stage == 4

    def test_outcome_is_recorded(self, scheduler, section, make_outcome):
        outcome = make_outcome(section.id, Performance.GOOD, PRACTICED_AT)
        scheduler.complete_session(section, outcome)

        assert scheduler.profile.outcomes == [outcome]
        assert scheduler.stability.get(section.id).review_count == 1
        assert scheduler.calibration.table.total_sessions == 1


class TestForgettingCurveInterval:
    """Consolidated sections follow tau -> interval -> adjustment -> clamp."""

    def test_interval_pipeline(self, scheduler, section, make_outcome):
        section.practice_schedule_stage = 3

        result = scheduler.complete_session(section, make_outcome(section.id, Performance.GOOD, PRACTICED_AT))

        # First session carries no decay signal, so calibration stays neutral
        baseline = 9.0 * (1.0 + math.log(2) * 0.15)
        assert result.tau == pytest.approx(baseline * scheduler.calibration.get_adjustment_factor("Average"))
        assert result.raw_interval == pytest.approx(-result.tau * math.log(0.80))
        assert result.adjustment_factor == pytest.approx(scheduler.adjuster.adjustment_factor(7.5))
        assert result.clamp.days == pytest.approx(result.raw_interval * result.adjustment_factor)
        assert result.interval == round(result.clamp.days)
        assert 1 <= result.interval <= 365
        assert section.next_review_date == TODAY + timedelta(days=result.interval)

    def test_better_session_waits_longer(self, profile_with_section, make_outcome):
        intervals = {}
        for performance in (Performance.POOR, Performance.EXCELLENT):
            profile = profile_with_section.model_copy(deep=True)
            calibration = PersonalizedCalibrationStore()
            profile.calibration = calibration.initialize_for_user(profile.user_id)
            stability = MemoryStabilityTracker(profile.stability)
            scheduler = PracticeScheduler(
                profile=profile,
                sessions=ProfileScheduledSessions(profile.scheduled_sessions),
                pieces=PieceIndex(profile.pieces),
                tau_calculator=AdaptiveTauCalculator(calibration, stability),
                stability=stability,
                calibration=calibration,
            )
            section = profile.pieces[0].sections[0]
            section.practice_schedule_stage = 4
            intervals[performance] = scheduler.complete_session(
                section, make_outcome(section.id, performance, PRACTICED_AT)
            ).interval

        assert intervals[Performance.EXCELLENT] > intervals[Performance.POOR]

    def test_expected_retention_from_previous_practice(self, scheduler, section, make_outcome):
        section.practice_schedule_stage = 3
        section.last_practice_date = TODAY - timedelta(days=4)

        result = scheduler.complete_session(section, make_outcome(section.id, Performance.POOR, PRACTICED_AT))

        assert result.interval >= 1
        entry = scheduler.calibration.table.difficulty_adjustments["Average"]
        assert entry.adjustment_factor < 1.0


class TestCalibrationSignal:
    """Only sessions with elapsed time since the last practice move calibration."""

    def test_same_day_sessions_keep_factor(self, scheduler, section, make_outcome):
        for _ in range(6):
            scheduler.complete_session(section, make_outcome(section.id, Performance.EXCELLENT, PRACTICED_AT))

        entry = scheduler.calibration.table.difficulty_adjustments["Average"]
        assert entry.session_count == 6
        assert entry.adjustment_factor == 1.0
        assert scheduler.calibration.get_adjustment_factor("Average") >= 1.0

    def test_first_session_is_counted_without_direction(self, scheduler, section, make_outcome):
        scheduler.complete_session(section, make_outcome(section.id, Performance.POOR, PRACTICED_AT))

        entry = scheduler.calibration.table.difficulty_adjustments["Average"]
        assert entry.session_count == 1
        assert entry.confidence > 0
        assert scheduler.calibration.get_adjustment_factor("Average") == 1.0

    def test_elapsed_session_moves_factor(self, scheduler, section, make_outcome):
        section.last_practice_date = TODAY - timedelta(days=2)

        scheduler.complete_session(section, make_outcome(section.id, Performance.EXCELLENT, PRACTICED_AT))

        assert scheduler.calibration.table.difficulty_adjustments["Average"].adjustment_factor != 1.0


class TestStageAdvance:
    def test_target_reached_advances_stage(self, scheduler, section, make_outcome):
        section.completed_repetitions = 5
        section.target_repetitions = 6

        result = scheduler.complete_session(section, make_outcome(section.id, Performance.GOOD, PRACTICED_AT))

        assert result.stage_advanced
        assert section.practice_schedule_stage == 1
        assert section.completed_repetitions == 0
        assert section.target_repetitions == 6

    def test_custom_target_resets_to_default(self, scheduler, section, make_outcome):
        section.target_repetitions = 1
        scheduler.complete_session(section, make_outcome(section.id, Performance.GOOD, PRACTICED_AT))
        assert section.target_repetitions == 6
        assert section.practice_schedule_stage == 1


class TestScheduledSessions:
    """Each completion leaves exactly one pending session."""

    def test_single_pending_session(self, scheduler, section, make_outcome):
        scheduler.sessions.add(ScheduledSession(section_id=section.id, piece_id="piece-1", scheduled_date=TODAY))
        scheduler.sessions.add(
            ScheduledSession(section_id=section.id, piece_id="piece-1", scheduled_date=TODAY + timedelta(days=5))
        )

        scheduler.complete_session(section, make_outcome(section.id, Performance.GOOD, PRACTICED_AT))
        scheduler.complete_session(
            section, make_outcome(section.id, Performance.GOOD, PRACTICED_AT + timedelta(days=1))
        )

        pending = scheduler.sessions.get_all_pending(section.id)
        assert len(pending) == 1
        assert pending[0].scheduled_date == section.next_review_date
        assert pending[0].piece_id == "piece-1"
        completed = [s for s in scheduler.sessions.for_section(section.id) if s.status == SessionStatus.COMPLETED]
        assert len(completed) == 2

    def test_maintenance_keeps_floor(self, scheduler, section, make_outcome):
        section.lifecycle_state = LifecycleState.MAINTENANCE

        result = scheduler.complete_session(section, make_outcome(section.id, Performance.GOOD, PRACTICED_AT))

        assert result.interval == 7
        assert section.next_review_date == TODAY + timedelta(days=7)

    def test_inactive_section_is_not_rescheduled(self, scheduler, section, make_outcome):
        section.lifecycle_state = LifecycleState.INACTIVE

        result = scheduler.complete_session(section, make_outcome(section.id, Performance.GOOD, PRACTICED_AT))

        assert result.next_review_date is None
        assert result.scheduled_session is None
        assert scheduler.sessions.get_all_pending(section.id) == []

    def test_mismatched_outcome_rejected(self, scheduler, section, make_outcome):
        with pytest.raises(InvalidInputError):
            scheduler.complete_session(section, make_outcome("someone-else", Performance.GOOD, PRACTICED_AT))
        assert scheduler.profile.outcomes == []


class TestHistoryAndDue:
    def test_soft_delete(self, scheduler, section, make_outcome, saved):
        outcome = make_outcome(section.id, Performance.POOR, PRACTICED_AT)
        scheduler.complete_session(section, outcome)

        deleted = scheduler.soft_delete_outcome(outcome.id)

        assert deleted.deleted
        assert scheduler.recent_scores(section.id) == []
        assert len(scheduler.profile.outcomes_for(section.id, include_deleted=True)) == 1
        assert len(saved) == 2

    def test_soft_delete_unknown(self, scheduler):
        assert scheduler.soft_delete_outcome("missing") is None

    def test_recent_scores_oldest_first(self, scheduler, section, make_outcome):
        for offset, performance in enumerate([Performance.POOR, Performance.FAIR, Performance.GOOD, Performance.EXCELLENT]):
            scheduler.profile.outcomes.append(
                make_outcome(section.id, performance, PRACTICED_AT + timedelta(days=offset))
            )
        assert scheduler.recent_scores(section.id) == [5.0, 7.5, 9.5]

    def test_due_and_overdue(self, scheduler, section):
        section.next_review_date = TODAY - timedelta(days=2)

        assert scheduler.due_sections(TODAY) == [section]
        assert scheduler.refresh_overdue(TODAY) == 1
        assert section.is_overdue

    def test_inactive_is_never_due(self, scheduler, section):
        section.next_review_date = TODAY - timedelta(days=2)
        section.lifecycle_state = LifecycleState.INACTIVE

        assert scheduler.due_sections(TODAY) == []
        assert scheduler.refresh_overdue(TODAY) == 0
