"""
Unit tests for AdaptiveTauCalculator.

Tests:
- Demographic baseline per difficulty, repetitions, stage and experience
- Personalization and adaptive blend
- Fallback to the baseline when a subsystem is missing or fails
"""

import math

import pytest

from src.scheduling.adaptive_tau import (
    AdaptiveTauCalculator,
    TauContext,
    mastered_tau,
    repetition_bonus,
)
from src.scheduling.calibration import PersonalizedCalibrationStore
from src.scheduling.errors import InvalidInputError
from src.scheduling.models import Difficulty, ExperienceLevel, StabilityRecord
from src.scheduling.stability import MemoryStabilityTracker


@pytest.fixture
def calculator():
    calibration = PersonalizedCalibrationStore()
    calibration.initialize_for_user("tester")
    return AdaptiveTauCalculator(calibration, MemoryStabilityTracker())


class BrokenCalibration:
    def get_adjustment_factor(self, difficulty):
        raise RuntimeError("calibration table corrupted")


class TestBaseline:
    """Tests for baseline_tau."""

    def test_average_with_repetitions(self, calculator):
        expected = 9.0 * (1.0 + math.log(6) * 0.15)
        assert calculator.baseline_tau(Difficulty.AVERAGE, 5) == pytest.approx(expected)

    @pytest.mark.parametrize("difficulty,expected", [
        (Difficulty.EASY, 15.3),
        (Difficulty.AVERAGE, 9.0),
        (Difficulty.DIFFICULT, 5.4),
    ])
    def test_no_repetitions(self, calculator, difficulty, expected):
        assert calculator.baseline_tau(difficulty, 0) == pytest.approx(expected)

    def test_easier_material_decays_slower(self, calculator):
        easy = calculator.baseline_tau(Difficulty.EASY, 3)
        average = calculator.baseline_tau(Difficulty.AVERAGE, 3)
        difficult = calculator.baseline_tau(Difficulty.DIFFICULT, 3)
        assert easy > average > difficult

    def test_experience_scales_baseline(self, calculator):
        beginner = calculator.baseline_tau(Difficulty.AVERAGE, 0, experience=ExperienceLevel.BEGINNER)
        professional = calculator.baseline_tau(Difficulty.AVERAGE, 0, experience="professional")
        assert beginner == pytest.approx(7.2)
        assert professional == pytest.approx(11.7)

    @pytest.mark.parametrize("stage,expected", [(0, 7.0), (3, 7.0), (4, 14.0), (5, 30.0), (6, 60.0), (12, 60.0)])
    def test_mastered_ladder(self, calculator, stage, expected):
        assert mastered_tau(stage) == expected
        assert calculator.baseline_tau(Difficulty.MASTERED, 40, stage=stage) == pytest.approx(expected)

    def test_string_difficulty(self, calculator):
        assert calculator.baseline_tau("average", 0) == pytest.approx(9.0)

    def test_unknown_difficulty_rejected(self, calculator):
        with pytest.raises(InvalidInputError):
            calculator.baseline_tau("Impossible", 0)

    @pytest.mark.parametrize("reps", [-4, 0, 1, 10, 999, 1000, 10**9])
    @pytest.mark.parametrize("difficulty", list(Difficulty))
    def test_always_finite_and_bounded(self, calculator, reps, difficulty):
        for stage in (0, 4, 9):
            tau = calculator.baseline_tau(difficulty, reps, stage=stage)
            assert math.isfinite(tau)
            assert 1.0 <= tau <= 180.0


class TestRepetitionBonus:
    @pytest.mark.parametrize("difficulty", [Difficulty.EASY, Difficulty.AVERAGE, Difficulty.DIFFICULT])
    def test_bonus_range(self, difficulty):
        for reps in (0, 1, 5, 50, 1000, 5000):
            assert 1.0 <= repetition_bonus(reps, difficulty) <= 2.0

    def test_bonus_grows_with_repetitions(self):
        assert repetition_bonus(20, Difficulty.AVERAGE) > repetition_bonus(2, Difficulty.AVERAGE)


class TestIntegratedTau:
    """Tests for calculate_integrated_tau / calculate_with_breakdown."""

    def test_fresh_profile_equals_baseline(self, calculator):
        breakdown = calculator.calculate_with_breakdown(Difficulty.AVERAGE, 0, TauContext(section_id="sec-1"))

        assert breakdown.tau == pytest.approx(9.0)
        assert breakdown.sources == []
        assert not breakdown.fell_back

    def test_stability_evidence_is_blended(self):
        calibration = PersonalizedCalibrationStore()
        calibration.initialize_for_user("tester")
        records = {"sec-1": StabilityRecord(section_id="sec-1", stability=20.0, difficulty=0.3, review_count=5)}
        calculator = AdaptiveTauCalculator(calibration, MemoryStabilityTracker(records))

        breakdown = calculator.calculate_with_breakdown(Difficulty.AVERAGE, 0, TauContext(section_id="sec-1"))

        stability_tau = 20.0 * 0.7 * (1.0 + 0.3 * 0.3)
        assert breakdown.sources == ["stability"]
        assert breakdown.tau == pytest.approx(0.9 * stability_tau + 0.1 * 9.0)

    def test_poor_recent_scores_shorten_tau(self, calculator):
        context = TauContext(section_id="sec-1", recent_scores=[2.5, 2.5, 2.5])
        tau = calculator.calculate_integrated_tau(Difficulty.AVERAGE, 0, context)
        assert tau < 9.0

    def test_strong_recent_scores_lengthen_tau(self, calculator):
        context = TauContext(section_id="sec-1", recent_scores=[9.5, 9.5, 9.5])
        tau = calculator.calculate_integrated_tau(Difficulty.AVERAGE, 0, context)
        assert tau > 9.0

    def test_adaptive_systems_disabled(self):
        calculator = AdaptiveTauCalculator(None, None)
        breakdown = calculator.calculate_with_breakdown(
            Difficulty.AVERAGE, 0, TauContext(use_adaptive_systems=False)
        )
        assert breakdown.tau == pytest.approx(9.0)
        assert not breakdown.fell_back


class TestFallback:
    """A missing or failing subsystem degrades to the baseline."""

    def test_missing_calibration(self, log_messages):
        calculator = AdaptiveTauCalculator(None, MemoryStabilityTracker())
        breakdown = calculator.calculate_with_breakdown(Difficulty.AVERAGE, 5)

        assert breakdown.fell_back
        assert breakdown.tau == pytest.approx(calculator.baseline_tau(Difficulty.AVERAGE, 5))
        assert any(level == "WARNING" for level, _ in log_messages)

    def test_missing_stability(self):
        calibration = PersonalizedCalibrationStore()
        calibration.initialize_for_user("tester")
        breakdown = AdaptiveTauCalculator(calibration, None).calculate_with_breakdown(Difficulty.EASY, 0)
        assert breakdown.fell_back
        assert breakdown.tau == pytest.approx(15.3)

    def test_uninitialized_calibration_is_neutral(self):
        calculator = AdaptiveTauCalculator(PersonalizedCalibrationStore(), MemoryStabilityTracker())
        assert calculator.calculate_integrated_tau(Difficulty.AVERAGE, 0) == pytest.approx(9.0)

    def test_failing_calibration(self):
        calculator = AdaptiveTauCalculator(BrokenCalibration(), MemoryStabilityTracker())
        breakdown = calculator.calculate_with_breakdown(Difficulty.DIFFICULT, 0)
        assert breakdown.fell_back
        assert breakdown.tau == pytest.approx(5.4)


class TestCalibrationPhase:
    @pytest.mark.parametrize("scores,expected", [
        ([2.0, 2.0, 2.0], True),
        ([9.5, 9.5], True),
        ([6.0, 7.5], False),
        ([9.5], False),
        ([], False),
    ])
    def test_requires_immediate_adjustment(self, calculator, scores, expected):
        assert calculator.requires_immediate_adjustment(scores) is expected

    def test_rapid_calibration_phase(self):
        assert AdaptiveTauCalculator.is_rapid_calibration_phase(3, 10)
        assert AdaptiveTauCalculator.is_rapid_calibration_phase(20, 2)
        assert not AdaptiveTauCalculator.is_rapid_calibration_phase(20, 10)
