"""
Profile Context - wires the scheduling engine for one user profile.

Every adaptive component (calibration, stability, tau) is constructed
here per profile and handed to the scheduler and lifecycle controller.
Nothing is shared between profiles.
"""

from __future__ import annotations

from datetime import date, timedelta

from loguru import logger

from config import Settings, get_settings
from src.scheduling.adaptive_tau import AdaptiveTauCalculator
from src.scheduling.calibration import PersonalizedCalibrationStore
from src.scheduling.errors import InvalidInputError
from src.scheduling.forgetting_curve import ForgettingCurveModel
from src.scheduling.lifecycle import SectionLifecycleController
from src.scheduling.models import (
    Difficulty,
    ExperienceLevel,
    Piece,
    ProfileState,
    ScheduledSession,
    Section,
)
from src.scheduling.performance import PerformanceAdjuster
from src.scheduling.profile_store import ProfileStore
from src.scheduling.scheduler import PracticeScheduler
from src.scheduling.session_store import PieceIndex, ProfileScheduledSessions
from src.scheduling.stability import MemoryStabilityTracker


class ProfileContext:
    """All scheduling collaborators for one loaded profile."""

    def __init__(
        self,
        profile: ProfileState,
        store: ProfileStore | None = None,
        settings: Settings | None = None,
    ):
        self.profile = profile
        self.store = store
        self.settings = settings or get_settings()
        config = self.settings.get_scheduling_config()

        self.calibration = PersonalizedCalibrationStore(profile.calibration, **config["calibration"])
        profile.calibration = self.calibration.initialize_for_user(profile.user_id)
        self.stability = MemoryStabilityTracker(profile.stability, **config["stability"])
        self.tau_calculator = AdaptiveTauCalculator(self.calibration, self.stability)
        self.curve = ForgettingCurveModel()
        self.adjuster = PerformanceAdjuster()
        self.sessions = ProfileScheduledSessions(profile.scheduled_sessions)
        self.pieces = PieceIndex(profile.pieces)

        self.scheduler = PracticeScheduler(
            profile,
            self.sessions,
            self.pieces,
            self.tau_calculator,
            self.stability,
            self.calibration,
            curve=self.curve,
            adjuster=self.adjuster,
            persist=lambda _: self.save(),
            target_repetitions=config["scheduler"]["target_repetitions"],
            foundation_stage_limit=config["scheduler"]["foundation_stage_limit"],
            maintenance_min_days=config["lifecycle"]["maintenance_min_days"],
        )
        self.lifecycle = SectionLifecycleController(
            self.sessions,
            self.pieces.find_owning_piece,
            lambda _: self.save(),
            self.tau_calculator,
            curve=self.curve,
            experience=profile.experience,
            recent_scores=self.scheduler.recent_scores,
            maintenance_min_days=config["lifecycle"]["maintenance_min_days"],
            reactivation_minutes=config["lifecycle"]["reactivation_minutes"],
        )

    @classmethod
    def open(
        cls,
        user_id: str,
        store: ProfileStore,
        settings: Settings | None = None,
    ) -> ProfileContext:
        """Load a profile from the store and build its context."""
        settings = settings or get_settings()
        profile = store.load_profile(user_id, ExperienceLevel(settings.default_experience))
        return cls(profile, store, settings)

    @property
    def user_id(self) -> str:
        return self.profile.user_id

    def save(self) -> None:
        """Persist the whole profile (cleanup-and-retry on capacity errors)."""
        if self.store is None:
            logger.debug(f"No store attached, profile {self.user_id} kept in memory")
            return
        self.store.save_with_recovery(self.user_id, self.profile)

    # =========================================================================
    # Piece / section management
    # =========================================================================

    def add_piece(self, title: str) -> Piece:
        piece = Piece(title=title)
        self.profile.pieces.append(piece)
        self.save()
        logger.info(f"Added piece {piece.id} '{title}'")
        return piece

    def add_section(
        self,
        piece_id: str,
        name: str,
        difficulty: Difficulty | str = Difficulty.AVERAGE,
        today: date | None = None,
    ) -> Section:
        """New Active section, due today, with its first planned session."""
        piece = self.profile.find_piece(piece_id)
        if piece is None:
            raise InvalidInputError(f"Unknown piece: {piece_id}")
        try:
            difficulty = Difficulty(difficulty)
        except ValueError:
            raise InvalidInputError(f"Unknown difficulty class: {difficulty!r}") from None

        today = today or date.today()
        section = Section(
            name=name,
            piece_id=piece.id,
            difficulty=difficulty,
            target_repetitions=self.settings.default_target_repetitions,
            interval=0,
            next_review_date=today,
        )
        piece.sections.append(section)
        self.sessions.add(ScheduledSession(
            section_id=section.id,
            piece_id=piece.id,
            scheduled_date=today,
        ))
        self.save()
        logger.info(f"Added section {section.id} '{name}' to piece {piece.id}")
        return section

    def get_section(self, section_id: str) -> Section:
        section = self.profile.find_section(section_id)
        if section is None:
            raise InvalidInputError(f"Unknown section: {section_id}")
        return section

    def delete_piece(self, piece_id: str) -> bool:
        """Remove a piece together with its sections and their schedules."""
        piece = self.profile.find_piece(piece_id)
        if piece is None:
            return False
        section_ids = {section.id for section in piece.sections}
        self.profile.pieces.remove(piece)
        self.profile.scheduled_sessions[:] = [
            s for s in self.profile.scheduled_sessions if s.section_id not in section_ids
        ]
        for section_id in section_ids:
            self.stability.forget(section_id)
        self.save()
        logger.info(f"Deleted piece {piece_id} with {len(section_ids)} section(s)")
        return True

    def upcoming(self, days: int = 7, today: date | None = None) -> list[ScheduledSession]:
        """Pending sessions within the next `days` days, earliest first."""
        today = today or date.today()
        horizon = today + timedelta(days=days)
        pending = [s for s in self.profile.scheduled_sessions if s.is_pending and s.scheduled_date <= horizon]
        return sorted(pending, key=lambda s: s.scheduled_date)
