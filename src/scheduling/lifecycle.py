"""
Section Lifecycle Controller - Active / Maintenance / Inactive.

Transitions are user triggered. Each one:
1. Records the new state on the section (always)
2. Rewrites the section's schedule (removes pending sessions, plans the
   next one where the new state calls for it)
3. Persists the owning piece

Side effects never raise past this controller. Failures come back as
SideEffectResult entries on the TransitionResult and are logged, so the
state change itself is never lost.

While bulk-load suppression is active (imports), transitions only log.
"""

from __future__ import annotations

from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import date, timedelta

from loguru import logger

from src.scheduling.adaptive_tau import AdaptiveTauCalculator, TauContext
from src.scheduling.forgetting_curve import ForgettingCurveModel, retention_target_for
from src.scheduling.models import (
    ExperienceLevel,
    LifecycleState,
    Piece,
    ScheduledSession,
    Section,
)
from src.scheduling.session_store import ScheduledSessionStore, remove_pending

MAINTENANCE_MIN_INTERVAL_DAYS = 7
REACTIVATION_SESSION_MINUTES = 5


@dataclass
class SideEffectResult:
    """Outcome of one side effect of a transition."""

    ok: bool
    action: str
    reason: str = ""


@dataclass
class TransitionResult:
    section_id: str
    old_state: LifecycleState
    new_state: LifecycleState
    suppressed: bool = False
    effects: list[SideEffectResult] = field(default_factory=list)
    tau: float | None = None
    raw_interval: float | None = None
    interval: int | None = None
    scheduled_session: ScheduledSession | None = None
    persistence_error: Exception | None = None

    @property
    def ok(self) -> bool:
        return all(effect.ok for effect in self.effects)

    @property
    def persisted(self) -> bool:
        return any(effect.action == "persist" and effect.ok for effect in self.effects)


class SectionLifecycleController:
    """
    Applies lifecycle transitions and their scheduling side effects.

    Collaborators are injected so the controller never reaches into a UI
    shell or global state:
    - sessions: scheduled-session store
    - find_owning_piece: section id -> Piece or None
    - persist_piece: writes the owning piece (and its profile)
    - recent_scores: section id -> recent performance scores, oldest first
    """

    def __init__(
        self,
        sessions: ScheduledSessionStore,
        find_owning_piece: Callable[[str], Piece | None],
        persist_piece: Callable[[Piece], None],
        tau_calculator: AdaptiveTauCalculator,
        curve: ForgettingCurveModel | None = None,
        experience: ExperienceLevel = ExperienceLevel.INTERMEDIATE,
        recent_scores: Callable[[str], list[float]] | None = None,
        maintenance_min_days: int = MAINTENANCE_MIN_INTERVAL_DAYS,
        reactivation_minutes: int = REACTIVATION_SESSION_MINUTES,
        clock: Callable[[], date] = date.today,
    ):
        self.sessions = sessions
        self._find_owning_piece = find_owning_piece
        self._persist_piece = persist_piece
        self.tau_calculator = tau_calculator
        self.curve = curve or ForgettingCurveModel()
        self.experience = experience
        self._recent_scores = recent_scores
        self.maintenance_min_days = maintenance_min_days
        self.reactivation_minutes = reactivation_minutes
        self._clock = clock
        self._suppress_depth = 0

    @property
    def is_suppressed(self) -> bool:
        return self._suppress_depth > 0

    @contextmanager
    def suppressed(self) -> Iterator[None]:
        """Bulk-load mode: transitions are logged but have no side effects."""
        self._suppress_depth += 1
        try:
            yield
        finally:
            self._suppress_depth -= 1

    def transition(
        self,
        section: Section,
        new_state: LifecycleState | int,
        today: date | None = None,
    ) -> TransitionResult:
        """
        Move a section to a new lifecycle state.

        Args:
            section: Section to transition (mutated in place)
            new_state: Target lifecycle state
            today: Reference date (defaults to the injected clock)

        Returns:
            TransitionResult describing every side effect
        """
        new_state = LifecycleState(new_state)
        old_state = section.lifecycle_state
        section.lifecycle_state = new_state
        result = TransitionResult(section_id=section.id, old_state=old_state, new_state=new_state)

        if self.is_suppressed:
            logger.debug(
                f"Suppressed lifecycle transition for section {section.id}: "
                f"{old_state.name} -> {new_state.name}"
            )
            result.suppressed = True
            return result

        today = today or self._clock()
        try:
            piece = self._resolve_piece(section)
        except Exception as e:
            logger.error(
                f"Piece lookup failed for section {section.id} "
                f"({old_state.name} -> {new_state.name}), treating it as unresolved: {e}"
            )
            piece = None

        try:
            if new_state == LifecycleState.ACTIVE:
                effect = self._activate(section, old_state, piece, today, result)
            elif new_state == LifecycleState.MAINTENANCE:
                effect = self._enter_maintenance(section, piece, today, result)
            else:
                effect = self._deactivate(section)
        except Exception as e:
            logger.error(
                f"Lifecycle side effects failed for section {section.id} "
                f"({old_state.name} -> {new_state.name}): {e}"
            )
            effect = SideEffectResult(False, "schedule", str(e))

        result.effects.append(effect)
        if not effect.ok:
            logger.warning(
                f"Section {section.id} is now {new_state.name} but its schedule was not updated: {effect.reason}"
            )

        result.effects.append(self._persist(section, piece, result))
        return result

    # =========================================================================
    # Transition side effects
    # =========================================================================

    def _activate(
        self,
        section: Section,
        old_state: LifecycleState,
        piece: Piece | None,
        today: date,
        result: TransitionResult,
    ) -> SideEffectResult:
        if old_state == LifecycleState.ACTIVE:
            logger.info(f"Section {section.id} is already Active, schedule unchanged")
            return SideEffectResult(True, "activate", "already active")

        removed = remove_pending(self.sessions, section.id)

        # Current difficulty / repetitions / stage, not the Maintenance interval
        context = TauContext(
            section_id=section.id,
            stage=section.practice_schedule_stage,
            experience=self.experience,
            recent_scores=self._recent_scores(section.id) if self._recent_scores else [],
        )
        tau = self.tau_calculator.calculate_integrated_tau(
            section.difficulty, section.completed_repetitions, context
        )
        target = retention_target_for(section.difficulty)
        raw_interval = self.curve.floored_interval_for(tau, target)
        interval = self.curve.reactivation_interval(tau, target)

        section.interval = interval
        section.next_review_date = today + timedelta(days=interval)
        section.is_overdue = False
        result.tau = tau
        result.raw_interval = raw_interval
        result.interval = interval

        logger.info(
            f"Reactivated section {section.id} ({old_state.name} -> ACTIVE): "
            f"tau={tau:.2f}d, raw={raw_interval:.2f}d, interval={interval}d, next={section.next_review_date}"
        )

        if piece is None:
            logger.warning(f"No session planned for reactivated section {section.id}: owning piece not found")
            return SideEffectResult(True, "activate", f"removed {removed} pending, piece unresolved")

        result.scheduled_session = self._plan(section, piece, tau)
        return SideEffectResult(True, "activate", f"removed {removed} pending")

    def _enter_maintenance(
        self,
        section: Section,
        piece: Piece | None,
        today: date,
        result: TransitionResult,
    ) -> SideEffectResult:
        if section.interval < self.maintenance_min_days:
            logger.debug(
                f"Maintenance floor raises interval of {section.id} from {section.interval}d "
                f"to {self.maintenance_min_days}d"
            )
            section.interval = self.maintenance_min_days
        section.next_review_date = today + timedelta(days=section.interval)
        section.is_overdue = False
        result.interval = section.interval

        removed = remove_pending(self.sessions, section.id)
        if piece is None:
            logger.warning(f"No maintenance session planned for {section.id}: owning piece not found")
            return SideEffectResult(True, "maintenance", f"removed {removed} pending, piece unresolved")

        # Maintenance intervals are policy-fixed, so no tau is recorded
        result.scheduled_session = self._plan(section, piece, 0.0)
        return SideEffectResult(True, "maintenance", f"removed {removed} pending")

    def _deactivate(self, section: Section) -> SideEffectResult:
        section.next_review_date = None
        section.is_overdue = False
        removed = remove_pending(self.sessions, section.id)
        logger.info(f"Section {section.id} deactivated, removed {removed} pending session(s)")
        return SideEffectResult(True, "deactivate", f"removed {removed} pending")

    def _plan(self, section: Section, piece: Piece, tau: float) -> ScheduledSession:
        session = ScheduledSession(
            section_id=section.id,
            piece_id=piece.id,
            scheduled_date=section.next_review_date,
            estimated_duration_minutes=self.reactivation_minutes,
            tau_value=tau,
        )
        self.sessions.add(session)
        return session

    # =========================================================================
    # Piece resolution and persistence
    # =========================================================================

    def _resolve_piece(self, section: Section) -> Piece | None:
        piece = self._find_owning_piece(section.id)
        if piece is None:
            if section.piece_id:
                logger.warning(
                    f"Section {section.id} references piece {section.piece_id}, which cannot be found"
                )
            else:
                logger.debug(f"Section {section.id} was never linked to a piece")
            return None

        if not section.piece_id:
            section.piece_id = piece.id
            logger.info(f"Repaired piece link of section {section.id} -> {piece.id}")
        elif section.piece_id != piece.id:
            logger.warning(
                f"Section {section.id} points at piece {section.piece_id} but is owned by {piece.id}"
            )
        return piece

    def _persist(self, section: Section, piece: Piece | None, result: TransitionResult) -> SideEffectResult:
        if piece is None:
            return SideEffectResult(False, "persist", "orphaned section, persistence skipped")
        try:
            self._persist_piece(piece)
        except Exception as e:
            logger.error(f"Failed to persist piece {piece.id} after transition of {section.id}: {e}")
            result.persistence_error = e
            return SideEffectResult(False, "persist", str(e))
        return SideEffectResult(True, "persist")
