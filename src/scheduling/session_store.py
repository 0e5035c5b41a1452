"""
Scheduled-session store and piece resolution for one profile.

Both collaborators work directly on the lists inside ProfileState, so
anything they change is written when the profile is saved.
"""

from __future__ import annotations

from datetime import date
from typing import Protocol

from loguru import logger

from src.scheduling.errors import OrphanedReferenceError
from src.scheduling.models import Piece, ScheduledSession, SessionStatus


class ScheduledSessionStore(Protocol):
    """What the lifecycle controller and scheduler need from session storage."""

    def get_all_pending(self, section_id: str) -> list[ScheduledSession]: ...

    def add(self, record: ScheduledSession) -> None: ...

    def remove(self, session_id: str) -> bool: ...


class ProfileScheduledSessions:
    """ScheduledSessionStore backed by a profile's scheduled_sessions list."""

    def __init__(self, sessions: list[ScheduledSession]):
        self._sessions = sessions

    def get_all_pending(self, section_id: str) -> list[ScheduledSession]:
        return [s for s in self._sessions if s.section_id == section_id and s.is_pending]

    def add(self, record: ScheduledSession) -> None:
        self._sessions.append(record)

    def remove(self, session_id: str) -> bool:
        for index, session in enumerate(self._sessions):
            if session.id == session_id:
                del self._sessions[index]
                return True
        return False

    def get(self, session_id: str) -> ScheduledSession | None:
        for session in self._sessions:
            if session.id == session_id:
                return session
        return None

    def for_section(self, section_id: str) -> list[ScheduledSession]:
        return [s for s in self._sessions if s.section_id == section_id]

    def due_on_or_before(self, day: date) -> list[ScheduledSession]:
        """Pending sessions up to and including a day, earliest first."""
        due = [s for s in self._sessions if s.is_pending and s.scheduled_date <= day]
        return sorted(due, key=lambda s: s.scheduled_date)

    def mark_completed(self, session_id: str) -> bool:
        session = self.get(session_id)
        if session is None:
            return False
        session.status = SessionStatus.COMPLETED
        return True


def remove_pending(store: ScheduledSessionStore, section_id: str) -> int:
    """Delete every pending session of a section; returns how many were removed."""
    removed = 0
    for session in store.get_all_pending(section_id):
        if store.remove(session.id):
            removed += 1
    if removed:
        logger.debug(f"Removed {removed} pending session(s) for section {section_id}")
    return removed


class PieceIndex:
    """Resolves the piece that owns a section by containment."""

    def __init__(self, pieces: list[Piece]):
        self._pieces = pieces

    def find_owning_piece(self, section_id: str) -> Piece | None:
        for piece in self._pieces:
            if piece.find_section(section_id) is not None:
                return piece
        return None

    def require_owning_piece(self, section_id: str) -> Piece:
        piece = self.find_owning_piece(section_id)
        if piece is None:
            raise OrphanedReferenceError(section_id)
        return piece
