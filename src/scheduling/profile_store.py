"""
SQLite Profile Store for practice scheduling.

Each user profile is one JSON document (ProfileState), read and written
as a unit on every session completion or lifecycle transition.

Capacity handling:
- A save that would exceed the configured document capacity, or that
  hits a full disk, raises CapacityExceededError and writes nothing
- save_with_recovery() runs one emergency cleanup and retries once,
  then raises PersistenceCapacityExceededError for the user to act on

Database location: ~/.practice/profiles.db
"""

from __future__ import annotations

import sqlite3
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any

from loguru import logger

from src.scheduling.errors import CapacityExceededError, PersistenceCapacityExceededError
from src.scheduling.models import ExperienceLevel, ProfileState, SessionStatus

DEFAULT_CAPACITY_BYTES = 5_000_000
WARNING_RATIO = 0.85
CRITICAL_RATIO = 0.95

DEFAULT_CLEANUP = {
    "deleted_outcome_days": 7,
    "completed_session_days": 30,
    "history_days": 90,
}


class ProfileStore:
    """
    SQLite-backed persistence for user profiles.

    Handles:
    - Whole-document load/save keyed by user id
    - Capacity accounting with warning/critical thresholds
    - Emergency cleanup of history when a save does not fit
    """

    DEFAULT_DB_PATH = Path.home() / ".practice" / "profiles.db"

    def __init__(
        self,
        db_path: Path | None = None,
        capacity_bytes: int = DEFAULT_CAPACITY_BYTES,
        warning_ratio: float = WARNING_RATIO,
        critical_ratio: float = CRITICAL_RATIO,
        cleanup: dict[str, int] | None = None,
    ):
        """
        Initialize the profile store.

        Args:
            db_path: Custom database path (defaults to ~/.practice/profiles.db)
            capacity_bytes: Maximum serialized size of one profile
            warning_ratio: Usage ratio that logs a warning
            critical_ratio: Usage ratio that logs a critical warning
            cleanup: Age limits (days) used by emergency_cleanup
        """
        self.db_path = Path(db_path) if db_path else self.DEFAULT_DB_PATH
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.capacity_bytes = capacity_bytes
        self.warning_ratio = warning_ratio
        self.critical_ratio = critical_ratio
        self.cleanup = {**DEFAULT_CLEANUP, **(cleanup or {})}

        self._conn: sqlite3.Connection | None = None
        self._init_schema()

        logger.info(f"ProfileStore initialized at {self.db_path}")

    @classmethod
    def from_settings(cls, settings: Any, db_path: str | Path | None = None) -> ProfileStore:
        """Build a store from Settings; db_path overrides the configured path."""
        config = settings.get_storage_config()
        return cls(
            db_path=db_path or config["db_path"],
            capacity_bytes=config["capacity_bytes"],
            warning_ratio=config["warning_ratio"],
            critical_ratio=config["critical_ratio"],
            cleanup=config["cleanup"],
        )

    @property
    def conn(self) -> sqlite3.Connection:
        """Get or create database connection."""
        if self._conn is None:
            self._conn = sqlite3.connect(str(self.db_path))
            self._conn.row_factory = sqlite3.Row
        return self._conn

    def _init_schema(self) -> None:
        """Initialize database schema."""
        cursor = self.conn.cursor()
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS profiles (
                user_id TEXT PRIMARY KEY,
                document TEXT NOT NULL,
                size_bytes INTEGER NOT NULL,
                updated_at TIMESTAMP NOT NULL
            )
        """)
        self.conn.commit()

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    # =========================================================================
    # Load / Save
    # =========================================================================

    def load_profile(
        self,
        user_id: str,
        experience: ExperienceLevel = ExperienceLevel.INTERMEDIATE,
    ) -> ProfileState:
        """Load a profile, or return a fresh one if the user has none yet."""
        row = self.conn.execute(
            "SELECT document FROM profiles WHERE user_id = ?", (user_id,)
        ).fetchone()
        if row is None:
            logger.debug(f"No stored profile for {user_id}, starting empty")
            return ProfileState(user_id=user_id, experience=experience)
        return ProfileState.model_validate_json(row["document"])

    def save_profile(self, user_id: str, profile: ProfileState) -> None:
        """
        Write the whole profile document.

        Raises:
            CapacityExceededError: document too large or database full;
                the previously stored document is left untouched
        """
        profile.updated_at = datetime.now()
        document = profile.model_dump_json()
        size = len(document.encode("utf-8"))
        info = self._usage(size)

        if size > self.capacity_bytes:
            logger.error(f"Profile {user_id} needs {size} bytes, capacity is {self.capacity_bytes}")
            raise CapacityExceededError(f"Profile {user_id} exceeds storage capacity", info)

        if info["ratio"] >= self.critical_ratio:
            logger.warning(f"CRITICAL: profile {user_id} uses {info['ratio']:.0%} of storage capacity")
        elif info["ratio"] >= self.warning_ratio:
            logger.warning(f"Profile {user_id} uses {info['ratio']:.0%} of storage capacity")

        try:
            with self.conn:
                self.conn.execute(
                    """
                    INSERT INTO profiles (user_id, document, size_bytes, updated_at)
                    VALUES (?, ?, ?, ?)
                    ON CONFLICT(user_id) DO UPDATE SET
                        document = excluded.document,
                        size_bytes = excluded.size_bytes,
                        updated_at = excluded.updated_at
                    """,
                    (user_id, document, size, profile.updated_at.isoformat()),
                )
        except sqlite3.OperationalError as e:
            if "full" in str(e).lower():
                raise CapacityExceededError(f"Database full while saving {user_id}: {e}", info) from e
            raise

        logger.debug(f"Saved profile {user_id} ({size} bytes)")

    def save_with_recovery(
        self,
        user_id: str,
        profile: ProfileState,
        now: datetime | None = None,
    ) -> ProfileState:
        """
        Save, running one emergency cleanup and retry on capacity errors.

        The in-memory profile adopts the cleaned history only when the
        retry succeeds.

        Raises:
            PersistenceCapacityExceededError: still full after cleanup
        """
        try:
            self.save_profile(user_id, profile)
            return profile
        except CapacityExceededError as e:
            logger.warning(f"Save of {user_id} hit capacity ({e}), running emergency cleanup")

        cleaned, removed = self.emergency_cleanup(profile, now)
        try:
            self.save_profile(user_id, cleaned)
        except CapacityExceededError as retry_error:
            logger.error(f"Save of {user_id} failed after cleanup ({removed}): {retry_error}")
            raise PersistenceCapacityExceededError(retry_error.storage_info) from retry_error

        # Keep list identity so collaborators holding these lists stay valid
        profile.outcomes[:] = cleaned.outcomes
        profile.scheduled_sessions[:] = cleaned.scheduled_sessions
        profile.updated_at = cleaned.updated_at
        logger.info(f"Saved {user_id} after emergency cleanup: {removed}")
        return profile

    def emergency_cleanup(
        self,
        profile: ProfileState,
        now: datetime | None = None,
    ) -> tuple[ProfileState, dict[str, int]]:
        """
        Copy of the profile with old history removed.

        Stability records and calibration aggregates are always kept.

        Returns:
            (cleaned copy, counts of removed items per category)
        """
        now = now or datetime.now()
        deleted_cutoff = now - timedelta(days=self.cleanup["deleted_outcome_days"])
        history_cutoff = now - timedelta(days=self.cleanup["history_days"])
        session_cutoff = (now - timedelta(days=self.cleanup["completed_session_days"])).date()

        cleaned = profile.model_copy(deep=True)

        kept_outcomes = [
            o for o in cleaned.outcomes
            if not (o.deleted and o.practiced_at < deleted_cutoff) and o.practiced_at >= history_cutoff
        ]
        kept_sessions = [
            s for s in cleaned.scheduled_sessions
            if not (s.status == SessionStatus.COMPLETED and s.scheduled_date < session_cutoff)
        ]

        removed = {
            "outcomes": len(cleaned.outcomes) - len(kept_outcomes),
            "scheduled_sessions": len(cleaned.scheduled_sessions) - len(kept_sessions),
        }
        cleaned.outcomes = kept_outcomes
        cleaned.scheduled_sessions = kept_sessions
        return cleaned, removed

    # =========================================================================
    # Queries
    # =========================================================================

    def _usage(self, size: int) -> dict[str, Any]:
        return {
            "used_bytes": size,
            "capacity_bytes": self.capacity_bytes,
            "ratio": size / self.capacity_bytes if self.capacity_bytes else 1.0,
        }

    def storage_info(self, user_id: str) -> dict[str, Any]:
        """Used bytes, capacity and usage ratio of a stored profile."""
        row = self.conn.execute(
            "SELECT size_bytes FROM profiles WHERE user_id = ?", (user_id,)
        ).fetchone()
        return self._usage(row["size_bytes"] if row else 0)

    def list_profiles(self) -> list[str]:
        rows = self.conn.execute("SELECT user_id FROM profiles ORDER BY user_id").fetchall()
        return [row["user_id"] for row in rows]

    def delete_profile(self, user_id: str) -> bool:
        """Explicit data wipe of one profile."""
        with self.conn:
            cursor = self.conn.execute("DELETE FROM profiles WHERE user_id = ?", (user_id,))
        return cursor.rowcount > 0
