"""
Configuration settings for practice-scheduler.

Uses Pydantic Settings for environment variable management with .env file support.
"""
from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Any, Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ========================================
    # Storage
    # ========================================
    profile_db_path: Path = Field(
        default=Path.home() / ".practice" / "profiles.db",
        description="SQLite file holding one JSON document per user profile",
    )
    profile_capacity_bytes: int = Field(
        default=5_000_000,
        gt=0,
        description="Maximum serialized size of a single profile document",
    )
    storage_warning_ratio: float = Field(
        default=0.85,
        description="Usage ratio that triggers a storage warning",
    )
    storage_critical_ratio: float = Field(
        default=0.95,
        description="Usage ratio that triggers a critical storage warning",
    )

    # ─── Emergency cleanup ages ─────────────────────────────────────────────────
    cleanup_deleted_outcome_days: int = Field(
        default=7,
        description="Soft-deleted outcomes older than this are purged on cleanup",
    )
    cleanup_completed_session_days: int = Field(
        default=30,
        description="Completed scheduled sessions older than this are purged",
    )
    cleanup_history_days: int = Field(
        default=90,
        description="Outcome history older than this is purged (aggregates kept)",
    )

    # ========================================
    # Profile Defaults
    # ========================================
    default_user_id: str = Field(
        default="default",
        description="Profile used when no --user is given",
    )
    default_experience: Literal["beginner", "intermediate", "advanced", "professional"] = Field(
        default="intermediate",
        description="Experience level for the demographic tau baseline of new profiles",
    )

    # ========================================
    # Scheduling
    # ========================================
    maintenance_min_interval_days: int = Field(
        default=7,
        description="Interval floor enforced when a section enters Maintenance",
    )
    default_target_repetitions: int = Field(
        default=6,
        gt=0,
        description="Repetition target a stage resets to after promotion",
    )
    foundation_stage_limit: int = Field(
        default=3,
        description="Stages below this always schedule a next-day review",
    )
    reactivation_session_minutes: int = Field(
        default=5,
        description="Estimated duration of the session planned on reactivation",
    )

    # ========================================
    # Calibration Tuning
    # ========================================
    calibration_learning_rate: float = Field(
        default=0.1,
        description="Steady-state update rate of personal adjustment factors",
    )
    rapid_learning_rate: float = Field(
        default=0.35,
        description="Update rate during the rapid calibration phase",
    )
    rapid_calibration_sessions: int = Field(
        default=5,
        description="Sessions per difficulty class that use the rapid rate",
    )
    min_sessions_for_calibration: int = Field(
        default=10,
        description="Total sessions before a profile counts as calibrated",
    )

    # ========================================
    # Memory Stability Tuning
    # ========================================
    initial_stability_days: float = Field(
        default=1.8,
        description="Stability scale for a section's first review (days)",
    )
    default_memory_difficulty: float = Field(
        default=0.3,
        description="Initial memory difficulty for new sections (0-1)",
    )
    stability_growth_rate: float = Field(
        default=1.3,
        description="Growth coefficient applied on successful reviews",
    )

    # ========================================
    # Logging
    # ========================================
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="WARNING",
        description="Logging verbosity level",
    )
    log_file: str | None = Field(
        default=None,
        description="Log file path (None for stderr only)",
    )

    def get_scheduling_config(self) -> dict[str, Any]:
        """Engine tuning handed to the per-profile components."""
        return {
            "calibration": {
                "learning_rate": self.calibration_learning_rate,
                "rapid_learning_rate": self.rapid_learning_rate,
                "rapid_sessions": self.rapid_calibration_sessions,
                "min_sessions_for_calibration": self.min_sessions_for_calibration,
            },
            "stability": {
                "initial_stability": self.initial_stability_days,
                "default_difficulty": self.default_memory_difficulty,
                "growth_rate": self.stability_growth_rate,
            },
            "lifecycle": {
                "maintenance_min_days": self.maintenance_min_interval_days,
                "reactivation_minutes": self.reactivation_session_minutes,
            },
            "scheduler": {
                "target_repetitions": self.default_target_repetitions,
                "foundation_stage_limit": self.foundation_stage_limit,
            },
        }

    def get_storage_config(self) -> dict[str, Any]:
        """Profile store capacity and cleanup policy."""
        return {
            "db_path": self.profile_db_path,
            "capacity_bytes": self.profile_capacity_bytes,
            "warning_ratio": self.storage_warning_ratio,
            "critical_ratio": self.storage_critical_ratio,
            "cleanup": {
                "deleted_outcome_days": self.cleanup_deleted_outcome_days,
                "completed_session_days": self.cleanup_completed_session_days,
                "history_days": self.cleanup_history_days,
            },
        }


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
