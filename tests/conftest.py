"""
Pytest Configuration and Fixtures.

This file configures pytest and provides shared fixtures for all tests.
"""
import pytest
import sys
from datetime import date, datetime
from pathlib import Path

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests (SQLite profile store)")
    config.addinivalue_line("markers", "smoke: Smoke tests for CLI commands")
    config.addinivalue_line("markers", "slow: Slow tests")


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their location."""
    for item in items:
        # Mark based on test file location
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
        elif "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)
        elif "smoke" in str(item.fspath):
            item.add_marker(pytest.mark.smoke)


@pytest.fixture(scope="session")
def project_root():
    """Return the project root directory."""
    return PROJECT_ROOT


@pytest.fixture
def today():
    """Fixed scheduling date."""
    return date(2024, 3, 1)


@pytest.fixture
def log_messages():
    """Capture loguru output as (level, message) tuples."""
    from loguru import logger

    captured = []
    handler_id = logger.add(
        lambda message: captured.append((message.record["level"].name, message.record["message"])),
        level="DEBUG",
    )
    yield captured
    logger.remove(handler_id)


@pytest.fixture
def make_outcome():
    """Factory for session outcomes."""
    from src.scheduling.models import Performance, SessionOutcome

    def _make(section_id, performance=Performance.GOOD, when=None, **kwargs):
        return SessionOutcome(
            section_id=section_id,
            practiced_at=when or datetime(2024, 3, 1, 18, 0),
            performance=performance,
            **kwargs,
        )

    return _make


@pytest.fixture
def profile_with_section():
    """Profile holding one piece with one Average section."""
    from src.scheduling.models import Piece, ProfileState, Section

    section = Section(id="sec-1", name="Bars 1-8", piece_id="piece-1")
    piece = Piece(id="piece-1", title="Clair de Lune", sections=[section])
    return ProfileState(user_id="tester", pieces=[piece])


@pytest.fixture
def settings(tmp_path):
    """Settings pointing at a temporary database."""
    from config import Settings

    return Settings(profile_db_path=tmp_path / "profiles.db", _env_file=None)
