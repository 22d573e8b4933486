"""
Pytest fixtures for chatkeep tests.
"""

import os
import tempfile
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest

from chatkeep.core.session_store import SessionStore


@pytest.fixture(autouse=True)
def _clean_env():
    """Keep CHATKEEP_* overrides from leaking between tests."""
    original_env = os.environ.copy()
    for name in list(os.environ):
        if name.startswith("CHATKEEP_"):
            del os.environ[name]
    yield
    os.environ.clear()
    os.environ.update(original_env)


@pytest.fixture
def temp_dir():
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def sessions_dir(temp_dir):
    """Create a temporary sessions directory."""
    sessions = temp_dir / ".chatkeep" / "sessions"
    sessions.mkdir(parents=True)
    return sessions


class FakeClock:
    """Controllable UTC clock for deterministic timestamps."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock():
    """A fake clock starting at a fixed instant."""
    return FakeClock(datetime(2026, 3, 1, 12, 0, tzinfo=UTC))


@pytest.fixture
def store(sessions_dir):
    """A session store using the real clock."""
    return SessionStore(base_dir=sessions_dir)


@pytest.fixture
def clocked_store(sessions_dir, clock):
    """A session store driven by the fake clock."""
    return SessionStore(base_dir=sessions_dir, clock=clock)
