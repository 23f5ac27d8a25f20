"""Shared test fixtures for MindGains tests."""

import tempfile
from datetime import date
from pathlib import Path
from unittest.mock import patch

import pytest

from core.models import QuizOutcome, QuizQuestion
from core.sqlite_adapter import SQLiteAdapter
from utils.config import Config

USER_ID = "6f1c2a3e-0000-4000-8000-000000000001"


class InMemoryKeyring:
    """Simple in-memory keyring for tests to avoid DBus issues."""

    def __init__(self):
        self._passwords: dict[tuple[str, str], str] = {}

    def get_password(self, service: str, username: str) -> str | None:
        return self._passwords.get((service, username))

    def set_password(self, service: str, username: str, password: str) -> None:
        self._passwords[(service, username)] = password

    def delete_password(self, service: str, username: str) -> None:
        self._passwords.pop((service, username), None)


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def temp_db_path():
    """Create a temporary database path and clean up afterwards."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir) / "test.db"


@pytest.fixture
def mock_keyring():
    """Use in-memory keyring so tests never touch the system keyring."""
    mock = InMemoryKeyring()
    with patch("core.user_manager.keyring", mock):
        yield mock


@pytest.fixture
def config(temp_db_path):
    return Config(temp_db_path.with_name("settings.db"))


@pytest.fixture
def adapter(temp_db_path):
    """Initialized SQLite adapter on a fresh database."""
    adapter = SQLiteAdapter(temp_db_path)
    adapter.initialize()
    yield adapter
    adapter.close()


@pytest.fixture
def user_id(adapter):
    """A user that exists in the users table with zero XP."""
    adapter.ensure_user(USER_ID, "asha@example.com", "asha")
    return USER_ID


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def today():
    return date(2026, 3, 14)


def make_outcome(correct: int, total: int, xp_per_correct: int = 20, minutes: int = 0):
    """Outcome for a quiz with `correct` of `total` right."""
    return QuizOutcome(
        score=(200 * correct + total) // (2 * total),
        xp_earned=correct * xp_per_correct,
        correct_answers=correct,
        total_questions=total,
        study_minutes=minutes,
    )


def make_question(
    qid: str,
    correct: int = 0,
    category: str = "History",
    difficulty: str = "intermediate",
    points: int | None = None,
) -> QuizQuestion:
    return QuizQuestion(
        id=qid,
        question=f"Question {qid}?",
        options=["A", "B", "C", "D"],
        correct_answer=correct,
        explanation=f"Because {qid}.",
        category=category,
        difficulty=difficulty,
        points=points,
    )
