"""Remote store abstraction layer for MindGains.

Provides a pluggable backend system (PostgreSQL for the hosted store, SQLite
for local development) behind one interface. A single adapter instance is
created at start-up and handed to every component that needs remote access.
"""

import logging
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import date
from typing import Generic, TypeVar

from core.models import (
    CounterRow,
    LegacyUserRow,
    PreGeneratedNote,
    QuizAttemptEvent,
    QuizOutcome,
)

log = logging.getLogger("mindgains.store_adapter")

T = TypeVar("T")


@dataclass(frozen=True)
class Found(Generic[T]):
    """Lookup matched a row."""

    row: T


@dataclass(frozen=True)
class NotFound:
    """Lookup ran fine but matched nothing."""


@dataclass(frozen=True)
class Failed:
    """Lookup could not be answered."""

    cause: Exception


Lookup = Found[T] | NotFound | Failed


class StoreAdapter(ABC):
    """Abstract base class for remote store adapters.

    Reads return a Lookup so callers handle "absent" and "failed"
    separately. Writes raise QueryError on failure.
    """

    @abstractmethod
    def initialize(self) -> None:
        """Create the schema (or run migrations) and open connections."""
        pass

    @abstractmethod
    @contextmanager
    def get_connection(self):
        """Get a database connection.

        Yields:
            Database connection object (type varies by backend)
        """
        pass

    @abstractmethod
    def close(self) -> None:
        """Close all database connections and cleanup resources."""
        pass

    # ========== Stats Reads ==========

    @abstractmethod
    def fetch_counter_row(self, user_id: str) -> "Lookup[CounterRow]":
        """Get the user_stats row for a user."""
        pass

    @abstractmethod
    def fetch_legacy_row(self, user_id: str) -> "Lookup[LegacyUserRow]":
        """Get the users row (xp, level, streak) for a user."""
        pass

    @abstractmethod
    def fetch_best_score(self, user_id: str) -> "Lookup[int]":
        """Get the highest score among the user's quiz attempts."""
        pass

    # ========== Stats Writes ==========

    @abstractmethod
    def add_legacy_xp(self, user_id: str, xp_earned: int) -> "Lookup[LegacyUserRow]":
        """Atomically add XP to the users row and recompute its level.

        Args:
            user_id: User UUID
            xp_earned: XP to add (non-negative)

        Returns:
            Found with the updated row, NotFound if the user row is missing,
            Failed if the statement failed
        """
        pass

    @abstractmethod
    def apply_quiz_to_counter_row(
        self,
        user_id: str,
        outcome: QuizOutcome,
        seed_xp: int,
        activity_date: date,
    ) -> CounterRow:
        """Insert or increment the user_stats row in one statement.

        When no row exists one is inserted with this quiz's numbers and
        total_xp = seed_xp. Otherwise the running totals are incremented
        server-side and average_accuracy is recomputed from the new totals.

        Args:
            user_id: User UUID
            outcome: Scored quiz numbers
            seed_xp: total_xp for a freshly inserted row
            activity_date: Day the quiz was completed (drives the streak)

        Returns:
            The row as stored after the write

        Raises:
            QueryError: If the write fails
        """
        pass

    @abstractmethod
    def insert_quiz_attempt(self, event: QuizAttemptEvent) -> None:
        """Append a quiz attempt to the event log.

        Raises:
            QueryError: If the insert fails
        """
        pass

    @abstractmethod
    def ensure_user(self, user_id: str, email: str | None, username: str | None) -> None:
        """Create the users row if it does not exist yet."""
        pass

    # ========== Study Notes ==========

    @abstractmethod
    def fetch_published_note(self, topic: str) -> "Lookup[PreGeneratedNote]":
        """Get a published pre-generated note by exact topic."""
        pass

    @abstractmethod
    def fetch_note_by_topic(self, topic: str) -> "Lookup[PreGeneratedNote]":
        """Get a note by exact topic, whatever its status."""
        pass

    @abstractmethod
    def increment_note_view_count(self, note_id: str) -> None:
        """Add one to a note's view count."""
        pass

    @abstractmethod
    def search_notes(self, term: str, limit: int = 10) -> list[PreGeneratedNote]:
        """Search published notes by topic substring or exact tag.

        Returns:
            Notes ordered by priority (highest first)
        """
        pass

    @abstractmethod
    def get_popular_notes(self, limit: int = 5) -> list[PreGeneratedNote]:
        """Get the most viewed published notes."""
        pass

    @abstractmethod
    def upsert_note(self, note: PreGeneratedNote) -> str:
        """Insert or replace a note keyed by topic.

        Returns:
            Note id
        """
        pass


class AdapterError(Exception):
    """Base exception for store adapter errors."""

    pass


class ConnectionError(AdapterError):
    """Exception raised when the store connection fails."""

    pass


class QueryError(AdapterError):
    """Exception raised when a store query fails."""

    pass
