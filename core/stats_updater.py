"""Commits a finished quiz to the store and refreshes the stats cache.

Counter writes are soft: failures are logged, nothing is retried or rolled
back, and the remaining steps still run. The quiz-attempt insert is a hard
write: its failure is raised so the UI can tell the user to resubmit.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from enum import Enum
from typing import Callable

from core.models import QuizAttemptEvent, QuizOutcome, QuizResult, UserStats
from core.stats_cache import StatsCache
from core.store_adapter import AdapterError, Failed, Found, NotFound, StoreAdapter

log = logging.getLogger("mindgains.stats_updater")


class WriteDurability(Enum):
    """How much a write's failure matters."""

    SOFT = "soft"  # gamification counters, best effort
    HARD = "hard"  # must succeed or the user is told


@dataclass
class WriteResult:
    """Outcome of one write step."""

    step: str
    durability: WriteDurability
    ok: bool
    error: str | None = None


@dataclass
class QuizCommitReport:
    """What happened while committing a quiz."""

    writes: list[WriteResult] = field(default_factory=list)
    stats: UserStats | None = None

    @property
    def fully_committed(self) -> bool:
        return bool(self.writes) and all(w.ok for w in self.writes)

    def write(self, step: str) -> WriteResult | None:
        for result in self.writes:
            if result.step == step:
                return result
        return None


class QuizSubmissionError(Exception):
    """The quiz attempt could not be recorded; the user should resubmit."""

    pass


class QuizStatsUpdater:
    """Applies a scored quiz to the users row, the user_stats row and the cache."""

    def __init__(
        self,
        adapter: StoreAdapter,
        cache: StatsCache,
        user_id_getter: Callable[[], str | None],
        today: Callable[[], date] = date.today,
    ):
        """Initialize updater.

        Args:
            adapter: Store adapter shared with the rest of the app
            cache: Stats cache to refresh after the writes
            user_id_getter: Returns the signed-in user id, or None
            today: Day used for the activity date and streak
        """
        self.adapter = adapter
        self.cache = cache
        self.user_id_getter = user_id_getter
        self.today = today

    def submit_quiz(self, result: QuizResult) -> QuizCommitReport:
        """Record the attempt, then update the counters.

        Args:
            result: Scored quiz

        Returns:
            Report of the counter writes

        Raises:
            QuizSubmissionError: If the attempt could not be stored
        """
        user_id = self.user_id_getter()
        if not user_id:
            log.warning("No user, quiz attempt not saved")
            return QuizCommitReport()

        event = QuizAttemptEvent(
            user_id=user_id,
            quiz_type=result.category,
            score=result.score,
            total_questions=result.total_questions,
            xp_earned=result.xp_earned,
            time_taken_seconds=result.time_taken_seconds,
            completed_at=datetime.now(timezone.utc),
        )
        log.info(f"Saving quiz attempt: score={event.score}, xp={event.xp_earned}")
        try:
            self.adapter.insert_quiz_attempt(event)
        except AdapterError as e:
            log.error(f"Error saving quiz attempt: {e}")
            raise QuizSubmissionError("Failed to save quiz results. Please try again.") from e

        report = self.update_stats_after_quiz(result.to_outcome())
        report.writes.insert(
            0, WriteResult("quiz_attempt", WriteDurability.HARD, ok=True)
        )
        return report

    def update_stats_after_quiz(self, outcome: QuizOutcome) -> QuizCommitReport:
        """Commit XP and counters for a quiz, then force a stats refresh.

        Steps run strictly in order: users XP/level, user_stats row, cache
        refresh. A failed step is logged and does not stop the next one.

        Args:
            outcome: Scored quiz numbers

        Returns:
            Report of each write and the refreshed stats
        """
        report = QuizCommitReport()
        user_id = self.user_id_getter()
        if not user_id:
            log.warning("No user, skipping stats update")
            return report

        log.info(
            f"Updating stats after quiz: score={outcome.score}, xp={outcome.xp_earned}, "
            f"correct={outcome.correct_answers}/{outcome.total_questions}"
        )

        # Step 1: XP and level on the users row
        seed_xp = outcome.xp_earned
        lookup = self.adapter.add_legacy_xp(user_id, outcome.xp_earned)
        if isinstance(lookup, Found):
            seed_xp = lookup.row.xp or 0
            report.writes.append(WriteResult("users_xp", WriteDurability.SOFT, ok=True))
            log.info(f"XP now {lookup.row.xp}, level {lookup.row.level}")
        elif isinstance(lookup, NotFound):
            log.warning(f"No users row for {user_id}, XP not written there")
            report.writes.append(
                WriteResult("users_xp", WriteDurability.SOFT, ok=False, error="user row missing")
            )
        elif isinstance(lookup, Failed):
            log.error(f"Error updating user XP/level: {lookup.cause}")
            report.writes.append(
                WriteResult("users_xp", WriteDurability.SOFT, ok=False, error=str(lookup.cause))
            )

        # Step 2: running totals on the user_stats row
        try:
            row = self.adapter.apply_quiz_to_counter_row(
                user_id, outcome, seed_xp=seed_xp, activity_date=self.today()
            )
            report.writes.append(WriteResult("user_stats", WriteDurability.SOFT, ok=True))
            log.info(
                f"user_stats now {row.total_quizzes_completed} quizzes, "
                f"accuracy {row.average_accuracy}%"
            )
        except AdapterError as e:
            log.error(f"Error updating user stats: {e}")
            report.writes.append(
                WriteResult("user_stats", WriteDurability.SOFT, ok=False, error=str(e))
            )

        # Step 3: show whatever was committed
        report.stats = self.cache.request(force_refresh=True)
        return report
