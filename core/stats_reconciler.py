"""Builds the UserStats view from the remote counter sources."""

import logging

from core.models import CounterRow, LegacyUserRow, UserStats
from core.store_adapter import Failed, Found, StoreAdapter

log = logging.getLogger("mindgains.stats_reconciler")


def _first_present(*values: int | None, default: int = 0) -> int:
    for value in values:
        if value is not None:
            return value
    return default


class StatsReconciler:
    """Merges the user_stats row with the legacy users row.

    Counter-row values win; a legacy value is used only where the counter
    field is null or the row is missing. Lookup failures are logged and
    treated as a missing row, so a fetch always yields a complete value.
    """

    def __init__(self, adapter: StoreAdapter):
        """Initialize reconciler.

        Args:
            adapter: Store adapter shared with the rest of the app
        """
        self.adapter = adapter

    def fetch_stats(self, user_id: str | None) -> UserStats | None:
        """Compute stats for a user.

        Args:
            user_id: Authenticated user id, or None when signed out

        Returns:
            Fully populated UserStats, or None if there is no user yet
        """
        if not user_id:
            log.debug("No user, skipping stats fetch")
            return None

        log.debug(f"Fetching stats for user: {user_id}")
        counter = self._unwrap(self.adapter.fetch_counter_row(user_id), "user_stats", user_id)
        legacy = self._unwrap(self.adapter.fetch_legacy_row(user_id), "users", user_id)

        stats = self.merge(counter, legacy)

        if stats.total_quizzes > 0:
            best = self.adapter.fetch_best_score(user_id)
            if isinstance(best, Found):
                stats = stats.model_copy(update={"best_score": best.row})
            elif isinstance(best, Failed):
                log.error(f"Error fetching best score for {user_id}: {best.cause}")

        log.debug(f"Stats for {user_id}: {stats}")
        return stats

    @staticmethod
    def merge(counter: CounterRow | None, legacy: LegacyUserRow | None) -> UserStats:
        """Field-by-field merge with counter-row precedence.

        best_score is left at 0; it comes from the attempt log.
        """
        c = counter or CounterRow(user_id="")
        lg = legacy or LegacyUserRow(id="")
        return UserStats(
            total_quizzes=_first_present(c.total_quizzes_completed),
            average_score=_first_present(c.average_accuracy),
            total_xp=_first_present(c.total_xp, lg.xp),
            current_streak=_first_present(c.current_streak, lg.streak),
            best_streak=_first_present(c.best_streak, lg.streak),
            total_study_time=_first_present(c.total_study_time_minutes),
        )

    @staticmethod
    def _unwrap(lookup, source: str, user_id: str):
        if isinstance(lookup, Found):
            return lookup.row
        if isinstance(lookup, Failed):
            log.error(f"Error fetching {source} for {user_id}: {lookup.cause}")
        return None
