"""Time-windowed cache in front of the stats reconciler."""

import logging
import threading
import time
from typing import Callable

from core.models import UserStats
from core.stats_reconciler import StatsReconciler

log = logging.getLogger("mindgains.stats_cache")

# Default staleness window (5 minutes)
DEFAULT_WINDOW_SEC = 300


class _PendingFetch:
    """Fetch in flight; late callers wait on it instead of starting another."""

    def __init__(self, user_id: str):
        self.user_id = user_id
        self.done = threading.Event()
        self.result: UserStats | None = None
        # Set when a forced request joins; the leader then fetches again
        self.superseded = False


class StatsCache:
    """Keeps the last good UserStats and refetches only when stale.

    A fetch happens when forced, when nothing was fetched yet, or when the
    last successful fetch is older than the window. Calls that arrive while
    a fetch is running share its result; a forced call makes the running
    fetch read the store once more before anyone gets the result. A failed
    fetch keeps the previous value (the baseline on first load).
    """

    def __init__(
        self,
        reconciler: StatsReconciler,
        user_id_getter: Callable[[], str | None],
        window_sec: float = DEFAULT_WINDOW_SEC,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize stats cache.

        Args:
            reconciler: Computes fresh stats from the store
            user_id_getter: Returns the signed-in user id, or None
            window_sec: Seconds a fetched value stays fresh
            clock: Monotonic time source in seconds
        """
        if window_sec <= 0:
            raise ValueError("window_sec must be positive")
        self.reconciler = reconciler
        self.user_id_getter = user_id_getter
        self.window_sec = window_sec
        self.clock = clock

        self._lock = threading.Lock()
        self._pending: _PendingFetch | None = None
        self._user_id: str | None = None
        self._stats = UserStats.baseline()
        self._last_fetch_time = 0.0
        self._has_data = False
        self._is_refreshing = False

    @property
    def stats(self) -> UserStats:
        return self._stats

    @property
    def has_data(self) -> bool:
        return self._has_data

    @property
    def is_refreshing(self) -> bool:
        """True while a refetch runs on top of already displayed data."""
        return self._is_refreshing

    @property
    def is_loading(self) -> bool:
        """True only for the first load, before any data arrived."""
        return self._pending is not None and not self._has_data

    @property
    def last_fetch_time(self) -> float:
        return self._last_fetch_time

    def reset(self) -> None:
        """Forget cached stats, e.g. after sign-out."""
        with self._lock:
            self._reset_locked(None)

    def _reset_locked(self, user_id: str | None) -> None:
        self._user_id = user_id
        self._stats = UserStats.baseline()
        self._last_fetch_time = 0.0
        self._has_data = False
        self._is_refreshing = False
        self._pending = None

    def _is_stale(self, force_refresh: bool) -> bool:
        if force_refresh or not self._has_data:
            return True
        return self.clock() - self._last_fetch_time > self.window_sec

    def request(self, force_refresh: bool = False) -> UserStats:
        """Return stats, refetching when forced or stale.

        Args:
            force_refresh: Bypass the staleness window

        Returns:
            The freshest available UserStats
        """
        user_id = self.user_id_getter()

        with self._lock:
            if user_id != self._user_id:
                self._reset_locked(user_id)
            if not user_id:
                return self._stats
            if not self._is_stale(force_refresh):
                log.debug("Using cached stats, skipping fetch")
                return self._stats

            pending = self._pending
            if pending is not None:
                leader = False
                if force_refresh:
                    pending.superseded = True
            else:
                leader = True
                pending = _PendingFetch(user_id)
                self._pending = pending
                self._is_refreshing = self._has_data

        if not leader:
            log.debug("Stats fetch already in flight, waiting for it")
            pending.done.wait()
            return pending.result

        self._run_fetch(pending)
        return pending.result

    def refresh_stats(self) -> UserStats:
        """Force a refetch (pull-to-refresh, post-quiz)."""
        return self.request(force_refresh=True)

    def _fetch(self, user_id: str) -> UserStats | None:
        try:
            return self.reconciler.fetch_stats(user_id)
        except Exception as e:
            log.error(f"Error fetching user stats: {e}")
            return None

    def _run_fetch(self, pending: _PendingFetch) -> None:
        stats: UserStats | None = None
        started = 0.0
        try:
            while True:
                attempt_started = self.clock()
                fetched = self._fetch(pending.user_id)
                if fetched is not None:
                    stats, started = fetched, attempt_started
                with self._lock:
                    if not pending.superseded or self._pending is not pending:
                        break
                    pending.superseded = False
                log.debug("Forced refresh arrived during fetch, fetching again")
        finally:
            with self._lock:
                if self._pending is pending:
                    if stats is not None:
                        self._stats = stats
                        self._last_fetch_time = started
                        self._has_data = True
                        log.info(f"Stats updated for {pending.user_id}")
                    self._pending = None
                    self._is_refreshing = False
                    pending.result = self._stats
                else:
                    # User changed mid-flight; the result belongs to nobody
                    pending.result = stats or UserStats.baseline()
                pending.done.set()
