"""Tests for StatsCache staleness window and fetch sharing."""

import threading
import time
from unittest.mock import Mock

import pytest

from core.models import UserStats
from core.stats_cache import StatsCache
from core.stats_reconciler import StatsReconciler

WINDOW = 300


class CurrentUser:
    def __init__(self, user_id="u1"):
        self.user_id = user_id

    def __call__(self):
        return self.user_id


@pytest.fixture
def current_user():
    return CurrentUser()


@pytest.fixture
def reconciler():
    mock = Mock(spec=StatsReconciler)
    mock.fetch_stats.return_value = UserStats(total_xp=120, total_quizzes=2)
    return mock


@pytest.fixture
def cache(reconciler, current_user, clock):
    return StatsCache(reconciler, current_user, window_sec=WINDOW, clock=clock)


class TestWindow:
    def test_rejects_non_positive_window(self, reconciler, current_user):
        with pytest.raises(ValueError):
            StatsCache(reconciler, current_user, window_sec=0)

    def test_initial_state(self, cache):
        assert cache.stats == UserStats.baseline()
        assert not cache.has_data
        assert not cache.is_loading
        assert not cache.is_refreshing

    def test_first_request_fetches(self, cache, reconciler):
        stats = cache.request()
        assert stats.total_xp == 120
        assert cache.has_data
        reconciler.fetch_stats.assert_called_once_with("u1")

    def test_fresh_value_served_without_fetch(self, cache, reconciler, clock):
        cache.request()
        clock.advance(WINDOW - 0.001)
        cache.request()
        assert reconciler.fetch_stats.call_count == 1

    def test_exactly_window_is_still_fresh(self, cache, reconciler, clock):
        cache.request()
        clock.advance(WINDOW)
        cache.request()
        assert reconciler.fetch_stats.call_count == 1

    def test_stale_value_refetched(self, cache, reconciler, clock):
        cache.request()
        clock.advance(WINDOW + 0.001)
        cache.request()
        assert reconciler.fetch_stats.call_count == 2

    def test_force_refresh_bypasses_window(self, cache, reconciler):
        cache.request()
        cache.request(force_refresh=True)
        cache.refresh_stats()
        assert reconciler.fetch_stats.call_count == 3

    def test_window_measured_from_fetch_start(self, reconciler, current_user, clock):
        def slow_fetch(user_id):
            clock.advance(100)
            return UserStats()

        reconciler.fetch_stats.side_effect = slow_fetch
        cache = StatsCache(reconciler, current_user, window_sec=WINDOW, clock=clock)
        cache.request()
        assert cache.last_fetch_time == 1000.0

        # 100s spent fetching already count against the window
        clock.advance(WINDOW - 100 + 1)
        cache.request()
        assert reconciler.fetch_stats.call_count == 2


class TestFailures:
    def test_failure_on_first_load_keeps_baseline(self, cache, reconciler):
        reconciler.fetch_stats.side_effect = RuntimeError("network down")
        assert cache.request() == UserStats.baseline()
        assert not cache.has_data
        assert not cache.is_loading

    def test_failure_keeps_stale_value(self, cache, reconciler, clock):
        cache.request()
        reconciler.fetch_stats.side_effect = RuntimeError("network down")
        clock.advance(WINDOW + 1)
        stats = cache.request()
        assert stats.total_xp == 120
        assert cache.last_fetch_time == 1000.0
        assert not cache.is_refreshing

    def test_failed_fetch_retried_on_next_request(self, cache, reconciler):
        reconciler.fetch_stats.side_effect = [RuntimeError("blip"), UserStats(total_xp=5)]
        cache.request()
        assert cache.request().total_xp == 5

    def test_no_user_row_keeps_baseline(self, cache, reconciler):
        reconciler.fetch_stats.return_value = None
        assert cache.request() == UserStats.baseline()
        assert not cache.has_data


class TestUsers:
    def test_no_user_skips_fetch(self, cache, reconciler, current_user):
        current_user.user_id = None
        assert cache.request(force_refresh=True) == UserStats.baseline()
        reconciler.fetch_stats.assert_not_called()

    def test_user_switch_resets_cache(self, cache, reconciler, current_user):
        cache.request()
        current_user.user_id = "u2"
        reconciler.fetch_stats.return_value = UserStats(total_xp=7)
        assert cache.request().total_xp == 7
        reconciler.fetch_stats.assert_called_with("u2")

    def test_reset_forgets_stats(self, cache, reconciler):
        cache.request()
        cache.reset()
        assert cache.stats == UserStats.baseline()
        assert not cache.has_data
        cache.request()
        assert reconciler.fetch_stats.call_count == 2


class TestSingleFlight:
    def test_concurrent_requests_share_one_fetch(self, reconciler, current_user):
        started = threading.Event()
        release = threading.Event()

        def blocking_fetch(user_id):
            started.set()
            release.wait(5)
            return UserStats(total_xp=42)

        reconciler.fetch_stats.side_effect = blocking_fetch
        cache = StatsCache(reconciler, current_user, window_sec=WINDOW)

        results = []
        leader = threading.Thread(target=lambda: results.append(cache.request()))
        leader.start()
        assert started.wait(5)
        assert cache.is_loading

        followers = [
            threading.Thread(target=lambda: results.append(cache.request()))
            for _ in range(3)
        ]
        for t in followers:
            t.start()
        release.set()
        leader.join(5)
        for t in followers:
            t.join(5)

        assert reconciler.fetch_stats.call_count == 1
        assert [s.total_xp for s in results] == [42, 42, 42, 42]

    def test_refresh_flag_while_refetching(self, reconciler, current_user):
        started = threading.Event()
        release = threading.Event()
        cache = StatsCache(reconciler, current_user, window_sec=WINDOW)
        cache.request()

        def blocking_fetch(user_id):
            started.set()
            release.wait(5)
            return UserStats(total_xp=1)

        reconciler.fetch_stats.side_effect = blocking_fetch
        worker = threading.Thread(target=cache.refresh_stats)
        worker.start()
        assert started.wait(5)
        assert cache.is_refreshing
        assert not cache.is_loading
        assert cache.stats.total_xp == 120
        release.set()
        worker.join(5)
        assert not cache.is_refreshing
        assert cache.stats.total_xp == 1

    def test_forced_request_not_served_by_older_fetch(self, reconciler, current_user):
        started = threading.Event()
        release = threading.Event()
        before_quiz = UserStats(total_quizzes=0)
        after_quiz = UserStats(total_quizzes=1, total_xp=60)

        def fetch(user_id):
            if reconciler.fetch_stats.call_count == 1:
                started.set()
                release.wait(5)
                return before_quiz
            return after_quiz

        reconciler.fetch_stats.side_effect = fetch
        cache = StatsCache(reconciler, current_user, window_sec=WINDOW)

        results = {}
        focus = threading.Thread(target=lambda: results.update(focus=cache.request()))
        focus.start()
        assert started.wait(5)

        refresh = threading.Thread(target=lambda: results.update(refresh=cache.refresh_stats()))
        refresh.start()
        deadline = time.monotonic() + 5
        while not cache._pending.superseded and time.monotonic() < deadline:
            time.sleep(0.01)
        assert cache._pending.superseded

        release.set()
        focus.join(5)
        refresh.join(5)

        assert reconciler.fetch_stats.call_count == 2
        assert results["refresh"].total_quizzes == 1
        assert results["focus"].total_quizzes == 1
        assert cache.stats.total_quizzes == 1
        assert cache.request().total_quizzes == 1
        assert reconciler.fetch_stats.call_count == 2


class Interrupted(BaseException):
    pass


class TestInterruptedFetch:
    def test_interrupt_does_not_wedge_later_requests(self, cache, reconciler):
        reconciler.fetch_stats.side_effect = Interrupted()
        with pytest.raises(Interrupted):
            cache.request()
        assert not cache.is_loading
        assert cache.stats == UserStats.baseline()

        reconciler.fetch_stats.side_effect = None
        assert cache.request().total_xp == 120

    def test_interrupt_keeps_previous_stats(self, cache, reconciler):
        cache.request()
        reconciler.fetch_stats.side_effect = Interrupted()
        with pytest.raises(Interrupted):
            cache.refresh_stats()
        assert cache.stats.total_xp == 120
        assert not cache.is_refreshing
