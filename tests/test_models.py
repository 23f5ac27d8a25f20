"""Tests for core.models."""

import pytest
from pydantic import ValidationError

from core.models import (
    CounterRow,
    PreGeneratedNote,
    QuizOutcome,
    QuizQuestion,
    QuizResult,
    TopicBreakdown,
    UserStats,
    accuracy_percent,
    level_for_xp,
    quiz_xp,
    round_half_up,
)


class TestLevelForXp:
    """Level is xp // 1000 + 1."""

    @pytest.mark.parametrize(
        "xp,level",
        [(0, 1), (999, 1), (1000, 2), (1999, 2), (2000, 3), (12345, 13)],
    )
    def test_level_boundaries(self, xp, level):
        assert level_for_xp(xp) == level

    def test_negative_xp_is_level_one(self):
        assert level_for_xp(-50) == 1


class TestAccuracyPercent:
    def test_rounds_half_up(self):
        # 1/8 = 12.5%
        assert accuracy_percent(1, 8) == 13
        # 2/3 = 66.67%
        assert accuracy_percent(2, 3) == 67
        # 1/3 = 33.33%
        assert accuracy_percent(1, 3) == 33

    def test_running_accuracy_from_totals(self):
        """3/5 then 9/10 gives 12/15, not the average of 60 and 90."""
        assert accuracy_percent(12, 15) == 80

    def test_bounds(self):
        assert accuracy_percent(0, 7) == 0
        assert accuracy_percent(7, 7) == 100

    def test_zero_total_rejected(self):
        with pytest.raises(ValueError):
            accuracy_percent(0, 0)


class TestRounding:
    @pytest.mark.parametrize(
        "numerator,denominator,expected",
        [(90, 60, 2), (150, 60, 3), (89, 60, 1), (5, 2, 3), (0, 60, 0)],
    )
    def test_round_half_up(self, numerator, denominator, expected):
        assert round_half_up(numerator, denominator) == expected

    def test_zero_denominator_rejected(self):
        with pytest.raises(ValueError):
            round_half_up(1, 0)


class TestQuizXp:
    def test_points_scaled_by_score(self):
        # 3 intermediate questions right out of 5: 30 points at 60%
        assert quiz_xp(30, 60) == 18

    def test_perfect_score_keeps_all_points(self):
        assert quiz_xp(50, 100) == 50

    def test_half_rounds_up(self):
        # one beginner question right out of two: 5 points at 50% = 2.5
        assert quiz_xp(5, 50) == 3

    def test_nothing_right(self):
        assert quiz_xp(0, 0) == 0


class TestUserStats:
    def test_baseline_is_all_zero_level_one(self):
        stats = UserStats.baseline()
        assert stats.total_quizzes == 0
        assert stats.average_score == 0
        assert stats.best_score == 0
        assert stats.total_xp == 0
        assert stats.current_streak == 0
        assert stats.best_streak == 0
        assert stats.total_study_time == 0
        assert stats.current_level == 1

    def test_level_follows_xp(self):
        assert UserStats(total_xp=999).current_level == 1
        assert UserStats(total_xp=1000).current_level == 2

    def test_level_in_dump(self):
        assert UserStats(total_xp=2500).model_dump()["current_level"] == 3

    def test_frozen(self):
        stats = UserStats()
        with pytest.raises(ValidationError):
            stats.total_xp = 5

    def test_score_range_enforced(self):
        with pytest.raises(ValidationError):
            UserStats(average_score=101)


class TestCounterRow:
    def test_nullable_counters(self):
        row = CounterRow(user_id="u1", total_xp=None)
        assert row.total_xp is None
        assert row.total_quizzes_completed is None

    def test_parses_iso_dates(self):
        row = CounterRow.model_validate(
            {"user_id": "u1", "last_activity_date": "2026-03-14", "unknown_column": 1}
        )
        assert row.last_activity_date.isoformat() == "2026-03-14"


class TestQuizOutcome:
    def test_accuracy(self):
        outcome = QuizOutcome(score=60, xp_earned=60, correct_answers=3, total_questions=5)
        assert outcome.accuracy == 60

    def test_correct_cannot_exceed_total(self):
        with pytest.raises(ValidationError):
            QuizOutcome(score=100, xp_earned=0, correct_answers=6, total_questions=5)

    def test_total_must_be_positive(self):
        with pytest.raises(ValidationError):
            QuizOutcome(score=0, xp_earned=0, correct_answers=0, total_questions=0)


class TestQuizQuestion:
    def test_correct_answer_must_index_an_option(self):
        with pytest.raises(ValidationError):
            QuizQuestion(id="q1", question="?", options=["a", "b"], correct_answer=2)

    def test_numeric_id_coerced(self):
        question = QuizQuestion(id=7, question="?", options=["a", "b"], correct_answer=1)
        assert question.id == "7"

    @pytest.mark.parametrize(
        "difficulty,points",
        [("beginner", 5), ("intermediate", 10), ("advanced", 15), ("expert", 10)],
    )
    def test_points_default_from_difficulty(self, difficulty, points):
        question = QuizQuestion(
            id="q", question="?", options=["a", "b"], correct_answer=0, difficulty=difficulty
        )
        assert question.points == points

    def test_explicit_points_kept(self):
        question = QuizQuestion(
            id="q", question="?", options=["a", "b"], correct_answer=0, points=25
        )
        assert question.points == 25


class TestQuizResult:
    def test_to_outcome_rounds_minutes_half_up(self):
        result = QuizResult(
            score=80,
            correct_answers=4,
            total_questions=5,
            xp_earned=80,
            time_taken_seconds=150,
        )
        outcome = result.to_outcome()
        assert outcome.study_minutes == 3
        assert outcome.correct_answers == 4
        assert outcome.total_questions == 5
        assert outcome.xp_earned == 80

    @pytest.mark.parametrize("seconds,minutes", [(89, 1), (90, 2), (149, 2), (150, 3)])
    def test_minutes_at_half_minute_boundaries(self, seconds, minutes):
        result = QuizResult(
            score=0, correct_answers=0, total_questions=1, xp_earned=0, time_taken_seconds=seconds
        )
        assert result.to_outcome().study_minutes == minutes


class TestTopicBreakdown:
    def test_accepts_camel_case_keys(self):
        breakdown = TopicBreakdown.model_validate(
            {
                "overview": "Text",
                "keyPeople": [{"name": "Ashoka", "role": "Emperor"}],
                "importantFacts": ["Fact"],
                "timeline": [{"year": 268, "event": "Accession"}],
            }
        )
        assert breakdown.key_people[0].name == "Ashoka"
        assert breakdown.important_facts == ["Fact"]
        assert breakdown.timeline[0].year == "268"

    def test_dumps_camel_case_by_alias(self):
        data = TopicBreakdown(important_facts=["x"]).model_dump(by_alias=True)
        assert data["importantFacts"] == ["x"]

    def test_note_defaults(self):
        note = PreGeneratedNote(topic="Mauryan Empire")
        assert note.status == "published"
        assert note.view_count == 0
        assert note.content.overview == ""
