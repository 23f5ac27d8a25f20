"""Tests for QuizSession."""

import random
from unittest.mock import Mock

import pytest

from core.ollama_client import OllamaClient
from core.quiz_session import QuizGenerationError, QuizSession

from conftest import FakeClock, make_question


@pytest.fixture
def questions():
    return [make_question(f"q{i}", correct=i % 4) for i in range(5)]


@pytest.fixture
def session(questions, clock):
    return QuizSession(questions, clock=clock)


def answer_all(session, picks):
    for pick in picks:
        session.select_answer(pick)
        result = session.next_question()
    return result


class TestProgression:
    def test_empty_quiz_rejected(self):
        with pytest.raises(ValueError):
            QuizSession([])

    def test_starts_at_first_question(self, session, questions):
        assert session.current_index == 0
        assert session.current_question == questions[0]
        assert session.progress == pytest.approx(0.2)
        assert not session.explanation_visible

    def test_select_answer_reveals_explanation_and_locks(self, session):
        assert session.select_answer(2)
        assert session.explanation_visible
        assert not session.select_answer(1)
        assert session.answers[0] == 2

    def test_invalid_option(self, session):
        with pytest.raises(ValueError):
            session.select_answer(4)

    def test_next_hides_explanation(self, session):
        session.select_answer(0)
        assert session.next_question() is None
        assert session.current_index == 1
        assert not session.explanation_visible

    def test_previous_shows_explanation_of_answered_question(self, session):
        session.select_answer(0)
        session.next_question()
        session.previous_question()
        assert session.current_index == 0
        assert session.explanation_visible

    def test_previous_on_first_question_stays(self, session):
        session.previous_question()
        assert session.current_index == 0

    def test_last_question_finishes(self, session):
        result = answer_all(session, [0, 1, 2, 3, 0])
        assert session.is_finished
        assert result is session.result
        assert session.next_question() is result
        assert not session.select_answer(0)


class TestScoring:
    def test_all_correct(self, session):
        result = answer_all(session, [0, 1, 2, 3, 0])
        assert result.score == 100
        assert result.correct_answers == 5
        assert result.total_questions == 5
        assert result.xp_earned == 50

    def test_three_of_five(self, session):
        result = answer_all(session, [0, 1, 2, 0, 1])
        assert result.correct_answers == 3
        assert result.score == 60
        # 30 points scaled by the 60% score
        assert result.xp_earned == 18
        assert [q.is_correct for q in result.questions] == [True, True, True, False, False]

    def test_unanswered_count_as_wrong(self, session):
        session.select_answer(0)
        result = session.finish()
        assert result.correct_answers == 1
        assert result.questions[1].selected_answer is None

    def test_xp_uses_question_points(self):
        questions = [make_question(f"q{i}", correct=i % 4, points=25) for i in range(5)]
        result = answer_all(QuizSession(questions), [0, 1, 1, 1, 1])
        assert result.correct_answers == 2
        assert result.xp_earned == 20

    def test_mixed_difficulty_points(self):
        questions = [
            make_question("easy", difficulty="beginner"),
            make_question("hard", difficulty="advanced"),
        ]
        result = answer_all(QuizSession(questions), [0, 1])
        # only the 5 point question is right, at 50%: 2.5 rounds up
        assert result.score == 50
        assert result.xp_earned == 3

    def test_nothing_right_earns_nothing(self, session):
        assert answer_all(session, [3, 3, 3, 0, 3]).xp_earned == 0

    def test_duration_from_clock(self, questions):
        clock = FakeClock()
        session = QuizSession(questions, clock=clock)
        clock.advance(185.4)
        result = session.finish()
        assert result.time_taken_seconds == 185
        assert result.to_outcome().study_minutes == 3

    def test_category_from_first_question(self, session):
        assert session.finish().category == "History"


class TestQuestionBank:
    def test_draws_count_distinct_questions(self):
        bank = [make_question(f"q{i}") for i in range(20)]
        session = QuizSession.from_question_bank(bank, count=5, rng=random.Random(7))
        ids = [q.id for q in session.questions]
        assert len(ids) == 5
        assert len(set(ids)) == 5

    def test_small_bank_uses_everything(self):
        bank = [make_question("a"), make_question("b")]
        session = QuizSession.from_question_bank(bank, count=5)
        assert len(session.questions) == 2

    def test_passes_options_through(self):
        clock = FakeClock()
        bank = [make_question("a", correct=1)]
        session = QuizSession.from_question_bank(bank, count=1, clock=clock)
        clock.advance(42)
        session.select_answer(1)
        assert session.next_question().time_taken_seconds == 42


class TestGeneratedQuiz:
    @pytest.fixture
    def llm(self):
        llm = Mock(spec=OllamaClient)
        llm.generate_quiz.return_value = [
            make_question("ai_1", category="Mauryan Empire", difficulty="advanced"),
            make_question("ai_2", correct=2, category="Mauryan Empire", difficulty="advanced"),
        ]
        return llm

    def test_generates_session(self, llm):
        session = QuizSession.generate(
            llm, " Mauryan Empire ", "UPSC Civil Services", "advanced", question_count=2
        )
        llm.generate_quiz.assert_called_once_with(
            "Mauryan Empire", "UPSC Civil Services", "advanced", 2
        )
        result = answer_all(session, [0, 2])
        assert result.category == "Mauryan Empire"
        assert result.xp_earned == 30

    def test_generation_failure(self, llm):
        llm.generate_quiz.return_value = None
        with pytest.raises(QuizGenerationError):
            QuizSession.generate(llm, "Mauryan Empire", "SSC CGL")

    @pytest.mark.parametrize(
        "topic,exam,difficulty,count",
        [
            ("", "SSC CGL", "beginner", 5),
            ("Topic", "  ", "beginner", 5),
            ("Topic", "SSC CGL", "expert", 5),
            ("Topic", "SSC CGL", "beginner", 0),
        ],
    )
    def test_invalid_request(self, llm, topic, exam, difficulty, count):
        with pytest.raises(ValueError):
            QuizSession.generate(llm, topic, exam, difficulty, count)
        llm.generate_quiz.assert_not_called()
