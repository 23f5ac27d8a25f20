"""Quiz session: question progression, answer selection and scoring."""

import logging
import random
import time
from typing import Callable, Sequence

from core.models import (
    DIFFICULTY_POINTS,
    AnsweredQuestion,
    QuizQuestion,
    QuizResult,
    accuracy_percent,
    quiz_xp,
)
from core.ollama_client import OllamaClient

log = logging.getLogger("mindgains.quiz_session")


class QuizGenerationError(Exception):
    """Raised when no questions could be generated for a topic."""

    pass


class QuizSession:
    """One run through a list of questions.

    Picking an answer reveals the explanation and locks the answer until
    the user moves on. Going back shows the explanation again for questions
    that were already answered.
    """

    def __init__(
        self,
        questions: Sequence[QuizQuestion],
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize quiz session.

        Args:
            questions: Questions in the order they are asked
            clock: Time source in seconds, used for the quiz duration

        Raises:
            ValueError: If there are no questions
        """
        if not questions:
            raise ValueError("A quiz needs at least one question")
        self.questions = list(questions)
        self.clock = clock

        self.current_index = 0
        self.answers: list[int | None] = [None] * len(self.questions)
        self.explanation_visible = False
        self.result: QuizResult | None = None
        self._started_at = clock()

    @classmethod
    def from_question_bank(
        cls,
        bank: Sequence[QuizQuestion],
        count: int = 5,
        rng: random.Random | None = None,
        **kwargs,
    ) -> "QuizSession":
        """Start a quiz with `count` random questions from a bank."""
        rng = rng or random.Random()
        picked = rng.sample(list(bank), min(count, len(bank)))
        return cls(picked, **kwargs)

    @classmethod
    def generate(
        cls,
        llm: OllamaClient,
        topic: str,
        exam_type: str,
        difficulty: str = "intermediate",
        question_count: int = 5,
        **kwargs,
    ) -> "QuizSession":
        """Start a quiz on a topic with freshly generated questions.

        Raises:
            ValueError: If topic or exam type is blank, the difficulty is
                unknown or the question count is not positive
            QuizGenerationError: If the LLM returned nothing usable
        """
        topic = topic.strip()
        exam_type = exam_type.strip()
        if not topic or not exam_type:
            raise ValueError("Topic and exam type are required")
        if difficulty not in DIFFICULTY_POINTS:
            raise ValueError(
                f"difficulty must be one of {', '.join(DIFFICULTY_POINTS)}, got {difficulty!r}"
            )
        if question_count < 1:
            raise ValueError("question_count must be positive")

        questions = llm.generate_quiz(topic, exam_type, difficulty, question_count)
        if not questions:
            raise QuizGenerationError(f"Failed to generate a quiz on '{topic}'")
        log.info(f"Generated {len(questions)} questions on {topic} for {exam_type}")
        return cls(questions, **kwargs)

    @property
    def current_question(self) -> QuizQuestion:
        return self.questions[self.current_index]

    @property
    def is_last_question(self) -> bool:
        return self.current_index == len(self.questions) - 1

    @property
    def is_finished(self) -> bool:
        return self.result is not None

    @property
    def progress(self) -> float:
        """Fraction of the quiz reached, counting the current question."""
        return (self.current_index + 1) / len(self.questions)

    def select_answer(self, answer_index: int) -> bool:
        """Record an answer for the current question and show the explanation.

        Args:
            answer_index: Index into the current question's options

        Returns:
            True if the answer was recorded, False if it was already locked

        Raises:
            ValueError: If the index is not a valid option
        """
        if self.explanation_visible or self.is_finished:
            return False
        options = self.current_question.options
        if not 0 <= answer_index < len(options):
            raise ValueError(f"Answer {answer_index} out of range for {len(options)} options")

        self.answers[self.current_index] = answer_index
        self.explanation_visible = True
        return True

    def next_question(self) -> QuizResult | None:
        """Move on; on the last question this finishes the quiz.

        Returns:
            The result when the quiz finished, otherwise None
        """
        if self.is_finished:
            return self.result
        if not self.is_last_question:
            self.current_index += 1
            self.explanation_visible = False
            return None
        return self.finish()

    def previous_question(self) -> None:
        """Go back one question."""
        if self.current_index > 0 and not self.is_finished:
            self.current_index -= 1
            self.explanation_visible = self.answers[self.current_index] is not None

    def finish(self) -> QuizResult:
        """Score the quiz. Unanswered questions count as wrong."""
        if self.result is not None:
            return self.result

        answered = [
            AnsweredQuestion(
                question=question,
                selected_answer=answer,
                is_correct=answer == question.correct_answer,
            )
            for question, answer in zip(self.questions, self.answers)
        ]
        correct = sum(1 for a in answered if a.is_correct)
        total = len(self.questions)
        points = sum(a.question.points for a in answered if a.is_correct)
        score = accuracy_percent(correct, total)

        self.result = QuizResult(
            score=score,
            correct_answers=correct,
            total_questions=total,
            xp_earned=quiz_xp(points, score),
            time_taken_seconds=max(0, round(self.clock() - self._started_at)),
            category=self.questions[0].category or "Mixed Quiz",
            questions=answered,
        )
        log.info(
            f"Quiz finished: {correct}/{total} correct, score {self.result.score}%, "
            f"+{self.result.xp_earned} XP"
        )
        return self.result
