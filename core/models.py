"""Pydantic models for MindGains data structures."""

from datetime import date, datetime

from pydantic import BaseModel, ConfigDict, Field, computed_field, model_validator

# XP needed per level; level 1 starts at 0 XP
XP_PER_LEVEL = 1000

# Points a question is worth at each difficulty
DIFFICULTY_POINTS = {"beginner": 5, "intermediate": 10, "advanced": 15}
DEFAULT_QUESTION_POINTS = 10


def round_half_up(numerator: int, denominator: int) -> int:
    """numerator / denominator rounded to the nearest integer, halves up.

    Both arguments must be non-negative and the denominator positive.
    """
    if denominator <= 0:
        raise ValueError("denominator must be positive")
    return (2 * numerator + denominator) // (2 * denominator)


def level_for_xp(xp: int) -> int:
    """Level reached with the given total XP."""
    return max(xp, 0) // XP_PER_LEVEL + 1


def accuracy_percent(correct: int, total: int) -> int:
    """Percentage of correct answers, rounded half up.

    Args:
        correct: Number of correct answers
        total: Number of questions attempted (must be positive)

    Returns:
        Integer percentage in [0, 100]
    """
    if total <= 0:
        raise ValueError("total must be positive")
    return round_half_up(100 * correct, total)


def points_for_difficulty(difficulty: str) -> int:
    return DIFFICULTY_POINTS.get(difficulty, DEFAULT_QUESTION_POINTS)


def quiz_xp(points_earned: int, score: int) -> int:
    """XP for a quiz: points of the correct answers scaled by the score."""
    return round_half_up(points_earned * score, 100)


class UserStats(BaseModel):
    """Derived gamification view shown on the stats screens."""

    total_quizzes: int = Field(default=0, ge=0, description="Quizzes completed")
    average_score: int = Field(default=0, ge=0, le=100, description="Running accuracy (%)")
    best_score: int = Field(default=0, ge=0, le=100, description="Best single quiz score (%)")
    total_xp: int = Field(default=0, ge=0, description="Total experience points")
    current_streak: int = Field(default=0, ge=0, description="Current daily streak")
    best_streak: int = Field(default=0, ge=0, description="Best daily streak")
    total_study_time: int = Field(default=0, ge=0, description="Study time in minutes")

    model_config = ConfigDict(extra="ignore", frozen=True)

    @computed_field
    @property
    def current_level(self) -> int:
        return level_for_xp(self.total_xp)

    @classmethod
    def baseline(cls) -> "UserStats":
        """Stats shown before anything was fetched."""
        return cls()


class CounterRow(BaseModel):
    """Per-user aggregate row from the user_stats table."""

    user_id: str = Field(..., description="User UUID")
    total_xp: int | None = Field(default=None, description="Total XP")
    current_level: int | None = Field(default=None, description="Level derived from total_xp")
    current_streak: int | None = Field(default=None, description="Current daily streak")
    best_streak: int | None = Field(default=None, description="Best daily streak")
    total_quizzes_completed: int | None = Field(default=None, description="Quizzes completed")
    total_correct_answers: int | None = Field(default=None, description="Correct answers")
    total_questions_attempted: int | None = Field(
        default=None, description="Questions attempted"
    )
    average_accuracy: int | None = Field(default=None, description="Running accuracy (%)")
    total_study_time_minutes: int | None = Field(default=None, description="Study minutes")
    last_activity_date: date | None = Field(default=None, description="Last quiz day")
    updated_at: datetime | None = Field(default=None, description="Last write timestamp")

    model_config = ConfigDict(extra="ignore")


class LegacyUserRow(BaseModel):
    """Row from the users table shared with auth (bare XP/level/streak)."""

    id: str = Field(..., description="User UUID")
    email: str | None = Field(default=None, description="Account email")
    username: str | None = Field(default=None, description="Display username")
    xp: int | None = Field(default=None, description="Total XP")
    level: int | None = Field(default=None, description="Level")
    streak: int | None = Field(default=None, description="Daily streak")

    model_config = ConfigDict(extra="ignore")


class QuizAttemptEvent(BaseModel):
    """Immutable log entry for one completed quiz."""

    user_id: str = Field(..., description="User UUID")
    quiz_type: str = Field(default="Mixed Quiz", description="Category label")
    score: int = Field(..., ge=0, le=100, description="Score percentage")
    total_questions: int = Field(..., gt=0, description="Number of questions")
    xp_earned: int = Field(..., ge=0, description="XP earned")
    time_taken_seconds: int | None = Field(default=None, ge=0, description="Duration")
    completed_at: datetime = Field(..., description="Completion timestamp")

    model_config = ConfigDict(extra="ignore")


class QuizOutcome(BaseModel):
    """Numbers from a scored quiz, fed to the stats updater."""

    score: int = Field(..., ge=0, le=100, description="Score percentage")
    xp_earned: int = Field(..., ge=0, description="XP earned")
    correct_answers: int = Field(..., ge=0, description="Correct answers")
    total_questions: int = Field(..., gt=0, description="Questions in the quiz")
    study_minutes: int = Field(default=0, ge=0, description="Minutes spent on the quiz")

    model_config = ConfigDict(extra="ignore", frozen=True)

    @model_validator(mode="after")
    def check_correct_within_total(self) -> "QuizOutcome":
        if self.correct_answers > self.total_questions:
            raise ValueError(
                f"correct_answers ({self.correct_answers}) must not exceed "
                f"total_questions ({self.total_questions})"
            )
        return self

    @property
    def accuracy(self) -> int:
        return accuracy_percent(self.correct_answers, self.total_questions)


class QuizQuestion(BaseModel):
    """Multiple-choice question."""

    id: str = Field(..., description="Question identifier")
    question: str = Field(..., description="Question text")
    options: list[str] = Field(..., min_length=2, description="Answer options")
    correct_answer: int = Field(..., ge=0, description="Index of the correct option")
    explanation: str = Field(default="", description="Shown after answering")
    category: str = Field(default="General", description="Category label")
    difficulty: str = Field(default="intermediate", description="Difficulty label")
    points: int | None = Field(
        default=None, ge=0, description="Points for a correct answer (default by difficulty)"
    )

    model_config = ConfigDict(extra="ignore", coerce_numbers_to_str=True)

    @model_validator(mode="after")
    def check_answer_and_points(self) -> "QuizQuestion":
        if self.correct_answer >= len(self.options):
            raise ValueError(
                f"correct_answer {self.correct_answer} out of range for "
                f"{len(self.options)} options"
            )
        if self.points is None:
            self.points = points_for_difficulty(self.difficulty)
        return self


class AnsweredQuestion(BaseModel):
    """Question with the answer the user picked."""

    question: QuizQuestion
    selected_answer: int | None = None
    is_correct: bool = False


class QuizResult(BaseModel):
    """Scored quiz."""

    score: int = Field(..., ge=0, le=100)
    correct_answers: int = Field(..., ge=0)
    total_questions: int = Field(..., gt=0)
    xp_earned: int = Field(..., ge=0)
    time_taken_seconds: int = Field(default=0, ge=0)
    category: str = Field(default="Mixed Quiz")
    questions: list[AnsweredQuestion] = Field(default_factory=list)

    def to_outcome(self) -> QuizOutcome:
        """Numbers the stats updater needs."""
        return QuizOutcome(
            score=self.score,
            xp_earned=self.xp_earned,
            correct_answers=self.correct_answers,
            total_questions=self.total_questions,
            study_minutes=round_half_up(self.time_taken_seconds, 60),
        )


class TimelineEntry(BaseModel):
    year: str = ""
    event: str = ""

    model_config = ConfigDict(extra="ignore", coerce_numbers_to_str=True)


class KeyPerson(BaseModel):
    name: str = ""
    role: str = ""
    description: str = ""

    model_config = ConfigDict(extra="ignore")


class Dynasty(BaseModel):
    name: str = ""
    founder: str = ""
    period: str = ""
    capital: str = ""

    model_config = ConfigDict(extra="ignore")


class CauseEffect(BaseModel):
    cause: str = ""
    effect: str = ""

    model_config = ConfigDict(extra="ignore")


class TopicBreakdown(BaseModel):
    """Structured study notes for one topic."""

    overview: str = Field(default="", description="Two or three paragraph overview")
    timeline: list[TimelineEntry] = Field(default_factory=list)
    key_people: list[KeyPerson] = Field(default_factory=list, alias="keyPeople")
    dynasties: list[Dynasty] = Field(default_factory=list)
    important_facts: list[str] = Field(default_factory=list, alias="importantFacts")
    causes: list[CauseEffect] = Field(default_factory=list)
    significance: list[str] = Field(default_factory=list)
    exam_critical_points: list[str] = Field(
        default_factory=list, alias="examCriticalPoints"
    )

    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class PreGeneratedNote(BaseModel):
    """Curated note stored in the pre_generated_notes table."""

    id: str | None = Field(default=None, description="Note UUID")
    topic: str = Field(..., description="Topic title, used for lookup")
    category: str = Field(default="general", description="Subject category")
    difficulty: str = Field(default="intermediate", description="Difficulty label")
    content: TopicBreakdown = Field(default_factory=TopicBreakdown)
    status: str = Field(default="published", description="draft or published")
    priority: int = Field(default=0, description="Ordering weight for search")
    view_count: int = Field(default=0, ge=0, description="Times opened")
    tags: list[str] = Field(default_factory=list)
    estimated_read_time: int = Field(default=5, ge=0, description="Minutes")

    model_config = ConfigDict(extra="ignore")


class NewsArticle(BaseModel):
    """Current-affairs article annotated for exam preparation."""

    id: str = Field(..., description="Stable article id")
    title: str = Field(..., description="Headline")
    summary: str = Field(default="", description="Short description")
    content: str = Field(default="", description="Article text or snippet")
    category: str = Field(default="general", description="Requested news category")
    source: str = Field(default="Unknown Source", description="Publisher name")
    author: str = Field(default="Staff Reporter")
    published_at: datetime | None = Field(default=None)
    image_url: str = Field(default="")
    read_time: int = Field(default=1, ge=1, description="Minutes")
    importance: str = Field(default="medium", description="critical, high, medium or low")
    exam_relevance: int = Field(default=0, ge=0, le=100, description="Relevance score")
    tags: list[str] = Field(default_factory=list)
    key_points: list[str] = Field(default_factory=list)
    exam_questions: list[str] = Field(default_factory=list)
    source_url: str = Field(default="")

    model_config = ConfigDict(extra="ignore")


class Highlight(BaseModel):
    """Entry in today's highlights, optionally backed by an article."""

    id: str
    title: str
    description: str = ""
    importance: str = "medium"
    exam_weight: int = Field(default=0, ge=0, le=100)
    article: NewsArticle | None = None
