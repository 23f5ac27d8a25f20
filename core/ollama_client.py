"""Ollama API client for study notes and quiz questions."""

import json
import logging
import re
import time

import ollama
from pydantic import ValidationError

from core.models import QuizQuestion, TopicBreakdown, points_for_difficulty

log = logging.getLogger("mindgains.ollama_client")

# Default model to use for text generation
MODEL = "gemma2:2b"

GENERATION_OPTIONS = {
    "temperature": 0.7,
    "top_p": 0.9,
}

BREAKDOWN_PROMPT = """Create a breakdown of the topic "{topic}" for UPSC and other \
competitive exam preparation.

Answer with JSON only, using these keys:
  overview: two or three paragraphs
  timeline: list of {{"year", "event"}}
  keyPeople: list of {{"name", "role", "description"}}
  dynasties: list of {{"name", "founder", "period", "capital"}} (empty if not relevant)
  importantFacts: list of strings
  causes: list of {{"cause", "effect"}}
  significance: list of strings

Include dates, names and specific details. Give five to eight items per list."""

QUIZ_PROMPT = """Generate {question_count} multiple choice questions about "{topic}" \
for {exam_type} exam preparation.

Difficulty: {difficulty}
Style: {style}
Each question has exactly four options and a detailed explanation of the answer.
Cover different aspects of the topic and keep the questions factual.

Answer with JSON only:
{{"questions": [{{"question": "...", "options": ["A", "B", "C", "D"], \
"correct_answer": 0, "explanation": "..."}}]}}"""

EXAM_STYLES = {
    "UPSC Civil Services": "analytical questions that test conceptual clarity and application",
    "SSC CGL": "factual questions with quick recall in the standard SSC format",
    "Banking PO": "logical reasoning with current affairs and financial awareness",
    "State PSC": "general questions with state and local context",
}
DEFAULT_EXAM_STYLE = "standard competitive exam format testing conceptual understanding"

QUIZ_OPTION_COUNT = 4

_FENCE_RE = re.compile(r"```(?:json)?\s*|```")


def parse_breakdown(text: str) -> TopicBreakdown | None:
    """Parse model output into a TopicBreakdown.

    Markdown code fences around the JSON are tolerated.

    Returns:
        Parsed breakdown, or None if the text is not a valid breakdown
    """
    cleaned = _FENCE_RE.sub("", text).strip()
    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError as e:
        log.error(f"Model output is not JSON: {e}")
        return None
    if not isinstance(data, dict):
        log.error("Model output is not a JSON object")
        return None
    try:
        return TopicBreakdown.model_validate(data)
    except ValidationError as e:
        log.error(f"Model output does not match the breakdown shape: {e}")
        return None


def parse_quiz(
    text: str, topic: str, difficulty: str, question_count: int
) -> list[QuizQuestion] | None:
    """Parse model output into quiz questions.

    Accepts a JSON list of questions or an object with a "questions" list.
    Every question needs four options and an explanation; one malformed
    question rejects the whole quiz.

    Returns:
        At most `question_count` questions, or None if the output is unusable
    """
    cleaned = _FENCE_RE.sub("", text).strip()
    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError as e:
        log.error(f"Quiz output is not JSON: {e}")
        return None
    if isinstance(data, dict):
        data = data.get("questions")
    if not isinstance(data, list) or not data:
        log.error("Quiz output has no question list")
        return None

    batch = int(time.time() * 1000)
    points = points_for_difficulty(difficulty)
    questions = []
    for index, item in enumerate(data[:question_count]):
        if not isinstance(item, dict):
            log.error(f"Question {index} is not an object")
            return None
        try:
            question = QuizQuestion.model_validate(
                {
                    **item,
                    "id": f"ai_{batch}_{index}",
                    "category": topic,
                    "difficulty": difficulty,
                    "points": points,
                }
            )
        except ValidationError as e:
            log.error(f"Question {index} is malformed: {e}")
            return None
        if len(question.options) != QUIZ_OPTION_COUNT or not question.explanation.strip():
            log.error(f"Question {index} needs {QUIZ_OPTION_COUNT} options and an explanation")
            return None
        questions.append(question)
    return questions


class OllamaClient:
    """Client for Ollama text generation API."""

    def __init__(self, host: str = "localhost", port: int = 11434, model: str = MODEL) -> None:
        """Initialize Ollama client.

        Args:
            host: Ollama server host
            port: Ollama server port
            model: Model to use for generation
        """
        self.host = host
        self.port = port
        self.model = model
        self.client = ollama.Client(host=f"{host}:{port}")

    def check_server_available(self) -> bool:
        """Check if Ollama server is running.

        Returns:
            True if server is available
        """
        try:
            self.client.list()
            return True
        except Exception:
            return False

    def list_models(self) -> list[str]:
        """List available models from Ollama.

        Returns:
            List of model names
        """
        try:
            response = self.client.list()
            models = response.get("models", [])
            return [model.get("model", model.get("name", "")) for model in models]
        except Exception:
            return []

    def _generate(self, model: str, prompt: str) -> str:
        response = self.client.generate(
            model=model,
            prompt=prompt,
            stream=False,
            format="json",
            options=GENERATION_OPTIONS,
        )
        return (response.get("response", "") or "").strip()

    def generate_text_sync(self, prompt: str) -> str | None:
        """Generate text, falling back to the first installed model.

        Args:
            prompt: Complete prompt

        Returns:
            Generated text, or None if generation failed
        """
        try:
            generated_text = self._generate(self.model, prompt)
            if not generated_text:
                log.error("Ollama returned empty text")
                return None
            return generated_text

        except ollama.ResponseError as e:
            error_msg = str(e.error).lower()

            if "not found" in error_msg or "model" in error_msg:
                log.warning(f"Model '{self.model}' not found, trying fallback")

                try:
                    models = self.list_models()
                    if models:
                        fallback_model = models[0]
                        log.info(f"Retrying with fallback model: {fallback_model}")
                        generated_text = self._generate(fallback_model, prompt)
                        if not generated_text:
                            log.error("Ollama returned empty text")
                            return None
                        return generated_text
                except Exception as fallback_error:
                    log.error(f"Fallback model also failed: {fallback_error}")

            log.error(f"Ollama error: {e.error}")
            return None

        except Exception as e:
            log.error(f"Error generating text: {e}")
            return None

    def generate_topic_breakdown(self, topic: str) -> TopicBreakdown | None:
        """Generate structured study notes for a topic.

        Args:
            topic: Topic title

        Returns:
            Parsed breakdown, or None if generation or parsing failed
        """
        log.info(f"Generating topic breakdown for: {topic}")
        text = self.generate_text_sync(BREAKDOWN_PROMPT.format(topic=topic))
        if text is None:
            return None
        return parse_breakdown(text)

    def generate_quiz(
        self, topic: str, exam_type: str, difficulty: str, question_count: int
    ) -> list[QuizQuestion] | None:
        """Generate multiple-choice questions on a topic.

        Args:
            topic: Quiz topic, also used as the question category
            exam_type: Exam the questions are styled for
            difficulty: beginner, intermediate or advanced
            question_count: Number of questions wanted

        Returns:
            Validated questions, or None if generation or parsing failed
        """
        log.info(f"Generating {question_count} {difficulty} questions on {topic} ({exam_type})")
        prompt = QUIZ_PROMPT.format(
            question_count=question_count,
            topic=topic,
            exam_type=exam_type,
            difficulty=difficulty,
            style=EXAM_STYLES.get(exam_type, DEFAULT_EXAM_STYLE),
        )
        text = self.generate_text_sync(prompt)
        if text is None:
            return None
        return parse_quiz(text, topic, difficulty, question_count)
