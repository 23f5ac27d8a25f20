"""Study notes: curated note first, LLM generation as the fallback."""

import logging
from dataclasses import dataclass

from core.models import PreGeneratedNote, TopicBreakdown
from core.ollama_client import OllamaClient
from core.store_adapter import AdapterError, Failed, Found, StoreAdapter

log = logging.getLogger("mindgains.note_resolver")

MAX_CRITICAL_POINTS = 5


class NoteGenerationError(Exception):
    """No curated note and the LLM could not produce one."""

    pass


@dataclass
class ResolvedNote:
    """Notes for a topic and where they came from."""

    topic: str
    breakdown: TopicBreakdown
    is_pre_generated: bool
    note: PreGeneratedNote | None = None


def exam_critical_points(topic: str, breakdown: TopicBreakdown) -> list[str]:
    """Exam-focused checklist for generated notes."""
    points = [
        f"Key dates and chronology related to {topic}",
        "Important personalities and their contributions",
        "Cause and effect relationships",
        "Constitutional/Legal significance",
        "Current relevance and contemporary connections",
    ]
    if breakdown.timeline:
        points.append(
            f"Timeline: {breakdown.timeline[0].year} - {breakdown.timeline[-1].year}"
        )
    if breakdown.key_people:
        points.append(f"Key Figure: {breakdown.key_people[0].name} - {breakdown.key_people[0].role}")
    return points[:MAX_CRITICAL_POINTS]


class NoteResolver:
    """Finds study notes for a topic."""

    def __init__(self, adapter: StoreAdapter, llm: OllamaClient):
        """Initialize note resolver.

        Args:
            adapter: Store adapter holding the curated notes
            llm: Client used when no curated note exists
        """
        self.adapter = adapter
        self.llm = llm

    def resolve(self, topic: str, use_pre_generated: bool = True) -> ResolvedNote:
        """Get notes for a topic.

        Args:
            topic: Topic typed or tapped by the user
            use_pre_generated: Look for a curated note before generating

        Returns:
            Resolved note

        Raises:
            ValueError: If the topic is blank
            NoteGenerationError: If generation was needed and failed
        """
        topic = topic.strip()
        if not topic:
            raise ValueError("Please enter a topic to study")

        if use_pre_generated:
            note = self._find_pre_generated(topic)
            if note is not None:
                log.info(f"Found pre-generated note for: {topic}")
                return ResolvedNote(
                    topic=topic, breakdown=note.content, is_pre_generated=True, note=note
                )

        log.info(f"No pre-generated note for {topic}, using AI generation")
        breakdown = self.llm.generate_topic_breakdown(topic)
        if breakdown is None:
            raise NoteGenerationError(
                f"Failed to generate topic breakdown for '{topic}'. Please try again."
            )
        breakdown = breakdown.model_copy(
            update={"exam_critical_points": exam_critical_points(topic, breakdown)}
        )
        return ResolvedNote(topic=topic, breakdown=breakdown, is_pre_generated=False)

    def _find_pre_generated(self, topic: str) -> PreGeneratedNote | None:
        lookup = self.adapter.fetch_published_note(topic)
        if isinstance(lookup, Failed):
            log.error(f"Error fetching note: {lookup.cause}")
            return None
        if not isinstance(lookup, Found):
            return None

        note = lookup.row
        if note.id:
            try:
                self.adapter.increment_note_view_count(note.id)
            except AdapterError as e:
                log.warning(f"Could not bump view count for {note.id}: {e}")
        return note

    def search(self, term: str, limit: int = 10) -> list[PreGeneratedNote]:
        """Search curated notes; failures give an empty list."""
        if not term.strip():
            return []
        try:
            return self.adapter.search_notes(term.strip(), limit)
        except AdapterError as e:
            log.error(f"Error searching notes: {e}")
            return []

    def popular(self, limit: int = 5) -> list[PreGeneratedNote]:
        """Most viewed curated notes; failures give an empty list."""
        try:
            return self.adapter.get_popular_notes(limit)
        except AdapterError as e:
            log.error(f"Error fetching popular notes: {e}")
            return []
