"""Tests for the note seeding script."""

from unittest.mock import Mock

import pytest

from core.models import TopicBreakdown
from core.ollama_client import OllamaClient
from core.store_adapter import Failed, QueryError, StoreAdapter
from scripts.seed_notes import generate_missing, seed


@pytest.fixture
def llm():
    llm = Mock(spec=OllamaClient)
    llm.generate_topic_breakdown.side_effect = lambda topic: TopicBreakdown(
        overview=f"About {topic}"
    )
    return llm


class TestGenerateMissing:
    def test_second_run_keeps_generated_drafts(self, adapter, llm):
        first = generate_missing(adapter, llm, ["Mauryan Empire"], "History")
        assert [n.status for n in first] == ["draft"]
        assert seed(adapter, first) == 1

        second = generate_missing(adapter, llm, ["Mauryan Empire", "Gupta Empire"], "History")

        assert [n.topic for n in second] == ["Gupta Empire"]
        assert llm.generate_topic_breakdown.call_count == 2

    def test_existing_draft_is_reported(self, adapter, llm, capsys):
        seed(adapter, generate_missing(adapter, llm, ["Harappa"], "History"))
        llm.generate_topic_breakdown.reset_mock()

        assert generate_missing(adapter, llm, ["Harappa"], "History") == []
        llm.generate_topic_breakdown.assert_not_called()
        assert "already exists (draft)" in capsys.readouterr().out

    def test_failed_lookup_does_not_generate(self, llm):
        store = Mock(spec=StoreAdapter)
        store.fetch_note_by_topic.return_value = Failed(QueryError("database is locked"))

        assert generate_missing(store, llm, ["Harappa"], "History") == []
        llm.generate_topic_breakdown.assert_not_called()

    def test_generation_failure_is_skipped(self, adapter, llm):
        llm.generate_topic_breakdown.side_effect = None
        llm.generate_topic_breakdown.return_value = None
        assert generate_missing(adapter, llm, ["Harappa"], "History") == []
