"""Tests for the command-line parser and the quiz and news commands."""

from unittest.mock import Mock

import pytest

import main
from core.models import UserStats
from core.news_feed import NewsFeed
from core.ollama_client import OllamaClient
from core.stats_updater import QuizCommitReport, WriteDurability, WriteResult

from conftest import make_question


def parse(argv):
    return main.build_parser().parse_args(argv)


@pytest.fixture
def app(config):
    app = Mock()
    app.config = config
    app.user_manager.current_user_id.return_value = "u1"
    app.llm = Mock(spec=OllamaClient)
    app.updater.submit_quiz.return_value = QuizCommitReport(
        writes=[WriteResult("attempt", WriteDurability.HARD, ok=True)],
        stats=UserStats(total_xp=15, total_quizzes=1),
    )
    return app


class TestParser:
    def test_quiz_needs_bank_or_topic(self):
        with pytest.raises(SystemExit):
            parse(["quiz"])

    def test_bank_and_topic_are_exclusive(self):
        with pytest.raises(SystemExit):
            parse(["quiz", "--bank", "bank.json", "--topic", "Mauryan Empire"])

    def test_generated_quiz_options(self):
        args = parse(
            [
                "quiz",
                "--topic",
                "Mauryan Empire",
                "--exam",
                "SSC CGL",
                "--difficulty",
                "advanced",
                "--count",
                "3",
            ]
        )
        assert args.func is main.cmd_quiz
        assert args.topic == "Mauryan Empire"
        assert args.bank is None
        assert args.difficulty == "advanced"
        assert args.count == 3

    def test_unknown_difficulty_rejected(self):
        with pytest.raises(SystemExit):
            parse(["quiz", "--topic", "x", "--difficulty", "expert"])

    def test_news_defaults(self):
        args = parse(["news"])
        assert args.func is main.cmd_news
        assert args.category == "all"
        assert not args.refresh

    def test_news_key_is_a_settings_command(self):
        args = parse(["set-news-api-key"])
        assert args.settings_func is main.cmd_set_news_api_key


class TestQuizCommand:
    def test_generated_quiz_uses_configured_defaults(self, app, monkeypatch, capsys):
        app.llm.generate_quiz.return_value = [make_question("ai_1", difficulty="advanced")]
        monkeypatch.setattr("builtins.input", lambda prompt: "1")

        assert main.cmd_quiz(app, parse(["quiz", "--topic", "Mauryan Empire"])) == 0

        app.llm.generate_quiz.assert_called_once_with(
            "Mauryan Empire", "UPSC Civil Services", "intermediate", 5
        )
        result = app.updater.submit_quiz.call_args[0][0]
        assert result.score == 100
        assert result.xp_earned == 15
        assert "+15 XP" in capsys.readouterr().out

    def test_generation_failure(self, app, capsys):
        app.llm.generate_quiz.return_value = None
        assert main.cmd_quiz(app, parse(["quiz", "--topic", "Mauryan Empire"])) == 1
        app.updater.submit_quiz.assert_not_called()
        assert "Failed to generate" in capsys.readouterr().out

    def test_not_signed_in(self, app):
        app.user_manager.current_user_id.return_value = None
        assert main.cmd_quiz(app, parse(["quiz", "--topic", "x"])) == 1
        app.llm.generate_quiz.assert_not_called()


class TestNewsCommand:
    @pytest.fixture
    def feed(self, app):
        feed = Mock(spec=NewsFeed)
        feed.error = None
        feed.fetch.return_value = []
        feed.highlights = []
        app.create_news_feed.return_value = feed
        return feed

    def test_fetch_with_refresh(self, app, feed, capsys):
        assert main.cmd_news(app, parse(["news", "--category", "economy", "--refresh"])) == 0
        feed.fetch.assert_called_once_with("economy", refresh=True)
        assert "No news found" in capsys.readouterr().out

    def test_reports_fetch_error(self, app, feed, capsys):
        feed.error = "offline"
        main.cmd_news(app, parse(["news"]))
        assert "offline" in capsys.readouterr().out

    def test_keyring_missing(self, app, capsys):
        app.create_news_feed.side_effect = RuntimeError("System keyring is not available.")
        assert main.cmd_news(app, parse(["news"])) == 1
        assert "keyring" in capsys.readouterr().out
