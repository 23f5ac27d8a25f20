#!/usr/bin/env python3
"""MindGains - exam preparation with quizzes, study notes and progress stats."""

import argparse
import getpass
import json
import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

from pydantic import ValidationError

from core.models import DIFFICULTY_POINTS, NewsArticle, QuizQuestion, TopicBreakdown, UserStats
from core.news_feed import API_CATEGORIES, NewsClient, NewsFeed
from core.note_resolver import NoteGenerationError, NoteResolver
from core.ollama_client import OllamaClient
from core.postgres_adapter import PostgreSQLAdapter
from core.quiz_session import QuizGenerationError, QuizSession
from core.sqlite_adapter import SQLiteAdapter
from core.stats_cache import StatsCache
from core.stats_reconciler import StatsReconciler
from core.stats_updater import QuizStatsUpdater, QuizSubmissionError
from core.store_adapter import AdapterError, StoreAdapter
from core.user_manager import UserManager
from utils.config import Config

log = logging.getLogger("mindgains")

DEFAULT_DATA_DIR = Path.home() / ".local" / "share" / "mindgains"


def setup_logging(level: int = logging.INFO) -> Path:
    """Log to a rotating file in the XDG state directory and to stderr."""
    xdg_state_home = os.environ.get("XDG_STATE_HOME", str(Path.home() / ".local" / "state"))
    log_dir = Path(xdg_state_home) / "mindgains"
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / "mindgains.log"

    # Configure rotating file handler (5MB max, keep 5 backups)
    file_handler = RotatingFileHandler(log_file, maxBytes=5 * 1024 * 1024, backupCount=5)

    stream_handler = logging.StreamHandler()
    stream_handler.setLevel(logging.WARNING)

    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[file_handler, stream_handler],
    )
    return log_file


class Application:
    """Builds the components once and shares one store adapter between them."""

    def __init__(self, data_dir: Path | None = None):
        self.init_data_directory(data_dir)
        self.init_components()

    def init_data_directory(self, data_dir: Path | None) -> None:
        """Initialize data directory."""
        self.data_dir = data_dir or DEFAULT_DATA_DIR
        self.data_dir.mkdir(parents=True, exist_ok=True)
        self.settings_path = self.data_dir / "settings.db"
        self.store_path = self.data_dir / "mindgains.db"

    def init_components(self) -> None:
        """Initialize all components."""
        self.config = Config(self.settings_path)
        self.user_manager = UserManager(self.config)
        self.adapter = self.create_adapter()
        self.adapter.initialize()
        self.user_manager.adapter = self.adapter

        self.reconciler = StatsReconciler(self.adapter)
        self.stats_cache = StatsCache(
            self.reconciler,
            self.user_manager.current_user_id,
            window_sec=self.config.get_int("stats_cache_window_sec", 300),
        )
        self.user_manager.add_listener(lambda _user_id: self.stats_cache.reset())

        self.updater = QuizStatsUpdater(
            self.adapter, self.stats_cache, self.user_manager.current_user_id
        )
        self.llm = OllamaClient(
            host=self.config.get("ollama_host", "localhost"),
            port=self.config.get_int("ollama_port", 11434),
            model=self.config.get("ollama_model", "gemma2:2b"),
        )
        self.note_resolver = NoteResolver(self.adapter, self.llm)

    def create_adapter(self) -> StoreAdapter:
        """Create the store adapter selected in settings."""
        backend = self.config.get("store_backend", "sqlite")
        if backend != "postgres":
            log.info(f"Using SQLite store at {self.store_path}")
            return SQLiteAdapter(self.store_path)

        db_user = self.config.get("postgres_user", "")
        password = self.user_manager.get_store_password(db_user)
        if not password:
            raise RuntimeError(
                "PostgreSQL password not found in keyring. "
                "Save it with: main.py set-store-password"
            )
        log.info(f"Using PostgreSQL store at {self.config.get('postgres_host')}")
        return PostgreSQLAdapter(
            host=self.config.get("postgres_host", ""),
            port=self.config.get_int("postgres_port", 5432),
            database=self.config.get("postgres_database", "mindgains"),
            user=db_user,
            password=password,
            sslmode=self.config.get("postgres_sslmode", "require"),
        )

    def create_news_feed(self) -> NewsFeed:
        """Build the news feed; the API key is read from the keyring."""
        client = NewsClient(
            api_key=self.user_manager.get_news_api_key(),
            country=self.config.get("news_country", "in"),
            page_size=self.config.get_int("news_page_size", 20),
        )
        return NewsFeed(client, window_sec=self.config.get_int("news_cache_window_sec", 300))

    def close(self) -> None:
        self.adapter.close()


def print_stats(stats: UserStats) -> None:
    print("=" * 40)
    print("Your progress")
    print("=" * 40)
    print(f"Level:            {stats.current_level}")
    print(f"Total XP:         {stats.total_xp}")
    print(f"Quizzes:          {stats.total_quizzes}")
    print(f"Average score:    {stats.average_score}%")
    print(f"Best score:       {stats.best_score}%")
    print(f"Current streak:   {stats.current_streak} days")
    print(f"Best streak:      {stats.best_streak} days")
    print(f"Study time:       {stats.total_study_time} min")


def print_breakdown(topic: str, breakdown: TopicBreakdown, is_pre_generated: bool) -> None:
    source = "curated" if is_pre_generated else "generated"
    print(f"# {topic} ({source})")
    print()
    print(breakdown.overview)
    if breakdown.timeline:
        print("\n## Timeline")
        for entry in breakdown.timeline:
            print(f"  {entry.year}: {entry.event}")
    if breakdown.key_people:
        print("\n## Key people")
        for person in breakdown.key_people:
            print(f"  {person.name} ({person.role}): {person.description}")
    if breakdown.dynasties:
        print("\n## Dynasties")
        for dynasty in breakdown.dynasties:
            print(f"  {dynasty.name}, founded by {dynasty.founder}, {dynasty.period}")
    if breakdown.important_facts:
        print("\n## Important facts")
        for fact in breakdown.important_facts:
            print(f"  - {fact}")
    if breakdown.causes:
        print("\n## Causes and effects")
        for item in breakdown.causes:
            print(f"  {item.cause} -> {item.effect}")
    if breakdown.significance:
        print("\n## Significance")
        for item in breakdown.significance:
            print(f"  - {item}")
    if breakdown.exam_critical_points:
        print("\n## Exam critical points")
        for point in breakdown.exam_critical_points:
            print(f"  * {point}")


def load_question_bank(path: Path) -> list[QuizQuestion]:
    """Load a JSON list of questions."""
    with open(path, encoding="utf-8") as f:
        data = json.load(f)
    return [QuizQuestion.model_validate(item) for item in data]


def run_quiz(session: QuizSession) -> None:
    """Ask every question on the terminal."""
    while not session.is_finished:
        number = session.current_index + 1
        question = session.current_question
        print(f"\nQuestion {number}/{len(session.questions)}: {question.question}")
        for i, option in enumerate(question.options, start=1):
            print(f"  {i}. {option}")

        while True:
            raw = input("Your answer: ").strip()
            if raw.isdigit() and 1 <= int(raw) <= len(question.options):
                break
            print(f"Enter a number from 1 to {len(question.options)}")

        session.select_answer(int(raw) - 1)
        if session.answers[session.current_index] == question.correct_answer:
            print("Correct!")
        else:
            print(f"Wrong. Answer: {question.options[question.correct_answer]}")
        if question.explanation:
            print(question.explanation)
        session.next_question()


def cmd_stats(app: Application, args) -> int:
    if not app.user_manager.current_user_id():
        print("Not signed in.")
    print_stats(app.stats_cache.request(force_refresh=args.refresh))
    return 0


def cmd_sign_in(app: Application, args) -> int:
    user = app.user_manager.sign_in(args.user_id, email=args.email, username=args.username)
    print(f"Signed in as {user.username or user.user_id}")
    return 0


def cmd_sign_out(app: Application, args) -> int:
    app.user_manager.sign_out()
    print("Signed out")
    return 0


def cmd_quiz(app: Application, args) -> int:
    if not app.user_manager.current_user_id():
        print("Sign in first: main.py sign-in USER_ID")
        return 1
    count = args.count or app.config.get_int("quiz_question_count", 5)

    if args.topic:
        print(f"Generating {count} questions on {args.topic}...")
        try:
            session = QuizSession.generate(
                app.llm,
                args.topic,
                args.exam or app.config.get("quiz_exam_type", "UPSC Civil Services"),
                args.difficulty or app.config.get("quiz_difficulty", "intermediate"),
                question_count=count,
            )
        except (ValueError, QuizGenerationError) as e:
            print(str(e))
            return 1
    else:
        try:
            bank = load_question_bank(args.bank)
        except (OSError, json.JSONDecodeError, ValidationError) as e:
            print(f"Cannot load question bank {args.bank}: {e}")
            return 1
        if not bank:
            print("Question bank is empty")
            return 1
        session = QuizSession.from_question_bank(bank, count=count)

    run_quiz(session)
    result = session.result
    print(
        f"\nScore: {result.score}% ({result.correct_answers}/{result.total_questions}), "
        f"+{result.xp_earned} XP"
    )

    try:
        report = app.updater.submit_quiz(result)
    except QuizSubmissionError as e:
        print(str(e))
        return 1
    if not report.fully_committed:
        print("Some progress counters could not be saved; they may lag behind.")
    if report.stats is not None:
        print_stats(report.stats)
    return 0


def cmd_note(app: Application, args) -> int:
    try:
        resolved = app.note_resolver.resolve(args.topic, use_pre_generated=not args.generate)
    except (ValueError, NoteGenerationError) as e:
        print(str(e))
        return 1
    print_breakdown(resolved.topic, resolved.breakdown, resolved.is_pre_generated)
    return 0


def cmd_search(app: Application, args) -> int:
    notes = app.note_resolver.search(args.term)
    if not notes:
        print("No notes found")
    for note in notes:
        print(f"{note.topic} [{note.category}] ~{note.estimated_read_time} min")
    return 0


def cmd_popular(app: Application, args) -> int:
    for note in app.note_resolver.popular(args.limit):
        print(f"{note.topic} ({note.view_count} views)")
    return 0


def print_articles(articles: list[NewsArticle]) -> None:
    for article in articles:
        print(f"[{article.importance}] {article.title} ({article.source}, {article.read_time} min)")
        if article.summary:
            print(f"    {article.summary}")


def cmd_news(app: Application, args) -> int:
    try:
        feed = app.create_news_feed()
    except RuntimeError as e:
        print(str(e))
        return 1
    articles = feed.fetch(args.category, refresh=args.refresh)
    if feed.error:
        print(f"Could not fetch fresh news: {feed.error}")
    if args.search:
        articles = feed.search(args.search)
    if args.highlights:
        print("Today's highlights")
        for highlight in feed.highlights:
            print(f"  {highlight.title} (exam weight {highlight.exam_weight})")
        return 0
    if not articles:
        print("No news found")
    print_articles(articles)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="MindGains exam preparation")
    parser.add_argument(
        "--data-dir",
        type=Path,
        default=None,
        help="Data directory (default: ~/.local/share/mindgains)",
    )
    parser.add_argument("--debug", action="store_true", help="Verbose logging")
    sub = parser.add_subparsers(dest="command", required=True)

    stats = sub.add_parser("stats", help="Show progress stats")
    stats.add_argument("--refresh", action="store_true", help="Bypass the stats cache")
    stats.set_defaults(func=cmd_stats)

    sign_in = sub.add_parser("sign-in", help="Sign in as a user")
    sign_in.add_argument("user_id")
    sign_in.add_argument("--email", default=None)
    sign_in.add_argument("--username", default=None)
    sign_in.set_defaults(func=cmd_sign_in)

    sign_out = sub.add_parser("sign-out", help="Sign out")
    sign_out.set_defaults(func=cmd_sign_out)

    quiz = sub.add_parser("quiz", help="Take a quiz")
    source = quiz.add_mutually_exclusive_group(required=True)
    source.add_argument("--bank", type=Path, help="JSON question bank")
    source.add_argument("--topic", help="Generate questions on this topic with Ollama")
    quiz.add_argument("--exam", default=None, help="Exam the generated quiz targets")
    quiz.add_argument("--difficulty", choices=list(DIFFICULTY_POINTS), default=None)
    quiz.add_argument("--count", type=int, default=None, help="Number of questions")
    quiz.set_defaults(func=cmd_quiz)

    note = sub.add_parser("note", help="Study notes for a topic")
    note.add_argument("topic")
    note.add_argument(
        "--generate", action="store_true", help="Skip curated notes and generate with Ollama"
    )
    note.set_defaults(func=cmd_note)

    search = sub.add_parser("search", help="Search curated notes")
    search.add_argument("term")
    search.set_defaults(func=cmd_search)

    popular = sub.add_parser("popular", help="Most viewed curated notes")
    popular.add_argument("--limit", type=int, default=5)
    popular.set_defaults(func=cmd_popular)

    news = sub.add_parser("news", help="Current affairs headlines")
    news.add_argument("--category", default="all", choices=list(API_CATEGORIES))
    news.add_argument("--refresh", action="store_true", help="Bypass the news cache")
    news.add_argument("--search", default=None, help="Only articles matching this term")
    news.add_argument("--highlights", action="store_true", help="Show today's highlights")
    news.set_defaults(func=cmd_news)

    # Settings commands run without opening the store
    setting = sub.add_parser("set", help="Change a setting")
    setting.add_argument("key")
    setting.add_argument("value")
    setting.set_defaults(settings_func=cmd_set)

    password = sub.add_parser(
        "set-store-password", help="Save the PostgreSQL password in the keyring"
    )
    password.set_defaults(settings_func=cmd_set_store_password)

    news_key = sub.add_parser("set-news-api-key", help="Save the NewsAPI key in the keyring")
    news_key.set_defaults(settings_func=cmd_set_news_api_key)

    return parser


def cmd_set(config: Config, args) -> int:
    try:
        config.set(args.key, args.value)
    except ValueError as e:
        print(str(e))
        return 1
    print(f"{args.key} = {config.get(args.key)}")
    return 0


def cmd_set_store_password(config: Config, args) -> int:
    """Prompt for the PostgreSQL password and save it in the keyring."""
    db_user = config.get("postgres_user", "")
    if not db_user:
        print("Set postgres_user first: main.py set postgres_user NAME")
        return 1
    UserManager(config).set_store_password(db_user, getpass.getpass(f"Password for {db_user}: "))
    print("Password saved")
    return 0


def cmd_set_news_api_key(config: Config, args) -> int:
    """Prompt for the NewsAPI key and save it in the keyring."""
    UserManager(config).set_news_api_key(getpass.getpass("NewsAPI key: "))
    print("News API key saved")
    return 0


def main(argv: list[str] | None = None) -> int:
    argv = sys.argv[1:] if argv is None else argv
    parser = build_parser()
    args = parser.parse_args(argv)

    log_file = setup_logging(logging.DEBUG if args.debug else logging.INFO)
    log.info(f"Logging to {log_file}")

    if getattr(args, "settings_func", None) is not None:
        data_dir = args.data_dir or DEFAULT_DATA_DIR
        data_dir.mkdir(parents=True, exist_ok=True)
        return args.settings_func(Config(data_dir / "settings.db"), args)

    try:
        app = Application(args.data_dir)
    except (AdapterError, RuntimeError) as e:
        log.error(f"Startup failed: {e}")
        print(f"Error: {e}")
        return 1

    try:
        return args.func(app, args)
    finally:
        app.close()


if __name__ == "__main__":
    sys.exit(main())
