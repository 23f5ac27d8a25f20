"""Current-affairs news: NewsAPI client and a time-windowed feed.

Articles are scored for exam relevance and importance from keywords in the
title and description. The feed reuses fetched articles for a few minutes,
keeps the last list when a fetch fails and shows fallback articles when it
has nothing at all.
"""

import hashlib
import logging
import math
import re
import threading
import time
from datetime import datetime, timezone
from typing import Callable

import requests
from pydantic import ValidationError

from core.models import Highlight, NewsArticle

log = logging.getLogger("mindgains.news_feed")

NEWS_API_URL = "https://newsapi.org/v2/top-headlines"
USER_AGENT = "MindGains/0.1"
REQUEST_TIMEOUT_SEC = 10.0

# Default reuse window (5 minutes)
DEFAULT_WINDOW_SEC = 300

WORDS_PER_MINUTE = 200
MAX_KEY_POINTS = 4
MAX_TAGS = 5
MAX_EXAM_QUESTIONS = 3

HIGHLIGHT_RELEVANCE = 85
MAX_HIGHLIGHTS = 5
MIN_HIGHLIGHTS = 3

# NewsAPI only knows a handful of categories
API_CATEGORIES = {
    "all": "general",
    "politics": "general",
    "economy": "business",
    "international": "general",
    "science": "science",
    "environment": "science",
    "sports": "sports",
    "technology": "technology",
    "health": "health",
}

EXAM_KEYWORDS = (
    "government", "policy", "parliament", "supreme court", "constitution",
    "lok sabha", "rajya sabha", "president", "prime minister", "chief minister", "governor",
    "economy", "gdp", "inflation", "budget", "rbi", "finance", "tax", "gst", "banking",
    "rupee", "stock market", "sensex", "nifty", "fiscal", "monetary",
    "international", "diplomacy", "treaty", "agreement", "summit", "china", "pakistan",
    "usa", "russia", "g20", "brics", "saarc", "asean", "world bank", "imf",
    "isro", "space", "satellite", "mission", "research", "innovation", "digital india",
    "artificial intelligence", "technology", "startup", "make in india",
    "education", "health", "environment", "climate", "pollution", "renewable energy",
    "social justice", "women empowerment", "skill development", "employment",
)

RELEVANCE_BASE = 40
RELEVANCE_PER_KEYWORD = 8
RELEVANCE_BOOSTS = (
    (("government", "policy"), 25),
    (("supreme court", "parliament"), 20),
    (("international", "diplomacy"), 15),
    (("economy", "budget"), 20),
    (("isro", "space"), 15),
    (("environment", "climate"), 15),
)

CRITICAL_TERMS = (
    "breaking", "urgent", "emergency",
    "supreme court", "parliament", "budget", "rbi", "international summit",
)
HIGH_TERMS = ("government", "policy", "minister", "election", "diplomatic", "economic")

TAG_TERMS = (
    ("Government", ("government", "minister")),
    ("Parliament", ("parliament", "lok sabha")),
    ("Judiciary", ("supreme court", "high court")),
    ("Elections", ("election", "voting")),
    ("Economy", ("economy", "gdp")),
    ("Finance", ("budget", "finance")),
    ("Banking", ("rbi", "monetary")),
    ("International", ("international", "foreign")),
    ("Bilateral Relations", ("china", "pakistan")),
    ("Space Technology", ("isro", "space")),
    ("Technology", ("artificial intelligence", "digital")),
)

DEFAULT_HIGHLIGHTS = (
    Highlight(
        id="default_1",
        title="Government Policy Updates",
        description="Latest policy changes and government initiatives",
        importance="high",
        exam_weight=90,
    ),
    Highlight(
        id="default_2",
        title="International Relations",
        description="Key diplomatic developments and bilateral agreements",
        importance="high",
        exam_weight=85,
    ),
    Highlight(
        id="default_3",
        title="Economic Indicators",
        description="Important economic data and market developments",
        importance="medium",
        exam_weight=80,
    ),
)

_SENTENCE_SPLIT_RE = re.compile(r"[.!?]+")


class NewsFetchError(Exception):
    """Headlines could not be fetched or the response was unusable."""

    pass


def exam_relevance(text: str) -> int:
    """Relevance score 0-100 for exam preparation."""
    text = text.lower()
    matches = sum(1 for keyword in EXAM_KEYWORDS if keyword in text)
    score = RELEVANCE_BASE + matches * RELEVANCE_PER_KEYWORD
    for terms, bonus in RELEVANCE_BOOSTS:
        if any(term in text for term in terms):
            score += bonus
    return min(100, max(0, score))


def importance_for(text: str) -> str:
    text = text.lower()
    if any(term in text for term in CRITICAL_TERMS):
        return "critical"
    if any(term in text for term in HIGH_TERMS):
        return "high"
    return "medium"


def extract_tags(text: str) -> list[str]:
    text = text.lower()
    tags = [tag for tag, terms in TAG_TERMS if any(term in text for term in terms)]
    return tags[:MAX_TAGS]


def extract_key_points(content: str) -> list[str]:
    """First few sentences of reasonable length."""
    sentences = (s.strip() for s in _SENTENCE_SPLIT_RE.split(content or ""))
    return [s for s in sentences if 30 < len(s) < 200][:MAX_KEY_POINTS]


def exam_questions_for(title: str) -> list[str]:
    lowered = title.lower()
    questions = []
    if "government" in lowered or "policy" in lowered:
        questions.append(f'What is the significance of the policy mentioned in: "{title}"?')
    if "international" in lowered or "agreement" in lowered:
        questions.append("What are the implications of this international development for India?")
    questions.append(f'What are the key facts about: "{title}"?')
    questions.append("How is this development relevant for competitive exam preparation?")
    return questions[:MAX_EXAM_QUESTIONS]


def read_time_minutes(content: str) -> int:
    return max(1, math.ceil(len(content.split()) / WORDS_PER_MINUTE))


def article_id(url: str) -> str:
    return hashlib.sha1(url.encode("utf-8")).hexdigest()[:16]


def todays_highlights(articles: list[NewsArticle]) -> list[Highlight]:
    """Most exam-relevant critical articles, padded with standing topics.

    Articles qualify when they are critical or score at least
    HIGHLIGHT_RELEVANCE. At most MAX_HIGHLIGHTS are taken, most relevant
    first; fewer than MIN_HIGHLIGHTS are topped up from DEFAULT_HIGHLIGHTS.
    """
    picked = sorted(
        (
            a
            for a in articles
            if a.importance == "critical" or a.exam_relevance >= HIGHLIGHT_RELEVANCE
        ),
        key=lambda a: a.exam_relevance,
        reverse=True,
    )[:MAX_HIGHLIGHTS]
    highlights = [
        Highlight(
            id=f"highlight_{index}",
            title=article.title,
            description=article.summary,
            importance=article.importance,
            exam_weight=article.exam_relevance,
            article=article,
        )
        for index, article in enumerate(picked)
    ]
    if len(highlights) < MIN_HIGHLIGHTS:
        highlights.extend(DEFAULT_HIGHLIGHTS[: MIN_HIGHLIGHTS - len(highlights)])
    return highlights


def fallback_articles() -> list[NewsArticle]:
    """Placeholder shown when nothing was ever fetched."""
    return [
        NewsArticle(
            id="fallback_1",
            title="Current Affairs Updates Available",
            summary=(
                "Stay updated with the latest news and current affairs "
                "for competitive exam preparation."
            ),
            content="We are working to bring you the latest news updates. Please check back later.",
            category="general",
            source="MindGains",
            author="Editorial Team",
            published_at=datetime.now(timezone.utc),
            read_time=2,
            importance="medium",
            exam_relevance=70,
            tags=["Current Affairs", "Updates"],
            key_points=[
                "Stay informed with latest developments",
                "Regular updates for exam preparation",
            ],
            exam_questions=["What are the latest current affairs topics?"],
        )
    ]


class NewsClient:
    """Fetches top headlines from NewsAPI."""

    def __init__(
        self,
        api_key: str | None,
        country: str = "in",
        page_size: int = 20,
        session: requests.Session | None = None,
        timeout: float = REQUEST_TIMEOUT_SEC,
    ):
        """Initialize news client.

        Args:
            api_key: NewsAPI key; fetching fails without one
            country: Two-letter country code for headlines
            page_size: Articles per request
            session: HTTP session, shared between requests
            timeout: Request timeout in seconds
        """
        self.api_key = api_key
        self.country = country
        self.page_size = page_size
        self.session = session or requests.Session()
        self.timeout = timeout

    def fetch_headlines(self, category: str = "all", page: int = 1) -> list[NewsArticle]:
        """Fetch and annotate headlines.

        Args:
            category: One of API_CATEGORIES; unknown values fetch general news
            page: Result page, starting at 1

        Returns:
            Annotated articles; removed or incomplete ones are skipped

        Raises:
            NewsFetchError: On a missing key, HTTP failure or error response
        """
        if not self.api_key:
            raise NewsFetchError("News API key not configured")

        params = {
            "country": self.country,
            "category": API_CATEGORIES.get(category, "general"),
            "page": page,
            "pageSize": self.page_size,
        }
        headers = {"User-Agent": USER_AGENT, "X-Api-Key": self.api_key}
        log.info(f"Fetching news for category: {category}, page: {page}")
        try:
            response = self.session.get(
                NEWS_API_URL, params=params, headers=headers, timeout=self.timeout
            )
            response.raise_for_status()
            data = response.json()
        except requests.RequestException as e:
            raise NewsFetchError(f"News request failed: {e}") from e
        except ValueError as e:
            raise NewsFetchError(f"News response is not JSON: {e}") from e

        if data.get("status") != "ok":
            raise NewsFetchError(data.get("message") or "NewsAPI returned an error status")

        articles = []
        for raw in data.get("articles") or []:
            article = self._annotate(raw, category)
            if article is not None:
                articles.append(article)
        log.info(f"Fetched {len(articles)} articles")
        return articles

    @staticmethod
    def _annotate(raw: dict, category: str) -> NewsArticle | None:
        title = raw.get("title") or ""
        description = raw.get("description") or ""
        if not title or not description or "[Removed]" in title:
            return None

        text = f"{title} {description}"
        content = raw.get("content") or description
        url = raw.get("url") or ""
        try:
            return NewsArticle(
                id=article_id(url or title),
                title=title,
                summary=description,
                content=content,
                category="general" if category == "all" else category,
                source=(raw.get("source") or {}).get("name") or "Unknown Source",
                author=raw.get("author") or "Staff Reporter",
                published_at=raw.get("publishedAt"),
                image_url=raw.get("urlToImage") or "",
                read_time=read_time_minutes(content),
                importance=importance_for(text),
                exam_relevance=exam_relevance(text),
                tags=extract_tags(text),
                key_points=extract_key_points(description or content),
                exam_questions=exam_questions_for(title),
                source_url=url,
            )
        except ValidationError as e:
            log.warning(f"Skipping malformed article '{title}': {e}")
            return None


class NewsFeed:
    """Keeps the last fetched articles and refetches only when stale.

    A fetch happens when forced, when nothing was fetched yet, when another
    category is asked for, or once the window has passed since the last
    successful fetch. A failed fetch keeps the current list; with nothing
    to keep, fallback articles are shown and the next call tries again.
    """

    def __init__(
        self,
        client: NewsClient,
        window_sec: float = DEFAULT_WINDOW_SEC,
        clock: Callable[[], float] = time.monotonic,
    ):
        if window_sec <= 0:
            raise ValueError("window_sec must be positive")
        self.client = client
        self.window_sec = window_sec
        self.clock = clock

        self._lock = threading.Lock()
        self._articles: list[NewsArticle] = []
        self._highlights: list[Highlight] = []
        self._category: str | None = None
        self._last_fetch_time: float | None = None
        self.error: str | None = None

    @property
    def articles(self) -> list[NewsArticle]:
        return list(self._articles)

    @property
    def highlights(self) -> list[Highlight]:
        return list(self._highlights)

    @property
    def last_fetch_time(self) -> float | None:
        return self._last_fetch_time

    def _is_fresh(self, category: str) -> bool:
        if self._last_fetch_time is None or not self._articles:
            return False
        if category != self._category:
            return False
        return self.clock() - self._last_fetch_time < self.window_sec

    def fetch(self, category: str = "all", refresh: bool = False) -> list[NewsArticle]:
        """Return articles for a category, refetching when needed.

        Args:
            category: News category, "all" for everything
            refresh: Bypass the reuse window

        Returns:
            The freshest available articles
        """
        with self._lock:
            if not refresh and self._is_fresh(category):
                log.debug("Using cached news")
                return list(self._articles)

            started = self.clock()
            try:
                articles = self.client.fetch_headlines(category)
            except NewsFetchError as e:
                log.error(f"Error fetching news: {e}")
                self.error = str(e)
                if not self._articles:
                    self._set_articles(fallback_articles(), category)
                return list(self._articles)

            self._set_articles(articles, category)
            self._last_fetch_time = started
            self.error = None
            return list(self._articles)

    def refresh(self) -> list[NewsArticle]:
        return self.fetch("all", refresh=True)

    def _set_articles(self, articles: list[NewsArticle], category: str) -> None:
        self._articles = list(articles)
        self._category = category
        self._highlights = todays_highlights(self._articles)

    def search(self, query: str) -> list[NewsArticle]:
        """Articles whose title, summary or tags contain `query`."""
        query = query.lower()
        return [
            a
            for a in self._articles
            if query in a.title.lower()
            or query in a.summary.lower()
            or any(query in tag.lower() for tag in a.tags)
        ]

    def by_category(self, category: str) -> list[NewsArticle]:
        if category == "all":
            return list(self._articles)
        return [a for a in self._articles if a.category == category]

    def by_importance(self, importance: str) -> list[NewsArticle]:
        return [a for a in self._articles if a.importance == importance]
