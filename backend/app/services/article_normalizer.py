from __future__ import annotations

import math
import re
from collections import Counter
from collections.abc import Callable
from datetime import UTC, datetime

from backend.app.repositories.common import parse_iso_datetime
from backend.app.repositories.post_repository import PostDraft
from backend.app.services.content_extractor import NO_CONTENT_AVAILABLE
from backend.app.services.news_client import NewsArticle

WORDS_PER_MINUTE = 200
MAX_TAGS = 5
MAX_KEYWORDS = 10
MIN_KEYWORD_LENGTH = 5
NO_DESCRIPTION_AVAILABLE = "No description available"
FALLBACK_SLUG = "post"

TAG_VOCABULARY: tuple[str, ...] = (
    "AI",
    "artificial intelligence",
    "machine learning",
    "blockchain",
    "cryptocurrency",
    "startup",
    "innovation",
    "technology",
    "software",
    "hardware",
    "mobile",
    "web development",
    "programming",
    "coding",
    "data science",
    "cloud computing",
    "cybersecurity",
    "fintech",
    "edtech",
    "healthtech",
    "biotech",
    "robotics",
    "automation",
    "IoT",
    "internet of things",
    "5G",
    "quantum computing",
    "virtual reality",
    "VR",
    "augmented reality",
    "AR",
    "metaverse",
)

KEYWORD_STOPWORDS: frozenset[str] = frozenset(
    {
        "this", "that", "with", "from", "they", "have", "been", "were", "said",
        "each", "which", "their", "time", "will", "about", "there", "could",
        "other", "after", "first", "well", "also", "where", "much", "some",
        "very", "when", "come", "here", "just", "into", "over", "think", "back",
        "then", "them", "these", "she", "work", "may", "say", "use", "her",
        "many", "way", "would", "like", "make", "him", "has", "two", "more",
        "go", "no", "my", "than", "water", "call", "who", "its", "now", "find",
        "long", "down", "day", "did", "get", "made", "part",
    }
)

_SLUG_DISALLOWED = re.compile(r"[^a-z0-9\s-]")
_WHITESPACE = re.compile(r"\s+")
_HYPHEN_RUN = re.compile(r"-+")
_NON_WORD = re.compile(r"[^\w\s]")
_HTML_TAG = re.compile(r"<[^>]*>")


def generate_slug(title: str) -> str:
    slug = _SLUG_DISALLOWED.sub("", title.lower())
    slug = _WHITESPACE.sub("-", slug)
    slug = _HYPHEN_RUN.sub("-", slug)
    return slug.strip("-")


def count_words(content: str) -> int:
    return len(_HTML_TAG.sub(" ", content).split())


def calculate_read_time(content: str) -> int:
    return max(1, math.ceil(count_words(content) / WORDS_PER_MINUTE))


def extract_tags(content: str) -> list[str]:
    if not content:
        return []
    lowered = content.lower()
    tags = [term for term in TAG_VOCABULARY if term.lower() in lowered]
    return tags[:MAX_TAGS]


def extract_keywords(content: str) -> list[str]:
    if not content:
        return []
    words = [
        word
        for word in _NON_WORD.sub("", content.lower()).split()
        if len(word) >= MIN_KEYWORD_LENGTH and word not in KEYWORD_STOPWORDS
    ]
    # Counter keeps first-seen order, so most_common breaks ties by appearance.
    return [word for word, _ in Counter(words).most_common(MAX_KEYWORDS)]


def resolve_content(
    article: NewsArticle,
    *,
    fetch_full_content: bool,
    fetcher: Callable[[str], str] | None,
) -> str:
    if article.content:
        return article.content
    if fetch_full_content and fetcher is not None and article.url:
        return fetcher(article.url)
    return article.description or NO_CONTENT_AVAILABLE


def to_post_draft(
    article: NewsArticle,
    *,
    category_id: str | None,
    fetch_full_content: bool = True,
    fetcher: Callable[[str], str] | None = None,
    slug: str | None = None,
) -> PostDraft:
    content = resolve_content(article, fetch_full_content=fetch_full_content, fetcher=fetcher)
    excerpt = article.description or NO_DESCRIPTION_AVAILABLE
    published_at = parse_iso_datetime(article.published_at) or datetime.now(UTC)
    return PostDraft(
        title=article.title,
        slug=slug or generate_slug(article.title) or FALLBACK_SLUG,
        content=content,
        excerpt=excerpt,
        read_time=calculate_read_time(content),
        cover_image=article.url_to_image,
        published=True,
        featured=False,
        sponsored=False,
        category_id=category_id,
        tags=tuple(extract_tags(content)),
        keywords=tuple(extract_keywords(content)),
        seo_title=article.title,
        seo_description=excerpt,
        published_at=published_at,
        source_url=article.url,
        source_name=article.source_name,
    )
