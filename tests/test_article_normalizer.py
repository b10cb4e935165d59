from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime

from backend.app.services.article_normalizer import (
    KEYWORD_STOPWORDS,
    MAX_KEYWORDS,
    MAX_TAGS,
    NO_DESCRIPTION_AVAILABLE,
    TAG_VOCABULARY,
    calculate_read_time,
    count_words,
    extract_keywords,
    extract_tags,
    generate_slug,
    to_post_draft,
)
from backend.app.services.content_extractor import NO_CONTENT_AVAILABLE
from backend.app.services.news_client import NewsArticle

ArticleFactory = Callable[..., NewsArticle]


def test_generate_slug_strips_punctuation_and_collapses_hyphens() -> None:
    assert generate_slug("Getting Started with Next.js 15!") == "getting-started-with-nextjs-15"
    assert generate_slug("  --Hello   World--  ") == "hello-world"
    assert generate_slug("AI & ML -- a   primer") == "ai-ml-a-primer"
    assert generate_slug("!!!") == ""


def test_read_time_rounds_up_with_minimum_of_one() -> None:
    assert calculate_read_time("") == 1
    assert calculate_read_time("word " * 200) == 1
    assert calculate_read_time("word " * 201) == 2
    assert calculate_read_time("<p>" + "word " * 400 + "</p>") == 2
    assert count_words("<p>one</p><p>two three</p>") == 3


def test_extract_tags_follows_vocabulary_order_and_caps_at_five() -> None:
    content = (
        "A startup uses machine learning and blockchain for cloud computing, "
        "robotics and automation."
    )

    tags = extract_tags(content)

    # "AI" matches inside "blockchain": matching is a plain substring test.
    assert tags == ["AI", "machine learning", "blockchain", "startup", "cloud computing"]
    assert len(tags) <= MAX_TAGS
    assert all(tag in TAG_VOCABULARY for tag in tags)


def test_extract_tags_handles_empty_and_unrelated_content() -> None:
    assert extract_tags("") == []
    assert extract_tags("Nothing relevant here") == []


def test_extract_keywords_ranks_by_frequency_with_first_seen_ties() -> None:
    content = (
        "Quantum computers quantum research. Research labs build quantum hardware; "
        "labs everywhere."
    )

    assert extract_keywords(content) == [
        "quantum",
        "research",
        "computers",
        "build",
        "hardware",
        "everywhere",
    ]


def test_extract_keywords_drops_short_words_and_stopwords() -> None:
    assert extract_keywords("about there could which their") == []
    keywords = extract_keywords("tiny word list plus several longer entries entries")
    assert keywords == ["entries", "several", "longer"]
    assert all(len(word) > 4 and word not in KEYWORD_STOPWORDS for word in keywords)


def test_extract_keywords_keeps_top_ten() -> None:
    words = [f"keyword{index:02d}" for index in range(12)]
    assert len(extract_keywords(" ".join(words))) == MAX_KEYWORDS


def test_to_post_draft_prefers_source_content(make_article: ArticleFactory) -> None:
    fetched: list[str] = []
    article = make_article("Robotics startup raises funding", content="Robotics content body.")

    draft = to_post_draft(
        article,
        category_id="category_1",
        fetch_full_content=True,
        fetcher=lambda url: fetched.append(url) or "scraped",
    )

    assert fetched == []
    assert draft.content == "Robotics content body."
    assert draft.slug == "robotics-startup-raises-funding"
    assert draft.published is True
    assert draft.featured is False
    assert draft.sponsored is False
    assert draft.published_at == datetime(2024, 5, 1, 10, 0, tzinfo=UTC)
    assert draft.source_url == article.url
    assert draft.source_name == "Example Wire"
    assert draft.seo_title == article.title
    assert draft.excerpt == "A short description."
    assert draft.read_time == 1


def test_to_post_draft_uses_extractor_when_content_missing(make_article: ArticleFactory) -> None:
    article = make_article("Markets rally", content=None)

    draft = to_post_draft(
        article,
        category_id=None,
        fetch_full_content=True,
        fetcher=lambda url: f"scraped from {url}",
    )

    assert draft.content == f"scraped from {article.url}"


def test_to_post_draft_falls_back_to_description_then_placeholder(
    make_article: ArticleFactory,
) -> None:
    with_description = make_article("Markets dip", content=None, description="Stocks fell.")
    without_anything = make_article(
        "Markets flat", content=None, description=None, published_at=None
    )

    first = to_post_draft(with_description, category_id=None, fetch_full_content=False)
    second = to_post_draft(without_anything, category_id=None, fetch_full_content=False)

    assert first.content == "Stocks fell."
    assert second.content == NO_CONTENT_AVAILABLE
    assert second.excerpt == NO_DESCRIPTION_AVAILABLE
    assert second.seo_description == NO_DESCRIPTION_AVAILABLE
    assert second.published_at is not None


def test_to_post_draft_uses_fallback_slug_for_symbol_titles(make_article: ArticleFactory) -> None:
    draft = to_post_draft(make_article("!!!"), category_id=None, fetch_full_content=False)
    assert draft.slug == "post"
