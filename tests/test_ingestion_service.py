from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import Any

import pytest

from backend.app.repositories.category_repository import CategoryRepository
from backend.app.repositories.database import Database
from backend.app.repositories.post_repository import PostDraft, PostRepository
from backend.app.repositories.user_repository import USER_ROLE_ADMIN, UserRepository
from backend.app.services.content_extractor import CONTENT_UNAVAILABLE, NO_CONTENT_AVAILABLE
from backend.app.services.ingestion_service import NewsIngestionService
from backend.app.services.news_client import NewsArticle, NewsSourceError
from backend.app.services.read_cache import ReadCache

ArticleFactory = Callable[..., NewsArticle]


def _seed_post(
    database: Database,
    *,
    title: str,
    source_url: str | None,
    published_at: datetime | None = None,
    content: str = "Existing body.",
) -> str:
    users = UserRepository(database)
    author = users.find_first_by_role(USER_ROLE_ADMIN) or users.create_user(
        email="editor@example.com", name="Editor", role=USER_ROLE_ADMIN
    )
    post = PostRepository(database).create_post(
        PostDraft(
            title=title,
            slug="-".join(title.lower().split()),
            content=content,
            excerpt=None,
            read_time=1,
            published=True,
            published_at=published_at,
            source_url=source_url,
            source_name="Seed" if source_url else None,
        ),
        author_id=author.user_id,
    )
    return post.post_id


def test_fetch_and_save_creates_admin_category_and_posts(
    ingestion: NewsIngestionService,
    database: Database,
    fake_news_client: Any,
    make_article: ArticleFactory,
) -> None:
    fake_news_client.articles = [
        make_article("AI startup launches robotics platform"),
        make_article("Cloud computing costs fall"),
    ]

    result = ingestion.fetch_and_save("tech", 5)

    assert result.total_fetched == 2
    assert result.saved_count == 2
    assert result.duplicates == 0
    assert result.errors == []
    assert fake_news_client.calls == [("tech", 5)]

    admin = UserRepository(database).find_first_by_role(USER_ROLE_ADMIN)
    assert admin is not None
    assert admin.email == "admin@10xnews.com"
    assert admin.name == "10xNews Staff"

    category = CategoryRepository(database).get_by_slug("tech")
    assert category is not None
    assert category.name == "Technology"
    assert category.description == "Latest news in Technology"
    assert category.color == "bg-blue-500"

    post = PostRepository(database).get_post_by_slug("ai-startup-launches-robotics-platform")
    assert post is not None
    assert post.author_id == admin.user_id
    assert post.category_id == category.category_id
    assert post.published is True
    assert post.published_at is not None
    assert post.source_url == "https://news.example.com/ai-startup-launches-robotics-platform"
    assert post.source_name == "Example Wire"
    assert result.saved_posts[0].source == "Example Wire"


def test_fetch_and_save_reuses_existing_admin(
    ingestion: NewsIngestionService,
    database: Database,
    fake_news_client: Any,
    make_article: ArticleFactory,
) -> None:
    existing = UserRepository(database).create_user(
        email="chief@example.com", name="Chief", role=USER_ROLE_ADMIN
    )
    fake_news_client.articles = [make_article("Quarterly earnings beat estimates")]

    ingestion.fetch_and_save("business", 5)

    post = PostRepository(database).get_post_by_slug("quarterly-earnings-beat-estimates")
    assert post is not None
    assert post.author_id == existing.user_id
    assert UserRepository(database).get_by_email("admin@10xnews.com") is None


def test_duplicate_titles_in_one_batch_are_saved_once(
    ingestion: NewsIngestionService,
    database: Database,
    fake_news_client: Any,
    make_article: ArticleFactory,
) -> None:
    fake_news_client.articles = [
        make_article("Same headline", url="https://one.example.com/a"),
        make_article("Same headline", url="https://two.example.com/b"),
    ]

    result = ingestion.fetch_and_save("tech", 10)

    assert result.saved_count == 1
    assert result.duplicates == 1
    assert PostRepository(database).count_posts() == 1


def test_rerunning_a_batch_saves_nothing_new(
    ingestion: NewsIngestionService,
    fake_news_client: Any,
    make_article: ArticleFactory,
) -> None:
    fake_news_client.articles = [make_article("Story one"), make_article("Story two")]

    first = ingestion.fetch_and_save("tech", 10)
    second = ingestion.fetch_and_save("tech", 10)

    assert first.saved_count == 2
    assert second.saved_count == 0
    assert second.duplicates == 2


def test_business_batch_skips_existing_title(
    ingestion: NewsIngestionService,
    database: Database,
    fake_news_client: Any,
    make_article: ArticleFactory,
) -> None:
    _seed_post(database, title="Retail sales climb", source_url=None)
    fake_news_client.articles = [
        make_article("Retail sales climb"),
        make_article("Oil prices steady"),
    ]

    result = ingestion.fetch_and_save("business", 2)

    assert result.total_fetched == 2
    assert [post.title for post in result.saved_posts] == ["Oil prices steady"]
    assert result.duplicates == 1
    category = CategoryRepository(database).get_by_slug("business")
    assert category is not None
    assert category.name == "Business"


def test_unknown_category_is_ingested_as_tech(
    ingestion: NewsIngestionService,
    database: Database,
    fake_news_client: Any,
    make_article: ArticleFactory,
) -> None:
    fake_news_client.articles = [make_article("Gadget review")]

    result = ingestion.fetch_and_save("sports", 5)

    assert result.category == "tech"
    assert fake_news_client.calls == [("tech", 5)]
    assert CategoryRepository(database).get_by_slug("sports") is None
    assert CategoryRepository(database).get_by_slug("tech") is not None


def test_strict_mode_matches_source_url(
    ingestion: NewsIngestionService,
    database: Database,
    fake_news_client: Any,
    make_article: ArticleFactory,
) -> None:
    _seed_post(database, title="Original headline", source_url="https://news.example.com/x")
    fake_news_client.articles = [
        make_article("Rewritten headline", url="https://news.example.com/x")
    ]

    result = ingestion.fetch_and_save("tech", 5)

    assert result.saved_count == 0
    assert result.duplicates == 1
    assert result.errors == []


def test_title_only_mode_still_rejects_repeated_source_url(
    ingestion: NewsIngestionService,
    database: Database,
    fake_news_client: Any,
    make_article: ArticleFactory,
) -> None:
    _seed_post(database, title="Original headline", source_url="https://news.example.com/x")
    fake_news_client.articles = [
        make_article("Rewritten headline", url="https://news.example.com/x")
    ]

    result = ingestion.fetch_and_save("tech", 5, match_source_url=False)

    assert result.saved_count == 0
    assert result.duplicates == 1
    assert result.errors == []
    assert PostRepository(database).count_posts() == 1


def test_colliding_slugs_get_numeric_suffixes(
    ingestion: NewsIngestionService,
    fake_news_client: Any,
    make_article: ArticleFactory,
) -> None:
    fake_news_client.articles = [
        make_article("Hello, World!", url="https://news.example.com/1"),
        make_article("Hello World", url="https://news.example.com/2"),
        make_article("Hello -- World", url="https://news.example.com/3"),
    ]

    result = ingestion.fetch_and_save("tech", 5)

    assert [post.slug for post in result.saved_posts] == [
        "hello-world",
        "hello-world-2",
        "hello-world-3",
    ]


def test_per_article_failures_are_collected(
    ingestion: NewsIngestionService,
    fake_news_client: Any,
    fake_extractor: Any,
    make_article: ArticleFactory,
) -> None:
    fake_extractor.error = RuntimeError("scraper exploded")
    fake_news_client.articles = [
        make_article("Needs scraping", content=None),
        make_article("Has content"),
    ]

    result = ingestion.fetch_and_save("tech", 5)

    assert [post.title for post in result.saved_posts] == ["Has content"]
    assert len(result.errors) == 1
    assert result.errors[0].title == "Needs scraping"
    assert result.errors[0].error == "scraper exploded"


def test_missing_content_is_scraped(
    ingestion: NewsIngestionService,
    database: Database,
    fake_news_client: Any,
    fake_extractor: Any,
    make_article: ArticleFactory,
) -> None:
    fake_extractor.content = "Scraped paragraph. " * 300
    article = make_article("Deep dive on chips", content=None)
    fake_news_client.articles = [article]

    ingestion.fetch_and_save("tech", 5)

    assert fake_extractor.urls == [article.url]
    post = PostRepository(database).get_post_by_slug("deep-dive-on-chips")
    assert post is not None
    assert post.content.startswith("Scraped paragraph.")
    assert post.read_time == 3


def test_upstream_failure_propagates(
    ingestion: NewsIngestionService,
    fake_news_client: Any,
) -> None:
    fake_news_client.error = NewsSourceError("rateLimited")

    with pytest.raises(NewsSourceError, match="rateLimited"):
        ingestion.fetch_and_save("tech", 5)


def test_saving_posts_clears_read_cache(
    ingestion: NewsIngestionService,
    read_cache: ReadCache,
    fake_news_client: Any,
    make_article: ArticleFactory,
) -> None:
    read_cache.get_or_load("posts:stale", lambda: ["stale"])
    assert len(read_cache) == 1
    fake_news_client.articles = [make_article("Fresh story")]

    ingestion.fetch_and_save("tech", 5)

    assert len(read_cache) == 0


def test_retention_sweep_keeps_newest_sourced_posts_and_all_manual_posts(
    ingestion: NewsIngestionService,
    database: Database,
) -> None:
    base = datetime(2024, 1, 1, tzinfo=UTC)
    for index in range(60):
        _seed_post(
            database,
            title=f"Sourced story {index:02d}",
            source_url=f"https://news.example.com/{index}",
            published_at=base + timedelta(hours=index),
        )
    for index in range(10):
        _seed_post(database, title=f"Manual post {index:02d}", source_url=None)

    deleted = ingestion.sweep_retention()

    posts = PostRepository(database)
    assert deleted == 10
    assert posts.count_posts(sourced=True) == 50
    assert posts.count_posts(sourced=False) == 10
    assert posts.get_post_by_slug("sourced-story-09") is None
    assert posts.get_post_by_slug("sourced-story-10") is not None
    assert posts.get_post_by_slug("sourced-story-59") is not None


def test_retention_sweep_honours_explicit_limit(
    ingestion: NewsIngestionService,
    database: Database,
) -> None:
    base = datetime(2024, 1, 1, tzinfo=UTC)
    for index in range(5):
        _seed_post(
            database,
            title=f"Sourced story {index}",
            source_url=f"https://news.example.com/{index}",
            published_at=base + timedelta(days=index),
        )

    assert ingestion.sweep_retention(2) == 3
    assert ingestion.sweep_retention(2) == 0
    assert PostRepository(database).count_posts(sourced=True) == 2


def test_backfill_replaces_placeholder_content(
    ingestion: NewsIngestionService,
    database: Database,
    fake_extractor: Any,
) -> None:
    placeholder_id = _seed_post(
        database,
        title="Placeholder story",
        source_url="https://news.example.com/placeholder",
        content=CONTENT_UNAVAILABLE,
    )
    empty_id = _seed_post(
        database,
        title="Empty story",
        source_url="https://news.example.com/empty",
        content=NO_CONTENT_AVAILABLE,
    )
    healthy_id = _seed_post(
        database,
        title="Healthy story",
        source_url="https://news.example.com/healthy",
        content="Already complete body.",
    )
    manual_id = _seed_post(
        database,
        title="Manual story",
        source_url=None,
        content=NO_CONTENT_AVAILABLE,
    )
    fake_extractor.content = "Recovered sentence. " * 60

    updated = ingestion.backfill_content()

    posts = PostRepository(database)
    assert {item.post_id for item in updated} == {placeholder_id, empty_id}
    assert all(item.content_length == len(fake_extractor.content) for item in updated)
    refreshed = posts.get_post(placeholder_id)
    assert refreshed is not None
    assert refreshed.content == fake_extractor.content
    assert refreshed.read_time == 1
    healthy = posts.get_post(healthy_id)
    manual = posts.get_post(manual_id)
    assert healthy is not None and healthy.content == "Already complete body."
    assert manual is not None and manual.content == NO_CONTENT_AVAILABLE


def test_backfill_skips_results_that_are_still_unusable(
    ingestion: NewsIngestionService,
    database: Database,
    fake_extractor: Any,
) -> None:
    post_id = _seed_post(
        database,
        title="Placeholder story",
        source_url="https://news.example.com/placeholder",
        content=CONTENT_UNAVAILABLE,
    )

    fake_extractor.content = CONTENT_UNAVAILABLE
    assert ingestion.backfill_content() == []
    fake_extractor.content = "x" * 500
    assert ingestion.backfill_content() == []

    post = PostRepository(database).get_post(post_id)
    assert post is not None
    assert post.content == CONTENT_UNAVAILABLE


def test_backfill_accepts_articles_that_quote_the_empty_marker(
    ingestion: NewsIngestionService,
    database: Database,
    fake_extractor: Any,
) -> None:
    post_id = _seed_post(
        database,
        title="Placeholder story",
        source_url="https://news.example.com/placeholder",
        content=CONTENT_UNAVAILABLE,
    )
    fake_extractor.content = (
        "The status page simply read No content available for six hours. " * 10
    ).strip()

    updated = ingestion.backfill_content()

    assert [item.post_id for item in updated] == [post_id]
    post = PostRepository(database).get_post(post_id)
    assert post is not None
    assert post.content == fake_extractor.content


def test_backfill_processes_one_batch_per_run(
    ingestion: NewsIngestionService,
    database: Database,
    fake_extractor: Any,
) -> None:
    for index in range(7):
        _seed_post(
            database,
            title=f"Placeholder {index}",
            source_url=f"https://news.example.com/p{index}",
            content=CONTENT_UNAVAILABLE,
        )
    fake_extractor.content = "Recovered sentence. " * 60

    assert len(ingestion.backfill_content()) == 5
    assert len(ingestion.backfill_content()) == 2
    assert ingestion.backfill_content() == []
