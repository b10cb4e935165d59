from __future__ import annotations

from collections.abc import Callable, Iterator
from pathlib import Path
from typing import Any, cast

import pytest
from fastapi.testclient import TestClient

from backend.app.dependencies import (
    get_ingestion_service,
    get_post_service,
    get_scheduler,
    reset_cached_dependencies,
)
from backend.app.main import create_app
from backend.app.repositories.category_repository import CategoryRepository
from backend.app.repositories.database import Database
from backend.app.repositories.post_repository import PostRepository
from backend.app.repositories.user_repository import UserRepository
from backend.app.services.content_extractor import CONTENT_UNAVAILABLE
from backend.app.services.ingestion_service import NewsIngestionService
from backend.app.services.news_client import NewsApiResponse, NewsArticle
from backend.app.services.post_service import PostService
from backend.app.services.read_cache import ReadCache
from backend.app.services.scheduler_service import NewsScheduler


class FakeNewsClient:
    def __init__(self) -> None:
        self.articles: list[NewsArticle] = []
        self.error: Exception | None = None
        self.calls: list[tuple[str | None, int]] = []

    def fetch_by_category(self, category: str | None, page_size: int = 20) -> NewsApiResponse:
        self.calls.append((category, page_size))
        if self.error is not None:
            raise self.error
        return NewsApiResponse(
            status="ok",
            total_results=len(self.articles),
            articles=self.articles[:page_size],
        )


class FakeExtractor:
    def __init__(self) -> None:
        self.content = CONTENT_UNAVAILABLE
        self.error: Exception | None = None
        self.urls: list[str] = []

    def fetch_full_content(self, url: str) -> str:
        self.urls.append(url)
        if self.error is not None:
            raise self.error
        return self.content


ArticleFactory = Callable[..., NewsArticle]


@pytest.fixture(autouse=True)
def _newsdesk_env_defaults(  # pyright: ignore[reportUnusedFunction]
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setenv("NEWSDESK_DATA_DIR", str(tmp_path / "runtime-data"))
    monkeypatch.setenv("NEWSDESK_ENABLE_SCHEDULER", "0")
    monkeypatch.setenv("NEWSDESK_NEWSAPI_API_KEY", "test-newsapi-key")
    monkeypatch.setenv("NEWSDESK_TELEMETRY_SINK", "none")


@pytest.fixture
def database(tmp_path: Path) -> Database:
    db = Database(tmp_path / "newsdesk-test.db")
    db.initialize()
    return db


@pytest.fixture
def make_article() -> ArticleFactory:
    def _make(
        title: str,
        *,
        url: str | None = None,
        content: str | None = "Body text from the news source.",
        description: str | None = "A short description.",
        published_at: str | None = "2024-05-01T10:00:00Z",
        source_name: str = "Example Wire",
    ) -> NewsArticle:
        slug = "-".join(title.lower().split())
        return NewsArticle(
            source_id=None,
            source_name=source_name,
            author="Reporter",
            title=title,
            description=description,
            url=url or f"https://news.example.com/{slug}",
            url_to_image="https://news.example.com/image.jpg",
            published_at=published_at,
            content=content,
        )

    return _make


@pytest.fixture
def fake_news_client() -> FakeNewsClient:
    return FakeNewsClient()


@pytest.fixture
def fake_extractor() -> FakeExtractor:
    return FakeExtractor()


@pytest.fixture
def read_cache() -> ReadCache:
    return ReadCache(ttl_seconds=300, max_entries=64)


@pytest.fixture
def ingestion(
    database: Database,
    fake_news_client: FakeNewsClient,
    fake_extractor: FakeExtractor,
    read_cache: ReadCache,
) -> NewsIngestionService:
    return NewsIngestionService(
        news_client=cast(Any, fake_news_client),
        content_extractor=cast(Any, fake_extractor),
        post_repository=PostRepository(database),
        category_repository=CategoryRepository(database),
        user_repository=UserRepository(database),
        read_cache=read_cache,
    )


@pytest.fixture
def post_service(
    database: Database,
    ingestion: NewsIngestionService,
    read_cache: ReadCache,
) -> PostService:
    return PostService(
        post_repository=PostRepository(database),
        category_repository=CategoryRepository(database),
        author_provider=ingestion.ensure_admin_user,
        read_cache=read_cache,
    )


@pytest.fixture
def scheduler(ingestion: NewsIngestionService) -> Iterator[NewsScheduler]:
    news_scheduler = NewsScheduler(ingestion, poll_interval_seconds=1)
    yield news_scheduler
    news_scheduler.stop()


@pytest.fixture
def client(
    ingestion: NewsIngestionService,
    post_service: PostService,
    scheduler: NewsScheduler,
) -> Iterator[TestClient]:
    reset_cached_dependencies()
    app = create_app()
    app.dependency_overrides[get_ingestion_service] = lambda: ingestion
    app.dependency_overrides[get_post_service] = lambda: post_service
    app.dependency_overrides[get_scheduler] = lambda: scheduler
    with TestClient(app) as test_client:
        yield test_client

    reset_cached_dependencies()
