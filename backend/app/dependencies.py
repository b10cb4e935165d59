from __future__ import annotations

from functools import lru_cache

from backend.app.config import AppSettings, load_settings
from backend.app.repositories.category_repository import CategoryRepository
from backend.app.repositories.database import Database
from backend.app.repositories.post_repository import PostRepository
from backend.app.repositories.user_repository import UserRepository
from backend.app.services.content_extractor import ContentExtractor
from backend.app.services.ingestion_service import NewsIngestionService
from backend.app.services.news_client import NewsApiClient
from backend.app.services.post_service import PostService
from backend.app.services.read_cache import ReadCache
from backend.app.services.scheduler_service import NewsScheduler
from backend.app.telemetry import TelemetryClient, build_telemetry_client


@lru_cache(maxsize=1)
def get_settings() -> AppSettings:
    # The API boots without a key; fetch endpoints report the missing key instead.
    return load_settings(validate_api_key=False)


@lru_cache(maxsize=1)
def get_database() -> Database:
    settings = get_settings()
    database = Database(settings.db_path)
    database.initialize()
    return database


@lru_cache(maxsize=1)
def get_read_cache() -> ReadCache:
    settings = get_settings()
    return ReadCache(
        ttl_seconds=settings.read_cache_ttl_seconds,
        max_entries=settings.read_cache_max_entries,
    )


@lru_cache(maxsize=1)
def get_ingestion_service() -> NewsIngestionService:
    settings = get_settings()
    database = get_database()
    return NewsIngestionService(
        news_client=NewsApiClient(
            api_key=settings.newsapi_api_key,
            base_url=settings.newsapi_base_url,
            timeout_seconds=settings.newsapi_timeout_seconds,
        ),
        content_extractor=ContentExtractor(
            timeout_seconds=settings.content_fetch_timeout_seconds,
            user_agent=settings.content_fetch_user_agent,
        ),
        post_repository=PostRepository(database),
        category_repository=CategoryRepository(database),
        user_repository=UserRepository(database),
        telemetry=get_telemetry(),
        read_cache=get_read_cache(),
        retention_max_sourced_posts=settings.retention_max_sourced_posts,
        backfill_batch_size=settings.content_backfill_batch_size,
    )


@lru_cache(maxsize=1)
def get_post_service() -> PostService:
    database = get_database()
    return PostService(
        post_repository=PostRepository(database),
        category_repository=CategoryRepository(database),
        author_provider=get_ingestion_service().ensure_admin_user,
        read_cache=get_read_cache(),
    )


@lru_cache(maxsize=1)
def get_scheduler() -> NewsScheduler:
    settings = get_settings()
    return NewsScheduler(
        get_ingestion_service(),
        fetch_page_size=settings.scheduler_fetch_page_size,
        poll_interval_seconds=settings.scheduler_poll_interval_seconds,
        timezone_name=settings.default_timezone,
        telemetry=get_telemetry(),
        lock_path=settings.data_dir / "scheduler.lock",
    )


@lru_cache(maxsize=1)
def get_telemetry() -> TelemetryClient:
    settings = get_settings()
    return build_telemetry_client(
        enabled=settings.telemetry_enabled,
        sink=settings.telemetry_sink,
    )


def reset_cached_dependencies() -> None:
    scheduler_cached = get_scheduler.cache_info().currsize > 0
    if scheduler_cached:
        get_scheduler().stop()
    get_scheduler.cache_clear()
    get_post_service.cache_clear()
    get_ingestion_service.cache_clear()
    get_read_cache.cache_clear()
    get_database.cache_clear()
    get_telemetry.cache_clear()
    get_settings.cache_clear()
