from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field, replace

from backend.app.repositories.category_repository import CategoryRecord, CategoryRepository
from backend.app.repositories.post_repository import (
    DuplicatePostError,
    PostRecord,
    PostRepository,
)
from backend.app.repositories.user_repository import (
    USER_ROLE_ADMIN,
    UserRecord,
    UserRepository,
)
from backend.app.services.article_normalizer import (
    FALLBACK_SLUG,
    calculate_read_time,
    generate_slug,
    to_post_draft,
)
from backend.app.services.content_extractor import (
    ACCEPT_MIN_CHARS,
    CONTENT_UNAVAILABLE,
    PLACEHOLDER_MARKERS,
    ContentExtractor,
)
from backend.app.services.news_client import (
    NewsApiClient,
    NewsApiResponse,
    NewsArticle,
    resolve_category,
)
from backend.app.services.read_cache import ReadCache
from backend.app.telemetry import TelemetryClient

LOGGER = logging.getLogger("newsdesk.ingestion")

CATEGORY_NAMES: dict[str, str] = {
    "tech": "Technology",
    "business": "Business",
    "health": "Health",
    "science": "Science",
}
INGESTED_CATEGORY_COLOR = "bg-blue-500"
FALLBACK_ADMIN_EMAIL = "admin@10xnews.com"
FALLBACK_ADMIN_NAME = "10xNews Staff"


@dataclass(frozen=True)
class SavedPostSummary:
    post_id: str
    title: str
    slug: str
    source: str | None


@dataclass(frozen=True)
class ArticleError:
    title: str
    error: str


@dataclass(frozen=True)
class IngestionResult:
    category: str
    total_fetched: int
    saved_posts: list[SavedPostSummary] = field(default_factory=list)
    duplicates: int = 0
    errors: list[ArticleError] = field(default_factory=list)

    @property
    def saved_count(self) -> int:
        return len(self.saved_posts)


@dataclass(frozen=True)
class BackfilledPost:
    post_id: str
    title: str
    content_length: int


class NewsIngestionService:
    """Fetch, dedupe, extract, normalize and persist news articles.

    Every write path (batch ingestion, retention sweep, content backfill)
    runs under one lock, so a scheduled tick and a manual trigger cannot
    interleave their duplicate checks and inserts.
    """

    def __init__(
        self,
        *,
        news_client: NewsApiClient,
        content_extractor: ContentExtractor,
        post_repository: PostRepository,
        category_repository: CategoryRepository,
        user_repository: UserRepository,
        telemetry: TelemetryClient | None = None,
        read_cache: ReadCache | None = None,
        retention_max_sourced_posts: int = 50,
        backfill_batch_size: int = 5,
    ) -> None:
        self._news_client = news_client
        self._content_extractor = content_extractor
        self._post_repository = post_repository
        self._category_repository = category_repository
        self._user_repository = user_repository
        self._telemetry = telemetry if telemetry is not None else TelemetryClient.disabled()
        self._read_cache = read_cache
        self._retention_max_sourced_posts = max(0, retention_max_sourced_posts)
        self._backfill_batch_size = max(1, backfill_batch_size)
        self._write_lock = threading.Lock()

    def preview(self, category: str | None, limit: int) -> NewsApiResponse:
        return self._news_client.fetch_by_category(category, limit)

    def fetch_and_save(
        self,
        category: str | None,
        limit: int,
        *,
        match_source_url: bool = True,
        fetch_full_content: bool = True,
    ) -> IngestionResult:
        resolved = resolve_category(category)
        with self._telemetry.span("news.ingest", category=resolved, limit=limit) as span:
            response = self._news_client.fetch_by_category(resolved, limit)
            LOGGER.info(
                "news fetched category=%s articles=%s total_results=%s",
                resolved,
                len(response.articles),
                response.total_results,
            )
            with self._write_lock:
                result = self._save_articles(
                    resolved,
                    response.articles,
                    match_source_url=match_source_url,
                    fetch_full_content=fetch_full_content,
                )
            span.update(
                fetched=result.total_fetched,
                saved=result.saved_count,
                duplicates=result.duplicates,
                errors=len(result.errors),
            )

        if result.saved_posts:
            self._invalidate_reads()
        LOGGER.info(
            "news ingest finished category=%s saved=%s duplicates=%s errors=%s",
            resolved,
            result.saved_count,
            result.duplicates,
            len(result.errors),
        )
        return result

    def sweep_retention(self, max_posts: int | None = None) -> int:
        keep = self._retention_max_sourced_posts if max_posts is None else max(0, max_posts)
        with self._telemetry.span("news.retention", keep=keep) as span, self._write_lock:
            sourced_ids = self._post_repository.list_sourced_post_ids_newest_first()
            stale_ids = sourced_ids[keep:]
            deleted = self._post_repository.delete_posts(stale_ids)
            span.update(examined=len(sourced_ids), deleted=deleted)

        if deleted:
            self._invalidate_reads()
            LOGGER.info("retention sweep deleted=%s kept=%s", deleted, len(sourced_ids) - deleted)
        else:
            LOGGER.info("retention sweep found nothing to delete sourced=%s", len(sourced_ids))
        return deleted

    def backfill_content(self, limit: int | None = None) -> list[BackfilledPost]:
        batch_size = self._backfill_batch_size if limit is None else max(1, limit)
        updated: list[BackfilledPost] = []
        with self._telemetry.span("news.backfill", limit=batch_size) as span, self._write_lock:
            candidates = self._post_repository.list_backfill_candidates(
                markers=PLACEHOLDER_MARKERS,
                limit=batch_size,
            )
            for post in candidates:
                refreshed = self._backfill_post(post)
                if refreshed is not None:
                    updated.append(refreshed)
            span.update(candidates=len(candidates), updated=len(updated))

        if updated:
            self._invalidate_reads()
        return updated

    def ensure_admin_user(self) -> UserRecord:
        admin = self._user_repository.find_first_by_role(USER_ROLE_ADMIN)
        if admin is not None:
            return admin
        LOGGER.info("no admin user found; creating fallback admin email=%s", FALLBACK_ADMIN_EMAIL)
        return self._user_repository.create_user(
            email=FALLBACK_ADMIN_EMAIL,
            name=FALLBACK_ADMIN_NAME,
            role=USER_ROLE_ADMIN,
        )

    def ensure_category(self, category_slug: str) -> CategoryRecord:
        existing = self._category_repository.get_by_slug(category_slug)
        if existing is not None:
            return existing
        name = CATEGORY_NAMES.get(category_slug, CATEGORY_NAMES["tech"])
        LOGGER.info("creating category slug=%s name=%s", category_slug, name)
        created = self._category_repository.create_category(
            name=name,
            slug=category_slug,
            description=f"Latest news in {name}",
            color=INGESTED_CATEGORY_COLOR,
        )
        self._invalidate_reads()
        return created

    def _save_articles(
        self,
        category: str,
        articles: list[NewsArticle],
        *,
        match_source_url: bool,
        fetch_full_content: bool,
    ) -> IngestionResult:
        admin = self.ensure_admin_user()
        category_record = self.ensure_category(category)

        saved: list[SavedPostSummary] = []
        errors: list[ArticleError] = []
        duplicates = 0
        for article in articles:
            try:
                existing = self._post_repository.find_duplicate(
                    title=article.title,
                    source_url=article.url if match_source_url else None,
                )
                if existing is not None:
                    LOGGER.info("article already exists title=%s", article.title)
                    duplicates += 1
                    continue

                post = self._persist_article(
                    article,
                    author_id=admin.user_id,
                    category_id=category_record.category_id,
                    fetch_full_content=fetch_full_content,
                )
            except DuplicatePostError as exc:
                if exc.column != "source_url":
                    LOGGER.warning("article rejected by storage title=%s", article.title)
                    errors.append(ArticleError(title=article.title, error=str(exc)))
                    continue
                LOGGER.info("article already exists url=%s", article.url)
                duplicates += 1
                continue
            except Exception as exc:
                LOGGER.warning("article save failed title=%s", article.title, exc_info=True)
                errors.append(ArticleError(title=article.title, error=str(exc)))
                continue

            saved.append(
                SavedPostSummary(
                    post_id=post.post_id,
                    title=post.title,
                    slug=post.slug,
                    source=article.source_name,
                )
            )
            LOGGER.info("article saved post_id=%s slug=%s", post.post_id, post.slug)

        return IngestionResult(
            category=category,
            total_fetched=len(articles),
            saved_posts=saved,
            duplicates=duplicates,
            errors=errors,
        )

    def _persist_article(
        self,
        article: NewsArticle,
        *,
        author_id: str,
        category_id: str,
        fetch_full_content: bool,
    ) -> PostRecord:
        draft = to_post_draft(
            article,
            category_id=category_id,
            fetch_full_content=fetch_full_content,
            fetcher=self._content_extractor.fetch_full_content,
        )
        draft = replace(draft, slug=self._unique_slug(draft.slug))
        return self._post_repository.create_post(draft, author_id=author_id)

    def _unique_slug(self, base_slug: str) -> str:
        base = generate_slug(base_slug) or FALLBACK_SLUG
        candidate = base
        suffix = 2
        while self._post_repository.slug_exists(candidate):
            candidate = f"{base}-{suffix}"
            suffix += 1
        return candidate

    def _backfill_post(self, post: PostRecord) -> BackfilledPost | None:
        if post.source_url is None:
            return None
        try:
            content = self._content_extractor.fetch_full_content(post.source_url)
            if len(content) <= ACCEPT_MIN_CHARS or CONTENT_UNAVAILABLE in content:
                LOGGER.info("backfill found no usable content post_id=%s", post.post_id)
                return None
            refreshed = self._post_repository.update_content(
                post.post_id,
                content=content,
                read_time=calculate_read_time(content),
            )
        except Exception:
            LOGGER.warning("backfill failed post_id=%s", post.post_id, exc_info=True)
            return None
        if refreshed is None:
            return None
        LOGGER.info("backfill updated post_id=%s chars=%s", post.post_id, len(content))
        return BackfilledPost(
            post_id=refreshed.post_id,
            title=refreshed.title,
            content_length=len(content),
        )

    def _invalidate_reads(self) -> None:
        if self._read_cache is not None:
            self._read_cache.invalidate()
