from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from datetime import datetime

from backend.app.repositories.category_repository import CategoryRecord, CategoryRepository
from backend.app.repositories.post_repository import (
    DuplicatePostError,
    PostDraft,
    PostRecord,
    PostRepository,
)
from backend.app.repositories.user_repository import UserRecord
from backend.app.services.article_normalizer import (
    FALLBACK_SLUG,
    calculate_read_time,
    generate_slug,
)
from backend.app.services.read_cache import ReadCache

LOGGER = logging.getLogger("newsdesk.posts")


class PostNotFoundError(Exception):
    pass


class CategoryNotFoundError(Exception):
    pass


class SlugConflictError(Exception):
    pass


@dataclass(frozen=True)
class PostInput:
    """Fields an editor may set on a manually authored post."""

    title: str
    content: str
    slug: str | None = None
    excerpt: str | None = None
    cover_image: str | None = None
    published: bool = False
    featured: bool = False
    sponsored: bool = False
    category_id: str | None = None
    tags: tuple[str, ...] = field(default_factory=tuple)
    keywords: tuple[str, ...] = field(default_factory=tuple)
    seo_title: str | None = None
    seo_description: str | None = None


class PostService:
    def __init__(
        self,
        *,
        post_repository: PostRepository,
        category_repository: CategoryRepository,
        author_provider: Callable[[], UserRecord],
        read_cache: ReadCache,
        clock_ms: Callable[[], int] | None = None,
    ) -> None:
        self._post_repository = post_repository
        self._category_repository = category_repository
        self._author_provider = author_provider
        self._read_cache = read_cache
        self._clock_ms = clock_ms if clock_ms is not None else _epoch_millis

    def list_posts(
        self,
        *,
        category_slug: str | None = None,
        featured: bool | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> list[PostRecord]:
        key = ReadCache.make_key(
            "posts",
            category=category_slug,
            featured=featured,
            limit=limit,
            offset=offset,
        )
        return self._read_cache.get_or_load(
            key,
            lambda: self._load_posts(
                category_slug=category_slug,
                featured=featured,
                limit=limit,
                offset=offset,
            ),
        )

    def get_published_post(self, slug: str) -> PostRecord:
        """Return a published post by slug and count the view.

        The view counter is written through; only the post body is cached.
        """
        key = ReadCache.make_key("post", slug=slug)
        post = self._read_cache.get_or_load(
            key, lambda: self._post_repository.get_post_by_slug(slug)
        )
        if post is None or not post.published:
            raise PostNotFoundError(f"Post not found: {slug}")
        views = self._post_repository.increment_views(post.post_id)
        if views is None:
            raise PostNotFoundError(f"Post not found: {slug}")
        return _with_views(post, views)

    def list_categories(self) -> list[CategoryRecord]:
        return self._read_cache.get_or_load(
            ReadCache.make_key("categories"),
            self._category_repository.list_categories,
        )

    def get_category(self, category_id: str) -> CategoryRecord | None:
        return self._category_repository.get_category(category_id)

    def create_post(self, data: PostInput) -> PostRecord:
        self._require_category(data.category_id)
        base_slug = generate_slug(data.slug or data.title) or FALLBACK_SLUG
        slug = f"{base_slug}-{self._clock_ms()}"
        author = self._author_provider()
        draft = _draft_from_input(data, slug=slug, published_at=None)
        try:
            created = self._post_repository.create_post(draft, author_id=author.user_id)
        except DuplicatePostError as exc:
            raise SlugConflictError(f"Slug already in use: {slug}") from exc
        self._read_cache.invalidate()
        LOGGER.info("post created post_id=%s slug=%s", created.post_id, created.slug)
        return created

    def update_post(self, post_id: str, data: PostInput) -> PostRecord:
        existing = self._post_repository.get_post(post_id)
        if existing is None:
            raise PostNotFoundError(f"Post not found: {post_id}")
        self._require_category(data.category_id)

        slug = generate_slug(data.slug) if data.slug else existing.slug
        # Republishing keeps the original publish time.
        published_at = existing.published_at if existing.published else None
        draft = _draft_from_input(data, slug=slug or existing.slug, published_at=published_at)
        try:
            updated = self._post_repository.update_post(post_id, draft)
        except DuplicatePostError as exc:
            raise SlugConflictError(f"Slug already in use: {draft.slug}") from exc
        if updated is None:
            raise PostNotFoundError(f"Post not found: {post_id}")
        self._read_cache.invalidate()
        LOGGER.info("post updated post_id=%s", post_id)
        return updated

    def delete_post(self, post_id: str) -> None:
        if not self._post_repository.delete_post(post_id):
            raise PostNotFoundError(f"Post not found: {post_id}")
        self._read_cache.invalidate()
        LOGGER.info("post deleted post_id=%s", post_id)

    def _load_posts(
        self,
        *,
        category_slug: str | None,
        featured: bool | None,
        limit: int,
        offset: int,
    ) -> list[PostRecord]:
        category_id: str | None = None
        if category_slug is not None:
            category = self._category_repository.get_by_slug(category_slug)
            if category is None:
                return []
            category_id = category.category_id
        return self._post_repository.list_posts(
            category_id=category_id,
            featured=featured,
            limit=limit,
            offset=offset,
        )

    def _require_category(self, category_id: str | None) -> None:
        if category_id is None:
            return
        if self._category_repository.get_category(category_id) is None:
            raise CategoryNotFoundError(f"Category not found: {category_id}")


def _draft_from_input(data: PostInput, *, slug: str, published_at: datetime | None) -> PostDraft:
    return PostDraft(
        title=data.title,
        slug=slug,
        content=data.content,
        excerpt=data.excerpt,
        read_time=calculate_read_time(data.content),
        cover_image=data.cover_image,
        published=data.published,
        featured=data.featured,
        sponsored=data.sponsored,
        category_id=data.category_id,
        tags=data.tags,
        keywords=data.keywords,
        seo_title=data.seo_title or data.title,
        seo_description=data.seo_description or data.excerpt,
        published_at=published_at if data.published else None,
        source_url=None,
        source_name=None,
    )


def _with_views(post: PostRecord, views: int) -> PostRecord:
    return replace(post, views=views)


def _epoch_millis() -> int:
    return int(time.time() * 1000)
