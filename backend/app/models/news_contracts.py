from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from backend.app.repositories.category_repository import CategoryRecord
from backend.app.repositories.post_repository import PostRecord
from backend.app.services.news_client import DEFAULT_CATEGORY, NewsArticle


def _normalize_optional_text(value: object) -> str | None:
    if not isinstance(value, str):
        return None
    normalized = value.strip()
    if not normalized:
        return None
    return normalized


def _default_str_list() -> list[str]:
    return []


class NewsFetchRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    category: str = DEFAULT_CATEGORY
    limit: int = Field(default=10, ge=1, le=100)

    @field_validator("category", mode="before")
    @classmethod
    def _normalize_category(cls, value: object) -> str:
        return _normalize_optional_text(value) or DEFAULT_CATEGORY


class ArticlePreview(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    title: str
    description: str | None = None
    url: str
    url_to_image: str | None = Field(default=None, alias="urlToImage")
    published_at: str | None = Field(default=None, alias="publishedAt")
    source: str
    author: str | None = None

    @classmethod
    def from_article(cls, article: NewsArticle) -> ArticlePreview:
        return cls(
            title=article.title,
            description=article.description,
            url=article.url,
            url_to_image=article.url_to_image,
            published_at=article.published_at,
            source=article.source_name,
            author=article.author,
        )


class NewsPreviewResponse(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    success: bool
    articles: list[ArticlePreview]
    total_results: int = Field(alias="totalResults")


class SavedPostSummaryModel(BaseModel):
    model_config = ConfigDict(extra="forbid")

    id: str
    title: str
    slug: str
    source: str | None = None


class ArticleErrorModel(BaseModel):
    model_config = ConfigDict(extra="forbid")

    title: str
    error: str


class NewsFetchResponse(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    success: bool
    message: str
    saved_posts: list[SavedPostSummaryModel] = Field(alias="savedPosts")
    errors: list[ArticleErrorModel]
    total_fetched: int = Field(alias="totalFetched")


class SchedulerActionRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    action: str
    category: str | None = None
    limit: int | None = Field(default=None, ge=1, le=100)


class SchedulerActionResponse(BaseModel):
    model_config = ConfigDict(extra="forbid")

    success: bool
    message: str


class SchedulerFetchResponse(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    success: bool
    saved_count: int = Field(alias="savedCount")
    saved_posts: list[SavedPostSummaryModel] = Field(alias="savedPosts")
    total_fetched: int = Field(alias="totalFetched")
    errors: list[ArticleErrorModel]


class SchedulerInfoResponse(BaseModel):
    model_config = ConfigDict(extra="forbid")

    success: bool
    message: str
    endpoints: dict[str, str]


class UpdatedArticleModel(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    id: str
    title: str
    content_length: int = Field(alias="contentLength")


class ContentUpdateResponse(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    success: bool
    message: str
    updated_articles: list[UpdatedArticleModel] = Field(alias="updatedArticles")


class ErrorResponse(BaseModel):
    model_config = ConfigDict(extra="forbid")

    success: Literal[False] = False
    error: str


class PostWriteRequest(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    title: str = Field(min_length=1, max_length=300)
    slug: str | None = Field(default=None, max_length=300)
    content: str = Field(min_length=1)
    excerpt: str | None = Field(default=None, max_length=2000)
    cover_image: str | None = Field(default=None, alias="coverImage", max_length=2048)
    published: bool = False
    featured: bool = False
    sponsored: bool = False
    category_id: str | None = Field(default=None, alias="categoryId")
    tags: list[str] = Field(default_factory=_default_str_list)
    keywords: list[str] = Field(default_factory=_default_str_list)
    seo_title: str | None = Field(default=None, alias="seoTitle", max_length=300)
    seo_description: str | None = Field(default=None, alias="seoDescription", max_length=2000)

    @field_validator(
        "slug",
        "excerpt",
        "cover_image",
        "category_id",
        "seo_title",
        "seo_description",
        mode="before",
    )
    @classmethod
    def _normalize_optional_fields(cls, value: object) -> str | None:
        return _normalize_optional_text(value)

    @field_validator("tags", "keywords")
    @classmethod
    def _dedupe_terms(cls, value: list[str]) -> list[str]:
        seen: dict[str, None] = {}
        for term in value:
            normalized = term.strip()
            if normalized:
                seen.setdefault(normalized, None)
        return list(seen)


class PostModel(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    id: str
    title: str
    slug: str
    content: str
    excerpt: str | None = None
    cover_image: str | None = Field(default=None, alias="coverImage")
    published: bool
    featured: bool
    sponsored: bool
    author_id: str = Field(alias="authorId")
    category_id: str | None = Field(default=None, alias="categoryId")
    tags: list[str]
    keywords: list[str]
    seo_title: str | None = Field(default=None, alias="seoTitle")
    seo_description: str | None = Field(default=None, alias="seoDescription")
    views: int
    read_time: int = Field(alias="readTime")
    source_url: str | None = Field(default=None, alias="sourceUrl")
    source_name: str | None = Field(default=None, alias="sourceName")
    published_at: str | None = Field(default=None, alias="publishedAt")
    created_at: str = Field(alias="createdAt")
    updated_at: str = Field(alias="updatedAt")

    @classmethod
    def from_record(cls, post: PostRecord) -> PostModel:
        return cls(
            id=post.post_id,
            title=post.title,
            slug=post.slug,
            content=post.content,
            excerpt=post.excerpt,
            cover_image=post.cover_image,
            published=post.published,
            featured=post.featured,
            sponsored=post.sponsored,
            author_id=post.author_id,
            category_id=post.category_id,
            tags=list(post.tags),
            keywords=list(post.keywords),
            seo_title=post.seo_title,
            seo_description=post.seo_description,
            views=post.views,
            read_time=post.read_time,
            source_url=post.source_url,
            source_name=post.source_name,
            published_at=None if post.published_at is None else post.published_at.isoformat(),
            created_at=post.created_at.isoformat(),
            updated_at=post.updated_at.isoformat(),
        )


class PostResponse(BaseModel):
    model_config = ConfigDict(extra="forbid")

    post: PostModel


class PostListResponse(BaseModel):
    model_config = ConfigDict(extra="forbid")

    count: int
    posts: list[PostModel]
    offset: int
    limit: int


class PostDeleteResponse(BaseModel):
    model_config = ConfigDict(extra="forbid")

    success: bool


class CategoryModel(BaseModel):
    model_config = ConfigDict(extra="forbid")

    id: str
    name: str
    slug: str
    description: str | None = None
    color: str | None = None

    @classmethod
    def from_record(cls, category: CategoryRecord) -> CategoryModel:
        return cls(
            id=category.category_id,
            name=category.name,
            slug=category.slug,
            description=category.description,
            color=category.color,
        )


class CategoryListResponse(BaseModel):
    model_config = ConfigDict(extra="forbid")

    categories: list[CategoryModel]


class HealthResponse(BaseModel):
    model_config = ConfigDict(extra="forbid")

    status: Literal["ok"]
    scheduler_running: bool
