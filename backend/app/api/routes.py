from __future__ import annotations

import logging
from typing import Annotated, Any

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import JSONResponse
from structlog.contextvars import bind_contextvars, reset_contextvars

from backend.app.dependencies import get_ingestion_service, get_post_service, get_scheduler
from backend.app.models.news_contracts import (
    ArticleErrorModel,
    ArticlePreview,
    CategoryListResponse,
    CategoryModel,
    ContentUpdateResponse,
    ErrorResponse,
    NewsFetchRequest,
    NewsFetchResponse,
    NewsPreviewResponse,
    PostDeleteResponse,
    PostListResponse,
    PostModel,
    PostResponse,
    PostWriteRequest,
    SavedPostSummaryModel,
    SchedulerActionRequest,
    SchedulerActionResponse,
    SchedulerFetchResponse,
    SchedulerInfoResponse,
    UpdatedArticleModel,
)
from backend.app.services.ingestion_service import NewsIngestionService
from backend.app.services.news_client import NewsSourceError
from backend.app.services.post_service import (
    CategoryNotFoundError,
    PostInput,
    PostNotFoundError,
    PostService,
    SlugConflictError,
)
from backend.app.services.scheduler_service import FETCH_NOW_DEFAULT_LIMIT, NewsScheduler

LOGGER = logging.getLogger("newsdesk.api")

INVALID_SCHEDULER_ACTION = 'Invalid action. Use "start", "stop", or "fetch"'
SCHEDULER_ENDPOINTS: dict[str, str] = {
    "start": 'POST /api/news/scheduler with { "action": "start" }',
    "stop": 'POST /api/news/scheduler with { "action": "stop" }',
    "fetch": (
        'POST /api/news/scheduler with { "action": "fetch", "category": "tech", "limit": 10 }'
    ),
}

router = APIRouter()


def _failure(status_code: int, error: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": error})


def _post_input(request: PostWriteRequest) -> PostInput:
    return PostInput(
        title=request.title.strip(),
        content=request.content,
        slug=request.slug,
        excerpt=request.excerpt,
        cover_image=request.cover_image,
        published=request.published,
        featured=request.featured,
        sponsored=request.sponsored,
        category_id=request.category_id,
        tags=tuple(request.tags),
        keywords=tuple(request.keywords),
        seo_title=request.seo_title,
        seo_description=request.seo_description,
    )


@router.get(
    "/api/news/fetch",
    response_model=NewsPreviewResponse,
    response_model_by_alias=True,
    tags=["news"],
    operation_id="news_fetch_preview",
    responses={500: {"model": ErrorResponse}},
)
def news_fetch_preview(
    ingestion: Annotated[NewsIngestionService, Depends(get_ingestion_service)],
    category: Annotated[str, Query(max_length=32)] = "tech",
    limit: Annotated[int, Query(ge=1, le=100)] = 10,
) -> Any:
    try:
        response = ingestion.preview(category, limit)
    except NewsSourceError as exc:
        LOGGER.warning("news preview failed category=%s", category)
        return _failure(500, str(exc))
    return NewsPreviewResponse(
        success=True,
        articles=[ArticlePreview.from_article(article) for article in response.articles],
        total_results=response.total_results,
    )


@router.post(
    "/api/news/fetch",
    response_model=NewsFetchResponse,
    response_model_by_alias=True,
    tags=["news"],
    operation_id="news_fetch_and_save",
    responses={500: {"model": ErrorResponse}},
)
def news_fetch_and_save(
    request: NewsFetchRequest,
    ingestion: Annotated[NewsIngestionService, Depends(get_ingestion_service)],
) -> Any:
    context_tokens = bind_contextvars(news_category=request.category)
    try:
        result = ingestion.fetch_and_save(
            request.category,
            request.limit,
            match_source_url=False,
        )
    except NewsSourceError as exc:
        LOGGER.warning("news fetch failed category=%s", request.category)
        return _failure(500, str(exc))
    finally:
        reset_contextvars(**context_tokens)

    return NewsFetchResponse(
        success=True,
        message=f"Successfully fetched and saved {result.saved_count} articles",
        saved_posts=[
            SavedPostSummaryModel(
                id=post.post_id,
                title=post.title,
                slug=post.slug,
                source=post.source,
            )
            for post in result.saved_posts
        ],
        errors=[ArticleErrorModel(title=error.title, error=error.error) for error in result.errors],
        total_fetched=result.total_fetched,
    )


@router.post(
    "/api/news/scheduler",
    tags=["news"],
    operation_id="news_scheduler_action",
    responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
def news_scheduler_action(
    request: SchedulerActionRequest,
    scheduler: Annotated[NewsScheduler, Depends(get_scheduler)],
) -> Any:
    action = request.action.strip().lower()
    if action == "start":
        scheduler.start()
        return SchedulerActionResponse(
            success=True, message="News scheduler started successfully"
        )
    if action == "stop":
        scheduler.stop()
        return SchedulerActionResponse(
            success=True, message="News scheduler stopped successfully"
        )
    if action == "fetch":
        result = scheduler.trigger_now(
            request.category or "tech",
            request.limit or FETCH_NOW_DEFAULT_LIMIT,
        )
        if not result.get("success"):
            return JSONResponse(status_code=500, content=result)
        return JSONResponse(
            content=SchedulerFetchResponse.model_validate(result).model_dump(by_alias=True)
        )
    return _failure(400, INVALID_SCHEDULER_ACTION)


@router.get(
    "/api/news/scheduler",
    response_model=SchedulerInfoResponse,
    tags=["news"],
    operation_id="news_scheduler_info",
)
def news_scheduler_info(
    scheduler: Annotated[NewsScheduler, Depends(get_scheduler)],
) -> SchedulerInfoResponse:
    return SchedulerInfoResponse(
        success=True,
        message="News scheduler API is running",
        endpoints=SCHEDULER_ENDPOINTS,
    )


@router.post(
    "/api/news/update-content",
    response_model=ContentUpdateResponse,
    response_model_by_alias=True,
    tags=["news"],
    operation_id="news_update_content",
)
def news_update_content(
    ingestion: Annotated[NewsIngestionService, Depends(get_ingestion_service)],
) -> ContentUpdateResponse:
    updated = ingestion.backfill_content()
    return ContentUpdateResponse(
        success=True,
        message=f"Updated {len(updated)} articles",
        updated_articles=[
            UpdatedArticleModel(
                id=post.post_id,
                title=post.title,
                content_length=post.content_length,
            )
            for post in updated
        ],
    )


@router.get(
    "/api/posts",
    response_model=PostListResponse,
    tags=["posts"],
    operation_id="list_posts",
)
def list_posts(
    posts: Annotated[PostService, Depends(get_post_service)],
    category: Annotated[str | None, Query(max_length=64)] = None,
    featured: bool | None = None,
    limit: Annotated[int, Query(ge=1, le=100)] = 20,
    offset: Annotated[int, Query(ge=0)] = 0,
) -> PostListResponse:
    records = posts.list_posts(
        category_slug=category,
        featured=featured,
        limit=limit,
        offset=offset,
    )
    return PostListResponse(
        count=len(records),
        posts=[PostModel.from_record(record) for record in records],
        offset=offset,
        limit=limit,
    )


@router.get(
    "/api/posts/{slug}",
    response_model=PostResponse,
    tags=["posts"],
    operation_id="get_post",
)
def get_post(
    slug: str,
    posts: Annotated[PostService, Depends(get_post_service)],
) -> PostResponse:
    try:
        record = posts.get_published_post(slug)
    except PostNotFoundError as exc:
        raise HTTPException(status_code=404, detail="Post not found") from exc
    return PostResponse(post=PostModel.from_record(record))


@router.get(
    "/api/categories",
    response_model=CategoryListResponse,
    tags=["posts"],
    operation_id="list_categories",
)
def list_categories(
    posts: Annotated[PostService, Depends(get_post_service)],
) -> CategoryListResponse:
    return CategoryListResponse(
        categories=[CategoryModel.from_record(category) for category in posts.list_categories()]
    )


@router.post(
    "/api/admin/posts",
    response_model=PostResponse,
    status_code=201,
    tags=["admin"],
    operation_id="admin_create_post",
)
def admin_create_post(
    request: PostWriteRequest,
    posts: Annotated[PostService, Depends(get_post_service)],
) -> PostResponse:
    try:
        record = posts.create_post(_post_input(request))
    except CategoryNotFoundError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except SlugConflictError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    return PostResponse(post=PostModel.from_record(record))


@router.put(
    "/api/admin/posts/{post_id}",
    response_model=PostResponse,
    tags=["admin"],
    operation_id="admin_update_post",
)
def admin_update_post(
    post_id: str,
    request: PostWriteRequest,
    posts: Annotated[PostService, Depends(get_post_service)],
) -> PostResponse:
    try:
        record = posts.update_post(post_id, _post_input(request))
    except PostNotFoundError as exc:
        raise HTTPException(status_code=404, detail="Post not found") from exc
    except CategoryNotFoundError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except SlugConflictError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    return PostResponse(post=PostModel.from_record(record))


@router.delete(
    "/api/admin/posts/{post_id}",
    response_model=PostDeleteResponse,
    tags=["admin"],
    operation_id="admin_delete_post",
)
def admin_delete_post(
    post_id: str,
    posts: Annotated[PostService, Depends(get_post_service)],
) -> PostDeleteResponse:
    try:
        posts.delete_post(post_id)
    except PostNotFoundError as exc:
        raise HTTPException(status_code=404, detail="Post not found") from exc
    return PostDeleteResponse(success=True)
