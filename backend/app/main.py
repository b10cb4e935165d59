from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from typing import Annotated
from uuid import uuid4

from fastapi import Depends, FastAPI, Request, Response
from structlog.contextvars import bind_contextvars, reset_contextvars

from backend.app.api.routes import router
from backend.app.dependencies import get_scheduler, get_settings, get_telemetry
from backend.app.logging_config import configure_application_logging
from backend.app.models.news_contracts import HealthResponse
from backend.app.services.scheduler_service import NewsScheduler

LOGGER = logging.getLogger("newsdesk.app")
REQUEST_ID_HEADER = "X-Request-ID"


def health_check(
    scheduler: Annotated[NewsScheduler, Depends(get_scheduler)],
) -> HealthResponse:
    return HealthResponse(status="ok", scheduler_running=scheduler.is_running())


@asynccontextmanager
async def app_lifespan(_: FastAPI) -> AsyncIterator[None]:
    settings = get_settings()
    configure_application_logging(settings)
    if not settings.newsapi_api_key:
        LOGGER.warning("NEWSDESK_NEWSAPI_API_KEY is not set; news fetches will fail")

    scheduler = get_scheduler() if settings.scheduler_enabled else None
    if scheduler is None:
        LOGGER.info("news scheduler disabled by configuration")
    elif not scheduler.start():
        LOGGER.info("news scheduler not started in this process")

    try:
        yield
    finally:
        if scheduler is not None:
            scheduler.stop()


async def request_context_middleware(
    request: Request,
    call_next: Callable[[Request], Awaitable[Response]],
) -> Response:
    request_id = (request.headers.get(REQUEST_ID_HEADER) or "").strip() or str(uuid4())
    context_tokens = bind_contextvars(
        http_request_id=request_id,
        http_method=request.method,
        http_path=request.url.path,
    )
    try:
        with get_telemetry().span(
            "http.request",
            request_id=request_id,
            method=request.method,
            path=request.url.path,
        ) as span:
            response = await call_next(request)
            span.update(status_code=response.status_code)
    finally:
        reset_contextvars(**context_tokens)

    response.headers[REQUEST_ID_HEADER] = request_id
    return response


def create_app() -> FastAPI:
    app = FastAPI(title="Newsdesk API", version="0.1.0", lifespan=app_lifespan)
    app.middleware("http")(request_context_middleware)
    app.include_router(router)
    app.add_api_route(
        "/health",
        health_check,
        methods=["GET"],
        response_model=HealthResponse,
        tags=["system"],
        operation_id="health_check",
    )
    return app


app = create_app()
