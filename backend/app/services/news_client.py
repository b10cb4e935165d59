from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Literal, cast
from urllib.error import HTTPError, URLError
from urllib.parse import urlencode
from urllib.request import Request, urlopen

LOGGER = logging.getLogger("newsdesk.news_client")

NewsCategory = Literal["tech", "business", "health", "science"]

NEWS_CATEGORIES: tuple[NewsCategory, ...] = ("tech", "business", "health", "science")
DEFAULT_CATEGORY: NewsCategory = "tech"

_KEYWORD_QUERIES: dict[str, str] = {
    "tech": (
        "technology OR tech OR software OR AI OR artificial intelligence "
        "OR startup OR innovation"
    ),
    "science": "science OR research OR study OR medical OR health technology",
}
_HEADLINE_CATEGORIES: frozenset[str] = frozenset({"business", "health"})


class NewsSourceError(Exception):
    pass


@dataclass(frozen=True)
class NewsArticle:
    source_id: str | None
    source_name: str
    author: str | None
    title: str
    description: str | None
    url: str
    url_to_image: str | None
    published_at: str | None
    content: str | None


@dataclass(frozen=True)
class NewsApiResponse:
    status: str
    total_results: int
    articles: list[NewsArticle]


def resolve_category(category: str | None) -> NewsCategory:
    normalized = (category or "").strip().lower()
    for known in NEWS_CATEGORIES:
        if normalized == known:
            return known
    return DEFAULT_CATEGORY


class NewsApiClient:
    def __init__(
        self,
        *,
        api_key: str | None,
        base_url: str = "https://newsapi.org/v2",
        timeout_seconds: float = 20.0,
    ) -> None:
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self._timeout_seconds = max(1.0, timeout_seconds)

    def fetch_by_category(self, category: str | None, page_size: int = 20) -> NewsApiResponse:
        resolved = resolve_category(category)
        page_size = max(1, min(int(page_size), 100))
        if resolved in _HEADLINE_CATEGORIES:
            return self.top_headlines(category=resolved, country="us", page_size=page_size)
        return self.everything(
            query=_KEYWORD_QUERIES[resolved],
            language="en",
            sort_by="publishedAt",
            page_size=page_size,
        )

    def top_headlines(
        self,
        *,
        category: str | None = None,
        country: str | None = None,
        query: str | None = None,
        page_size: int = 20,
        page: int = 1,
    ) -> NewsApiResponse:
        params: dict[str, Any] = {"pageSize": page_size, "page": page}
        if category is not None:
            params["category"] = category
        if country is not None:
            params["country"] = country
        if query is not None:
            params["q"] = query
        return self._get("/top-headlines", params)

    def everything(
        self,
        *,
        query: str,
        language: str | None = None,
        sort_by: Literal["relevancy", "popularity", "publishedAt"] = "publishedAt",
        page_size: int = 20,
        page: int = 1,
    ) -> NewsApiResponse:
        params: dict[str, Any] = {
            "q": query,
            "sortBy": sort_by,
            "pageSize": page_size,
            "page": page,
        }
        if language is not None:
            params["language"] = language
        return self._get("/everything", params)

    def _get(self, path: str, params: dict[str, Any]) -> NewsApiResponse:
        if not self._api_key:
            raise NewsSourceError("News source API key is not configured")
        query = urlencode({**params, "apiKey": self._api_key})
        request = Request(
            f"{self._base_url}{path}?{query}",
            headers={"Accept": "application/json", "User-Agent": "newsdesk/0.1"},
            method="GET",
        )
        try:
            with urlopen(request, timeout=self._timeout_seconds) as response:
                raw = response.read().decode("utf-8", errors="replace")
        except HTTPError as exc:
            message = _error_message_from_body(exc)
            LOGGER.warning("news source request failed path=%s status=%s", path, exc.code)
            raise NewsSourceError(
                f"News source request failed with HTTP {exc.code}: {message}"
            ) from exc
        except (URLError, TimeoutError, OSError) as exc:
            LOGGER.warning("news source unreachable path=%s error=%s", path, type(exc).__name__)
            raise NewsSourceError(f"News source unreachable: {exc}") from exc

        try:
            payload = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise NewsSourceError("News source returned a non-JSON response") from exc
        if not isinstance(payload, dict):
            raise NewsSourceError("News source returned an unexpected payload")
        return parse_news_response(cast(dict[str, Any], payload))


def parse_news_response(payload: dict[str, Any]) -> NewsApiResponse:
    status = str(payload.get("status") or "")
    if status != "ok":
        message = payload.get("message") or "Failed to fetch news from the news source"
        raise NewsSourceError(str(message))

    raw_articles = payload.get("articles")
    articles: list[NewsArticle] = []
    if isinstance(raw_articles, list):
        for raw in cast(list[object], raw_articles):
            if not isinstance(raw, dict):
                continue
            article = _parse_article(cast(dict[str, Any], raw))
            if article is not None:
                articles.append(article)

    total_results = payload.get("totalResults")
    return NewsApiResponse(
        status=status,
        total_results=total_results if isinstance(total_results, int) else len(articles),
        articles=articles,
    )


def _parse_article(raw: dict[str, Any]) -> NewsArticle | None:
    title = _optional_text(raw.get("title"))
    url = _optional_text(raw.get("url"))
    if title is None or url is None:
        return None
    source = raw.get("source")
    source_dict = cast(dict[str, Any], source) if isinstance(source, dict) else {}
    return NewsArticle(
        source_id=_optional_text(source_dict.get("id")),
        source_name=_optional_text(source_dict.get("name")) or "Unknown",
        author=_optional_text(raw.get("author")),
        title=title,
        description=_optional_text(raw.get("description")),
        url=url,
        url_to_image=_optional_text(raw.get("urlToImage")),
        published_at=_optional_text(raw.get("publishedAt")),
        content=_optional_text(raw.get("content")),
    )


def _error_message_from_body(exc: HTTPError) -> str:
    try:
        raw = exc.read().decode("utf-8", errors="replace")
        parsed = json.loads(raw)
    except (OSError, ValueError):
        return exc.reason if isinstance(exc.reason, str) else "unknown error"
    if isinstance(parsed, dict):
        message = cast(dict[str, Any], parsed).get("message")
        if isinstance(message, str) and message.strip():
            return message.strip()
    return "unknown error"


def _optional_text(value: object) -> str | None:
    if not isinstance(value, str):
        return None
    normalized = value.strip()
    return normalized or None
