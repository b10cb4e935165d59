from __future__ import annotations

import json
from typing import Any
from urllib.error import URLError
from urllib.parse import parse_qs, urlparse

import pytest

from backend.app.services import news_client as news_client_module
from backend.app.services.news_client import (
    NewsApiClient,
    NewsApiResponse,
    NewsSourceError,
    parse_news_response,
    resolve_category,
)


class _FakeHttpResponse:
    def __init__(self, payload: dict[str, Any]) -> None:
        self._raw = json.dumps(payload).encode("utf-8")

    def __enter__(self) -> _FakeHttpResponse:
        return self

    def __exit__(self, *_: object) -> None:
        return None

    def read(self) -> bytes:
        return self._raw


def _recording_client(
    monkeypatch: pytest.MonkeyPatch,
) -> tuple[NewsApiClient, list[tuple[str, dict[str, Any]]]]:
    client = NewsApiClient(api_key="test-key")
    calls: list[tuple[str, dict[str, Any]]] = []

    def _fake_get(path: str, params: dict[str, Any]) -> NewsApiResponse:
        calls.append((path, params))
        return NewsApiResponse(status="ok", total_results=0, articles=[])

    monkeypatch.setattr(client, "_get", _fake_get)
    return client, calls


def test_resolve_category_defaults_unknown_values_to_tech() -> None:
    assert resolve_category("Business") == "business"
    assert resolve_category(" science ") == "science"
    assert resolve_category("sports") == "tech"
    assert resolve_category(None) == "tech"


def test_tech_and_unknown_categories_use_keyword_search(monkeypatch: pytest.MonkeyPatch) -> None:
    client, calls = _recording_client(monkeypatch)

    client.fetch_by_category("tech", 5)
    client.fetch_by_category("sports", 5)

    assert calls[0] == calls[1]
    path, params = calls[0]
    assert path == "/everything"
    assert params["q"].startswith("technology OR tech OR software")
    assert params["language"] == "en"
    assert params["sortBy"] == "publishedAt"
    assert params["pageSize"] == 5


def test_science_uses_keyword_search(monkeypatch: pytest.MonkeyPatch) -> None:
    client, calls = _recording_client(monkeypatch)

    client.fetch_by_category("science", 3)

    path, params = calls[0]
    assert path == "/everything"
    assert params["q"] == "science OR research OR study OR medical OR health technology"


def test_business_and_health_use_us_headlines(monkeypatch: pytest.MonkeyPatch) -> None:
    client, calls = _recording_client(monkeypatch)

    client.fetch_by_category("business", 2)
    client.fetch_by_category("health", 500)

    assert calls[0] == (
        "/top-headlines",
        {"pageSize": 2, "page": 1, "category": "business", "country": "us"},
    )
    assert calls[1][1]["category"] == "health"
    assert calls[1][1]["pageSize"] == 100


def test_parse_news_response_rejects_non_ok_status() -> None:
    with pytest.raises(NewsSourceError, match="apiKeyInvalid"):
        parse_news_response(
            {"status": "error", "code": "apiKeyInvalid", "message": "apiKeyInvalid"}
        )


def test_parse_news_response_drops_malformed_articles() -> None:
    response = parse_news_response(
        {
            "status": "ok",
            "totalResults": 42,
            "articles": [
                {
                    "source": {"id": None, "name": "Example Wire"},
                    "title": "Valid story",
                    "url": "https://news.example.com/valid",
                    "publishedAt": "2024-05-01T10:00:00Z",
                },
                {"source": {"name": "Broken"}, "title": "No url"},
                {"title": "", "url": "https://news.example.com/empty-title"},
                "not-an-object",
                {"title": "No source", "url": "https://news.example.com/no-source"},
            ],
        }
    )

    assert response.total_results == 42
    assert [article.title for article in response.articles] == ["Valid story", "No source"]
    assert response.articles[0].source_name == "Example Wire"
    assert response.articles[1].source_name == "Unknown"
    assert response.articles[1].content is None


def test_get_sends_api_key_and_parses_payload(monkeypatch: pytest.MonkeyPatch) -> None:
    captured: dict[str, Any] = {}

    def _fake_urlopen(request: Any, timeout: float) -> _FakeHttpResponse:
        captured["url"] = request.full_url
        captured["timeout"] = timeout
        return _FakeHttpResponse(
            {
                "status": "ok",
                "totalResults": 1,
                "articles": [
                    {
                        "source": {"id": "wire", "name": "Example Wire"},
                        "title": "Chip makers expand",
                        "url": "https://news.example.com/chips",
                        "content": "Chip content.",
                    }
                ],
            }
        )

    monkeypatch.setattr(news_client_module, "urlopen", _fake_urlopen)
    client = NewsApiClient(api_key="secret-key", base_url="https://newsapi.test/v2/")

    response = client.fetch_by_category("business", 5)

    parsed = urlparse(captured["url"])
    query = parse_qs(parsed.query)
    assert parsed.netloc == "newsapi.test"
    assert parsed.path == "/v2/top-headlines"
    assert query["apiKey"] == ["secret-key"]
    assert query["country"] == ["us"]
    assert captured["timeout"] == 20.0
    assert response.articles[0].source_id == "wire"
    assert response.articles[0].content == "Chip content."


def test_transport_errors_raise_news_source_error(monkeypatch: pytest.MonkeyPatch) -> None:
    def _fake_urlopen(request: Any, timeout: float) -> _FakeHttpResponse:
        raise URLError("connection refused")

    monkeypatch.setattr(news_client_module, "urlopen", _fake_urlopen)
    client = NewsApiClient(api_key="secret-key")

    with pytest.raises(NewsSourceError, match="unreachable"):
        client.fetch_by_category("tech", 5)


def test_missing_api_key_raises_news_source_error() -> None:
    client = NewsApiClient(api_key=None)

    with pytest.raises(NewsSourceError, match="API key"):
        client.fetch_by_category("tech", 5)
