from __future__ import annotations

import logging
import re
from urllib.error import HTTPError, URLError
from urllib.parse import urlparse
from urllib.request import Request, urlopen

from bs4 import BeautifulSoup
from bs4.element import Tag

from backend.app.config import DEFAULT_USER_AGENT

LOGGER = logging.getLogger("newsdesk.content_extractor")

CONTENT_UNAVAILABLE = (
    "Full article content could not be retrieved. "
    "Please visit the original source for the complete article."
)
NO_CONTENT_AVAILABLE = "No content available"
PLACEHOLDER_MARKERS: tuple[str, ...] = (
    "Full article content could not be retrieved",
    NO_CONTENT_AVAILABLE,
)

SELECTOR_MIN_CHARS = 800
PARAGRAPH_MIN_CHARS = 50
DIV_MIN_CHARS = 100
ACCEPT_MIN_CHARS = 500

STRIP_SELECTORS = (
    "script, style, noscript, nav, .advertisement, .ad, .sidebar, .comments, "
    ".social-share, .related-articles, .newsletter, .subscribe, footer, .footer, "
    "header, .header"
)

# Generic containers first, then site-specific body classes, then broad main areas.
CONTENT_SELECTORS: tuple[str, ...] = (
    "article",
    "main article",
    ".article-content",
    ".post-content",
    ".entry-content",
    ".article-body",
    ".content",
    ".story-body",
    ".article-text",
    ".post-text",
    ".entry-text",
    ".article-main",
    ".post-main",
    ".entry-main",
    '[data-module="ArticleBody"]',
    ".ArticleBody",
    ".caas-body",
    ".article__body",
    ".post__body",
    ".entry__body",
    ".story__body",
    ".content__body",
    ".article__content",
    ".post__content",
    ".entry__content",
    ".story__content",
    ".content__content",
    "main",
    ".main-content",
    ".main-article",
    ".main-story",
    ".main-post",
    ".main-entry",
    ".caas-content",
    ".article-content-body",
    ".story-content-body",
    ".post-content-body",
    ".entry-content-body",
)

_HORIZONTAL_SPACE = re.compile(r"[ \t\f\v\r\u00a0]+")


class ContentExtractor:
    """Best-effort article body scraper used when the news API sends no content."""

    def __init__(
        self,
        *,
        timeout_seconds: float = 15.0,
        user_agent: str = DEFAULT_USER_AGENT,
    ) -> None:
        self._timeout_seconds = max(1.0, timeout_seconds)
        self._user_agent = user_agent.strip() or DEFAULT_USER_AGENT

    def fetch_full_content(self, url: str) -> str:
        try:
            html_text = self._fetch_html(url)
            if html_text is None:
                return CONTENT_UNAVAILABLE
            content = extract_main_text(html_text)
        except Exception:
            LOGGER.warning("content extraction failed url=%s", url, exc_info=True)
            return CONTENT_UNAVAILABLE

        if len(content) > ACCEPT_MIN_CHARS:
            LOGGER.debug("content extracted url=%s chars=%s", url, len(content))
            return content
        LOGGER.info("content extraction too short url=%s chars=%s", url, len(content))
        return CONTENT_UNAVAILABLE

    def _fetch_html(self, url: str) -> str | None:
        parsed = urlparse(url)
        if parsed.scheme not in {"http", "https"} or not parsed.netloc:
            LOGGER.info("content fetch skipped; unsupported url=%s", url)
            return None

        request = Request(
            url,
            headers={
                "User-Agent": self._user_agent,
                "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
                "Accept-Language": "en-US,en;q=0.5",
                "Upgrade-Insecure-Requests": "1",
            },
            method="GET",
        )
        try:
            with urlopen(request, timeout=self._timeout_seconds) as response:
                charset = response.headers.get_content_charset() or "utf-8"
                return response.read().decode(charset, errors="replace")
        except HTTPError as exc:
            LOGGER.info("content fetch failed url=%s status=%s", url, exc.code)
            return None
        except (URLError, TimeoutError, OSError) as exc:
            LOGGER.info("content fetch failed url=%s error=%s", url, type(exc).__name__)
            return None


def extract_main_text(html_text: str) -> str:
    soup = BeautifulSoup(html_text, "html.parser")
    for element in soup.select(STRIP_SELECTORS):
        element.decompose()

    content = ""
    for selector in CONTENT_SELECTORS:
        matches = soup.select(selector)
        if not matches:
            continue
        content = " ".join(_element_text(match) for match in matches).strip()
        if len(content) > SELECTOR_MIN_CHARS:
            LOGGER.debug("content selector matched selector=%s chars=%s", selector, len(content))
            break

    root = soup.body if soup.body is not None else soup
    if len(content) < SELECTOR_MIN_CHARS:
        paragraphs = [
            text
            for text in (_element_text(paragraph) for paragraph in root.find_all("p"))
            if len(text) > PARAGRAPH_MIN_CHARS
        ]
        content = "\n\n".join(paragraphs).strip()

    if len(content) < SELECTOR_MIN_CHARS:
        blocks = [
            text
            for text in (_element_text(block) for block in root.find_all("div"))
            if len(text) > DIV_MIN_CHARS
        ]
        if blocks:
            content = max(blocks, key=len)

    return normalize_whitespace(content)


def normalize_whitespace(text: str) -> str:
    lines = [_HORIZONTAL_SPACE.sub(" ", line).strip() for line in text.split("\n")]
    collapsed: list[str] = []
    for line in lines:
        if not line and (not collapsed or not collapsed[-1]):
            continue
        collapsed.append(line)
    return "\n".join(collapsed).strip()


def _element_text(element: Tag) -> str:
    return element.get_text(" ", strip=True)
