"""Heuristic content extraction shared by the feed and web extractors.

Every field is extracted by an ordered chain of probes.  A probe is a pure
``(document) -> value | None`` callable; the first probe returning a truthy
value wins.  Keeping the chains as data makes the probe order and the quality
thresholds testable on their own.
"""

from __future__ import annotations

import copy
import logging
from abc import ABC, abstractmethod
from datetime import UTC, datetime
from typing import Callable, Iterable, List, Optional, Sequence, TypeVar

from bs4 import BeautifulSoup, Tag
from dateutil import parser as date_parser

from contentcollector.config import CollectorSettings
from contentcollector.models import ExtractedItem
from contentcollector.services.fetcher import HttpFetcher
from contentcollector.urls import absolutize

__all__ = [
    "CLIENT_RENDER_MARKERS",
    "CONTENT_SELECTORS",
    "ContentExtractor",
    "DATE_SELECTORS",
    "IMAGE_SELECTORS",
    "MIN_CONTENT_HTML",
    "NOISE_SELECTORS",
    "TITLE_SELECTORS",
    "extract_content",
    "extract_date",
    "extract_image",
    "extract_title",
    "first_result",
    "looks_client_rendered",
    "parse_date",
    "parse_html",
    "summarize",
    "to_plain_text",
]

logger = logging.getLogger(__name__)

T = TypeVar("T")
Probe = Callable[[BeautifulSoup], Optional[T]]

TITLE_SELECTORS = (
    "article h1",
    ".post-title",
    ".entry-title",
    ".article-title",
    "h1.title",
    '[role="article"] h1',
    "main h1",
    "h1",
)

CONTENT_SELECTORS = (
    "article",
    '[role="article"]',
    ".post-content",
    ".entry-content",
    ".article-content",
    ".content",
    "main",
)

NOISE_SELECTORS = (
    "script, style, noscript, nav, header, footer, aside, "
    ".comments, .comment, .share, .social-share"
)

DATE_SELECTORS = (
    "time[datetime]",
    '[itemprop="datePublished"]',
    'meta[property="article:published_time"]',
    ".post-date",
    ".entry-date",
    ".publish-date",
    ".date",
)

IMAGE_SELECTORS = (
    "article img",
    ".post-content img",
    ".entry-content img",
    'meta[property="og:image"]',
)

CLIENT_RENDER_MARKERS = (
    "window.__NUXT__",
    "window.__NEXT_DATA__",
    "__INITIAL_STATE__",
    "react-root",
    "app-root",
    'id="__next"',
)

#: Cleaned container HTML must be longer than this to count as content.
MIN_CONTENT_HTML = 100

#: Pages at least this long are assumed to carry server-rendered content.
CLIENT_RENDER_MAX_LENGTH = 10_000

ELLIPSIS = "..."


def parse_html(html: str | bytes) -> BeautifulSoup:
    return BeautifulSoup(html, "lxml")


def first_result(probes: Iterable[Probe[T]], document: BeautifulSoup) -> Optional[T]:
    """Return the first truthy value produced by ``probes``."""

    for probe in probes:
        value = probe(document)
        if value:
            return value
    return None


def _strip_noise(node: Tag) -> Tag:
    cleaned = copy.copy(node)
    for element in cleaned.select(NOISE_SELECTORS):
        element.decompose()
    return cleaned


# Title -----------------------------------------------------------------------


def _text_probe(selector: str) -> Probe[str]:
    def probe(document: BeautifulSoup) -> Optional[str]:
        node = document.select_one(selector)
        if node is None:
            return None
        return node.get_text(" ", strip=True) or None

    probe.__name__ = f"text_of[{selector}]"
    return probe


def _document_title(document: BeautifulSoup) -> Optional[str]:
    if document.title is None:
        return None
    return document.title.get_text(strip=True) or None


TITLE_PROBES: Sequence[Probe[str]] = tuple(_text_probe(s) for s in TITLE_SELECTORS) + (
    _document_title,
)


def extract_title(document: BeautifulSoup) -> str:
    return first_result(TITLE_PROBES, document) or ""


# Content ---------------------------------------------------------------------


def _container_probe(selector: str, min_length: int = MIN_CONTENT_HTML) -> Probe[str]:
    def probe(document: BeautifulSoup) -> Optional[str]:
        node = document.select_one(selector)
        if node is None:
            return None
        html = _strip_noise(node).decode_contents().strip()
        return html if len(html) > min_length else None

    probe.__name__ = f"container[{selector}]"
    return probe


CONTENT_PROBES: Sequence[Probe[str]] = tuple(_container_probe(s) for s in CONTENT_SELECTORS)


def _cleaned_body(document: BeautifulSoup) -> str:
    body = document.body
    if body is None:
        return ""
    return _strip_noise(body).decode_contents().strip()


def extract_content(document: BeautifulSoup) -> str:
    """Return the main content block as HTML, falling back to the cleaned body."""

    return first_result(CONTENT_PROBES, document) or _cleaned_body(document)


# Date ------------------------------------------------------------------------


def parse_date(value: str | None) -> Optional[datetime]:
    """Parse ``value`` into an aware datetime, assuming UTC when no zone is given."""

    if not value or not value.strip():
        return None
    try:
        parsed = date_parser.parse(value.strip())
    except (ValueError, OverflowError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def _date_probe(selector: str) -> Probe[datetime]:
    def probe(document: BeautifulSoup) -> Optional[datetime]:
        node = document.select_one(selector)
        if node is None:
            return None
        raw = node.get("datetime") or node.get("content") or node.get_text(" ", strip=True)
        return parse_date(raw)

    probe.__name__ = f"date[{selector}]"
    return probe


DATE_PROBES: Sequence[Probe[datetime]] = tuple(_date_probe(s) for s in DATE_SELECTORS)


def extract_date(document: BeautifulSoup) -> Optional[datetime]:
    return first_result(DATE_PROBES, document)


# Image -----------------------------------------------------------------------


def _image_source(document: BeautifulSoup, selector: str) -> Optional[str]:
    node = document.select_one(selector)
    if node is None:
        return None
    value = node.get("src") or node.get("data-src") or node.get("content")
    return value.strip() if value and value.strip() else None


def extract_image(document: BeautifulSoup, base_url: str) -> Optional[str]:
    """Return the lead image as an absolute URL."""

    for selector in IMAGE_SELECTORS:
        value = _image_source(document, selector)
        if value:
            return absolutize(value, base_url)
    return None


# Text ------------------------------------------------------------------------


def to_plain_text(html: str) -> str:
    """Strip all markup from ``html`` and collapse whitespace."""

    if not html:
        return ""
    text = BeautifulSoup(html, "lxml").get_text(" ")
    return " ".join(text.split())


def summarize(html: str, max_length: int = 200) -> str:
    """Return plain text of ``html`` truncated to ``max_length`` plus an ellipsis."""

    text = to_plain_text(html)
    if len(text) <= max_length:
        return text
    return text[:max_length] + ELLIPSIS


def looks_client_rendered(html: str) -> bool:
    """Heuristically flag short pages bootstrapped by a client framework."""

    if len(html) >= CLIENT_RENDER_MAX_LENGTH:
        return False
    return any(marker in html for marker in CLIENT_RENDER_MARKERS)


class ContentExtractor(ABC):
    """Base class for extractors turning a source URL into content items.

    Extractors hold no run-scoped state and may be shared between concurrent
    collection jobs.
    """

    def __init__(
        self,
        fetcher: HttpFetcher | None = None,
        settings: CollectorSettings | None = None,
    ) -> None:
        self._settings = settings or CollectorSettings()
        self._fetcher = fetcher or HttpFetcher(self._settings)

    @property
    def settings(self) -> CollectorSettings:
        return self._settings

    @abstractmethod
    def extract(self, url: str) -> List[ExtractedItem]:
        """Return the items available at ``url``."""

    # Shared heuristics exposed for subclasses and callers.
    extract_title = staticmethod(extract_title)
    extract_content = staticmethod(extract_content)
    extract_date = staticmethod(extract_date)
    extract_image = staticmethod(extract_image)
    to_plain_text = staticmethod(to_plain_text)
    looks_client_rendered = staticmethod(looks_client_rendered)

    def summarize(self, html: str, max_length: int | None = None) -> str:
        return summarize(html, max_length or self._settings.summary_length)

    def fetch_document(self, url: str) -> BeautifulSoup:
        """Download ``url`` and parse it, logging pages that need a browser."""

        html = self._fetcher.fetch(url)
        if looks_client_rendered(html):
            logger.info("%s looks client-rendered; static extraction may be poor", url)
        return parse_html(html)

    def extract_item(self, document: BeautifulSoup, url: str) -> ExtractedItem:
        """Build an :class:`ExtractedItem` from a parsed article page."""

        content = extract_content(document)
        return ExtractedItem(
            title=extract_title(document),
            body=content,
            summary=self.summarize(content),
            url=url,
            image_url=extract_image(document, url),
            published_at=extract_date(document),
        )
