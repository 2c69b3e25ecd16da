"""Extractor for generic web pages: single articles or article listings."""

from __future__ import annotations

import logging
import time
from typing import Callable, List

from bs4 import BeautifulSoup

from contentcollector.config import CollectorSettings
from contentcollector.models import ExtractedItem
from contentcollector.services.extractor import ContentExtractor
from contentcollector.services.fetcher import HttpFetcher
from contentcollector.urls import absolutize, same_host

__all__ = ["LINK_SELECTORS", "WebExtractor", "discover_article_links"]

logger = logging.getLogger(__name__)

LINK_SELECTORS = (
    "article a[href]",
    ".post a[href]",
    ".entry a[href]",
    "h2 a[href]",
    "h3 a[href]",
    ".post-title a[href]",
    'a[href*="/blog/"]',
    'a[href*="/post/"]',
    'a[href*="/article/"]',
    'a[href*="/news/"]',
)

_IGNORED_PREFIXES = ("#", "mailto:", "javascript:", "tel:")


def discover_article_links(document: BeautifulSoup, base_url: str) -> List[str]:
    """Return same-host candidate article links in selector order, de-duplicated."""

    links: List[str] = []
    seen: set[str] = set()
    for selector in LINK_SELECTORS:
        for anchor in document.select(selector):
            href = (anchor.get("href") or "").strip()
            if not href or href.startswith(_IGNORED_PREFIXES):
                continue

            candidate = absolutize(href, base_url).split("#", 1)[0]
            if not candidate.startswith(("http://", "https://")):
                continue
            if not same_host(candidate, base_url):
                continue
            if candidate in seen:
                continue
            seen.add(candidate)
            links.append(candidate)
    return links


class WebExtractor(ContentExtractor):
    """Extract one article from a page, or walk a listing page's article links."""

    def __init__(
        self,
        fetcher: HttpFetcher | None = None,
        settings: CollectorSettings | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        super().__init__(fetcher, settings)
        self._sleep = sleep

    def extract(self, url: str) -> List[ExtractedItem]:
        document = self.fetch_document(url)

        article = self.extract_item(document, url)
        if len(article.body) > self._settings.article_min_content:
            return [article]

        links = discover_article_links(document, url)[: self._settings.max_detail_pages]
        logger.info("%s looks like a listing; visiting %d candidate links", url, len(links))

        items: List[ExtractedItem] = []
        for index, link in enumerate(links):
            if index:
                self._sleep(self._settings.detail_delay)
            try:
                detail = self.extract_item(self.fetch_document(link), link)
            except Exception as exc:  # noqa: BLE001 - a broken detail page only reduces yield
                logger.debug("Failed to extract %s: %s", link, exc)
                continue
            if len(detail.body) > self._settings.detail_min_content:
                items.append(detail)
        return items
