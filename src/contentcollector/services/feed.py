"""Extractor for RSS and Atom feeds."""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Any, Callable, List, Mapping, Optional

import feedparser
from dateutil.relativedelta import relativedelta

from contentcollector.config import CollectorSettings
from contentcollector.models import ExtractedItem
from contentcollector.services.extractor import (
    ContentExtractor,
    extract_content,
    parse_date,
    parse_html,
)
from contentcollector.services.fetcher import HttpFetcher
from contentcollector.urls import absolutize

__all__ = ["FeedExtractor", "entry_published_at"]

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


def entry_published_at(entry: Mapping[str, Any]) -> Optional[datetime]:
    """Return the publish (or update) timestamp of a feed entry."""

    for key in ("published_parsed", "updated_parsed"):
        parsed = entry.get(key)
        if parsed:
            return datetime(*parsed[:6], tzinfo=UTC)
    return parse_date(entry.get("published") or entry.get("updated"))


def _entry_content(entry: Mapping[str, Any]) -> str:
    """Prefer embedded full content over the summary snippet."""

    for block in entry.get("content") or []:
        value = (block.get("value") or "").strip()
        if value:
            return value
    return (entry.get("summary") or entry.get("description") or "").strip()


def _media_url(entry: Mapping[str, Any]) -> Optional[str]:
    for key in ("media_content", "media_thumbnail"):
        for media in entry.get(key) or []:
            url = media.get("url")
            if url:
                return url
    for enclosure in entry.get("enclosures") or []:
        if str(enclosure.get("type", "")).startswith("image/") and enclosure.get("href"):
            return enclosure["href"]
    return None


def _first_inline_image(html: str) -> Optional[str]:
    if not html:
        return None
    image = parse_html(html).find("img", src=True)
    return image["src"] if image is not None else None


class FeedExtractor(ContentExtractor):
    """Parse a syndication feed into recent content items.

    Entries older than the recency window are skipped.  Entries whose text is
    thin get one attempt at fetching the linked page for a fuller body.
    """

    def __init__(
        self,
        fetcher: HttpFetcher | None = None,
        settings: CollectorSettings | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        super().__init__(fetcher, settings)
        self._clock = clock

    def recency_cutoff(self) -> datetime:
        return self._clock() - relativedelta(months=self._settings.recency_months)

    def extract(self, url: str) -> List[ExtractedItem]:
        cutoff = self.recency_cutoff()
        raw = self._fetcher.fetch_bytes(url)

        try:
            feed = feedparser.parse(raw)
        except Exception as exc:  # noqa: BLE001 - an unparseable feed yields nothing
            logger.warning("Failed to parse feed %s: %s", url, exc)
            return []

        if feed.bozo and not feed.entries:
            logger.warning("Feed %s could not be parsed: %s", url, feed.get("bozo_exception"))
            return []

        items: List[ExtractedItem] = []
        for entry in feed.entries:
            try:
                item = self._build_item(entry, url, cutoff)
            except Exception as exc:  # noqa: BLE001 - one bad entry must not sink the feed
                logger.warning("Skipping malformed entry in %s: %s", url, exc)
                continue
            if item is not None:
                items.append(item)

        logger.info("Feed %s produced %d recent items", url, len(items))
        return items

    def _build_item(
        self, entry: Mapping[str, Any], feed_url: str, cutoff: datetime
    ) -> Optional[ExtractedItem]:
        link = (entry.get("link") or "").strip()
        if not link:
            logger.debug("Entry without link in %s", feed_url)
            return None
        link = absolutize(link, feed_url)

        published_at = entry_published_at(entry)
        if published_at is not None and published_at < cutoff:
            return None

        content = _entry_content(entry)
        if len(content) < self._settings.feed_min_content:
            content = self._augment(link, content)

        image = _media_url(entry) or _first_inline_image(content)

        return ExtractedItem(
            title=(entry.get("title") or "").strip(),
            body=content,
            summary=self.summarize(content),
            url=link,
            image_url=absolutize(image, link) if image else None,
            published_at=published_at,
        )

    def _augment(self, link: str, content: str) -> str:
        """Return the linked page's content when it is longer than ``content``."""

        try:
            document = self.fetch_document(link)
        except Exception as exc:  # noqa: BLE001 - keep the feed text on any failure
            logger.debug("Could not fetch full content for %s: %s", link, exc)
            return content

        full = extract_content(document)
        return full if len(full) > len(content) else content
