"""Routing of sources to the extractor that understands them."""

from __future__ import annotations

from urllib.parse import urlparse

from contentcollector.config import CollectorSettings
from contentcollector.models import SourceKind
from contentcollector.services.extractor import ContentExtractor
from contentcollector.services.feed import FeedExtractor
from contentcollector.services.fetcher import HttpFetcher
from contentcollector.services.web import WebExtractor

__all__ = ["FEED_PATH_MARKERS", "ExtractorDispatcher", "looks_like_feed"]

FEED_PATH_MARKERS = ("/rss", "/feed", "/atom")


def looks_like_feed(url: str) -> bool:
    """Return ``True`` when the URL path strongly suggests a syndication feed."""

    path = urlparse(url).path.lower()
    return any(marker in path for marker in FEED_PATH_MARKERS) or path.endswith(".xml")


class ExtractorDispatcher:
    """Choose between the feed and web extractor for a source.

    The extractors are created once and shared; selection has no side effects.
    """

    def __init__(
        self,
        feed_extractor: ContentExtractor | None = None,
        web_extractor: ContentExtractor | None = None,
        settings: CollectorSettings | None = None,
    ) -> None:
        settings = settings or CollectorSettings()
        fetcher = HttpFetcher(settings) if feed_extractor is None or web_extractor is None else None
        self.feed_extractor = feed_extractor or FeedExtractor(fetcher, settings)
        self.web_extractor = web_extractor or WebExtractor(fetcher, settings)

    def select(self, kind: SourceKind | str, url: str) -> ContentExtractor:
        try:
            declared = SourceKind(kind if isinstance(kind, SourceKind) else kind.strip().lower())
        except ValueError:
            declared = None
        if (declared is not None and declared.is_syndication) or looks_like_feed(url):
            return self.feed_extractor
        return self.web_extractor
