from __future__ import annotations

import pytest

from contentcollector.models import SourceKind
from contentcollector.services.dispatcher import ExtractorDispatcher, looks_like_feed
from contentcollector.services.feed import FeedExtractor
from contentcollector.services.web import WebExtractor


@pytest.fixture
def dispatcher() -> ExtractorDispatcher:
    return ExtractorDispatcher()


@pytest.mark.parametrize("kind", [SourceKind.RSS, SourceKind.ATOM, SourceKind.FEED, "rss", "Atom"])
def test_syndication_kinds_use_feed_extractor(dispatcher: ExtractorDispatcher, kind) -> None:
    assert isinstance(dispatcher.select(kind, "https://example.com/updates"), FeedExtractor)


@pytest.mark.parametrize(
    "url",
    [
        "https://example.com/rss",
        "https://example.com/blog/feed/",
        "https://example.com/atom/latest",
        "https://example.com/sitemap/news.XML",
    ],
)
def test_feed_shaped_urls_use_feed_extractor(dispatcher: ExtractorDispatcher, url: str) -> None:
    assert looks_like_feed(url)
    assert isinstance(dispatcher.select(SourceKind.WEBSITE, url), FeedExtractor)


@pytest.mark.parametrize(
    ("kind", "url"),
    [
        (SourceKind.WEBSITE, "https://example.com/news/"),
        (SourceKind.BLOG, "https://example.com/blog/"),
        ("unknown", "https://example.com/"),
        (SourceKind.NEWS, "https://example.com/page?format=xml"),
    ],
)
def test_other_sources_use_web_extractor(dispatcher: ExtractorDispatcher, kind, url: str) -> None:
    assert isinstance(dispatcher.select(kind, url), WebExtractor)


def test_select_reuses_shared_extractors(dispatcher: ExtractorDispatcher) -> None:
    first = dispatcher.select(SourceKind.RSS, "https://a.example.com/")
    second = dispatcher.select(SourceKind.RSS, "https://b.example.com/")

    assert first is second is dispatcher.feed_extractor
