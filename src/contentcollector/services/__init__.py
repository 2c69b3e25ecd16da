"""Service layer entry points for the content collector."""

from __future__ import annotations

from .collector import CollectionOrchestrator, classify_outcome  # noqa: F401
from .dispatcher import ExtractorDispatcher  # noqa: F401
from .feed import FeedExtractor  # noqa: F401
from .fetcher import FetchError, HttpFetcher  # noqa: F401
from .progress import ProgressEvent, ProgressStream  # noqa: F401
from .web import WebExtractor  # noqa: F401

__all__ = [
    "CollectionOrchestrator",
    "ExtractorDispatcher",
    "FeedExtractor",
    "FetchError",
    "HttpFetcher",
    "ProgressEvent",
    "ProgressStream",
    "WebExtractor",
    "classify_outcome",
]
