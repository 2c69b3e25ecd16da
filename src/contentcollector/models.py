"""Domain models used across the collection pipeline."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, HttpUrl


class SourceKind(str, Enum):
    """Declared type of a source as supplied by source discovery."""

    RSS = "rss"
    ATOM = "atom"
    FEED = "feed"
    BLOG = "blog"
    NEWS = "news"
    WEBSITE = "website"

    @property
    def is_syndication(self) -> bool:
        return self in {SourceKind.RSS, SourceKind.ATOM, SourceKind.FEED}


class CollectionStatus(str, Enum):
    """Last observed collection verdict for a source."""

    UNKNOWN = "unknown"
    SUCCESS = "success"
    SLOW = "slow"
    FAILED = "failed"


class Source(BaseModel):
    """A named endpoint configured for a task to collect from."""

    id: str
    name: str
    url: HttpUrl
    kind: SourceKind = SourceKind.WEBSITE
    selected: bool = True
    collection_status: CollectionStatus = CollectionStatus.UNKNOWN
    last_error: Optional[str] = None


class ExtractedItem(BaseModel):
    """A single piece of content pulled from a source by an extractor."""

    model_config = ConfigDict(frozen=True)

    title: str = ""
    body: str = ""
    summary: str = ""
    url: HttpUrl
    image_url: Optional[str] = None
    published_at: Optional[datetime] = None


class StoredArticle(BaseModel):
    """An item persisted for a task after a collection run."""

    id: str
    task_id: str
    source_id: Optional[str] = None
    source_name: str = ""
    title: str = ""
    body: str = ""
    summary: str = ""
    url: str
    image_url: Optional[str] = None
    published_at: Optional[datetime] = None
    source_type: str = "datasource"
    selected: bool = True
    created_at: datetime


class SourceOutcome(BaseModel):
    """Classification recorded for one source after a run."""

    source_id: str
    source_name: str = ""
    status: CollectionStatus
    item_count: int = 0
    duration: float = 0.0
    error: Optional[str] = None


class RunSummary(BaseModel):
    """Counts reported when a run completes."""

    total: int = 0
    succeeded: int = 0
    slow: int = 0
    failed: int = 0
    outcomes: List[SourceOutcome] = Field(default_factory=list)
