"""Filesystem-backed persistence for task sources and collected articles."""

from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
import uuid
from datetime import UTC, datetime
from pathlib import Path
from typing import Iterable, List, Sequence, Tuple, Union

from pydantic import TypeAdapter, ValidationError

from contentcollector.models import (
    ExtractedItem,
    Source,
    SourceOutcome,
    StoredArticle,
)

logger = logging.getLogger(__name__)

_PACKAGE_DIR = Path(__file__).resolve().parent

#: Name of the directory under :mod:`contentcollector.storage` that contains the data.
DEFAULT_BLOB_SUBDIR = "data"

#: Default location where task data is stored.
DEFAULT_BLOB_ROOT = _PACKAGE_DIR / DEFAULT_BLOB_SUBDIR

#: Environment variable overriding :data:`DEFAULT_BLOB_ROOT`.
BLOB_ROOT_ENV_VAR = "CONTENTCOLLECTOR_BLOB_ROOT"

SOURCES_FILENAME = "sources.json"
ARTICLES_FILENAME = "articles.json"

_Pathish = Union[str, Path]

_sources_adapter = TypeAdapter(List[Source])
_articles_adapter = TypeAdapter(List[StoredArticle])

_root_locks: dict[Path, threading.RLock] = {}
_root_locks_guard = threading.Lock()


class StorageError(RuntimeError):
    """Raised when task data cannot be read or written."""


class UnknownTaskError(KeyError):
    """Raised when a task has no stored sources."""


def resolve_blob_root(blob_root: _Pathish | None = None) -> Path:
    """Return a :class:`Path` pointing at the blob root.

    ``blob_root`` may be either a string or :class:`Path`.  When ``None`` is
    provided the ``CONTENTCOLLECTOR_BLOB_ROOT`` environment variable is
    consulted before falling back to :data:`DEFAULT_BLOB_ROOT`.  The path is
    not created on disk; callers can use :func:`ensure_blob_root` if they need
    to create it.
    """

    if blob_root is None:
        configured = os.environ.get(BLOB_ROOT_ENV_VAR)
        return Path(configured) if configured else DEFAULT_BLOB_ROOT
    if isinstance(blob_root, Path):
        return blob_root
    return Path(blob_root)


def ensure_blob_root(blob_root: _Pathish | None = None) -> Path:
    """Ensure the blob root exists and return it as a :class:`Path`."""

    root = resolve_blob_root(blob_root)
    root.mkdir(parents=True, exist_ok=True)
    return root


def _lock_for(root: Path) -> threading.RLock:
    """Return the lock shared by every store writing under ``root``."""

    key = root.resolve()
    with _root_locks_guard:
        return _root_locks.setdefault(key, threading.RLock())


def _publish_sort_key(article: StoredArticle) -> Tuple[int, float, float]:
    published = article.published_at.timestamp() if article.published_at else 0.0
    return (1 if article.published_at else 0, published, article.created_at.timestamp())


class TaskStore:
    """Store task sources and articles as JSON documents under the blob root.

    Each task owns a folder ``tasks/<task_id>`` holding ``sources.json`` and
    ``articles.json``.  Writes are serialised through a lock shared by every
    store on the same blob root, so request handlers and collection runs can
    each hold their own instance.
    """

    def __init__(self, blob_root: _Pathish | None = None) -> None:
        self._root = resolve_blob_root(blob_root)
        self._lock = _lock_for(self._root)

    @property
    def root(self) -> Path:
        return self._root

    def _task_dir(self, task_id: str) -> Path:
        safe_id = task_id.strip().replace("/", "_").replace("\\", "_")
        if not safe_id or safe_id in {".", ".."}:
            raise ValueError(f"Invalid task id: {task_id!r}")
        return self._root / "tasks" / safe_id

    def _read(self, path: Path, adapter: TypeAdapter) -> list:
        if not path.exists():
            return []
        try:
            return adapter.validate_json(path.read_bytes())
        except (OSError, ValidationError) as exc:
            raise StorageError(f"Failed to read {path}: {exc}") from exc

    def _write(self, path: Path, payload: Sequence, adapter: TypeAdapter) -> None:
        tmp_path: Path | None = None
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                dir=path.parent, prefix=f".{path.stem}-", suffix=".tmp", delete=False
            ) as handle:
                tmp_path = Path(handle.name)
                handle.write(adapter.dump_json(list(payload), indent=2))
            tmp_path.replace(path)
        except OSError as exc:
            if tmp_path is not None:
                tmp_path.unlink(missing_ok=True)
            raise StorageError(f"Failed to write {path}: {exc}") from exc

    def has_task(self, task_id: str) -> bool:
        return (self._task_dir(task_id) / SOURCES_FILENAME).exists()

    # Sources ---------------------------------------------------------------

    def save_sources(self, task_id: str, sources: Iterable[Source]) -> List[Source]:
        """Replace the source list of ``task_id``."""

        items = list(sources)
        with self._lock:
            self._write(self._task_dir(task_id) / SOURCES_FILENAME, items, _sources_adapter)
        return items

    def list_sources(self, task_id: str) -> List[Source]:
        path = self._task_dir(task_id) / SOURCES_FILENAME
        with self._lock:
            if not path.exists():
                raise UnknownTaskError(task_id)
            return self._read(path, _sources_adapter)

    def selected_sources(self, task_id: str) -> List[Source]:
        return [source for source in self.list_sources(task_id) if source.selected]

    def set_selected(self, task_id: str, source_id: str, selected: bool) -> Source:
        """Toggle whether ``source_id`` takes part in the next run."""

        with self._lock:
            sources = self.list_sources(task_id)
            for index, source in enumerate(sources):
                if source.id == source_id:
                    sources[index] = source.model_copy(update={"selected": selected})
                    self.save_sources(task_id, sources)
                    return sources[index]
        raise KeyError(source_id)

    def update_source_statuses(self, task_id: str, outcomes: Iterable[SourceOutcome]) -> None:
        """Record the classification and error text of every outcome."""

        by_id = {outcome.source_id: outcome for outcome in outcomes}
        with self._lock:
            sources = self.list_sources(task_id)
            updated: List[Source] = []
            for source in sources:
                outcome = by_id.pop(source.id, None)
                if outcome is not None:
                    source = source.model_copy(
                        update={"collection_status": outcome.status, "last_error": outcome.error}
                    )
                updated.append(source)
            self.save_sources(task_id, updated)

        for missing in by_id:
            logger.warning("Outcome for unknown source %s in task %s", missing, task_id)

    # Articles --------------------------------------------------------------

    def clear_articles(self, task_id: str) -> None:
        with self._lock:
            self._write(self._task_dir(task_id) / ARTICLES_FILENAME, [], _articles_adapter)

    def replace_articles(
        self,
        task_id: str,
        entries: Iterable[Tuple[ExtractedItem, Source]],
    ) -> List[StoredArticle]:
        """Delete previous articles of ``task_id`` and insert a fresh batch."""

        created_at = datetime.now(UTC)
        articles = [
            StoredArticle(
                id=uuid.uuid4().hex,
                task_id=task_id,
                source_id=source.id,
                source_name=source.name,
                title=item.title,
                body=item.body,
                summary=item.summary,
                url=str(item.url),
                image_url=item.image_url,
                published_at=item.published_at,
                selected=True,
                created_at=created_at,
            )
            for item, source in entries
        ]
        with self._lock:
            self._write(self._task_dir(task_id) / ARTICLES_FILENAME, articles, _articles_adapter)
        return articles

    def list_articles(self, task_id: str) -> List[StoredArticle]:
        """Return articles newest first; undated articles come last."""

        with self._lock:
            articles = self._read(self._task_dir(task_id) / ARTICLES_FILENAME, _articles_adapter)
        return sorted(articles, key=_publish_sort_key, reverse=True)


__all__ = [
    "ARTICLES_FILENAME",
    "BLOB_ROOT_ENV_VAR",
    "DEFAULT_BLOB_ROOT",
    "DEFAULT_BLOB_SUBDIR",
    "SOURCES_FILENAME",
    "StorageError",
    "TaskStore",
    "UnknownTaskError",
    "ensure_blob_root",
    "resolve_blob_root",
]
