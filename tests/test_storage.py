from __future__ import annotations

import threading
from datetime import UTC, datetime
from pathlib import Path

import pytest

from contentcollector.models import (
    CollectionStatus,
    ExtractedItem,
    Source,
    SourceKind,
    SourceOutcome,
)
from contentcollector.storage import (
    BLOB_ROOT_ENV_VAR,
    DEFAULT_BLOB_ROOT,
    StorageError,
    TaskStore,
    UnknownTaskError,
    resolve_blob_root,
)


def _sources() -> list[Source]:
    return [
        Source(id="a", name="Alpha", url="https://alpha.example.com/feed", kind=SourceKind.RSS),
        Source(id="b", name="Beta", url="https://beta.example.com/news", selected=False),
    ]


def test_resolve_blob_root_honours_environment(monkeypatch, tmp_path: Path) -> None:
    monkeypatch.delenv(BLOB_ROOT_ENV_VAR, raising=False)
    assert resolve_blob_root() == DEFAULT_BLOB_ROOT

    monkeypatch.setenv(BLOB_ROOT_ENV_VAR, str(tmp_path))
    assert resolve_blob_root() == tmp_path
    assert resolve_blob_root("elsewhere") == Path("elsewhere")


def test_sources_round_trip(tmp_path: Path) -> None:
    store = TaskStore(tmp_path)
    store.save_sources("task-1", _sources())

    loaded = store.list_sources("task-1")

    assert [source.id for source in loaded] == ["a", "b"]
    assert loaded[0].collection_status is CollectionStatus.UNKNOWN
    assert [source.id for source in store.selected_sources("task-1")] == ["a"]
    assert store.has_task("task-1")


def test_unknown_task_raises(tmp_path: Path) -> None:
    store = TaskStore(tmp_path)

    with pytest.raises(UnknownTaskError):
        store.list_sources("missing")
    with pytest.raises(ValueError):
        store.list_sources("..")


def test_set_selected_toggles_one_source(tmp_path: Path) -> None:
    store = TaskStore(tmp_path)
    store.save_sources("task-1", _sources())

    updated = store.set_selected("task-1", "b", True)

    assert updated.selected is True
    assert [source.id for source in store.selected_sources("task-1")] == ["a", "b"]
    with pytest.raises(KeyError):
        store.set_selected("task-1", "zzz", True)


def test_update_source_statuses_records_error_text(tmp_path: Path) -> None:
    store = TaskStore(tmp_path)
    store.save_sources("task-1", _sources())

    store.update_source_statuses(
        "task-1",
        [
            SourceOutcome(source_id="a", status=CollectionStatus.FAILED, error="timed out"),
            SourceOutcome(source_id="b", status=CollectionStatus.SLOW),
        ],
    )

    alpha, beta = store.list_sources("task-1")
    assert alpha.collection_status is CollectionStatus.FAILED
    assert alpha.last_error == "timed out"
    assert beta.collection_status is CollectionStatus.SLOW
    assert beta.last_error is None


def test_replace_articles_replaces_previous_batch_and_sorts_by_date(tmp_path: Path) -> None:
    store = TaskStore(tmp_path)
    alpha = _sources()[0]

    store.replace_articles(
        "task-1", [(ExtractedItem(url="https://alpha.example.com/stale", title="Stale"), alpha)]
    )
    stored = store.replace_articles(
        "task-1",
        [
            (ExtractedItem(url="https://alpha.example.com/undated", title="Undated"), alpha),
            (
                ExtractedItem(
                    url="https://alpha.example.com/old",
                    title="Old",
                    published_at=datetime(2024, 1, 1, tzinfo=UTC),
                ),
                alpha,
            ),
            (
                ExtractedItem(
                    url="https://alpha.example.com/new",
                    title="New",
                    published_at=datetime(2024, 6, 1, tzinfo=UTC),
                ),
                alpha,
            ),
        ],
    )

    assert len({article.id for article in stored}) == 3
    assert all(article.selected and article.source_id == "a" for article in stored)
    assert [article.title for article in store.list_articles("task-1")] == ["New", "Old", "Undated"]

    store.clear_articles("task-1")
    assert store.list_articles("task-1") == []


def test_corrupt_files_raise_storage_error(tmp_path: Path) -> None:
    store = TaskStore(tmp_path)
    store.save_sources("task-1", _sources())
    (tmp_path / "tasks" / "task-1" / "sources.json").write_text("[{", encoding="utf-8")

    with pytest.raises(StorageError):
        store.list_sources("task-1")


def test_stores_on_the_same_root_do_not_lose_status_updates(tmp_path: Path) -> None:
    source_ids = [f"s{index}" for index in range(20)]
    TaskStore(tmp_path).save_sources(
        "task-1",
        [Source(id=source_id, name=source_id, url=f"https://{source_id}.example.com") for source_id in source_ids],
    )
    collector_store = TaskStore(tmp_path)
    request_store = TaskStore(str(tmp_path))
    errors: list[Exception] = []

    def record_outcomes() -> None:
        try:
            for source_id in source_ids:
                collector_store.update_source_statuses(
                    "task-1",
                    [SourceOutcome(source_id=source_id, source_name=source_id, status=CollectionStatus.SUCCESS)],
                )
        except Exception as exc:  # pragma: no cover - surfaced by the assertion below
            errors.append(exc)

    def toggle_selection() -> None:
        try:
            for round_number in range(40):
                request_store.set_selected("task-1", source_ids[round_number % 20], round_number % 2 == 0)
        except Exception as exc:  # pragma: no cover - surfaced by the assertion below
            errors.append(exc)

    threads = [threading.Thread(target=record_outcomes), threading.Thread(target=toggle_selection)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert errors == []
    statuses = {source.id: source.collection_status for source in TaskStore(tmp_path).list_sources("task-1")}
    assert all(status is CollectionStatus.SUCCESS for status in statuses.values())


def test_writes_leave_no_temporary_files(tmp_path: Path) -> None:
    store = TaskStore(tmp_path)
    store.save_sources("task-1", _sources())
    store.clear_articles("task-1")

    assert sorted(path.name for path in (tmp_path / "tasks" / "task-1").iterdir()) == [
        "articles.json",
        "sources.json",
    ]
