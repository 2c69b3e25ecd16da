"""Collection orchestrator: fans extraction out over a task's sources.

One coroutine coordinates a run.  Extraction jobs run in worker threads under
a concurrency cap, each raced against a per-source timeout.  Results are folded
into a :class:`CollectionRun` one at a time by the coordinator, which owns the
deduplication set, the outcome list and the progress counter.
"""

from __future__ import annotations

import asyncio
import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Set, Tuple

from fastapi.concurrency import run_in_threadpool

from contentcollector.config import CollectorSettings
from contentcollector.models import (
    CollectionStatus,
    ExtractedItem,
    RunSummary,
    Source,
    SourceOutcome,
)
from contentcollector.services.dispatcher import ExtractorDispatcher
from contentcollector.services.extractor import ELLIPSIS, summarize
from contentcollector.services.progress import ProgressStream
from contentcollector.storage import StorageError, TaskStore
from contentcollector.urls import normalize_url

__all__ = [
    "COLLECT_PROGRESS_SHARE",
    "CollectionOrchestrator",
    "CollectionRun",
    "ExtractionTimeout",
    "JobResult",
    "classify_outcome",
]

logger = logging.getLogger(__name__)

#: Share of the progress bar covered by extraction; persistence completes it.
COLLECT_PROGRESS_SHARE = 90

NO_ITEMS_ERROR = "No articles could be extracted"


class ExtractionTimeout(TimeoutError):
    """A source did not finish extracting within its budget."""


def classify_outcome(
    item_count: int, duration: float, slow_threshold: float = 8.0
) -> CollectionStatus:
    """Return the verdict for a job that produced ``item_count`` items in ``duration`` seconds.

    Errors and timeouts reach this function as zero items.
    """

    if item_count <= 0:
        return CollectionStatus.FAILED
    if duration > slow_threshold:
        return CollectionStatus.SLOW
    return CollectionStatus.SUCCESS


def _truncate(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    return text[:limit] + ELLIPSIS


@dataclass
class JobResult:
    """What one extraction job hands back to the coordinator."""

    source: Source
    items: List[ExtractedItem] = field(default_factory=list)
    duration: float = 0.0
    error: Optional[str] = None


@dataclass
class CollectionRun:
    """In-memory state of one run for one task."""

    task_id: str
    total: int
    seen_urls: Set[str] = field(default_factory=set)
    accepted: List[Tuple[ExtractedItem, Source]] = field(default_factory=list)
    outcomes: List[SourceOutcome] = field(default_factory=list)
    received: int = 0
    completed: int = 0

    @property
    def progress(self) -> int:
        if self.total == 0:
            return COLLECT_PROGRESS_SHARE
        return self.completed * COLLECT_PROGRESS_SHARE // self.total

    def accept(self, item: ExtractedItem, source: Source) -> bool:
        """Keep ``item`` unless an item with the same normalized URL was kept already."""

        key = normalize_url(str(item.url))
        if key in self.seen_urls:
            return False
        self.seen_urls.add(key)
        self.accepted.append((item, source))
        return True

    def summary(self) -> RunSummary:
        counts = {status: 0 for status in CollectionStatus}
        for outcome in self.outcomes:
            counts[outcome.status] += 1
        return RunSummary(
            total=len(self.accepted),
            succeeded=counts[CollectionStatus.SUCCESS],
            slow=counts[CollectionStatus.SLOW],
            failed=counts[CollectionStatus.FAILED],
            outcomes=list(self.outcomes),
        )


def _discard_late_result(future: asyncio.Future) -> None:
    # Results of abandoned jobs are dropped; reading the exception keeps asyncio quiet.
    if future.cancelled():
        return
    exc = future.exception()
    if exc is not None:
        logger.debug("Abandoned extraction finished with %s", exc)


class CollectionOrchestrator:
    """Run extraction for every selected source of a task and persist the results."""

    def __init__(
        self,
        store: TaskStore,
        dispatcher: ExtractorDispatcher | None = None,
        settings: CollectorSettings | None = None,
    ) -> None:
        self._settings = settings or CollectorSettings()
        self._store = store
        self._dispatcher = dispatcher or ExtractorDispatcher(settings=self._settings)

    @property
    def settings(self) -> CollectorSettings:
        return self._settings

    async def run(
        self, task_id: str, sources: Sequence[Source], stream: ProgressStream
    ) -> Optional[RunSummary]:
        """Collect, deduplicate and persist items for ``task_id``.

        Ends the stream with ``complete`` (even when every source failed) or,
        when bookkeeping itself fails, with ``error``.  Cancellation propagates
        after in-flight jobs are abandoned.
        """

        try:
            return await self._run(task_id, sources, stream)
        except asyncio.CancelledError:
            logger.info("Collection for task %s was cancelled", task_id)
            stream.close()
            raise
        except Exception as exc:  # noqa: BLE001 - surfaced to the caller as an error event
            logger.exception("Collection for task %s failed", task_id)
            if not stream.closed:
                stream.error(str(exc) or exc.__class__.__name__)
            return None

    async def _run(
        self, task_id: str, sources: Sequence[Source], stream: ProgressStream
    ) -> RunSummary:
        stream.stage("init", "Initialising collection")
        await run_in_threadpool(self._store.clear_articles, task_id)

        selected = [source for source in sources if source.selected]
        run = CollectionRun(task_id=task_id, total=len(selected))

        stream.stage("collecting", "Collecting articles from sources")
        stream.log(f"{len(selected)} sources queued for collection")
        stream.progress(0)

        await self._collect(selected, run, stream)

        stream.progress(run.progress)
        stream.log(f"Collected {len(run.accepted)} unique articles")

        stream.stage("saving", "Saving articles")
        await run_in_threadpool(self._store.replace_articles, task_id, run.accepted)
        articles = await run_in_threadpool(self._store.list_articles, task_id)

        summary = run.summary()
        stream.progress(100)
        stream.complete(
            f"Collection finished with {len(articles)} articles",
            articles=[article.model_dump(mode="json") for article in articles],
            total=len(articles),
            summary=summary.model_dump(mode="json"),
        )
        logger.info(
            "Task %s collected %d articles (%d ok, %d slow, %d failed)",
            task_id,
            summary.total,
            summary.succeeded,
            summary.slow,
            summary.failed,
        )
        return summary

    async def _collect(
        self, sources: Sequence[Source], run: CollectionRun, stream: ProgressStream
    ) -> None:
        if not sources:
            return

        semaphore = asyncio.Semaphore(self._settings.max_concurrency)
        # One worker per job so abandoned extractions never starve queued ones.
        executor = ThreadPoolExecutor(
            max_workers=len(sources), thread_name_prefix=f"collect-{run.task_id}"
        )
        jobs = [
            asyncio.create_task(
                self._run_job(source, position, len(sources), semaphore, executor, stream)
            )
            for position, source in enumerate(sources, start=1)
        ]
        try:
            for next_result in asyncio.as_completed(jobs):
                result = await next_result
                await self._fold(result, run, stream)
        finally:
            for job in jobs:
                if not job.done():
                    job.cancel()
            executor.shutdown(wait=False, cancel_futures=True)

    async def _run_job(
        self,
        source: Source,
        position: int,
        total: int,
        semaphore: asyncio.Semaphore,
        executor: ThreadPoolExecutor,
        stream: ProgressStream,
    ) -> JobResult:
        async with semaphore:
            url = str(source.url)
            stream.log(f"[{position}/{total}] Collecting {source.name}")
            loop = asyncio.get_running_loop()
            started = time.monotonic()
            try:
                extractor = self._dispatcher.select(source.kind, url)
                extraction = loop.run_in_executor(executor, extractor.extract, url)
            except Exception as exc:  # noqa: BLE001 - recorded as the source's failure
                return JobResult(source, duration=time.monotonic() - started, error=str(exc))

            try:
                done, _ = await asyncio.wait({extraction}, timeout=self._settings.source_timeout)
            except asyncio.CancelledError:
                extraction.add_done_callback(_discard_late_result)
                raise
            duration = time.monotonic() - started

            if not done:
                extraction.add_done_callback(_discard_late_result)
                timeout = ExtractionTimeout(
                    f"Extraction timed out after {self._settings.source_timeout:g}s"
                )
                return JobResult(source, duration=duration, error=str(timeout))

            try:
                items = extraction.result()
            except Exception as exc:  # noqa: BLE001 - recorded as the source's failure
                logger.warning("Extraction of %s (%s) failed: %s", source.name, url, exc)
                return JobResult(
                    source, duration=duration, error=str(exc) or exc.__class__.__name__
                )
            return JobResult(source, items=list(items), duration=duration)

    def _prepare(self, item: ExtractedItem) -> ExtractedItem:
        """Bound the stored body and make sure a summary exists."""

        body = item.body[: self._settings.max_body_length]
        summary = item.summary or summarize(body, self._settings.summary_length)
        summary = _truncate(summary, self._settings.summary_length)
        if body == item.body and summary == item.summary:
            return item
        return item.model_copy(update={"body": body, "summary": summary})

    def _item_payload(self, item: ExtractedItem, source: Source) -> Dict[str, Any]:
        return {
            "title": item.title,
            "summary": _truncate(item.summary, self._settings.item_summary_length),
            "url": str(item.url),
            "source_name": source.name,
            "published_at": item.published_at.isoformat() if item.published_at else None,
        }

    async def _fold(self, result: JobResult, run: CollectionRun, stream: ProgressStream) -> None:
        """Merge one finished job into ``run``; only the coordinator calls this."""

        source = result.source
        run.completed += 1

        status = classify_outcome(len(result.items), result.duration, self._settings.slow_threshold)
        error = result.error
        if status is CollectionStatus.FAILED and error is None:
            error = NO_ITEMS_ERROR

        added = 0
        for item in result.items:
            prepared = self._prepare(item)
            run.received += 1
            stream.item(self._item_payload(prepared, source), count=run.received)
            if run.accept(prepared, source):
                added += 1

        outcome = SourceOutcome(
            source_id=source.id,
            source_name=source.name,
            status=status,
            item_count=len(result.items),
            duration=round(result.duration, 3),
            error=error,
        )
        run.outcomes.append(outcome)

        if status is CollectionStatus.FAILED:
            stream.log(f"  {source.name}: failed ({error})")
        else:
            note = " (slow)" if status is CollectionStatus.SLOW else ""
            stream.log(f"  {source.name}: {len(result.items)} articles, {added} new{note}")

        try:
            await run_in_threadpool(self._store.update_source_statuses, run.task_id, [outcome])
        except StorageError as exc:
            logger.warning("Could not record status of source %s: %s", source.id, exc)
            stream.log(f"  {source.name}: status not saved ({exc})")
        stream.progress(run.progress)
