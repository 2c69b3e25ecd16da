"""API routes exposing source management and article collection."""

from __future__ import annotations

import asyncio
import logging
import math
import uuid
from functools import lru_cache
from typing import AsyncIterator, List

from fastapi import APIRouter, Body, HTTPException, Query
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field, HttpUrl

from contentcollector.config import CollectorSettings
from contentcollector.models import RunSummary, Source, SourceKind, StoredArticle
from contentcollector.services.collector import CollectionOrchestrator
from contentcollector.services.dispatcher import ExtractorDispatcher
from contentcollector.services.progress import ProgressStream
from contentcollector.storage import StorageError, TaskStore, UnknownTaskError

logger = logging.getLogger(__name__)

router = APIRouter()

STREAM_HEADERS = {"Cache-Control": "no-cache", "Connection": "keep-alive"}


class SourceInput(BaseModel):
    id: str | None = None
    name: str
    url: HttpUrl
    kind: SourceKind = SourceKind.WEBSITE
    selected: bool = True


class SourcesPayload(BaseModel):
    sources: List[SourceInput] = Field(default_factory=list)


class SourcesResponse(BaseModel):
    sources: List[Source] = Field(default_factory=list)


class SelectionPayload(BaseModel):
    selected: bool


class Pagination(BaseModel):
    page: int
    page_size: int
    total: int
    total_pages: int


class ArticlesResponse(BaseModel):
    data: List[StoredArticle] = Field(default_factory=list)
    pagination: Pagination


class CollectResponse(BaseModel):
    message: str
    total: int
    articles: List[StoredArticle] = Field(default_factory=list)
    summary: RunSummary


@lru_cache(maxsize=1)
def get_settings() -> CollectorSettings:
    return CollectorSettings.load()


@lru_cache(maxsize=1)
def get_dispatcher() -> ExtractorDispatcher:
    return ExtractorDispatcher(settings=get_settings())


def get_store() -> TaskStore:
    return TaskStore()


def get_orchestrator(store: TaskStore) -> CollectionOrchestrator:
    return CollectionOrchestrator(store, get_dispatcher(), get_settings())


async def _load_sources(store: TaskStore, task_id: str) -> List[Source]:
    try:
        return await run_in_threadpool(store.list_sources, task_id)
    except UnknownTaskError as exc:
        raise HTTPException(status_code=404, detail=f"Unknown task: {task_id}") from exc
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except StorageError as exc:
        logger.exception("Failed to load sources for task %s", task_id)
        raise HTTPException(status_code=500, detail=str(exc)) from exc


@router.get("/tasks/{task_id}/sources", response_model=SourcesResponse)
async def list_sources(task_id: str) -> SourcesResponse:
    """Return the sources configured for a task with their last collection status."""

    store = get_store()
    return SourcesResponse(sources=await _load_sources(store, task_id))


@router.put("/tasks/{task_id}/sources", response_model=SourcesResponse)
async def replace_sources(task_id: str, payload: SourcesPayload = Body(...)) -> SourcesResponse:
    """Replace the source list of a task, as supplied by source discovery."""

    sources = [
        Source(
            id=entry.id or uuid.uuid4().hex,
            name=entry.name,
            url=entry.url,
            kind=entry.kind,
            selected=entry.selected,
        )
        for entry in payload.sources
    ]
    ids = [source.id for source in sources]
    if len(ids) != len(set(ids)):
        raise HTTPException(status_code=400, detail="Source ids must be unique.")

    store = get_store()
    try:
        saved = await run_in_threadpool(store.save_sources, task_id, sources)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except StorageError as exc:
        logger.exception("Failed to store sources for task %s", task_id)
        raise HTTPException(status_code=500, detail=str(exc)) from exc
    return SourcesResponse(sources=saved)


@router.patch("/tasks/{task_id}/sources/{source_id}", response_model=Source)
async def update_source_selection(
    task_id: str, source_id: str, payload: SelectionPayload
) -> Source:
    """Include or exclude a source from the next collection run."""

    store = get_store()
    await _load_sources(store, task_id)
    try:
        return await run_in_threadpool(store.set_selected, task_id, source_id, payload.selected)
    except KeyError as exc:
        raise HTTPException(status_code=404, detail=f"Unknown source: {source_id}") from exc


@router.post("/tasks/{task_id}/articles/collect-stream")
async def collect_articles_stream(task_id: str) -> StreamingResponse:
    """Collect articles for a task, streaming progress as Server-Sent Events.

    Closing the connection cancels the run.
    """

    store = get_store()
    sources = [source for source in await _load_sources(store, task_id) if source.selected]
    orchestrator = get_orchestrator(store)
    stream = ProgressStream()

    async def event_source() -> AsyncIterator[str]:
        run = asyncio.create_task(orchestrator.run(task_id, sources, stream))
        try:
            async for event in stream:
                yield event.to_sse()
        finally:
            if not run.done():
                logger.info("Client left; cancelling collection for task %s", task_id)
                run.cancel()

    return StreamingResponse(
        event_source(), media_type="text/event-stream", headers=STREAM_HEADERS
    )


@router.post("/tasks/{task_id}/articles/collect", response_model=CollectResponse)
async def collect_articles(task_id: str) -> CollectResponse:
    """Collect articles for a task and return the final result in one response."""

    store = get_store()
    sources = [source for source in await _load_sources(store, task_id) if source.selected]
    stream = ProgressStream()
    summary = await get_orchestrator(store).run(task_id, sources, stream)

    final = stream.events[-1]
    if summary is None or final.type != "complete":
        raise HTTPException(status_code=500, detail=final.data.get("message", "Collection failed"))

    return CollectResponse(
        message=final.data["message"],
        total=final.data["total"],
        articles=final.data["articles"],
        summary=summary,
    )


@router.get("/tasks/{task_id}/articles", response_model=ArticlesResponse)
async def list_articles(
    task_id: str,
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=20, ge=1, le=100),
) -> ArticlesResponse:
    """Return persisted articles of a task, newest first."""

    store = get_store()
    await _load_sources(store, task_id)
    try:
        articles = await run_in_threadpool(store.list_articles, task_id)
    except StorageError as exc:
        logger.exception("Failed to load articles for task %s", task_id)
        raise HTTPException(status_code=500, detail=str(exc)) from exc

    start = (page - 1) * page_size
    return ArticlesResponse(
        data=articles[start : start + page_size],
        pagination=Pagination(
            page=page,
            page_size=page_size,
            total=len(articles),
            total_pages=math.ceil(len(articles) / page_size),
        ),
    )
