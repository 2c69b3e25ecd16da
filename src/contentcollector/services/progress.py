"""Append-only progress event stream consumed live by callers."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, AsyncIterator, Dict, List, Literal, Optional

from pydantic import BaseModel, Field

__all__ = ["EventType", "ProgressEvent", "ProgressStream", "StreamClosedError"]

logger = logging.getLogger(__name__)

EventType = Literal["stage", "log", "item", "progress", "complete", "error"]

TERMINAL_EVENTS = frozenset({"complete", "error"})


class StreamClosedError(RuntimeError):
    """Raised when an event is written after the stream was closed."""


class ProgressEvent(BaseModel):
    """A single typed event; serialised as one JSON object."""

    type: EventType
    data: Dict[str, Any] = Field(default_factory=dict)

    def to_sse(self) -> str:
        """Return the event framed as a Server-Sent-Events ``data`` line."""

        return f"data: {self.model_dump_json()}\n\n"


class ProgressStream:
    """Ordered, write-once sequence of :class:`ProgressEvent` objects.

    Writers append events; a single reader iterates them as they arrive.  The
    stream closes exactly once, right after a ``complete`` or ``error`` event
    or through :meth:`close`.  Progress values never decrease.
    """

    def __init__(self) -> None:
        self._queue: asyncio.Queue[Optional[ProgressEvent]] = asyncio.Queue()
        self._events: List[ProgressEvent] = []
        self._closed = False
        self._progress = 0

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def events(self) -> List[ProgressEvent]:
        """Events written so far, in order."""

        return list(self._events)

    @property
    def current_progress(self) -> int:
        return self._progress

    def emit(self, event_type: EventType, data: Dict[str, Any] | None = None) -> ProgressEvent:
        if self._closed:
            raise StreamClosedError(f"Cannot emit {event_type!r} on a closed stream")
        event = ProgressEvent(type=event_type, data=data or {})
        self._events.append(event)
        self._queue.put_nowait(event)
        if event_type in TERMINAL_EVENTS:
            self.close()
        return event

    def stage(self, stage: str, message: str = "") -> ProgressEvent:
        return self.emit("stage", {"stage": stage, "message": message})

    def log(self, message: str) -> ProgressEvent:
        logger.debug("progress log: %s", message)
        return self.emit("log", {"message": message})

    def item(self, item: Dict[str, Any], count: int) -> ProgressEvent:
        return self.emit("item", {"item": item, "count": count})

    def progress(self, percent: int) -> ProgressEvent:
        """Emit ``percent`` clamped to 0-100 and to the highest value sent so far."""

        self._progress = max(self._progress, min(100, max(0, int(percent))))
        return self.emit("progress", {"progress": self._progress})

    def complete(self, message: str, **payload: Any) -> ProgressEvent:
        return self.emit("complete", {"message": message, **payload})

    def error(self, message: str) -> ProgressEvent:
        return self.emit("error", {"message": message})

    def close(self) -> None:
        """Close the stream; later calls are no-ops."""

        if self._closed:
            return
        self._closed = True
        self._queue.put_nowait(None)

    async def __aiter__(self) -> AsyncIterator[ProgressEvent]:
        while True:
            event = await self._queue.get()
            if event is None:
                return
            yield event
