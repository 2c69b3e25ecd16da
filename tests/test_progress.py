from __future__ import annotations

import asyncio
import json

import pytest

from contentcollector.services.progress import ProgressEvent, ProgressStream, StreamClosedError


def test_events_are_delivered_in_order_until_complete() -> None:
    async def scenario() -> list[ProgressEvent]:
        stream = ProgressStream()
        received: list[ProgressEvent] = []

        async def reader() -> None:
            async for event in stream:
                received.append(event)

        task = asyncio.create_task(reader())
        stream.stage("init", "Initialising")
        stream.log("3 sources queued")
        await asyncio.sleep(0)
        stream.progress(50)
        stream.complete("done", articles=[], total=0)
        await asyncio.wait_for(task, timeout=1)
        return received

    received = asyncio.run(scenario())

    assert [event.type for event in received] == ["stage", "log", "progress", "complete"]
    assert received[-1].data == {"message": "done", "articles": [], "total": 0}


def test_stream_closes_exactly_once() -> None:
    stream = ProgressStream()
    stream.error("storage unavailable")

    assert stream.closed
    with pytest.raises(StreamClosedError):
        stream.log("too late")
    with pytest.raises(StreamClosedError):
        stream.complete("too late")

    stream.close()
    assert [event.type for event in stream.events] == ["error"]


def test_progress_never_decreases_and_is_clamped() -> None:
    stream = ProgressStream()

    values = [stream.progress(value).data["progress"] for value in (10, 40, 30, 120, -5)]

    assert values == [10, 40, 40, 100, 100]
    assert stream.current_progress == 100


def test_event_is_framed_as_server_sent_event() -> None:
    event = ProgressEvent(type="log", data={"message": "hello"})

    frame = event.to_sse()

    assert frame.startswith("data: ")
    assert frame.endswith("\n\n")
    assert json.loads(frame[len("data: ") :]) == {"type": "log", "data": {"message": "hello"}}


def test_closed_stream_stops_iteration_after_buffered_events() -> None:
    async def scenario() -> list[str]:
        stream = ProgressStream()
        stream.log("one")
        stream.close()
        return [event.type async for event in stream]

    assert asyncio.run(scenario()) == ["log"]
