import asyncio
import json

from discussion_guide.pipeline.progress import (
    ErrorEvent,
    ProgressEvent,
    ProgressPayload,
    ProgressStream,
    serialize_event,
)
from discussion_guide.types import ProgressState


def test_progress_state_rounds_half_up() -> None:
    assert ProgressState.at(1, 3).percentage == 33
    assert ProgressState.at(2, 3).percentage == 67
    assert ProgressState.at(1, 8).percentage == 13
    assert ProgressState.at(3, 3).percentage == 100
    assert ProgressState.finished(4) == ProgressState(current=4, total=4, percentage=100)


def test_events_serialize_as_single_json_lines() -> None:
    event = ProgressEvent(
        questions=["Q1"],
        progress=ProgressPayload(current=1, total=2, percentage=50),
    )

    line = serialize_event(event)

    assert line.endswith("\n")
    assert line.count("\n") == 1
    assert json.loads(line) == {
        "questions": ["Q1"],
        "progress": {"current": 1, "total": 2, "percentage": 50},
        "isComplete": False,
    }
    assert json.loads(serialize_event(ErrorEvent(error="boom"))) == {"error": "boom"}


def test_terminal_event_closes_stream() -> None:
    async def _scenario() -> list[str]:
        stream = ProgressStream()
        await stream.emit(
            ProgressEvent(questions=[], progress=ProgressPayload(current=1, total=2, percentage=50))
        )
        await stream.emit(ErrorEvent(error="failed"))
        await stream.emit(ErrorEvent(error="ignored"))
        assert stream.closed
        return [line async for line in stream.lines()]

    lines = asyncio.run(_scenario())

    assert len(lines) == 2
    assert json.loads(lines[-1]) == {"error": "failed"}


def test_fully_drained_stream_is_not_cancelled() -> None:
    async def _scenario() -> ProgressStream:
        stream = ProgressStream()
        await stream.emit(
            ProgressEvent(
                questions=["a"],
                progress=ProgressPayload(current=1, total=1, percentage=100),
                is_complete=True,
            )
        )
        assert [line async for line in stream.lines()]
        return stream

    stream = asyncio.run(_scenario())

    assert stream.closed is True
    assert stream.cancelled is False


def test_closing_consumer_cancels_stream() -> None:
    async def _scenario() -> ProgressStream:
        stream = ProgressStream()
        await stream.emit(
            ProgressEvent(questions=["a"], progress=ProgressPayload(current=1, total=3, percentage=33))
        )
        lines = stream.lines()
        await lines.__anext__()
        await lines.aclose()
        return stream

    stream = asyncio.run(_scenario())

    assert stream.cancelled is True
    assert stream.closed is False
