import asyncio
import json

import pytest

from discussion_guide.config import GenerationConfig
from discussion_guide.errors import GenerationFailed
from discussion_guide.generation.backend import ChunkPrompt
from discussion_guide.generation.chunk_generator import ChunkGenerator
from discussion_guide.obs.tracing import TraceStore
from discussion_guide.pipeline.orchestrator import PipelineOrchestrator
from discussion_guide.pipeline.progress import ErrorEvent, ProgressEvent, ProgressStream
from discussion_guide.types import GenerationRequest

REFERENCES = (
    "Mark 1:1",
    "Mark 1:2",
    "Mark 1:3",
    "Mark 1:4",
    "Mark 1:5",
    "Mark 1:6",
)


class _PassageBackend:
    """Answers with one question per requested slot, unless told to fail."""

    def __init__(self, *, fail_when=None, extra: int = 0) -> None:
        self.fail_when = fail_when or (lambda prompt: False)
        self.extra = extra
        self.prompts: list[ChunkPrompt] = []

    async def complete(self, prompt: ChunkPrompt, *, max_tokens: int) -> str:
        self.prompts.append(prompt)
        if self.fail_when(prompt):
            raise ConnectionError("backend unavailable")
        first = prompt.references[0]
        questions = [
            f"{first} question {i + 1}?" for i in range(prompt.question_count + self.extra)
        ]
        return "Here you go:\n```json\n" + json.dumps({"questions": questions}) + "\n```"


def _orchestrator(backend, trace_store: TraceStore | None = None) -> PipelineOrchestrator:
    generator = ChunkGenerator(backend, config=GenerationConfig(retry_backoff_seconds=0.0))
    return PipelineOrchestrator(generator, trace_store=trace_store)


def _run_streaming(orchestrator, request, chunk_size=2):
    async def _scenario():
        stream = ProgressStream()
        try:
            result = await orchestrator.run(request, stream=stream, chunk_size=chunk_size)
        except GenerationFailed as exc:
            result = exc
        events = [event async for event in stream.events()]
        return result, events, stream

    return asyncio.run(_scenario())


def test_progress_events_for_three_chunks() -> None:
    backend = _PassageBackend()
    request = GenerationRequest(references=REFERENCES, question_count=6)

    result, events, stream = _run_streaming(_orchestrator(backend), request)

    assert [event.progress.current for event in events] == [1, 2, 3]
    assert [event.progress.percentage for event in events] == [33, 67, 100]
    assert [event.is_complete for event in events] == [False, False, True]
    assert [len(event.questions) for event in events] == [2, 4, 6]
    assert events[-1].questions == result.questions
    assert result.complete is True
    assert stream.closed


def test_failed_chunk_is_absorbed() -> None:
    backend = _PassageBackend(fail_when=lambda prompt: "Mark 1:3" in prompt.references)
    store = TraceStore()
    request = GenerationRequest(references=REFERENCES, question_count=6)

    result, events, _ = _run_streaming(_orchestrator(backend, store), request)

    assert result.questions == [
        "Mark 1:1 question 1?",
        "Mark 1:1 question 2?",
        "Mark 1:5 question 1?",
        "Mark 1:5 question 2?",
    ]
    assert len(result.questions) <= 6
    assert isinstance(events[-1], ProgressEvent)
    assert events[-1].is_complete is True
    # Three attempts for the failing chunk, one each for the others.
    assert len(backend.prompts) == 5

    record = store.list_recent(limit=1)[0]
    assert record.status == "completed"
    assert record.chunks_failed == 1
    assert record.used_fallback is False


def test_total_failure_raises_after_fallback_and_closes_stream() -> None:
    backend = _PassageBackend(fail_when=lambda prompt: True)
    store = TraceStore()
    request = GenerationRequest(references=REFERENCES, question_count=4)

    result, events, stream = _run_streaming(_orchestrator(backend, store), request)

    assert isinstance(result, GenerationFailed)
    assert isinstance(events[-1], ErrorEvent)
    assert all(
        isinstance(event, ProgressEvent) and not event.is_complete and not event.questions
        for event in events[:-1]
    )
    assert [event.progress.current for event in events[:-1]] == [1, 2]
    assert stream.closed
    # Three chunks plus the fallback chunk, each tried three times.
    assert len(backend.prompts) == 12
    assert backend.prompts[-1].references == ("Mark 1:1", "Mark 1:2", "Mark 1:3")
    assert backend.prompts[-1].question_count == 4
    assert store.summary()["failed_requests"] == 1


def test_fallback_recovers_when_every_chunk_fails() -> None:
    backend = _PassageBackend(fail_when=lambda prompt: len(prompt.references) < 3)
    store = TraceStore()
    request = GenerationRequest(references=REFERENCES, question_count=4, topic="Repentance")

    result, events, _ = _run_streaming(_orchestrator(backend, store), request)

    assert result.questions == [f"Mark 1:1 question {i}?" for i in range(1, 5)]
    assert events[-1].is_complete is True
    assert events[-1].progress.percentage == 100
    assert backend.prompts[-1].topic == "Repentance"
    assert store.summary()["fallback_count"] == 1


def test_early_exit_when_quota_reached() -> None:
    backend = _PassageBackend(extra=10)
    request = GenerationRequest(references=REFERENCES, question_count=3)

    result, events, _ = _run_streaming(_orchestrator(backend), request)

    assert len(backend.prompts) == 1
    assert len(result.questions) == 3
    assert len(events) == 1
    assert events[0].progress.current == 3


def test_zero_allocation_chunks_are_skipped() -> None:
    backend = _PassageBackend()
    references = tuple(f"Luke 2:{i}" for i in range(1, 11))
    request = GenerationRequest(references=references, question_count=2)

    result, events, _ = _run_streaming(_orchestrator(backend), request)

    assert len(backend.prompts) == 2
    assert result.questions == ["Luke 2:1 question 1?", "Luke 2:3 question 1?"]
    assert [event.progress.current for event in events] == [1, 5]
    assert [event.progress.percentage for event in events] == [20, 100]


def test_cancelled_consumer_stops_further_chunks() -> None:
    holder: dict[str, ProgressStream] = {}

    class _CancellingBackend(_PassageBackend):
        async def complete(self, prompt: ChunkPrompt, *, max_tokens: int) -> str:
            text = await super().complete(prompt, max_tokens=max_tokens)
            holder["stream"].cancel()
            return text

    backend = _CancellingBackend()
    store = TraceStore()
    request = GenerationRequest(references=REFERENCES, question_count=6)

    async def _scenario():
        stream = ProgressStream()
        holder["stream"] = stream
        return await _orchestrator(backend, store).run(request, stream=stream, chunk_size=2)

    result = asyncio.run(_scenario())

    assert len(backend.prompts) == 1
    assert result.complete is False
    assert result.questions == ["Mark 1:1 question 1?", "Mark 1:1 question 2?"]
    assert store.list_recent(limit=1)[0].status == "cancelled"


def test_batch_mode_uses_larger_chunks_without_stream() -> None:
    backend = _PassageBackend()
    request = GenerationRequest(references=REFERENCES, question_count=7)

    result = asyncio.run(_orchestrator(backend).run(request))

    assert [len(prompt.references) for prompt in backend.prompts] == [5, 1]
    assert [prompt.question_count for prompt in backend.prompts] == [4, 3]
    assert len(result.questions) == 7


def test_batch_mode_total_failure_raises() -> None:
    backend = _PassageBackend(fail_when=lambda prompt: True)
    request = GenerationRequest(references=("Jude 1:1",), question_count=2)

    with pytest.raises(GenerationFailed):
        asyncio.run(_orchestrator(backend).run(request))
