"""Chunk-by-chunk execution of a question generation request."""

from __future__ import annotations

import logging

from discussion_guide.config import ChunkingConfig, GenerationConfig
from discussion_guide.errors import GenerationFailed
from discussion_guide.generation.chunk_generator import ChunkGenerator
from discussion_guide.obs.tracing import (
    STATUS_CANCELLED,
    STATUS_COMPLETED,
    STATUS_FAILED,
    Timer,
    TraceStore,
)
from discussion_guide.pipeline.aggregator import ResultAggregator
from discussion_guide.pipeline.progress import (
    ErrorEvent,
    ProgressEvent,
    ProgressPayload,
    ProgressStream,
)
from discussion_guide.planning.chunker import VerseChunker
from discussion_guide.types import (
    AggregatedResult,
    ChunkResult,
    ChunkTrace,
    GenerationRequest,
    ProgressState,
    VerseChunk,
)

logger = logging.getLogger(__name__)

FAILURE_MESSAGE = "Failed to generate questions for the given passages"


class PipelineOrchestrator:
    """Drives one request from plan to final question list.

    Chunks run strictly one after another: whether the next chunk is needed
    depends on how many questions the previous ones produced. A failing
    chunk only costs its own questions. The request fails only when every
    chunk and the single fallback attempt come back empty.
    """

    def __init__(
        self,
        generator: ChunkGenerator,
        *,
        chunking: ChunkingConfig | None = None,
        config: GenerationConfig | None = None,
        trace_store: TraceStore | None = None,
    ) -> None:
        self.generator = generator
        self.chunking = chunking or ChunkingConfig()
        self.config = config or generator.config
        self.trace_store = trace_store

    async def run(
        self,
        request: GenerationRequest,
        *,
        stream: ProgressStream | None = None,
        chunk_size: int | None = None,
    ) -> AggregatedResult:
        """Execute the request, emitting progress to `stream` when given.

        Returns:
            The quota-trimmed questions. `complete` is False only when the
            stream consumer went away before the run finished.

        Raises:
            GenerationFailed: no question was produced, even by the fallback.
        """

        streaming = stream is not None
        size = chunk_size or (
            self.chunking.streaming_chunk_size if streaming else self.chunking.batch_chunk_size
        )
        plan = VerseChunker(size, config=self.chunking).build_plan(
            request.references, request.question_count
        )
        aggregator = ResultAggregator(request.question_count)
        chunk_traces: list[ChunkTrace] = []
        used_fallback = False

        with Timer() as timer:
            cancelled = await self._process_plan(plan, request, aggregator, chunk_traces, stream)
            if not cancelled and aggregator.empty:
                used_fallback = True
                await self._run_fallback(len(plan), request, aggregator, chunk_traces)

        if cancelled:
            logger.info("Request cancelled by consumer after %d chunk(s)", len(chunk_traces))
            result = aggregator.finalize(complete=False)
            self._record(request, streaming, STATUS_CANCELLED, result.questions, chunk_traces, used_fallback, timer)
            return result

        if aggregator.empty:
            logger.error(
                "No questions generated for %d reference(s) across %d chunk(s)",
                len(request.references),
                len(plan),
            )
            self._record(request, streaming, STATUS_FAILED, [], chunk_traces, used_fallback, timer)
            if stream is not None:
                await stream.emit(ErrorEvent(error=FAILURE_MESSAGE))
            raise GenerationFailed(FAILURE_MESSAGE)

        result = aggregator.finalize()
        self._record(request, streaming, STATUS_COMPLETED, result.questions, chunk_traces, used_fallback, timer)
        if stream is not None:
            await stream.emit(
                ProgressEvent(
                    questions=result.questions,
                    progress=ProgressPayload.from_state(ProgressState.finished(len(plan))),
                    is_complete=True,
                )
            )
        return result

    async def _process_plan(
        self,
        plan: list[VerseChunk],
        request: GenerationRequest,
        aggregator: ResultAggregator,
        chunk_traces: list[ChunkTrace],
        stream: ProgressStream | None,
    ) -> bool:
        """Run every planned chunk; return True when the consumer cancelled."""

        total = len(plan)
        for position, chunk in enumerate(plan):
            if stream is not None and stream.cancelled:
                return True
            if chunk.allocated_questions == 0:
                logger.debug("Skipping chunk %d with no allocated questions", chunk.index)
                continue

            result = await self._generate(chunk, request.topic, chunk_traces)
            if result.succeeded:
                aggregator.extend(result.questions)

            if aggregator.full:
                return False

            if stream is not None and _has_pending_work(plan, position):
                await stream.emit(
                    ProgressEvent(
                        questions=aggregator.snapshot(),
                        progress=ProgressPayload.from_state(ProgressState.at(position + 1, total)),
                    )
                )

        return stream is not None and stream.cancelled

    async def _run_fallback(
        self,
        index: int,
        request: GenerationRequest,
        aggregator: ResultAggregator,
        chunk_traces: list[ChunkTrace],
    ) -> None:
        references = request.references[: self.config.fallback_reference_count]
        logger.info(
            "All chunks came back empty; falling back to %d reference(s)", len(references)
        )
        chunk = VerseChunk(
            index=index,
            references=tuple(references),
            allocated_questions=request.question_count,
        )
        result = await self._generate(chunk, request.topic, chunk_traces)
        if result.succeeded:
            aggregator.extend(result.questions)

    async def _generate(
        self,
        chunk: VerseChunk,
        topic: str | None,
        chunk_traces: list[ChunkTrace],
    ) -> ChunkResult:
        with Timer() as timer:
            result = await self.generator.generate(chunk, topic)
        chunk_traces.append(
            ChunkTrace(
                chunk_index=chunk.index,
                references=list(chunk.references),
                allocated_questions=chunk.allocated_questions,
                attempts=result.attempts,
                succeeded=result.succeeded,
                questions_returned=len(result.questions),
                latency_ms=timer.elapsed_ms,
            )
        )
        return result

    def _record(
        self,
        request: GenerationRequest,
        streaming: bool,
        status: str,
        questions: list[str],
        chunk_traces: list[ChunkTrace],
        used_fallback: bool,
        timer: Timer,
    ) -> None:
        if self.trace_store is None:
            return
        self.trace_store.create_record(
            references=list(request.references),
            question_count=request.question_count,
            topic=request.topic,
            streaming=streaming,
            status=status,
            questions=questions,
            chunk_traces=chunk_traces,
            used_fallback=used_fallback,
            latency_ms=timer.elapsed_ms,
        )


def _has_pending_work(plan: list[VerseChunk], position: int) -> bool:
    return any(chunk.allocated_questions > 0 for chunk in plan[position + 1 :])
