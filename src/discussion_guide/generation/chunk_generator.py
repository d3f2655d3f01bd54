"""Per-chunk question generation with bounded retries."""

from __future__ import annotations

import asyncio
import logging
import re

from discussion_guide.config import GenerationConfig
from discussion_guide.errors import BackendUnavailable, UnparsableOutput
from discussion_guide.generation.backend import ChunkPrompt, GenerationBackend
from discussion_guide.generation.extractor import ResponseExtractor
from discussion_guide.types import ChunkResult, VerseChunk

logger = logging.getLogger(__name__)

_DISALLOWED_CHARS = re.compile(r"[^\w\s.,:;!?'\"()\-]", flags=re.UNICODE)


class ChunkGenerator:
    """Generates the questions allocated to one chunk.

    A chunk never raises for backend or parsing problems. Each failure is
    logged and retried with the same inputs until the retry budget is spent,
    after which an unsuccessful `ChunkResult` is returned so the rest of the
    request can continue.
    """

    def __init__(
        self,
        backend: GenerationBackend,
        *,
        config: GenerationConfig | None = None,
        extractor: ResponseExtractor | None = None,
    ) -> None:
        self.backend = backend
        self.config = config or GenerationConfig()
        self.extractor = extractor or ResponseExtractor()

    async def generate(
        self,
        chunk: VerseChunk,
        topic: str | None = None,
        *,
        retry_budget: int | None = None,
    ) -> ChunkResult:
        retries = self.config.max_retries if retry_budget is None else max(0, retry_budget)
        prompt = self._build_prompt(chunk, topic)
        if prompt is None:
            logger.warning("Chunk %d has no usable references after sanitizing", chunk.index)
            return ChunkResult(chunk_index=chunk.index, succeeded=False, attempts=0)

        attempt = 0
        while attempt <= retries:
            attempt += 1
            try:
                questions = await self._attempt(prompt)
            except (BackendUnavailable, UnparsableOutput) as exc:
                logger.warning(
                    "Chunk %d attempt %d/%d failed: %s",
                    chunk.index,
                    attempt,
                    retries + 1,
                    exc,
                )
                if attempt <= retries:
                    await self._backoff(attempt)
                continue
            return ChunkResult(
                chunk_index=chunk.index,
                questions=questions,
                succeeded=True,
                attempts=attempt,
            )

        logger.warning("Chunk %d gave up after %d attempts", chunk.index, attempt)
        return ChunkResult(chunk_index=chunk.index, succeeded=False, attempts=attempt)

    async def _attempt(self, prompt: ChunkPrompt) -> list[str]:
        try:
            raw = await self.backend.complete(prompt, max_tokens=self.config.output_tokens)
        except Exception as exc:
            raise BackendUnavailable(f"{type(exc).__name__}: {exc}") from exc
        if not isinstance(raw, str):
            raise UnparsableOutput(f"Backend returned {type(raw).__name__}, expected text")
        return self.extractor.extract(raw)

    async def _backoff(self, attempt: int) -> None:
        delay = self.config.retry_backoff_seconds * (2 ** (attempt - 1))
        if delay > 0:
            await asyncio.sleep(delay)

    def _build_prompt(self, chunk: VerseChunk, topic: str | None) -> ChunkPrompt | None:
        limit = self.config.max_input_chars
        references = tuple(
            cleaned
            for cleaned in (sanitize_text(ref, max_chars=limit) for ref in chunk.references)
            if cleaned
        )
        if not references:
            return None
        clean_topic = sanitize_text(topic, max_chars=limit) if topic else ""
        return ChunkPrompt(
            references=references,
            question_count=chunk.allocated_questions,
            topic=clean_topic or None,
        )


def sanitize_text(text: str, *, max_chars: int = 1000) -> str:
    """Drop characters outside a conservative allow-list and bound the length."""
    cleaned = _DISALLOWED_CHARS.sub("", text)
    return cleaned[:max_chars].strip()
