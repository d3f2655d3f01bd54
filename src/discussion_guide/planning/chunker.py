"""Reference chunking and question quota distribution."""

from __future__ import annotations

from collections.abc import Sequence

from discussion_guide.config import ChunkingConfig
from discussion_guide.types import VerseChunk


class VerseChunker:
    """Splits references into contiguous chunks and assigns each a quota.

    Design notes:
    1. Chunks are contiguous and order preserving.
       Concatenating the chunks always yields the original reference list, so
       questions come back in reading order.

    2. Quotas are spread evenly, not proportionally.
       Every chunk receives `total // chunk_count` questions and the first
       `total % chunk_count` chunks receive one extra. The allocations sum to
       the requested total.

    3. Coverage is optional.
       With `guarantee_coverage` every chunk is asked for at least one
       question. When there are more chunks than questions this asks for more
       than the request needs and the aggregator trims the surplus. Without
       it, trailing chunks may receive zero questions and are skipped.
    """

    def __init__(
        self,
        chunk_size: int,
        *,
        config: ChunkingConfig | None = None,
    ) -> None:
        if chunk_size < 1:
            raise ValueError("chunk_size must be at least 1")
        self.chunk_size = chunk_size
        self.config = config or ChunkingConfig()

    def chunk(self, references: Sequence[str]) -> list[tuple[str, ...]]:
        return [
            tuple(references[i : i + self.chunk_size])
            for i in range(0, len(references), self.chunk_size)
        ]

    def build_plan(self, references: Sequence[str], question_count: int) -> list[VerseChunk]:
        """Chunk `references` and attach each chunk's question allocation."""

        groups = self.chunk(references)
        if not groups:
            return []
        allocations = distribute_quota(
            question_count,
            len(groups),
            min_per_chunk=1 if self.config.guarantee_coverage else 0,
        )
        return [
            VerseChunk(index=index, references=group, allocated_questions=allocated)
            for index, (group, allocated) in enumerate(zip(groups, allocations, strict=True))
        ]


def distribute_quota(total: int, chunk_count: int, *, min_per_chunk: int = 0) -> list[int]:
    """Spread `total` questions over `chunk_count` chunks, remainder first."""

    if chunk_count < 1:
        raise ValueError("chunk_count must be at least 1")
    if total < 0:
        raise ValueError("total must not be negative")

    base, remainder = divmod(total, chunk_count)
    allocations = [base + (1 if i < remainder else 0) for i in range(chunk_count)]
    if min_per_chunk:
        allocations = [max(min_per_chunk, value) for value in allocations]
    return allocations
