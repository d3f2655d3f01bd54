"""Shared domain models."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(slots=True, frozen=True)
class GenerationRequest:
    """A validated request for discussion questions."""

    references: tuple[str, ...]
    question_count: int
    topic: str | None = None


@dataclass(slots=True, frozen=True)
class VerseChunk:
    """A bounded group of references and the questions it must produce."""

    index: int
    references: tuple[str, ...]
    allocated_questions: int


@dataclass(slots=True)
class ChunkResult:
    """Outcome of generating questions for one chunk."""

    chunk_index: int
    questions: list[str] = field(default_factory=list)
    succeeded: bool = False
    attempts: int = 0


@dataclass(slots=True, frozen=True)
class ProgressState:
    """Chunk-level progress of a running request."""

    current: int
    total: int
    percentage: int

    @classmethod
    def at(cls, current: int, total: int) -> "ProgressState":
        if total <= 0:
            return cls(current=0, total=0, percentage=100)
        # Round half up, matching what progress bars in the browser expect.
        percentage = (200 * current + total) // (2 * total)
        return cls(current=current, total=total, percentage=min(100, percentage))

    @classmethod
    def finished(cls, total: int) -> "ProgressState":
        return cls(current=total, total=total, percentage=100)


@dataclass(slots=True)
class RateLimitEntry:
    """Request count for one client inside the current window."""

    client_key: str
    count: int
    window_start: float


@dataclass(slots=True)
class AggregatedResult:
    """Final questions for one request."""

    questions: list[str]
    complete: bool


@dataclass(slots=True)
class ChunkTrace:
    """Trace record for one generated chunk."""

    chunk_index: int
    references: list[str]
    allocated_questions: int
    attempts: int
    succeeded: bool
    questions_returned: int
    latency_ms: float
