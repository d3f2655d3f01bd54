"""Request tracing, cost accounting, and pipeline metrics."""

from __future__ import annotations

import re
import time
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone

from discussion_guide.types import ChunkTrace

_TOKEN_PATTERN = re.compile(r"\w+|[^\w\s]", flags=re.UNICODE)

STATUS_COMPLETED = "completed"
STATUS_FAILED = "failed"
STATUS_CANCELLED = "cancelled"


@dataclass(slots=True)
class TraceRecord:
    trace_id: str
    timestamp_utc: str
    references: list[str]
    question_count: int
    topic: str | None
    streaming: bool
    status: str
    questions_returned: int
    chunk_traces: list[ChunkTrace]
    used_fallback: bool
    input_tokens: int
    output_tokens: int
    estimated_cost_usd: float
    latency_ms: float

    @property
    def chunks_failed(self) -> int:
        return sum(1 for chunk in self.chunk_traces if not chunk.succeeded)


@dataclass(slots=True)
class CostModel:
    """Simple token pricing model (USD per 1K tokens)."""

    input_per_1k: float = 0.00015
    output_per_1k: float = 0.0006

    def estimate_cost(self, input_tokens: int, output_tokens: int) -> float:
        return (input_tokens / 1000.0) * self.input_per_1k + (
            output_tokens / 1000.0
        ) * self.output_per_1k


class TraceStore:
    """In-memory trace storage for API-level observability."""

    def __init__(self, *, cost_model: CostModel | None = None) -> None:
        self._records: dict[str, TraceRecord] = {}
        self._cost_model = cost_model or CostModel()

    def create_record(
        self,
        *,
        references: list[str],
        question_count: int,
        topic: str | None,
        streaming: bool,
        status: str,
        questions: list[str],
        chunk_traces: list[ChunkTrace],
        used_fallback: bool,
        latency_ms: float,
    ) -> TraceRecord:
        trace_id = str(uuid.uuid4())
        prompt_text = " ".join(references) + (f" {topic}" if topic else "")
        attempts = sum(max(1, chunk.attempts) for chunk in chunk_traces) or 1
        input_tokens = estimate_token_count(prompt_text) * attempts
        output_tokens = sum(estimate_token_count(question) for question in questions)
        record = TraceRecord(
            trace_id=trace_id,
            timestamp_utc=datetime.now(timezone.utc).isoformat(),
            references=references,
            question_count=question_count,
            topic=topic,
            streaming=streaming,
            status=status,
            questions_returned=len(questions),
            chunk_traces=chunk_traces,
            used_fallback=used_fallback,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            estimated_cost_usd=self._cost_model.estimate_cost(input_tokens, output_tokens),
            latency_ms=latency_ms,
        )
        self._records[trace_id] = record
        return record

    def get(self, trace_id: str) -> TraceRecord:
        record = self._records.get(trace_id)
        if record is None:
            raise KeyError(f"Trace not found: {trace_id}")
        return record

    def list_recent(self, limit: int = 20) -> list[TraceRecord]:
        return list(self._records.values())[-limit:]

    def summary(self) -> dict[str, float | int]:
        """Aggregate core pipeline metrics for dashboard display."""
        records = list(self._records.values())
        total = len(records)
        if total == 0:
            return {
                "total_requests": 0,
                "failed_requests": 0,
                "cancelled_requests": 0,
                "avg_latency_ms": 0.0,
                "p95_latency_ms": 0.0,
                "chunk_failure_rate": 0.0,
                "fallback_count": 0,
                "total_input_tokens": 0,
                "total_output_tokens": 0,
                "total_estimated_cost_usd": 0.0,
            }

        latencies = sorted(record.latency_ms for record in records)
        p95_index = max(0, int((len(latencies) * 0.95) - 1))
        chunk_total = sum(len(record.chunk_traces) for record in records)
        chunk_failed = sum(record.chunks_failed for record in records)

        return {
            "total_requests": total,
            "failed_requests": sum(1 for r in records if r.status == STATUS_FAILED),
            "cancelled_requests": sum(1 for r in records if r.status == STATUS_CANCELLED),
            "avg_latency_ms": sum(latencies) / total,
            "p95_latency_ms": latencies[p95_index],
            "chunk_failure_rate": (chunk_failed / chunk_total) if chunk_total else 0.0,
            "fallback_count": sum(1 for r in records if r.used_fallback),
            "total_input_tokens": sum(r.input_tokens for r in records),
            "total_output_tokens": sum(r.output_tokens for r in records),
            "total_estimated_cost_usd": sum(r.estimated_cost_usd for r in records),
        }


class Timer:
    """Simple context timer used by the orchestrator."""

    def __init__(self) -> None:
        self._start = 0.0
        self.elapsed_ms = 0.0

    def __enter__(self) -> "Timer":
        self._start = time.perf_counter()
        return self

    def __exit__(self, exc_type: object, exc: object, tb: object) -> None:
        self.elapsed_ms = (time.perf_counter() - self._start) * 1000.0


def estimate_token_count(text: str) -> int:
    return len(_TOKEN_PATTERN.findall(text))
