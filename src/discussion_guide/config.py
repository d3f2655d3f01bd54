"""Configuration models for the discussion guide service."""

from __future__ import annotations

from pydantic import BaseModel, Field


class RateLimitConfig(BaseModel):
    """Configures the per-client fixed-window request budget."""

    window_seconds: float = Field(default=60.0, gt=0.0)
    max_requests: int = Field(default=20, ge=1)


class ValidationConfig(BaseModel):
    """Bounds applied to inbound generation requests."""

    max_questions: int = Field(default=20, ge=1)
    max_reference_chars: int = Field(default=1000, ge=1)


class ChunkingConfig(BaseModel):
    """Configures reference chunking for the two operating points.

    Streaming requests favour latency and use small chunks so the first
    progress event arrives quickly; batch requests use larger chunks to
    reduce the number of backend calls.
    """

    streaming_chunk_size: int = Field(default=2, ge=1, le=5)
    batch_chunk_size: int = Field(default=5, ge=1, le=5)
    guarantee_coverage: bool = False


class GenerationConfig(BaseModel):
    """Configures per-chunk generation, retries and fallback."""

    max_retries: int = Field(default=2, ge=0, le=5)
    retry_backoff_seconds: float = Field(default=0.5, ge=0.0)
    output_tokens: int = Field(default=1024, ge=64)
    max_input_chars: int = Field(default=1000, ge=1)
    fallback_reference_count: int = Field(default=3, ge=1)
    temperature: float = Field(default=0.7, ge=0.0, le=2.0)
