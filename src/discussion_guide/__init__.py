"""Discussion guide generation package."""

from .config import ChunkingConfig, GenerationConfig, RateLimitConfig, ValidationConfig

__all__ = ["ChunkingConfig", "GenerationConfig", "RateLimitConfig", "ValidationConfig"]
