"""FastAPI entrypoint for question generation, streaming and trace endpoints."""

from __future__ import annotations

import asyncio
import json
import logging
import os
from dataclasses import asdict
from typing import Any

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel, Field

from discussion_guide.config import (
    ChunkingConfig,
    GenerationConfig,
    RateLimitConfig,
    ValidationConfig,
)
from discussion_guide.errors import DiscussionGuideError, GenerationFailed, InvalidInput, RateLimited
from discussion_guide.generation.backend import GenerationBackend, LangChainBackend, TemplateBackend
from discussion_guide.generation.chunk_generator import ChunkGenerator
from discussion_guide.limits.rate_limiter import RateLimiter, client_key_from_headers
from discussion_guide.logging_config import setup_logging
from discussion_guide.obs.tracing import TraceStore
from discussion_guide.pipeline.aggregator import consolidate_references
from discussion_guide.pipeline.orchestrator import FAILURE_MESSAGE, PipelineOrchestrator
from discussion_guide.pipeline.progress import ErrorEvent, ProgressStream
from discussion_guide.planning.validator import InputValidator, split_references
from discussion_guide.types import GenerationRequest

logger = logging.getLogger(__name__)

NDJSON_MEDIA_TYPE = "application/x-ndjson"


def _create_llm(config: GenerationConfig) -> Any:
    api_key = os.getenv("OPENAI_API_KEY")
    if not api_key:
        return None

    from langchain_openai import ChatOpenAI

    return ChatOpenAI(
        model=os.getenv("OPENAI_MODEL", "gpt-4o-mini"),
        temperature=config.temperature,
    )


class ConsolidateRequest(BaseModel):
    references: str | list[str]


class ConsolidateResponse(BaseModel):
    references: list[str] = Field(default_factory=list)


def create_app(
    *,
    backend: GenerationBackend | None = None,
    generation_config: GenerationConfig | None = None,
    chunking_config: ChunkingConfig | None = None,
    rate_limit_config: RateLimitConfig | None = None,
    validation_config: ValidationConfig | None = None,
) -> FastAPI:
    setup_logging(os.getenv("DISCUSSION_GUIDE_LOG_LEVEL", "INFO"))

    generation_config = generation_config or GenerationConfig()
    llm = None
    if backend is None:
        llm = _create_llm(generation_config)
        backend = LangChainBackend(llm) if llm is not None else TemplateBackend()
    backend_mode = type(backend).__name__

    trace_store = TraceStore()
    rate_limiter = RateLimiter(rate_limit_config)
    validator = InputValidator(validation_config)
    orchestrator = PipelineOrchestrator(
        ChunkGenerator(backend, config=generation_config),
        chunking=chunking_config,
        config=generation_config,
        trace_store=trace_store,
    )
    background_tasks: set[asyncio.Task[None]] = set()

    app = FastAPI(title="Discussion Guide Service", version="0.1.0")

    @app.exception_handler(DiscussionGuideError)
    async def _handle_domain_error(request: Request, exc: DiscussionGuideError) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content={"error": str(exc)})

    def _admit(request: Request) -> None:
        client_key = client_key_from_headers(request.headers)
        if not rate_limiter.admit(client_key):
            raise RateLimited("Too many requests, please try again later")

    async def _parse(request: Request) -> GenerationRequest:
        content_type = request.headers.get("content-type")
        try:
            payload = await request.json()
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise InvalidInput("Request body must be valid JSON") from exc
        return validator.validate(payload, content_type=content_type)

    async def _drive(generation_request: GenerationRequest, stream: ProgressStream) -> None:
        try:
            await orchestrator.run(generation_request, stream=stream)
        except GenerationFailed as exc:
            logger.warning("Streaming request failed: %s", exc)
        except Exception:
            logger.exception("Unexpected error while streaming questions")
            await stream.emit(ErrorEvent(error=FAILURE_MESSAGE))

    @app.get("/health")
    def health() -> dict[str, Any]:
        return {
            "status": "ok",
            "llm_configured": llm is not None,
            "backend_mode": backend_mode,
            "trace_count": len(trace_store.list_recent(limit=1000)),
        }

    @app.post("/questions")
    async def questions(request: Request) -> dict[str, Any]:
        _admit(request)
        generation_request = await _parse(request)
        result = await orchestrator.run(generation_request)
        return {"questions": result.questions}

    @app.post("/questions/stream")
    async def questions_stream(request: Request) -> StreamingResponse:
        _admit(request)
        generation_request = await _parse(request)

        stream = ProgressStream()
        task = asyncio.create_task(_drive(generation_request, stream))
        background_tasks.add(task)
        task.add_done_callback(background_tasks.discard)

        return StreamingResponse(
            stream.lines(),
            media_type=NDJSON_MEDIA_TYPE,
            headers={"Cache-Control": "no-cache"},
        )

    @app.post("/references/consolidate", response_model=ConsolidateResponse)
    def consolidate(request: ConsolidateRequest) -> ConsolidateResponse:
        raw = request.references
        references = split_references(raw) if isinstance(raw, str) else raw
        return ConsolidateResponse(references=consolidate_references(references))

    @app.get("/traces")
    def traces(limit: int = 20) -> dict[str, Any]:
        records = [asdict(record) for record in trace_store.list_recent(limit=limit)]
        return {"items": records}

    @app.get("/traces/{trace_id}")
    def trace_detail(trace_id: str) -> dict[str, Any]:
        try:
            record = trace_store.get(trace_id)
        except KeyError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        return asdict(record)

    @app.get("/metrics")
    def metrics() -> dict[str, Any]:
        return trace_store.summary()

    return app


app = create_app()
