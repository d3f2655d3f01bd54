"""Incremental progress events delivered as newline-delimited JSON."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator

from pydantic import BaseModel, ConfigDict, Field

from discussion_guide.types import ProgressState

logger = logging.getLogger(__name__)


class ProgressPayload(BaseModel):
    current: int
    total: int
    percentage: int = Field(ge=0, le=100)

    @classmethod
    def from_state(cls, state: ProgressState) -> "ProgressPayload":
        return cls(current=state.current, total=state.total, percentage=state.percentage)


class ProgressEvent(BaseModel):
    """Snapshot of accumulated questions; terminal when `is_complete`."""

    model_config = ConfigDict(populate_by_name=True)

    questions: list[str]
    progress: ProgressPayload
    is_complete: bool = Field(default=False, alias="isComplete")

    @property
    def terminal(self) -> bool:
        return self.is_complete


class ErrorEvent(BaseModel):
    error: str

    @property
    def terminal(self) -> bool:
        return True


StreamEvent = ProgressEvent | ErrorEvent


class ProgressStream:
    """Single-producer, single-consumer channel of stream events.

    The orchestrator pushes events with `emit`; the HTTP response drains them
    with `lines`. A terminal or error event closes the stream. When the
    consumer stops reading it calls `cancel`, which the producer observes
    between chunks.
    """

    def __init__(self) -> None:
        self._queue: asyncio.Queue[StreamEvent] = asyncio.Queue()
        self._closed = False
        self._cancelled = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    async def emit(self, event: StreamEvent) -> None:
        if self._closed:
            logger.debug("Dropping event emitted after stream close")
            return
        if event.terminal:
            self._closed = True
        await self._queue.put(event)

    def cancel(self) -> None:
        self._cancelled = True

    async def events(self) -> AsyncIterator[StreamEvent]:
        while True:
            event = await self._queue.get()
            yield event
            if event.terminal:
                return

    async def lines(self) -> AsyncIterator[str]:
        try:
            async for event in self.events():
                yield serialize_event(event)
        finally:
            if not self._closed:
                logger.info("Progress stream consumer went away before completion")
                self.cancel()


def serialize_event(event: StreamEvent) -> str:
    return event.model_dump_json(by_alias=True) + "\n"
