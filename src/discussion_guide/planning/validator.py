"""Validation of inbound question-generation requests."""

from __future__ import annotations

import re
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from discussion_guide.config import ValidationConfig
from discussion_guide.errors import InvalidInput
from discussion_guide.types import GenerationRequest

_REFERENCE_SEPARATORS = re.compile(r"[,;\n]+")
_JSON_CONTENT_TYPE = "application/json"


class QuestionRequest(BaseModel):
    """Wire shape of a generation request."""

    model_config = ConfigDict(extra="ignore")

    verses: str | list[str]
    questions: int = Field(strict=True)
    topic: str | None = None


class InputValidator:
    """Turns a raw request payload into a bounded `GenerationRequest`."""

    def __init__(self, config: ValidationConfig | None = None) -> None:
        self.config = config or ValidationConfig()

    def validate(self, payload: Any, *, content_type: str | None = _JSON_CONTENT_TYPE) -> GenerationRequest:
        if not _is_json_content_type(content_type):
            raise InvalidInput("Request body must be application/json")
        if not isinstance(payload, dict):
            raise InvalidInput("Request body must be a JSON object")

        try:
            request = QuestionRequest.model_validate(payload, strict=True)
        except ValidationError as exc:
            raise InvalidInput(_describe(exc)) from exc

        references = self._references(request.verses)

        count = request.questions
        if not 1 <= count <= self.config.max_questions:
            raise InvalidInput(
                f"questions must be between 1 and {self.config.max_questions}"
            )

        topic = (request.topic or "").strip() or None
        return GenerationRequest(
            references=tuple(references),
            question_count=count,
            topic=topic,
        )

    def _references(self, verses: str | list[str]) -> list[str]:
        raw = verses if isinstance(verses, str) else ", ".join(verses)
        if not raw.strip():
            raise InvalidInput("verses must not be empty")
        if len(raw) > self.config.max_reference_chars:
            raise InvalidInput(
                f"verses must be at most {self.config.max_reference_chars} characters"
            )
        references = split_references(raw)
        if not references:
            raise InvalidInput("verses must contain at least one reference")
        return references


def split_references(raw: str) -> list[str]:
    """Split a free-text reference list on commas, semicolons and newlines."""
    return [part.strip() for part in _REFERENCE_SEPARATORS.split(raw) if part.strip()]


def _is_json_content_type(content_type: str | None) -> bool:
    if not content_type:
        return False
    media_type = content_type.split(";", 1)[0].strip().lower()
    return media_type == _JSON_CONTENT_TYPE


def _describe(exc: ValidationError) -> str:
    first = exc.errors()[0]
    location = ".".join(str(part) for part in first.get("loc", ())) or "body"
    return f"Invalid {location}: {first.get('msg', 'invalid value')}"
