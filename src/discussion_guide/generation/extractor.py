"""Recovery of question lists from noisy model output.

Models asked for `{"questions": [...]}` routinely wrap the object in Markdown
fences, surround it with prose, rename the field, or return each entry as a
small object. The extractor accepts all of these and only gives up when no
list of questions can be found at all.
"""

from __future__ import annotations

import json
import re
from typing import Any

import json_repair

from discussion_guide.errors import UnparsableOutput

_FENCE_OPEN = re.compile(r"^```[a-zA-Z]*")
_FENCE_CLOSE = re.compile(r"```$")
_GREEDY_OBJECT = re.compile(r"\{[\s\S]*\}")


class ResponseExtractor:
    """Pulls an ordered list of question strings out of raw backend text."""

    def extract(self, raw_text: str) -> list[str]:
        text = (raw_text or "").strip()
        if not text:
            raise UnparsableOutput("Backend returned empty output")

        text = strip_fences(text)
        parsed = _parse(text)
        items = _question_items(parsed)
        questions = normalize_questions(items)
        if not questions:
            raise UnparsableOutput("Backend output contained no usable questions")
        return questions


def strip_fences(text: str) -> str:
    """Remove a surrounding Markdown code fence, if present."""
    if not text.startswith("```"):
        return text
    text = _FENCE_OPEN.sub("", text, count=1)
    text = _FENCE_CLOSE.sub("", text)
    return text.strip()


def extract_first_json_object(text: str) -> str:
    """Return the first balanced {...} object in the text, or the text itself."""
    start = text.find("{")
    if start < 0:
        return text

    depth = 0
    for i, char in enumerate(text[start:], start):
        if char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return text[start : i + 1]
    return text


def normalize_questions(items: list[Any]) -> list[str]:
    """Coerce raw entries to stripped strings, dropping unusable ones."""
    questions: list[str] = []
    for item in items:
        question = coerce_question(item)
        if question:
            questions.append(question)
    return questions


def coerce_question(item: Any) -> str | None:
    """Accept a plain string or a single-field wrapper such as {"question": ...}."""
    if isinstance(item, str):
        return item.strip() or None
    if isinstance(item, dict):
        value = item.get("question")
        if value is None and len(item) == 1:
            value = next(iter(item.values()))
        if isinstance(value, str):
            return value.strip() or None
    return None


def _parse(text: str) -> Any:
    candidates = _candidates(text)

    last_error: json.JSONDecodeError | None = None
    for candidate in candidates:
        try:
            return json.loads(candidate)
        except json.JSONDecodeError as exc:
            last_error = exc

    # Repair trailing commas, single quotes and output cut off mid-document.
    for candidate in candidates:
        repaired = json_repair.loads(candidate)
        if isinstance(repaired, (dict, list)) and repaired:
            return repaired
    raise UnparsableOutput(f"Backend output is not valid JSON: {last_error}") from last_error


def _candidates(text: str) -> list[str]:
    objects: list[str] = []
    match = _GREEDY_OBJECT.search(text)
    if match:
        objects.append(match.group(0))
        objects.append(extract_first_json_object(text))

    # A top-level array comes first when it opens before any object does.
    arrays: list[str] = []
    array_start = text.find("[")
    object_start = text.find("{")
    if array_start >= 0 and (object_start < 0 or array_start < object_start):
        array_end = text.rfind("]")
        arrays.append(text[array_start : array_end + 1] if array_end > array_start else text[array_start:])

    return list(dict.fromkeys([*arrays, *objects, text]))


def _question_items(parsed: Any) -> list[Any]:
    if isinstance(parsed, list):
        return parsed
    if not isinstance(parsed, dict):
        raise UnparsableOutput("Backend output is not a JSON object")

    questions = parsed.get("questions")
    if isinstance(questions, list):
        return questions

    # Recover from renamed or split fields by collecting every list value and
    # every string value stored under a question-like key.
    recovered: list[Any] = []
    for key, value in parsed.items():
        if isinstance(value, list):
            recovered.extend(value)
        elif isinstance(value, str) and "question" in str(key).lower():
            recovered.append(value)
    if not recovered:
        raise UnparsableOutput("Backend output has no questions field")
    return recovered
