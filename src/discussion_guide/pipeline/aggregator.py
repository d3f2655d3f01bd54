"""Accumulation of chunk results and verse reference consolidation."""

from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass

from discussion_guide.types import AggregatedResult

_SINGLE_VERSE = re.compile(r"^(?P<book>.+?)\s+(?P<chapter>\d+):(?P<verse>\d+)$")


class ResultAggregator:
    """Collects questions in chunk order, never holding more than `limit`."""

    def __init__(self, limit: int) -> None:
        if limit < 1:
            raise ValueError("limit must be at least 1")
        self.limit = limit
        self._questions: list[str] = []

    def extend(self, questions: Iterable[str]) -> int:
        """Append questions up to the limit and return how many were kept."""
        added = 0
        for question in questions:
            if self.full:
                break
            self._questions.append(question)
            added += 1
        return added

    @property
    def full(self) -> bool:
        return len(self._questions) >= self.limit

    @property
    def empty(self) -> bool:
        return not self._questions

    def snapshot(self) -> list[str]:
        return list(self._questions)

    def finalize(self, *, complete: bool = True) -> AggregatedResult:
        return AggregatedResult(questions=self._questions[: self.limit], complete=complete)


@dataclass(slots=True)
class _Verse:
    book: str
    chapter: int
    verse: int


def consolidate_references(references: Iterable[str]) -> list[str]:
    """De-duplicate references and merge consecutive single verses into ranges.

    Example: `["John 3:16", "John 3:17", "John 3:19"]` becomes
    `["John 3:16-17", "John 3:19"]`. References that are not of the form
    `Book Chapter:Verse` are kept as-is and split the surrounding runs.
    """

    output: list[str] = []
    run: list[_Verse] = []
    for reference in _dedupe(references):
        match = _SINGLE_VERSE.match(reference)
        if match is None:
            output.extend(_merge_run(run))
            run = []
            output.append(reference)
            continue
        run.append(
            _Verse(
                book=match.group("book"),
                chapter=int(match.group("chapter")),
                verse=int(match.group("verse")),
            )
        )
    output.extend(_merge_run(run))
    return output


def _dedupe(references: Iterable[str]) -> list[str]:
    seen: set[str] = set()
    unique: list[str] = []
    for reference in references:
        cleaned = reference.strip()
        if not cleaned:
            continue
        key = " ".join(cleaned.split()).lower()
        if key in seen:
            continue
        seen.add(key)
        unique.append(cleaned)
    return unique


def _merge_run(run: list[_Verse]) -> list[str]:
    if not run:
        return []

    ordered = sorted(run, key=lambda v: (v.book.lower(), v.chapter, v.verse))
    merged: list[str] = []
    start = end = ordered[0]
    for verse in ordered[1:]:
        if (
            verse.book.lower() == end.book.lower()
            and verse.chapter == end.chapter
            and verse.verse == end.verse + 1
        ):
            end = verse
            continue
        merged.append(_format_range(start, end))
        start = end = verse
    merged.append(_format_range(start, end))
    return merged


def _format_range(start: _Verse, end: _Verse) -> str:
    if start.verse == end.verse:
        return f"{start.book} {start.chapter}:{start.verse}"
    return f"{start.book} {start.chapter}:{start.verse}-{end.verse}"
