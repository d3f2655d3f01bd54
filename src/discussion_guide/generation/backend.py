"""Text-generation backends used by the chunk generator."""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Protocol

from langchain_core.prompts import ChatPromptTemplate

_SYSTEM_PROMPT = """
You are a Christian Biblical scholar preparing a small group discussion guide.

Rules:
1) Respond with ONLY valid JSON of the form {{"questions": ["question 1", "question 2"]}}.
2) Do not include explanations, Markdown or any text outside the JSON object.
3) Keep questions short enough not to confuse the group, but with real substance.
4) Questions are for adults who have about an hour to discuss.
""".strip()

_USER_PROMPT = (
    "Create {question_count} thought-provoking small group discussion questions "
    "based on {references}{topic_clause}. The questions should help the group "
    "understand the passage better and apply it to their lives. {ordering}"
)


@dataclass(slots=True, frozen=True)
class ChunkPrompt:
    """Sanitized inputs for one backend call."""

    references: tuple[str, ...]
    question_count: int
    topic: str | None = None


class GenerationBackend(Protocol):
    """Contract for anything that turns a prompt into raw model text."""

    async def complete(self, prompt: ChunkPrompt, *, max_tokens: int) -> str:
        """Return free-form text expected to contain {"questions": [...]}."""


def build_prompt_template() -> ChatPromptTemplate:
    return ChatPromptTemplate.from_messages(
        [
            ("system", _SYSTEM_PROMPT),
            ("human", _USER_PROMPT),
        ]
    )


def prompt_variables(prompt: ChunkPrompt) -> dict[str, Any]:
    topic = prompt.topic
    return {
        "question_count": prompt.question_count,
        "references": ", ".join(prompt.references),
        "topic_clause": f" and base the questions on the topic {topic}" if topic else "",
        "ordering": (
            f"The questions should be organized thematically around {topic}."
            if topic
            else "The questions should follow the passage chronologically."
        ),
    }


class LangChainBackend:
    """Backend wrapping a LangChain chat model such as `ChatOpenAI`."""

    def __init__(self, llm: Any, *, template: ChatPromptTemplate | None = None) -> None:
        self.llm = llm
        self.template = template or build_prompt_template()

    async def complete(self, prompt: ChunkPrompt, *, max_tokens: int) -> str:
        messages = self.template.format_messages(**prompt_variables(prompt))
        response = await self.llm.bind(max_tokens=max_tokens).ainvoke(messages)
        return message_text(response)


class TemplateBackend:
    """Deterministic backend used when no LLM is configured.

    It keeps the same response contract as a model-backed backend, emitting
    a `{"questions": [...]}` JSON document, and is useful for local/offline
    environments where `OPENAI_API_KEY` is not set.
    """

    _TEMPLATES = (
        "What stands out to you most in {reference}, and why?",
        "What does {reference} reveal about the character of God?",
        "How does {reference} challenge the way you live this week?",
        "What questions or tensions does {reference} raise for you?",
        "How might {reference} shape the way you treat others?",
    )

    async def complete(self, prompt: ChunkPrompt, *, max_tokens: int) -> str:
        del max_tokens  # output is always small.
        questions: list[str] = []
        for i in range(prompt.question_count):
            reference = prompt.references[i % len(prompt.references)]
            template = self._TEMPLATES[(i // len(prompt.references)) % len(self._TEMPLATES)]
            question = template.format(reference=reference)
            if prompt.topic:
                question = f"{question[:-1]} in light of {prompt.topic}?"
            questions.append(question)
        return json.dumps({"questions": questions}, ensure_ascii=False)


def message_text(message: Any) -> str:
    """Flatten a chat model response into plain text."""
    if isinstance(message, str):
        return message
    content = getattr(message, "content", message)
    if isinstance(content, list):
        parts: list[str] = []
        for item in content:
            if isinstance(item, dict) and "text" in item:
                parts.append(str(item["text"]))
            else:
                parts.append(str(item))
        return "".join(parts).strip()
    return str(content)
