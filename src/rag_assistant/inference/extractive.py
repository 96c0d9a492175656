"""Deterministic backend used when no hosted model is configured."""

from __future__ import annotations

import re
from collections.abc import Sequence

from rag_assistant.inference.base import ChatBackend
from rag_assistant.types import ChatMessage, ChatOptions

NO_EVIDENCE_ANSWER = "I could not find verifiable evidence in the indexed documents."

_CONTEXT_LINE = re.compile(r"^\[(?P<ref>[^\]]+)\]\s+(?P<body>.+)$")


class ExtractiveBackend(ChatBackend):
    """Answers from the retrieved context embedded in the prompt.

    This keeps the same completion contract as the hosted backends and is
    useful for local/offline environments where no API key is configured. The
    answer is made of the first context passages, each cited by reference.
    """

    name = "extractive"
    default_model = "extractive"

    def __init__(self, max_passages: int = 3) -> None:
        self.max_passages = max_passages

    async def complete(self, messages: Sequence[ChatMessage], options: ChatOptions) -> str:
        del options  # nothing to tune for extractive answers.
        references: list[str] = []
        passages: list[str] = []
        for message in messages:
            if message.role != "system":
                continue
            for line in message.content.splitlines():
                match = _CONTEXT_LINE.match(line.strip())
                if not match:
                    continue
                references.append(match.group("ref").strip())
                passages.append(match.group("body").strip())
        return _build_answer(passages, references, self.max_passages)


def _build_answer(passages: list[str], references: list[str], limit: int) -> str:
    if not passages:
        return NO_EVIDENCE_ANSWER

    lines: list[str] = []
    for idx, (passage, reference) in enumerate(
        zip(passages[:limit], references[:limit], strict=True), start=1
    ):
        lines.append(f"{idx}. {passage} [{reference}]")
    return "\n".join(lines)
