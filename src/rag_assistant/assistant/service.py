"""Query flow: route, optionally retrieve, then complete through the gateway."""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from rag_assistant.inference.gateway import InferenceGateway
from rag_assistant.modes import ModeConfigResolver
from rag_assistant.obs.tracing import GroundednessEvaluator, Timer
from rag_assistant.retrieval.retriever import PresetRetriever
from rag_assistant.routing.default_tree import MAIN_TREE
from rag_assistant.routing.tree import DecisionContext, DecisionRouter
from rag_assistant.types import ChatMessage, DecisionResult, RetrievedChunk

logger = logging.getLogger(__name__)

_RAG_SYSTEM_PROMPT = """
You are a product support assistant.

Rules:
1) Answer only from the context passages below.
2) Cite every factual statement with its passage reference, like [doc-1_3].
3) If the context does not contain the answer, say you cannot verify it.
4) Prefer concise, accurate answers.
""".strip()

_GENERAL_SYSTEM_PROMPT = """
You are a helpful, concise assistant. If a question needs company or product
documents you do not have, say so instead of guessing.
""".strip()

_GREETING_SYSTEM_PROMPT = """
You are a friendly assistant. Reply to the greeting briefly and offer help with
questions about the available products and documents.
""".strip()


@dataclass(slots=True)
class AssistantReply:
    answer: str
    decision: DecisionResult
    mode: str | None = None
    chunks: list[RetrievedChunk] = field(default_factory=list)
    citations: list[str] = field(default_factory=list)
    groundedness: float | None = None
    latency_ms: float = 0.0

    @property
    def intent(self) -> str | None:
        return (self.decision.result or {}).get("intent")

    def to_dict(self) -> dict[str, Any]:
        return {
            "answer": self.answer,
            "intent": self.intent,
            "impossible_flag": self.decision.impossible_flag,
            "mode": self.mode,
            "citations": list(self.citations),
            "sources": [
                {"reference": chunk.reference, "score": chunk.score, "rank": chunk.rank}
                for chunk in self.chunks
            ],
            "groundedness": self.groundedness,
            "latency_ms": self.latency_ms,
            "decision": self.decision.to_dict(),
        }


class ChatAssistant:
    """Implements the per-request query flow.

    query -> DecisionRouter verdict -> (retrieval with the resolved mode preset
    when the verdict asks for it) -> InferenceGateway completion. An impossible
    verdict short-circuits with the router's suggestion and no backend call.
    """

    def __init__(
        self,
        *,
        router: DecisionRouter,
        modes: ModeConfigResolver,
        retriever: PresetRetriever,
        gateway: InferenceGateway,
        evaluator: GroundednessEvaluator | None = None,
        tree_name: str = MAIN_TREE,
    ) -> None:
        self.router = router
        self.modes = modes
        self.retriever = retriever
        self.gateway = gateway
        self.evaluator = evaluator or GroundednessEvaluator()
        self.tree_name = tree_name

    async def respond(
        self,
        query: str,
        *,
        history: Sequence[ChatMessage] = (),
        product_name: str | None = None,
        mode: str | None = None,
        hints: Mapping[str, bool] | None = None,
        overrides: Mapping[str, Any] | None = None,
    ) -> AssistantReply:
        with Timer() as timer:
            reply = await self._respond(
                query,
                history=history,
                product_name=product_name,
                mode=mode,
                hints=hints,
                overrides=overrides,
            )
        reply.latency_ms = timer.elapsed_ms
        logger.info(
            "Answered query intent=%s mode=%s chunks=%d impossible=%s in %.1fms",
            reply.intent,
            reply.mode,
            len(reply.chunks),
            reply.decision.impossible_flag,
            reply.latency_ms,
        )
        return reply

    async def _respond(
        self,
        query: str,
        *,
        history: Sequence[ChatMessage],
        product_name: str | None,
        mode: str | None,
        hints: Mapping[str, bool] | None,
        overrides: Mapping[str, Any] | None,
    ) -> AssistantReply:
        context = DecisionContext(query=query, product_name=product_name)
        decision = await self.router.execute(self.tree_name, context)
        verdict = decision.result or {}

        if decision.impossible_flag:
            return AssistantReply(answer=str(verdict.get("suggestion", "")), decision=decision)

        chunks: list[RetrievedChunk] = []
        mode_name: str | None = None
        if verdict.get("use_rag"):
            mode_name = self.modes.normalize(mode) if mode else self.modes.recommend(query, hints)
            preset = self.modes.merge(mode_name, overrides)
            chunks = await self.retriever.retrieve(query, preset)

        messages = build_messages(query, history, chunks, intent=verdict.get("intent"))
        answer = await self.gateway.chat_completion(messages)

        groundedness = None
        if chunks:
            groundedness = self.evaluator.score(answer, [chunk.content for chunk in chunks])
        return AssistantReply(
            answer=answer,
            decision=decision,
            mode=mode_name,
            chunks=chunks,
            citations=extract_citations(answer),
            groundedness=groundedness,
        )


def build_messages(
    query: str,
    history: Sequence[ChatMessage],
    chunks: Sequence[RetrievedChunk],
    *,
    intent: str | None = None,
) -> list[ChatMessage]:
    """System prompt (with a context block when chunks exist), history, query.

    Each context passage is one line, ``[chunk_reference] text``.
    """

    if chunks:
        context = "\n".join(
            f"[{chunk.reference}] {' '.join(chunk.content.split())}" for chunk in chunks
        )
        system = f"{_RAG_SYSTEM_PROMPT}\n\nContext:\n{context}"
    elif intent == "greeting":
        system = _GREETING_SYSTEM_PROMPT
    else:
        system = _GENERAL_SYSTEM_PROMPT

    messages = [ChatMessage(role="system", content=system)]
    messages.extend(message for message in history if message.role != "system")
    messages.append(ChatMessage(role="user", content=query))
    return messages


def extract_citations(answer: str) -> list[str]:
    citations = re.findall(r"\[([^\]]+)\]", answer)
    deduped: list[str] = []
    for citation in citations:
        if citation not in deduped:
            deduped.append(citation)
    return deduped
