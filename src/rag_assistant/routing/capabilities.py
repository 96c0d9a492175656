"""Predicates and actions used by the main decision tree."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

from rag_assistant.ingest.embedder import Embedder, embed_query
from rag_assistant.retrieval.vector_store import VectorIndex
from rag_assistant.routing.tree import ActionOutcome, DecisionContext

logger = logging.getLogger(__name__)

NO_CONTEXT_SUGGESTION = (
    "I don't have information about that in the available documents. "
    "Could you provide more context or upload relevant documents?"
)


class GreetingDetector:
    """Short greeting-like queries: a greeting term and under a length limit."""

    def __init__(self, terms: Iterable[str], max_length: int = 30) -> None:
        self.terms = tuple(term.lower() for term in terms)
        self.max_length = max_length

    async def evaluate(self, context: DecisionContext) -> bool:
        normalized = context.query.strip().lower()
        if len(normalized) >= self.max_length:
            return False
        return any(term in normalized for term in self.terms)


class ProductIntentDetector:
    """Keyword or named-product match against the query text."""

    def __init__(self, keywords: Iterable[str], known_products: Iterable[str] = ()) -> None:
        self.keywords = tuple(keyword.lower() for keyword in keywords)
        self.known_products = tuple(name.lower() for name in known_products if name)

    async def evaluate(self, context: DecisionContext) -> bool:
        text = context.query.lower()
        if any(keyword in text for keyword in self.keywords):
            return True
        if context.product_name and context.product_name.lower() in text:
            return True
        return any(name in text for name in self.known_products)


class RetrievalContextProbe:
    """True when the index holds at least one hit above ``threshold``.

    The matched hits are left on ``context.metadata["probe_hits"]`` so later
    steps can report what was found.
    """

    def __init__(
        self,
        embedder: Embedder,
        index: VectorIndex,
        *,
        threshold: float = 0.5,
        k: int = 1,
    ) -> None:
        self.embedder = embedder
        self.index = index
        self.threshold = threshold
        self.k = k

    async def evaluate(self, context: DecisionContext) -> bool:
        vector = await embed_query(self.embedder, context.query)
        hits = await self.index.search(vector, self.k, score_threshold=self.threshold)
        context.metadata["probe_hits"] = [hit.reference for hit in hits]
        logger.debug(
            "Context probe found %d hit(s) above %.2f for query", len(hits), self.threshold
        )
        return bool(hits)


@dataclass(frozen=True, slots=True)
class StaticIntentAction:
    """Action that always answers with the same routing verdict."""

    intent: str
    use_rag: bool
    confidence: float
    impossible_flag: bool = False
    extra: dict[str, Any] = field(default_factory=dict)

    async def act(self, context: DecisionContext) -> ActionOutcome:
        del context
        payload = {"use_rag": self.use_rag, "intent": self.intent, **self.extra}
        return ActionOutcome(
            payload=payload,
            confidence=self.confidence,
            impossible_flag=self.impossible_flag,
        )


def greeting_action() -> StaticIntentAction:
    return StaticIntentAction(intent="greeting", use_rag=False, confidence=0.95)


def product_query_action() -> StaticIntentAction:
    return StaticIntentAction(intent="product_query", use_rag=True, confidence=0.9)


def no_context_action(suggestion: str = NO_CONTEXT_SUGGESTION) -> StaticIntentAction:
    return StaticIntentAction(
        intent="product_query_no_context",
        use_rag=False,
        confidence=0.85,
        impossible_flag=True,
        extra={"suggestion": suggestion},
    )


def general_query_action() -> StaticIntentAction:
    return StaticIntentAction(intent="general_query", use_rag=False, confidence=0.8)
