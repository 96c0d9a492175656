"""Fusion, reranking and compression for multi-query retrieval results."""

from __future__ import annotations

import json
import logging
import re
from abc import ABC, abstractmethod
from dataclasses import replace
from typing import Any, Protocol

from rag_assistant.config import RetrievalConfig
from rag_assistant.errors import ProviderError
from rag_assistant.modes import ModePreset, RerankStrategy
from rag_assistant.types import ChatMessage, ChatOptions, RetrievedChunk

logger = logging.getLogger(__name__)

COMPARISON_TERMS = ("compare", "difference", "vs", "versus", "between", "differentiate")
SPECIFICATION_TERMS = (
    "weight",
    "gram",
    " g ",
    " kg ",
    "dimension",
    "price",
    "mrp",
    "₹",
    "material",
    "origin",
    "manufacturer",
)

_JSON_OBJECT = re.compile(r"\{.*\}", flags=re.DOTALL)
_SENTENCE_END = re.compile(r"(?<=[.!?])\s+")


class CompletionClient(Protocol):
    async def chat_completion(
        self, messages: list[ChatMessage], options: ChatOptions | None = None
    ) -> str: ...


def content_key(content: str, prefix: int = 200) -> str:
    """Normalized content prefix used to spot near-duplicate chunks."""
    return " ".join(content.lower().split())[:prefix]


def is_comparison_query(query: str) -> bool:
    lowered = query.lower()
    return any(term in lowered for term in COMPARISON_TERMS)


class Reranker(ABC):
    """Reranker interface used after score fusion."""

    @abstractmethod
    async def rerank(self, query: str, candidates: list[RetrievedChunk]) -> list[RetrievedChunk]:
        """Return candidates in the final ranking order."""


class PassthroughReranker(Reranker):
    """Keeps the fused order."""

    async def rerank(self, query: str, candidates: list[RetrievedChunk]) -> list[RetrievedChunk]:
        return sorted(candidates, key=lambda item: item.score, reverse=True)


class KeywordOverlapReranker(Reranker):
    """Lightweight reranker using query-document lexical signals.

    Bonuses on top of the fused score: matching query terms, how early the
    first match appears, an exact phrase match, and specification data
    (weights, prices, materials) which matters most for comparison queries.
    """

    async def rerank(self, query: str, candidates: list[RetrievedChunk]) -> list[RetrievedChunk]:
        lowered = query.lower()
        query_terms = lowered.split()
        comparison = is_comparison_query(query)
        rescored: list[RetrievedChunk] = []
        for item in candidates:
            content = item.content.lower()
            keyword_bonus = 0.05 * sum(
                1 for term in query_terms if len(term) > 3 and term in content
            )

            positions = [content.find(term) for term in query_terms]
            hits = [position for position in positions if position >= 0]
            position_bonus = 0.0
            if hits and content:
                position_bonus = (1 - min(min(hits) / len(content), 1.0)) * 0.1

            phrase_bonus = 0.15 if lowered and lowered in content else 0.0
            spec_bonus = 0.0
            if any(term in content for term in SPECIFICATION_TERMS):
                spec_bonus = 0.1 if comparison else 0.05

            score = item.score + keyword_bonus + position_bonus + phrase_bonus + spec_bonus
            rescored.append(replace(item, score=min(score, 1.0)))
        return sorted(rescored, key=lambda x: x.score, reverse=True)


class ModelReranker(Reranker):
    """Scores candidates with a chat model on relevance/completeness/specificity.

    Batches that fail (backend error or unreadable JSON) keep their fused
    scores.
    """

    SYSTEM_PROMPT = (
        "You are a relevance assessment expert. Score each chunk from 0 to 1 on "
        "relevance to the query, completeness of the information and specificity "
        "of the details. Chunks with product specifications (weight, dimensions, "
        "price, material, origin, manufacturer) score higher on completeness. "
        'Return JSON only: {"chunk_0": {"relevance": 0.9, "completeness": 0.8, '
        '"specificity": 0.85}, ...}'
    )

    def __init__(self, client: CompletionClient, *, batch_size: int = 5) -> None:
        self.client = client
        self.batch_size = batch_size

    async def rerank(self, query: str, candidates: list[RetrievedChunk]) -> list[RetrievedChunk]:
        rescored: list[RetrievedChunk] = []
        for start in range(0, len(candidates), self.batch_size):
            batch = candidates[start : start + self.batch_size]
            rescored.extend(await self._score_batch(query, batch))
        return sorted(rescored, key=lambda x: x.score, reverse=True)

    async def _score_batch(
        self, query: str, batch: list[RetrievedChunk]
    ) -> list[RetrievedChunk]:
        chunks_text = "\n---\n".join(
            f"[CHUNK {idx}]\nContent: {item.content[:1000]}" for idx, item in enumerate(batch)
        )
        messages = [
            ChatMessage(role="system", content=self.SYSTEM_PROMPT),
            ChatMessage(role="user", content=f'Query: "{query}"\n\nChunks to score:\n{chunks_text}'),
        ]
        try:
            raw = await self.client.chat_completion(
                messages, ChatOptions(temperature=0.1, max_tokens=1000)
            )
            scores = parse_json_object(raw)
        except (ProviderError, ValueError) as exc:
            logger.warning("Model reranking failed, keeping fused scores: %s", exc)
            return list(batch)

        rescored = []
        for idx, item in enumerate(batch):
            entry = scores.get(f"chunk_{idx}") or {}
            relevance = _score_field(entry, "relevance")
            completeness = _score_field(entry, "completeness")
            specificity = _score_field(entry, "specificity")
            final = relevance * 0.5 + completeness * 0.3 + specificity * 0.2
            rescored.append(replace(item, score=final))
        return rescored


class AdaptiveReranker(Reranker):
    """Lexical reranking for short queries, model reranking for the rest."""

    def __init__(
        self,
        lexical: Reranker,
        model: Reranker | None,
        *,
        simple_query_max_length: int = 50,
    ) -> None:
        self.lexical = lexical
        self.model = model
        self.simple_query_max_length = simple_query_max_length

    async def rerank(self, query: str, candidates: list[RetrievedChunk]) -> list[RetrievedChunk]:
        needs_model = len(query) >= self.simple_query_max_length or is_comparison_query(query)
        if needs_model and self.model is not None:
            return await self.model.rerank(query, candidates)
        return await self.lexical.rerank(query, candidates)


def reranker_for(
    preset: ModePreset,
    client: CompletionClient | None,
    *,
    simple_query_max_length: int = 50,
) -> Reranker:
    """Pick the reranker matching a preset; model reranking needs a client."""

    if not preset.use_reranking:
        return PassthroughReranker()
    # An explicit use_reranking override on a preset without a strategy reranks adaptively.
    lexical = KeywordOverlapReranker()
    model = ModelReranker(client) if client is not None else None
    if preset.rerank_strategy is RerankStrategy.LLM:
        return model or lexical
    return AdaptiveReranker(lexical, model, simple_query_max_length=simple_query_max_length)


class SentenceCompressor:
    """Keeps only the sentences of each chunk that relate to the query.

    A sentence is kept when it shares a meaningful term with the query or
    carries specification data. A chunk with no kept sentence is left whole.
    """

    def __init__(self, min_term_length: int = 3) -> None:
        self.min_term_length = min_term_length

    def compress(self, query: str, candidates: list[RetrievedChunk]) -> list[RetrievedChunk]:
        terms = {
            term.strip(".,!?;:\"'()").lower()
            for term in query.split()
            if len(term) > self.min_term_length
        }
        compressed = []
        for item in candidates:
            sentences = [s for s in _SENTENCE_END.split(item.content) if s.strip()]
            kept = [s for s in sentences if self._relevant(s, terms)]
            if not kept or len(kept) == len(sentences):
                compressed.append(item)
                continue
            compressed.append(replace(item, content=" ".join(kept)))
        return compressed

    @staticmethod
    def _relevant(sentence: str, terms: set[str]) -> bool:
        lowered = f" {sentence.lower()} "
        if any(term and term in lowered for term in terms):
            return True
        return any(term in lowered for term in SPECIFICATION_TERMS)


class FusionLayer:
    """Fuses per-query result lists with normalization + RRF + deduplication."""

    def __init__(self, config: RetrievalConfig | None = None) -> None:
        self.config = config or RetrievalConfig()

    def fuse(self, route_results: dict[str, list[RetrievedChunk]]) -> list[RetrievedChunk]:
        """Fuse results from the original query and its rephrasings.

        Fusion process:
        1. Normalize scores per query to a comparable [0, 1] range.
        2. Compute RRF score across queries to favor consistently high-ranked chunks.
        3. Combine normalized and RRF signals, keeping each chunk's best entry.
        4. Drop near-duplicate chunks (same normalized content prefix).
        """

        if not route_results:
            return []

        normalized_routes = {
            route: self._normalize_scores(results) for route, results in route_results.items()
        }
        rrf_scores = self._rrf_scores(normalized_routes)

        merged: dict[str, RetrievedChunk] = {}
        for route_name, items in normalized_routes.items():
            for item in items:
                rrf_bonus = rrf_scores.get(item.point_id, 0.0)
                combined = (item.score * 0.6) + (rrf_bonus * 0.4)
                current = merged.get(item.point_id)
                if current is None or combined > current.score:
                    merged[item.point_id] = replace(item, score=combined, route=route_name)

        ranked = sorted(merged.values(), key=lambda x: x.score, reverse=True)
        seen: set[str] = set()
        unique: list[RetrievedChunk] = []
        for item in ranked:
            key = content_key(item.content)
            if key in seen:
                continue
            seen.add(key)
            unique.append(item)
        return unique

    @staticmethod
    def _normalize_scores(items: list[RetrievedChunk]) -> list[RetrievedChunk]:
        if not items:
            return []
        raw_scores = [item.score for item in items]
        high = max(raw_scores)
        low = min(raw_scores)
        if high == low:
            return [replace(item, score=1.0, rank=i + 1) for i, item in enumerate(items)]
        return [
            replace(item, score=(item.score - low) / (high - low), rank=i + 1)
            for i, item in enumerate(items)
        ]

    def _rrf_scores(self, route_results: dict[str, list[RetrievedChunk]]) -> dict[str, float]:
        scores: dict[str, float] = {}
        for items in route_results.values():
            for rank, item in enumerate(items, start=1):
                scores[item.point_id] = scores.get(item.point_id, 0.0) + 1.0 / (
                    self.config.rrf_k + rank
                )
        return scores


def parse_json_object(raw: str) -> dict[str, Any]:
    """Parse the first JSON object in a model reply (fences and prose allowed)."""

    match = _JSON_OBJECT.search(raw)
    if match is None:
        raise ValueError("No JSON object in model reply")
    parsed = json.loads(match.group(0))
    if not isinstance(parsed, dict):
        raise ValueError("Model reply is not a JSON object")
    return parsed


def _score_field(entry: Any, name: str) -> float:
    if not isinstance(entry, dict):
        return 0.5
    try:
        value = float(entry.get(name, 0.5))
    except (TypeError, ValueError):
        return 0.5
    return min(max(value, 0.0), 1.0)
