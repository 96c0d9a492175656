"""Preset-driven retriever with multi-query expansion."""

from __future__ import annotations

import logging
import re
from dataclasses import replace

from rag_assistant.config import RetrievalConfig
from rag_assistant.errors import ProviderError
from rag_assistant.ingest.embedder import Embedder, embed_query
from rag_assistant.modes import ModePreset
from rag_assistant.retrieval.fusion import (
    CompletionClient,
    FusionLayer,
    SentenceCompressor,
    reranker_for,
)
from rag_assistant.retrieval.vector_store import VectorIndex
from rag_assistant.types import ChatMessage, ChatOptions, RetrievedChunk

logger = logging.getLogger(__name__)

_LIST_MARKER = re.compile(r"^\s*(?:[-*•]|\d+[.)])\s*")


class QueryExpander:
    """Asks a chat model for alternative phrasings of a query."""

    SYSTEM_PROMPT = (
        "Rewrite the user's search query into alternative phrasings that could "
        "match relevant documentation. Return one phrasing per line, no numbering "
        "and no commentary."
    )

    def __init__(self, client: CompletionClient) -> None:
        self.client = client

    async def expand(self, query: str, max_queries: int) -> list[str]:
        """Return the query followed by up to ``max_queries - 1`` rephrasings."""

        if max_queries <= 1:
            return [query]
        messages = [
            ChatMessage(role="system", content=self.SYSTEM_PROMPT),
            ChatMessage(
                role="user",
                content=f"Query: {query}\nNumber of phrasings: {max_queries - 1}",
            ),
        ]
        try:
            raw = await self.client.chat_completion(
                messages, ChatOptions(temperature=0.3, max_tokens=200)
            )
        except ProviderError as exc:
            logger.warning("Query expansion failed, using the original query: %s", exc)
            return [query]

        queries = [query]
        seen = {query.strip().lower()}
        for line in raw.splitlines():
            candidate = _LIST_MARKER.sub("", line).strip().strip('"')
            if not candidate or candidate.lower() in seen:
                continue
            seen.add(candidate.lower())
            queries.append(candidate)
            if len(queries) == max_queries:
                break
        return queries


class PresetRetriever:
    """Runs the external search step with a resolved ``ModePreset``.

    Every query variant is searched for ``retrieval_count`` hits (oversampled by
    ``candidate_multiplier`` when reranking follows) above the preset's
    similarity threshold. Lists are fused, deduplicated, reranked per the
    preset, optionally compressed and cut to ``final_chunk_count``.
    """

    def __init__(
        self,
        embedder: Embedder,
        index: VectorIndex,
        *,
        client: CompletionClient | None = None,
        config: RetrievalConfig | None = None,
        simple_query_max_length: int = 50,
    ) -> None:
        self.embedder = embedder
        self.index = index
        self.client = client
        self.config = config or RetrievalConfig()
        self.fusion = FusionLayer(self.config)
        self.expander = QueryExpander(client) if client is not None else None
        self.compressor = SentenceCompressor()
        self.simple_query_max_length = simple_query_max_length

    async def retrieve(self, query: str, preset: ModePreset) -> list[RetrievedChunk]:
        queries = await self._queries(query, preset)
        search_k = preset.retrieval_count
        if preset.use_reranking:
            search_k *= self.config.candidate_multiplier

        route_results: dict[str, list[RetrievedChunk]] = {}
        for variant in queries:
            vector = await embed_query(self.embedder, variant)
            route_results[variant] = await self.index.search(
                vector, search_k, score_threshold=preset.similarity_threshold
            )

        fused = self.fusion.fuse(route_results)
        reranker = reranker_for(
            preset, self.client, simple_query_max_length=self.simple_query_max_length
        )
        ranked = await reranker.rerank(query, fused)
        if preset.use_compression:
            ranked = self.compressor.compress(query, ranked)

        final = [
            replace(item, rank=position)
            for position, item in enumerate(ranked[: preset.final_chunk_count], start=1)
        ]
        logger.info(
            "Retrieved %d chunk(s) from %d query variant(s)", len(final), len(queries)
        )
        return final

    async def _queries(self, query: str, preset: ModePreset) -> list[str]:
        if not preset.use_multi_query or self.expander is None:
            return [query]
        return await self.expander.expand(query, preset.max_queries)
