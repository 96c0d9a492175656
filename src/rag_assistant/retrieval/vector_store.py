"""Vector index contract and in-memory adapter."""

from __future__ import annotations

from math import sqrt
from typing import Protocol

from rag_assistant.types import RetrievedChunk, VectorPoint


class VectorIndex(Protocol):
    """Minimal vector index contract used by ingestion and retrieval."""

    async def upsert(self, points: list[VectorPoint]) -> None:
        """Insert or replace points by id."""

    async def delete_by_document(self, doc_id: str) -> None:
        """Remove every point whose payload belongs to ``doc_id``."""

    async def search(
        self,
        vector: list[float],
        k: int,
        *,
        score_threshold: float = 0.0,
    ) -> list[RetrievedChunk]:
        """Return up to ``k`` hits scoring at least ``score_threshold``."""


class InMemoryVectorIndex:
    """Deterministic cosine-similarity index used for tests and local runs."""

    def __init__(self) -> None:
        self._points: dict[str, VectorPoint] = {}

    def __len__(self) -> int:
        return len(self._points)

    async def upsert(self, points: list[VectorPoint]) -> None:
        for point in points:
            self._points[point.id] = point

    async def delete_by_document(self, doc_id: str) -> None:
        stale = [
            point_id
            for point_id, point in self._points.items()
            if point.payload.get("document_id") == doc_id
        ]
        for point_id in stale:
            del self._points[point_id]

    async def search(
        self,
        vector: list[float],
        k: int,
        *,
        score_threshold: float = 0.0,
    ) -> list[RetrievedChunk]:
        scored = []
        for point in self._points.values():
            score = _cosine_similarity(vector, point.vector)
            if score < score_threshold:
                continue
            scored.append(
                RetrievedChunk(
                    point_id=point.id,
                    content=str(point.payload.get("content", "")),
                    score=score,
                    payload=point.payload,
                )
            )

        ranked = sorted(scored, key=lambda item: item.score, reverse=True)
        for rank, item in enumerate(ranked[:k], start=1):
            item.rank = rank
        return ranked[:k]


def _cosine_similarity(a: list[float], b: list[float]) -> float:
    if not a or not b or len(a) != len(b):
        return 0.0
    numerator = sum(x * y for x, y in zip(a, b, strict=True))
    norm_a = sqrt(sum(x * x for x in a))
    norm_b = sqrt(sum(y * y for y in b))
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return numerator / (norm_a * norm_b)
