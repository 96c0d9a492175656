"""Embedding backends shared by ingestion, the context probe and retrieval."""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from collections import Counter
from hashlib import blake2b
from math import sqrt

from langchain_core.embeddings import Embeddings

from rag_assistant.errors import EmbeddingError

_WORD = re.compile(r"\w+", flags=re.UNICODE)


class Embedder(ABC):
    @abstractmethod
    async def embed(self, text: str) -> list[float]:
        """Return a fixed-length vector for ``text``."""


class HashingEmbedder(Embedder):
    """Signed feature hashing over lower-cased word tokens.

    No model is called, so the vectors are stable across runs. Keyless
    deployments and the test suite rely on this; anything serious should go
    through ``LangChainEmbedder``.
    """

    def __init__(self, dimension: int = 256) -> None:
        if dimension <= 0:
            raise ValueError("dimension must be positive")
        self.dimension = dimension

    async def embed(self, text: str) -> list[float]:
        vector = [0.0] * self.dimension
        for token, count in Counter(_WORD.findall(text.lower())).items():
            bucket, sign = self._slot(token)
            vector[bucket] += sign * count

        norm = sqrt(sum(value * value for value in vector))
        return [value / norm for value in vector] if norm else vector

    def _slot(self, token: str) -> tuple[int, float]:
        digest = blake2b(token.encode("utf-8"), digest_size=8).digest()
        bucket = int.from_bytes(digest[:4], "little") % self.dimension
        return bucket, (-1.0 if digest[4] & 1 else 1.0)


class LangChainEmbedder(Embedder):
    """Adapter for a LangChain ``Embeddings`` model such as ``OpenAIEmbeddings``."""

    def __init__(self, model: Embeddings) -> None:
        self._model = model

    async def embed(self, text: str) -> list[float]:
        return list(await self._model.aembed_query(text))


async def embed_query(embedder: Embedder, query: str) -> list[float]:
    """Embed a query-time text, reporting provider failures as ``EmbeddingError``."""

    try:
        return await embedder.embed(query)
    except EmbeddingError:
        raise
    except Exception as exc:
        raise EmbeddingError(f"Query embedding failed: {exc}") from exc
