"""Performance-mode presets for retrieval and generation.

Three canonical modes trade latency against accuracy:

- ``fast``: fewer, coarser chunks, no reranking or compression.
- ``balanced`` (default): adds lightweight adaptive reranking.
- ``accurate``: larger retrieval volume, model-assisted reranking on every
  query and sentence-level compression of the final context.
"""

from __future__ import annotations

from collections.abc import Mapping
from enum import Enum
from types import MappingProxyType
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class RerankStrategy(str, Enum):
    NONE = "none"
    ADAPTIVE = "adaptive"
    LLM = "llm"

    @property
    def strength(self) -> int:
        return _RERANK_STRENGTH[self]


_RERANK_STRENGTH = {
    RerankStrategy.NONE: 0,
    RerankStrategy.ADAPTIVE: 1,
    RerankStrategy.LLM: 2,
}


class ModePreset(BaseModel):
    """Complete bundle of retrieval/generation tuning parameters."""

    model_config = ConfigDict(frozen=True)

    retrieval_count: int = Field(ge=1)
    similarity_threshold: float = Field(ge=0.0, le=1.0)
    use_reranking: bool
    rerank_strategy: RerankStrategy
    use_compression: bool
    use_multi_query: bool
    max_queries: int = Field(ge=1)
    final_chunk_count: int = Field(ge=1)


FAST = ModePreset(
    retrieval_count=10,
    similarity_threshold=0.5,
    use_reranking=False,
    rerank_strategy=RerankStrategy.NONE,
    use_compression=False,
    use_multi_query=True,
    max_queries=2,
    final_chunk_count=10,
)

BALANCED = ModePreset(
    retrieval_count=10,
    similarity_threshold=0.5,
    use_reranking=True,
    rerank_strategy=RerankStrategy.ADAPTIVE,
    use_compression=False,
    use_multi_query=True,
    max_queries=2,
    final_chunk_count=12,
)

ACCURATE = ModePreset(
    retrieval_count=15,
    similarity_threshold=0.5,
    use_reranking=True,
    rerank_strategy=RerankStrategy.LLM,
    use_compression=True,
    use_multi_query=True,
    max_queries=3,
    final_chunk_count=20,
)

PRESETS: Mapping[str, ModePreset] = MappingProxyType(
    {"fast": FAST, "balanced": BALANCED, "accurate": ACCURATE}
)

DEFAULT_MODE = "balanced"

# Latency budget (ms) and accuracy target per mode.
PERFORMANCE_EXPECTATIONS: Mapping[str, Mapping[str, float]] = MappingProxyType(
    {
        "fast": MappingProxyType({"target_ms": 4000, "max_ms": 5000, "accuracy_target": 0.85}),
        "balanced": MappingProxyType({"target_ms": 6500, "max_ms": 8000, "accuracy_target": 0.95}),
        "accurate": MappingProxyType({"target_ms": 9500, "max_ms": 12000, "accuracy_target": 0.99}),
    }
)

_COMPARISON_WORDS = ("compare", "difference")


class ModeConfigResolver:
    """Resolves mode names to presets and recommends a mode for a query."""

    def __init__(
        self,
        presets: Mapping[str, ModePreset] = PRESETS,
        *,
        default_mode: str = DEFAULT_MODE,
        simple_query_max_length: int = 50,
    ) -> None:
        if default_mode not in presets:
            raise ValueError(f"default mode '{default_mode}' has no preset")
        self._presets = presets
        self.default_mode = default_mode
        self.simple_query_max_length = simple_query_max_length

    @property
    def modes(self) -> list[str]:
        return list(self._presets)

    def normalize(self, mode_name: str | None) -> str:
        """Return the canonical mode name, or the default for unknown names."""
        if mode_name and mode_name in self._presets:
            return mode_name
        return self.default_mode

    def resolve(self, mode_name: str | None) -> ModePreset:
        return self._presets[self.normalize(mode_name)]

    def merge(
        self, mode_name: str | None, overrides: Mapping[str, Any] | None = None
    ) -> ModePreset:
        """Return a per-request preset where caller overrides always win.

        Override keys must be ``ModePreset`` field names; values are validated
        the same way the canonical presets are.
        """
        base = self.resolve(mode_name)
        if not overrides:
            return base
        unknown = set(overrides) - set(ModePreset.model_fields)
        if unknown:
            raise ValueError(f"Unknown preset fields: {sorted(unknown)}")
        return ModePreset.model_validate({**base.model_dump(), **dict(overrides)})

    def recommend(self, query: str, hints: Mapping[str, bool] | None = None) -> str:
        hints = hints or {}
        if hints.get("requires_accuracy") or hints.get("is_comparison"):
            return "accurate"

        lowered = query.lower()
        is_simple = (
            len(query) < self.simple_query_max_length
            and not any(word in lowered for word in _COMPARISON_WORDS)
            and not hints.get("is_complex")
        )
        return "fast" if is_simple else "balanced"
