import pytest
from pydantic import ValidationError

from rag_assistant.modes import (
    PERFORMANCE_EXPECTATIONS,
    PRESETS,
    ModeConfigResolver,
    ModePreset,
)


def test_resolve_exact_and_unknown_names() -> None:
    resolver = ModeConfigResolver()

    assert resolver.resolve("fast") is PRESETS["fast"]
    assert resolver.resolve("accurate") is PRESETS["accurate"]
    assert resolver.resolve("turbo") is PRESETS["balanced"]
    assert resolver.resolve(None) is PRESETS["balanced"]


def test_presets_are_ordered_by_cost() -> None:
    fast, balanced, accurate = (PRESETS[name] for name in ("fast", "balanced", "accurate"))

    assert accurate.final_chunk_count >= balanced.final_chunk_count >= fast.final_chunk_count
    assert (accurate.final_chunk_count, balanced.final_chunk_count, fast.final_chunk_count) == (
        20,
        12,
        10,
    )
    assert accurate.retrieval_count >= balanced.retrieval_count >= fast.retrieval_count
    assert accurate.max_queries >= balanced.max_queries >= fast.max_queries
    assert (
        fast.rerank_strategy.strength
        < balanced.rerank_strategy.strength
        < accurate.rerank_strategy.strength
    )
    assert not fast.use_reranking and not fast.use_compression
    assert balanced.use_reranking and not balanced.use_compression
    assert accurate.use_reranking and accurate.use_compression


def test_presets_are_immutable() -> None:
    with pytest.raises(ValidationError):
        PRESETS["fast"].retrieval_count = 99  # type: ignore[misc]
    with pytest.raises(TypeError):
        PRESETS["turbo"] = PRESETS["fast"]  # type: ignore[index]


def test_merge_overrides_win_and_leave_presets_untouched() -> None:
    resolver = ModeConfigResolver()

    merged = resolver.merge("fast", {"final_chunk_count": 3, "use_multi_query": False})

    assert isinstance(merged, ModePreset)
    assert merged.final_chunk_count == 3
    assert merged.use_multi_query is False
    assert merged.retrieval_count == PRESETS["fast"].retrieval_count
    assert PRESETS["fast"].final_chunk_count == 10


def test_merge_rejects_unknown_and_invalid_fields() -> None:
    resolver = ModeConfigResolver()

    with pytest.raises(ValueError):
        resolver.merge("balanced", {"top_p": 0.3})
    with pytest.raises(ValidationError):
        resolver.merge("balanced", {"similarity_threshold": 1.5})


def test_recommend_short_simple_query_is_fast_unless_comparison() -> None:
    resolver = ModeConfigResolver()
    query = "refund policy please"
    assert len(query) == 20

    assert resolver.recommend(query, {}) == "fast"
    assert resolver.recommend(query, {"is_comparison": True}) == "accurate"
    assert resolver.recommend(query, {"requires_accuracy": True}) == "accurate"
    assert resolver.recommend(query, {"is_complex": True}) == "balanced"


def test_recommend_comparison_words_and_long_queries_are_balanced() -> None:
    resolver = ModeConfigResolver()

    assert resolver.recommend("compare plan A and B") == "balanced"
    assert resolver.recommend("what is the difference") == "balanced"
    assert resolver.recommend("x" * 50) == "balanced"


def test_every_mode_has_performance_expectations() -> None:
    for name in PRESETS:
        expectation = PERFORMANCE_EXPECTATIONS[name]
        assert expectation["target_ms"] < expectation["max_ms"]
