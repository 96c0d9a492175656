import pytest

from rag_assistant.config import AppConfig, ChunkingConfig, InferenceConfig, RetrievalConfig
from rag_assistant.container import build_services
from rag_assistant.inference.base import ChatBackend
from rag_assistant.inference.extractive import NO_EVIDENCE_ANSWER, ExtractiveBackend
from rag_assistant.ingest.embedder import HashingEmbedder
from rag_assistant.routing.capabilities import NO_CONTEXT_SUGGESTION
from rag_assistant.types import ChatMessage, Document

POLICY = (
    "The refund policy allows returns within thirty days. "
    "Shipping is free for orders above fifty. "
    "Support is available by phone during office hours."
)
LOW_THRESHOLD = {"similarity_threshold": 0.2}


class _ScriptedBackend(ChatBackend):
    name = "openai"
    default_model = "scripted"

    def __init__(self) -> None:
        self.calls: list[list[ChatMessage]] = []

    async def complete(self, messages, options) -> str:
        self.calls.append(list(messages))
        system = messages[0].content
        if system.startswith("Rewrite"):
            return "1. refund rules\n2. return policy"
        if "relevance assessment" in system:
            return "{}"
        return "The refund policy allows returns within thirty days [policy_0]."


def _config(provider: str) -> AppConfig:
    return AppConfig(
        chunking=ChunkingConfig(chunk_size_chars=60, overlap_words=0),
        retrieval=RetrievalConfig(context_probe_threshold=0.2),
        inference=InferenceConfig(active_provider=provider),
    )


async def _indexed_services(provider: str, backends):
    services = build_services(_config(provider), embedder=HashingEmbedder(), backends=backends)
    await services.pipeline.process_document(
        Document(doc_id="policy", label="Store policy", file_type="txt"),
        POLICY.encode("utf-8"),
    )
    return services


@pytest.mark.asyncio
async def test_product_question_is_answered_from_indexed_chunks() -> None:
    services = await _indexed_services("extractive", {"extractive": ExtractiveBackend()})

    reply = await services.assistant.respond(
        "what is the refund policy", mode="fast", overrides=LOW_THRESHOLD
    )

    assert reply.intent == "product_query"
    assert reply.mode == "fast"
    assert reply.chunks[0].reference == "policy_0"
    assert "refund policy allows returns" in reply.answer
    assert "policy_0" in reply.citations
    assert reply.groundedness is not None and reply.groundedness >= 0.95
    assert len(services.trace_store.list_recent()) == 1


@pytest.mark.asyncio
async def test_missing_context_returns_suggestion_without_backend_call() -> None:
    services = build_services(
        _config("extractive"),
        embedder=HashingEmbedder(),
        backends={"extractive": ExtractiveBackend()},
    )

    reply = await services.assistant.respond("what is the price of the moon base")

    assert reply.decision.impossible_flag is True
    assert reply.answer == NO_CONTEXT_SUGGESTION
    assert reply.chunks == []
    assert services.trace_store.list_recent() == []


@pytest.mark.asyncio
async def test_greeting_skips_retrieval() -> None:
    services = await _indexed_services("extractive", {"extractive": ExtractiveBackend()})

    reply = await services.assistant.respond(
        "hello there", history=[ChatMessage(role="assistant", content="Welcome back")]
    )

    assert reply.intent == "greeting"
    assert reply.mode is None
    assert reply.chunks == []
    assert reply.answer == NO_EVIDENCE_ANSWER
    assert reply.groundedness is None


@pytest.mark.asyncio
async def test_accurate_mode_expands_reranks_and_answers_with_context() -> None:
    backend = _ScriptedBackend()
    services = await _indexed_services("openai", {"openai": backend})

    reply = await services.assistant.respond(
        "what is the refund policy",
        hints={"requires_accuracy": True},
        overrides=LOW_THRESHOLD,
    )

    assert reply.mode == "accurate"
    assert reply.citations == ["policy_0"]
    assert len(backend.calls) == 3
    assert backend.calls[0][0].content.startswith("Rewrite")
    assert "relevance assessment" in backend.calls[1][0].content
    final_system = backend.calls[-1][0].content
    assert "Context:" in final_system
    assert "[policy_0] The refund policy allows returns within thirty days" in final_system
    assert backend.calls[-1][-1] == ChatMessage(role="user", content="what is the refund policy")


@pytest.mark.asyncio
async def test_unknown_override_field_is_rejected() -> None:
    services = await _indexed_services("extractive", {"extractive": ExtractiveBackend()})

    with pytest.raises(ValueError):
        await services.assistant.respond("what is the refund policy", overrides={"top_p": 1})
