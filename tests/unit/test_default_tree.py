import pytest

from rag_assistant.config import RouterConfig
from rag_assistant.ingest.embedder import HashingEmbedder
from rag_assistant.retrieval.vector_store import InMemoryVectorIndex
from rag_assistant.routing.capabilities import (
    NO_CONTEXT_SUGGESTION,
    GreetingDetector,
    ProductIntentDetector,
    RetrievalContextProbe,
)
from rag_assistant.routing.default_tree import build_router
from rag_assistant.routing.tree import DecisionContext
from rag_assistant.types import VectorPoint


class _Probe:
    def __init__(self, available: bool) -> None:
        self.available = available

    async def evaluate(self, context: DecisionContext) -> bool:
        return self.available


@pytest.mark.asyncio
async def test_greeting_scenario() -> None:
    router = build_router(RouterConfig(), _Probe(True))

    result = await router.route("hey there")

    assert result.result["intent"] == "greeting"
    assert result.result["use_rag"] is False
    assert result.result["confidence"] == pytest.approx(0.95)
    assert result.path == ["root", "check_greeting", "handle_greeting"]


@pytest.mark.asyncio
async def test_product_query_without_context_sets_impossible_flag() -> None:
    router = build_router(RouterConfig(), _Probe(False))

    result = await router.route("what is the refund policy")

    assert result.impossible_flag is True
    assert result.result["intent"] == "product_query_no_context"
    assert result.result["suggestion"] == NO_CONTEXT_SUGGESTION
    assert result.path == [
        "root",
        "check_greeting",
        "check_product_intent",
        "check_rag_availability",
        "set_impossible_flag",
    ]


@pytest.mark.asyncio
async def test_product_query_with_context_uses_rag() -> None:
    router = build_router(RouterConfig(), _Probe(True))

    result = await router.route("what is the refund policy")

    assert result.result["intent"] == "product_query"
    assert result.result["use_rag"] is True
    assert result.impossible_flag is False


@pytest.mark.asyncio
async def test_other_queries_use_general_model() -> None:
    router = build_router(RouterConfig(), _Probe(True))

    result = await router.route("tell me a joke with cats")

    assert result.result["intent"] == "general_query"
    assert result.path[-1] == "use_general_llm"


@pytest.mark.asyncio
async def test_long_message_with_greeting_word_is_not_a_greeting() -> None:
    detector = GreetingDetector(RouterConfig().greeting_terms, max_length=30)

    assert await detector.evaluate(DecisionContext(query="Hello!")) is True
    assert await detector.evaluate(DecisionContext(query="HEY")) is True
    assert (
        await detector.evaluate(
            DecisionContext(query="hello, I would like to know the shipping times to Spain")
        )
        is False
    )


@pytest.mark.asyncio
async def test_product_intent_matches_keywords_hint_and_known_products() -> None:
    detector = ProductIntentDetector(["price"], known_products=["Acme Router"])

    assert await detector.evaluate(DecisionContext(query="What's the PRICE?")) is True
    assert (
        await detector.evaluate(DecisionContext(query="tell me about zeta", product_name="Zeta"))
        is True
    )
    assert await detector.evaluate(DecisionContext(query="is the acme router good")) is True
    assert await detector.evaluate(DecisionContext(query="tell me a joke")) is False


@pytest.mark.asyncio
async def test_context_probe_respects_threshold() -> None:
    embedder = HashingEmbedder()
    index = InMemoryVectorIndex()
    text = "refund policy covers damaged items"
    await index.upsert(
        [
            VectorPoint(
                id="p1",
                vector=await embedder.embed(text),
                payload={"content": text, "chunk_reference": "doc_0", "document_id": "doc"},
            )
        ]
    )
    probe = RetrievalContextProbe(embedder, index, threshold=0.5, k=1)

    hit_context = DecisionContext(query="refund policy covers damaged items")
    assert await probe.evaluate(hit_context) is True
    assert hit_context.metadata["probe_hits"] == ["doc_0"]
    assert await probe.evaluate(DecisionContext(query="volcanic islands geology")) is False
