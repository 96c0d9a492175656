"""Explicit construction of the long-lived services.

Everything is built once, in dependency order, and handed to the callers
that need it; nothing is created lazily on first use.
"""

from __future__ import annotations

import asyncio
from collections.abc import Mapping
from dataclasses import dataclass

from rag_assistant.assistant.service import ChatAssistant
from rag_assistant.config import AppConfig
from rag_assistant.inference.backends import build_backends
from rag_assistant.inference.base import ChatBackend
from rag_assistant.inference.gateway import InferenceGateway, default_chains
from rag_assistant.inference.retry import SleepFn
from rag_assistant.ingest.chunker import SentenceChunker
from rag_assistant.ingest.embedder import Embedder, HashingEmbedder, LangChainEmbedder
from rag_assistant.ingest.extractor import ExtractorRegistry
from rag_assistant.ingest.pipeline import IngestionPipeline
from rag_assistant.ingest.store import InMemoryDocumentStore
from rag_assistant.modes import ModeConfigResolver
from rag_assistant.obs.tracing import GroundednessEvaluator, TraceStore
from rag_assistant.retrieval.retriever import PresetRetriever
from rag_assistant.retrieval.vector_store import InMemoryVectorIndex, VectorIndex
from rag_assistant.routing.capabilities import RetrievalContextProbe
from rag_assistant.routing.default_tree import build_router
from rag_assistant.routing.tree import DecisionRouter


@dataclass(slots=True)
class Services:
    config: AppConfig
    document_store: InMemoryDocumentStore
    vector_index: VectorIndex
    embedder: Embedder
    pipeline: IngestionPipeline
    modes: ModeConfigResolver
    router: DecisionRouter
    trace_store: TraceStore
    gateway: InferenceGateway
    retriever: PresetRetriever
    assistant: ChatAssistant


def _default_embedder(config: AppConfig) -> Embedder:
    api_key = config.inference.openai_api_key
    if not api_key:
        return HashingEmbedder()

    from langchain_openai import OpenAIEmbeddings

    return LangChainEmbedder(OpenAIEmbeddings(model=config.embedding_model, api_key=api_key))


def build_services(
    config: AppConfig | None = None,
    *,
    embedder: Embedder | None = None,
    backends: Mapping[str, ChatBackend] | None = None,
    document_store: InMemoryDocumentStore | None = None,
    vector_index: VectorIndex | None = None,
    sleep: SleepFn = asyncio.sleep,
) -> Services:
    config = config or AppConfig()

    # Storage and embedding collaborators.
    if document_store is None:
        document_store = InMemoryDocumentStore()
    if vector_index is None:
        vector_index = InMemoryVectorIndex()
    if embedder is None:
        embedder = _default_embedder(config)

    pipeline = IngestionPipeline(
        ExtractorRegistry(),
        SentenceChunker(config.chunking),
        embedder,
        document_store,
        vector_index,
    )

    # Inference.
    trace_store = TraceStore()
    gateway = InferenceGateway(
        backends if backends is not None else build_backends(config.inference),
        default_chains(config.inference),
        active_provider=config.inference.active_provider,
        default_provider=config.inference.default_provider,
        trace_store=trace_store,
        sleep=sleep,
    )

    # Query-time routing and retrieval.
    modes = ModeConfigResolver()
    probe = RetrievalContextProbe(
        embedder,
        vector_index,
        threshold=config.retrieval.context_probe_threshold,
        k=config.retrieval.context_probe_k,
    )
    router = build_router(config.router, probe)
    # The extractive backend cannot rephrase queries or score chunks.
    model_client = gateway if gateway.active != "extractive" else None
    retriever = PresetRetriever(
        embedder,
        vector_index,
        client=model_client,
        config=config.retrieval,
        simple_query_max_length=modes.simple_query_max_length,
    )

    assistant = ChatAssistant(
        router=router,
        modes=modes,
        retriever=retriever,
        gateway=gateway,
        evaluator=GroundednessEvaluator(),
    )
    return Services(
        config=config,
        document_store=document_store,
        vector_index=vector_index,
        embedder=embedder,
        pipeline=pipeline,
        modes=modes,
        router=router,
        trace_store=trace_store,
        gateway=gateway,
        retriever=retriever,
        assistant=assistant,
    )
