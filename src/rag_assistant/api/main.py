"""FastAPI entrypoint for document, routing, chat, mode and trace endpoints."""

from __future__ import annotations

import base64
import binascii
import uuid
from dataclasses import asdict
from typing import Any

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, Field, model_validator

from rag_assistant.config import AppConfig
from rag_assistant.container import Services, build_services
from rag_assistant.errors import (
    EmbeddingError,
    ExtractionError,
    ProviderError,
    RagAssistantError,
    TreeNotFoundError,
)
from rag_assistant.modes import PERFORMANCE_EXPECTATIONS
from rag_assistant.obs.logging_config import setup_logging
from rag_assistant.types import ChatMessage, Document, Role


class DocumentRequest(BaseModel):
    label: str = Field(min_length=1)
    file_type: str = Field(min_length=1)
    doc_id: str | None = None
    content: str | None = None
    content_base64: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _one_payload(self) -> "DocumentRequest":
        if (self.content is None) == (self.content_base64 is None):
            raise ValueError("Provide exactly one of 'content' or 'content_base64'")
        return self


class RouteRequest(BaseModel):
    query: str = Field(min_length=1)
    product_name: str | None = None
    tree: str = "main"
    metadata: dict[str, Any] = Field(default_factory=dict)


class HistoryMessage(BaseModel):
    role: Role
    content: str


class ChatRequest(BaseModel):
    query: str = Field(min_length=1)
    history: list[HistoryMessage] = Field(default_factory=list)
    product_name: str | None = None
    mode: str | None = None
    hints: dict[str, bool] = Field(default_factory=dict)
    overrides: dict[str, Any] = Field(default_factory=dict)


class RecommendRequest(BaseModel):
    query: str = Field(min_length=1)
    hints: dict[str, bool] = Field(default_factory=dict)


def _http_error(exc: Exception) -> HTTPException:
    if isinstance(exc, ExtractionError):
        return HTTPException(status_code=400, detail=str(exc))
    if isinstance(exc, TreeNotFoundError):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, (ProviderError, EmbeddingError)):
        return HTTPException(status_code=502, detail=str(exc))
    return HTTPException(status_code=500, detail=str(exc))


def _payload_bytes(request: DocumentRequest) -> bytes:
    if request.content is not None:
        return request.content.encode("utf-8")
    try:
        return base64.b64decode(request.content_base64 or "", validate=True)
    except (binascii.Error, ValueError) as exc:
        raise HTTPException(status_code=400, detail=f"Invalid base64 content: {exc}") from exc


def create_app(services: Services | None = None) -> FastAPI:
    if services is None:
        config = AppConfig.from_env()
        setup_logging(level=config.log_level, service_name=config.service_name)
        services = build_services(config)

    app = FastAPI(title="RAG Assistant", version="0.1.0")
    app.state.services = services

    @app.get("/health")
    async def health() -> dict[str, Any]:
        return {
            "status": "ok",
            "active_provider": services.gateway.active,
            "backend_chain": [step.backend for step in services.gateway.chain_for()],
            "indexed_points": len(services.vector_index),
            "trace_count": len(services.trace_store),
            "file_types": services.pipeline.file_types,
            "modes": services.modes.modes,
        }

    @app.post("/documents")
    async def create_document(request: DocumentRequest) -> dict[str, Any]:
        document = Document(
            doc_id=request.doc_id or str(uuid.uuid4()),
            label=request.label,
            file_type=request.file_type,
            metadata=request.metadata,
        )
        data = _payload_bytes(request)
        try:
            chunks = await services.pipeline.process_document(document, data)
        except RagAssistantError as exc:
            raise _http_error(exc) from exc

        record = services.document_store.get(document.doc_id)
        return {
            "doc_id": document.doc_id,
            "status": record.status.value if record.status else None,
            "chunks_created": len(chunks),
            "chunk_references": [f"{document.doc_id}_{c.chunk_index}" for c in chunks],
        }

    @app.get("/documents/{doc_id}")
    async def get_document(doc_id: str) -> dict[str, Any]:
        try:
            record = services.document_store.get(doc_id)
        except KeyError as exc:
            raise HTTPException(status_code=404, detail=f"Document not found: {doc_id}") from exc
        return {
            "doc_id": record.doc_id,
            "status": record.status.value if record.status else None,
            "indexed_at": record.indexed_at.isoformat() if record.indexed_at else None,
            "chunk_count": record.chunk_count,
        }

    @app.delete("/documents/{doc_id}")
    async def delete_document(doc_id: str) -> dict[str, Any]:
        try:
            services.document_store.get(doc_id)
        except KeyError as exc:
            raise HTTPException(status_code=404, detail=f"Document not found: {doc_id}") from exc
        try:
            await services.pipeline.delete_document(doc_id)
        except RagAssistantError as exc:
            raise _http_error(exc) from exc
        services.document_store.forget(doc_id)
        return {"doc_id": doc_id, "deleted": True}

    @app.post("/route")
    async def route(request: RouteRequest) -> dict[str, Any]:
        try:
            result = await services.router.route(
                request.query,
                product_name=request.product_name,
                metadata=request.metadata,
                tree_name=request.tree,
            )
        except RagAssistantError as exc:
            raise _http_error(exc) from exc
        payload = result.to_dict()
        payload["visualization"] = services.router.visualize_path(result)
        return payload

    @app.post("/chat")
    async def chat(request: ChatRequest) -> dict[str, Any]:
        history = [ChatMessage(role=m.role, content=m.content) for m in request.history]
        try:
            reply = await services.assistant.respond(
                request.query,
                history=history,
                product_name=request.product_name,
                mode=request.mode,
                hints=request.hints,
                overrides=request.overrides,
            )
        except ValueError as exc:
            raise HTTPException(status_code=422, detail=str(exc)) from exc
        except RagAssistantError as exc:
            raise _http_error(exc) from exc
        return reply.to_dict()

    @app.get("/modes/{name}")
    async def mode_detail(name: str) -> dict[str, Any]:
        resolved = services.modes.normalize(name)
        return {
            "requested": name,
            "mode": resolved,
            "preset": services.modes.resolve(name).model_dump(mode="json"),
            "expectations": dict(PERFORMANCE_EXPECTATIONS[resolved]),
        }

    @app.post("/modes/recommend")
    async def recommend_mode(request: RecommendRequest) -> dict[str, Any]:
        mode = services.modes.recommend(request.query, request.hints)
        return {"mode": mode, "preset": services.modes.resolve(mode).model_dump(mode="json")}

    @app.get("/traces")
    async def traces(limit: int = 20) -> dict[str, Any]:
        records = [asdict(record) for record in services.trace_store.list_recent(limit=limit)]
        return {"items": records}

    @app.get("/traces/{trace_id}")
    async def trace_detail(trace_id: str) -> dict[str, Any]:
        try:
            record = services.trace_store.get(trace_id)
        except KeyError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        return asdict(record)

    @app.get("/metrics")
    async def metrics() -> dict[str, Any]:
        return services.trace_store.summary()

    return app


app = create_app()
