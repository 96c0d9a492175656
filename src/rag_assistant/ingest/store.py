"""Document store contract and in-memory implementation."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Protocol

from rag_assistant.types import Chunk, DocumentStatus


class DocumentStore(Protocol):
    """Persistence used by ingestion for document status and chunk records."""

    async def set_status(
        self, doc_id: str, status: DocumentStatus, timestamp: datetime | None = None
    ) -> None:
        """Record the document's latest processing status."""

    async def create_chunk_record(
        self, doc_id: str, chunk: Chunk, embedding: list[float]
    ) -> str:
        """Persist one chunk and return its stored id."""

    async def set_chunk_count(self, doc_id: str, count: int) -> None:
        """Record how many chunks the document produced."""

    async def delete_chunks(self, doc_id: str) -> None:
        """Remove every chunk record of the document."""


@dataclass(slots=True)
class DocumentRecord:
    doc_id: str
    status: DocumentStatus | None = None
    indexed_at: datetime | None = None
    chunk_count: int = 0
    chunk_ids: list[str] = field(default_factory=list)


@dataclass(slots=True)
class _StoredChunk:
    doc_id: str
    chunk: Chunk
    embedding: list[float]


class InMemoryDocumentStore:
    """Deterministic document store used for tests and local prototyping."""

    def __init__(self) -> None:
        self._documents: dict[str, DocumentRecord] = {}
        self._chunks: dict[str, _StoredChunk] = {}

    async def set_status(
        self, doc_id: str, status: DocumentStatus, timestamp: datetime | None = None
    ) -> None:
        record = self._record(doc_id)
        record.status = status
        if timestamp is not None:
            record.indexed_at = timestamp

    async def create_chunk_record(
        self, doc_id: str, chunk: Chunk, embedding: list[float]
    ) -> str:
        chunk_id = str(uuid.uuid4())
        self._chunks[chunk_id] = _StoredChunk(doc_id=doc_id, chunk=chunk, embedding=embedding)
        self._record(doc_id).chunk_ids.append(chunk_id)
        return chunk_id

    async def set_chunk_count(self, doc_id: str, count: int) -> None:
        self._record(doc_id).chunk_count = count

    async def delete_chunks(self, doc_id: str) -> None:
        record = self._documents.get(doc_id)
        if record is None:
            return
        for chunk_id in record.chunk_ids:
            self._chunks.pop(chunk_id, None)
        record.chunk_ids.clear()
        record.chunk_count = 0

    def get(self, doc_id: str) -> DocumentRecord:
        record = self._documents.get(doc_id)
        if record is None:
            raise KeyError(f"Document not found: {doc_id}")
        return record

    def forget(self, doc_id: str) -> None:
        self._documents.pop(doc_id, None)

    def chunks_for(self, doc_id: str) -> list[Chunk]:
        record = self.get(doc_id)
        return [self._chunks[chunk_id].chunk for chunk_id in record.chunk_ids]

    def _record(self, doc_id: str) -> DocumentRecord:
        record = self._documents.get(doc_id)
        if record is None:
            record = DocumentRecord(doc_id=doc_id)
            self._documents[doc_id] = record
        return record
