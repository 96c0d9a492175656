"""End-to-end ingestion pipeline: extract -> chunk -> embed -> persist -> upsert."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from rag_assistant.errors import EmbeddingError, RagAssistantError, VectorIndexError
from rag_assistant.ingest.chunker import SentenceChunker
from rag_assistant.ingest.embedder import Embedder
from rag_assistant.ingest.extractor import ExtractorRegistry, normalize_whitespace
from rag_assistant.ingest.store import DocumentStore
from rag_assistant.retrieval.vector_store import VectorIndex
from rag_assistant.types import Chunk, Document, DocumentStatus, VectorPoint

logger = logging.getLogger(__name__)


class IngestionPipeline:
    """Coordinates extractor/chunker/embedder/store/index stages.

    This class isolates ingestion from query-time retrieval so indexing can be
    executed offline, in batch jobs, or right after an upload.

    Chunks are processed one after another: chunk N is embedded only after
    chunk N-1 has been persisted, so stored order always matches reading
    order. Any failure aborts the remaining chunks of that document and
    leaves its status at ``error``.
    """

    def __init__(
        self,
        extractors: ExtractorRegistry,
        chunker: SentenceChunker,
        embedder: Embedder,
        document_store: DocumentStore,
        vector_index: VectorIndex,
    ) -> None:
        self._extractors = extractors
        self._chunker = chunker
        self._embedder = embedder
        self._document_store = document_store
        self._vector_index = vector_index

    @property
    def file_types(self) -> list[str]:
        return self._extractors.file_types

    async def process_document(self, document: Document, data: bytes) -> list[Chunk]:
        """Index one document, replacing whatever was stored under its id."""

        doc_id = document.doc_id
        await self._document_store.set_status(doc_id, DocumentStatus.PROCESSING)
        try:
            raw_text = self._extractors.extract_text(data, document.file_type)
            text = normalize_whitespace(raw_text)
            chunks = self._chunker.chunk(text, document.label)
            logger.info(
                "Extracted %d characters from %s, created %d chunks",
                len(text),
                doc_id,
                len(chunks),
            )

            await self._remove_indexed(doc_id)

            points: list[VectorPoint] = []
            for chunk in chunks:
                embedding = await self._embed(doc_id, chunk)
                stored_id = await self._persist(doc_id, chunk, embedding)
                points.append(
                    VectorPoint(
                        id=stored_id,
                        vector=embedding,
                        payload=_point_payload(document, chunk, len(chunks)),
                    )
                )

            if points:
                await self._upsert(doc_id, points)
            await self._document_store.set_status(
                doc_id, DocumentStatus.INDEXED, datetime.now(timezone.utc)
            )
            await self._document_store.set_chunk_count(doc_id, len(chunks))
        except Exception:
            logger.exception("Document processing failed for %s", doc_id)
            await self._mark_failed(doc_id)
            raise

        logger.info("Indexed document %s (%d chunks)", doc_id, len(chunks))
        return chunks

    async def delete_document(self, doc_id: str) -> None:
        await self._remove_indexed(doc_id)
        logger.info("Removed indexed content for %s", doc_id)

    async def _remove_indexed(self, doc_id: str) -> None:
        try:
            await self._vector_index.delete_by_document(doc_id)
        except RagAssistantError:
            raise
        except Exception as exc:
            raise VectorIndexError(f"Failed to delete vectors of {doc_id}: {exc}") from exc
        await self._document_store.delete_chunks(doc_id)

    async def _embed(self, doc_id: str, chunk: Chunk) -> list[float]:
        try:
            return await self._embedder.embed(chunk.content)
        except RagAssistantError:
            raise
        except Exception as exc:
            raise EmbeddingError(
                f"Embedding failed for {doc_id} chunk {chunk.chunk_index}: {exc}"
            ) from exc

    async def _persist(self, doc_id: str, chunk: Chunk, embedding: list[float]) -> str:
        try:
            return await self._document_store.create_chunk_record(doc_id, chunk, embedding)
        except RagAssistantError:
            raise
        except Exception as exc:
            raise VectorIndexError(
                f"Persisting {doc_id} chunk {chunk.chunk_index} failed: {exc}"
            ) from exc

    async def _upsert(self, doc_id: str, points: list[VectorPoint]) -> None:
        try:
            await self._vector_index.upsert(points)
        except RagAssistantError:
            raise
        except Exception as exc:
            raise VectorIndexError(f"Vector upsert failed for {doc_id}: {exc}") from exc

    async def _mark_failed(self, doc_id: str) -> None:
        # The original exception is re-raised by the caller either way.
        try:
            await self._document_store.set_status(doc_id, DocumentStatus.ERROR)
        except Exception:
            logger.exception("Could not record error status for %s", doc_id)


def _point_payload(document: Document, chunk: Chunk, total: int) -> dict[str, object]:
    doc_id = document.doc_id
    index = chunk.chunk_index
    return {
        **document.metadata,
        "document_id": doc_id,
        "chunk_index": index,
        "content": chunk.content,
        "label": document.label,
        "sentence_range": list(chunk.metadata.sentence_range),
        "chunk_reference": f"{doc_id}_{index}",
        "previous_chunk": f"{doc_id}_{index - 1}" if index > 0 else None,
        "next_chunk": f"{doc_id}_{index + 1}" if index < total - 1 else None,
    }
