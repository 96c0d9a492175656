"""Shared domain models."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Literal


class DocumentStatus(str, Enum):
    PROCESSING = "processing"
    INDEXED = "indexed"
    ERROR = "error"


@dataclass(slots=True)
class Document:
    """A source document registered for ingestion."""

    doc_id: str
    label: str
    file_type: str
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class ChunkMetadata:
    """Provenance attached to a chunk."""

    document_label: str
    sentence_range: tuple[int, int]
    length: int


@dataclass(frozen=True, slots=True)
class Chunk:
    """A bounded, sentence-aligned segment of a document's text."""

    content: str
    chunk_index: int
    metadata: ChunkMetadata


@dataclass(slots=True)
class VectorPoint:
    """One vector index entry."""

    id: str
    vector: list[float]
    payload: dict[str, Any]


@dataclass(slots=True)
class RetrievedChunk:
    """A search hit with score and the query route that produced it."""

    point_id: str
    content: str
    score: float
    payload: dict[str, Any]
    route: str = "semantic"
    rank: int = 0

    @property
    def reference(self) -> str:
        return str(self.payload.get("chunk_reference", self.point_id))


@dataclass(frozen=True, slots=True)
class DecisionStep:
    """Immutable record of one evaluated decision node."""

    node_id: str
    decision: Any
    reasoning: str
    confidence: float
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    impossible_flag: bool | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "node_id": self.node_id,
            "decision": self.decision,
            "reasoning": self.reasoning,
            "confidence": self.confidence,
            "timestamp": self.timestamp.isoformat(),
            "impossible_flag": self.impossible_flag,
        }


@dataclass(slots=True)
class DecisionResult:
    """Outcome of one decision tree execution."""

    result: dict[str, Any] | None = None
    path: list[str] = field(default_factory=list)
    decisions: list[DecisionStep] = field(default_factory=list)
    impossible_flag: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "result": self.result,
            "path": list(self.path),
            "decisions": [step.to_dict() for step in self.decisions],
            "impossible_flag": self.impossible_flag,
        }


Role = Literal["system", "user", "assistant"]


@dataclass(frozen=True, slots=True)
class ChatMessage:
    role: Role
    content: str


@dataclass(frozen=True, slots=True)
class ChatOptions:
    """Per-call generation overrides; unset fields use backend defaults."""

    model: str | None = None
    temperature: float | None = None
    max_tokens: int | None = None
