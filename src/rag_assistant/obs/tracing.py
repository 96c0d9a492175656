"""Completion traces, cost estimates and answer groundedness."""

from __future__ import annotations

import re
import time
import uuid
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import datetime, timezone

_TOKEN_PATTERN = re.compile(r"\w+|[^\w\s]", flags=re.UNICODE)
_CLAIM_BOUNDARY = re.compile(r"(?<=[.!?])\s+|\n+")
_CITATION_OR_NUMBERING = re.compile(r"\[[^\]]+\]|^\d+\.\s*")


@dataclass(slots=True)
class CompletionTrace:
    trace_id: str
    timestamp_utc: str
    provider: str
    chain: list[str]
    backend: str | None
    model: str | None
    attempts: int
    input_tokens: int
    output_tokens: int
    estimated_cost_usd: float
    latency_ms: float
    error: str | None

    @property
    def succeeded(self) -> bool:
        return self.backend is not None

    @property
    def fell_back(self) -> bool:
        return self.succeeded and bool(self.chain) and self.backend != self.chain[0]


@dataclass(slots=True)
class CostModel:
    """Token pricing in USD per 1K tokens."""

    input_per_1k: float = 0.005
    output_per_1k: float = 0.015

    def estimate_cost(self, input_tokens: int, output_tokens: int) -> float:
        return (input_tokens * self.input_per_1k + output_tokens * self.output_per_1k) / 1000.0


@dataclass(slots=True)
class GroundednessReport:
    score: float
    total_claims: int
    unsupported: list[str] = field(default_factory=list)


class GroundednessEvaluator:
    """Lexical attribution check of an answer against its source chunks.

    The answer is cut into claims (sentences or lines). Citation tags such as
    ``[doc-1_3]`` and list numbering are removed, then a claim is supported
    when at least ``min_overlap`` of its tokens appear in a single source.
    Claims with no tokens left count as supported. The score is the supported
    fraction; an empty answer scores 1.0 and any claim without sources 0.0.
    """

    def __init__(self, min_overlap: float = 0.35) -> None:
        self.min_overlap = min_overlap

    def evaluate(self, answer: str, sources: list[str]) -> GroundednessReport:
        claims = [part.strip() for part in _CLAIM_BOUNDARY.split(answer) if part.strip()]
        if not claims:
            return GroundednessReport(score=1.0, total_claims=0)

        source_tokens = [set(_tokens(source)) for source in sources]
        unsupported = [claim for claim in claims if not self._supported(claim, source_tokens)]
        score = (len(claims) - len(unsupported)) / len(claims)
        return GroundednessReport(score=score, total_claims=len(claims), unsupported=unsupported)

    def score(self, answer: str, sources: list[str]) -> float:
        return self.evaluate(answer, sources).score

    def _supported(self, claim: str, source_tokens: list[set[str]]) -> bool:
        claim_tokens = set(_tokens(_CITATION_OR_NUMBERING.sub("", claim)))
        if not claim_tokens:
            return True
        return any(
            len(claim_tokens & tokens) / len(claim_tokens) >= self.min_overlap
            for tokens in source_tokens
        )


class TraceStore:
    """Bounded in-memory store of completion traces, oldest evicted first."""

    def __init__(self, *, cost_model: CostModel | None = None, max_records: int = 1000) -> None:
        self._records: OrderedDict[str, CompletionTrace] = OrderedDict()
        self._cost_model = cost_model or CostModel()
        self.max_records = max_records

    def __len__(self) -> int:
        return len(self._records)

    def create_record(
        self,
        *,
        provider: str,
        chain: list[str],
        backend: str | None,
        model: str | None,
        attempts: int,
        input_tokens: int,
        output_tokens: int,
        latency_ms: float,
        error: str | None = None,
    ) -> CompletionTrace:
        record = CompletionTrace(
            trace_id=str(uuid.uuid4()),
            timestamp_utc=datetime.now(timezone.utc).isoformat(),
            provider=provider,
            chain=chain,
            backend=backend,
            model=model,
            attempts=attempts,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            estimated_cost_usd=self._cost_model.estimate_cost(input_tokens, output_tokens),
            latency_ms=latency_ms,
            error=error,
        )
        self._records[record.trace_id] = record
        while len(self._records) > self.max_records:
            self._records.popitem(last=False)
        return record

    def get(self, trace_id: str) -> CompletionTrace:
        try:
            return self._records[trace_id]
        except KeyError:
            raise KeyError(f"Trace not found: {trace_id}") from None

    def list_recent(self, limit: int = 20) -> list[CompletionTrace]:
        if limit <= 0:
            return []
        return list(self._records.values())[-limit:]

    def summary(self) -> dict[str, float | int]:
        """Request, failure and fallback counts with latency, token and cost totals."""

        records = list(self._records.values())
        latencies = sorted(record.latency_ms for record in records)
        p95 = latencies[max(0, int(len(latencies) * 0.95) - 1)] if latencies else 0.0
        return {
            "total_requests": len(records),
            "failed_requests": sum(1 for record in records if not record.succeeded),
            "fallback_requests": sum(1 for record in records if record.fell_back),
            "avg_latency_ms": sum(latencies) / len(latencies) if latencies else 0.0,
            "p95_latency_ms": p95,
            "total_input_tokens": sum(record.input_tokens for record in records),
            "total_output_tokens": sum(record.output_tokens for record in records),
            "total_estimated_cost_usd": sum(record.estimated_cost_usd for record in records),
        }


class Timer:
    """Context manager measuring wall time in milliseconds."""

    def __init__(self) -> None:
        self._start = 0.0
        self.elapsed_ms = 0.0

    def __enter__(self) -> "Timer":
        self._start = time.perf_counter()
        return self

    def __exit__(self, exc_type: object, exc: object, tb: object) -> None:
        self.elapsed_ms = (time.perf_counter() - self._start) * 1000.0


def estimate_token_count(text: str) -> int:
    return len(_TOKEN_PATTERN.findall(text))


def _tokens(text: str) -> list[str]:
    return [token.lower() for token in _TOKEN_PATTERN.findall(text)]
