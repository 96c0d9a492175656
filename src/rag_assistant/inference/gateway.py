"""Multi-backend chat completion with retry and cross-backend fallback."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from functools import partial

from rag_assistant.config import InferenceConfig
from rag_assistant.errors import FallbackExhaustedError, ProviderError
from rag_assistant.inference.base import ChatBackend
from rag_assistant.inference.retry import RetryPolicy, SleepFn, call_with_retry
from rag_assistant.obs.tracing import Timer, TraceStore, estimate_token_count
from rag_assistant.types import ChatMessage, ChatOptions

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class BackendStrategy:
    """One step of a fallback chain: a backend and its optional retry policy."""

    backend: str
    retry: RetryPolicy | None = None


def default_chains(config: InferenceConfig) -> dict[str, tuple[BackendStrategy, ...]]:
    """Chains keyed by active provider name.

    Only Groq is paired: it is retried with backoff and then handed to Nebius.
    Every other provider fails fast.
    """

    groq_policy = RetryPolicy(
        max_attempts=config.retry_attempts,
        initial_delay=config.initial_delay_seconds,
        max_delay=config.max_delay_seconds,
    )
    return {
        "openai": (BackendStrategy("openai"),),
        "groq": (BackendStrategy("groq", groq_policy), BackendStrategy("nebius")),
        "nebius": (BackendStrategy("nebius"),),
        "extractive": (BackendStrategy("extractive"),),
    }


class InferenceGateway:
    """Uniform ``chat_completion`` over interchangeable backends.

    The configured active provider selects an ordered chain of backend
    strategies. The chain is walked until one backend answers; a chain of
    one propagates its failure as is, a longer chain that is exhausted raises
    ``FallbackExhaustedError`` naming every backend that was tried.
    """

    def __init__(
        self,
        backends: Mapping[str, ChatBackend],
        chains: Mapping[str, Sequence[BackendStrategy]],
        *,
        active_provider: str,
        default_provider: str = "openai",
        trace_store: TraceStore | None = None,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        if default_provider not in chains:
            raise ValueError(f"No chain configured for default provider '{default_provider}'")
        self._backends = dict(backends)
        self._chains = {name: tuple(chain) for name, chain in chains.items()}
        self._configured = active_provider
        self.default_provider = default_provider
        self.trace_store = trace_store
        self._sleep = sleep

    @property
    def active(self) -> str:
        name = (self._configured or "").strip().lower()
        return name if name in self._chains else self.default_provider

    def chain_for(self, provider: str | None = None) -> tuple[BackendStrategy, ...]:
        name = provider if provider in self._chains else self.active
        return self._chains[name]

    async def chat_completion(
        self,
        messages: Sequence[ChatMessage],
        options: ChatOptions | None = None,
    ) -> str:
        options = options or ChatOptions()
        provider = self.active
        chain = self._chains[provider]
        failures: list[tuple[str, ProviderError]] = []
        attempts = 0

        async def _call(backend: ChatBackend) -> str:
            nonlocal attempts
            attempts += 1
            try:
                return await backend.complete(messages, options)
            except ProviderError:
                raise
            except Exception as exc:
                raise ProviderError(backend.name, str(exc) or exc.__class__.__name__) from exc

        answer: str | None = None
        answered_by: ChatBackend | None = None
        with Timer() as timer:
            for position, strategy in enumerate(chain):
                backend = self._backends.get(strategy.backend)
                try:
                    if backend is None:
                        raise ProviderError(strategy.backend, "backend is not configured")
                    if strategy.retry is None:
                        answer = await _call(backend)
                    else:
                        answer = await call_with_retry(
                            partial(_call, backend), strategy.retry, sleep=self._sleep
                        )
                except ProviderError as exc:
                    failures.append((strategy.backend, exc))
                    if position + 1 < len(chain):
                        logger.error(
                            "%s inference failed, falling back to %s: %s",
                            strategy.backend,
                            chain[position + 1].backend,
                            exc,
                        )
                    continue
                answered_by = backend
                break

        self._record(
            provider=provider,
            chain=chain,
            backend=answered_by.name if answered_by else None,
            model=(options.model or answered_by.default_model) if answered_by else None,
            attempts=attempts,
            messages=messages,
            answer=answer,
            latency_ms=timer.elapsed_ms,
            error=str(failures[-1][1]) if answered_by is None and failures else None,
        )

        if answered_by is not None and answer is not None:
            return answer
        if len(failures) == 1:
            raise failures[0][1]
        raise FallbackExhaustedError(failures)

    def _record(
        self,
        *,
        provider: str,
        chain: Sequence[BackendStrategy],
        backend: str | None,
        model: str | None,
        attempts: int,
        messages: Sequence[ChatMessage],
        answer: str | None,
        latency_ms: float,
        error: str | None,
    ) -> None:
        if self.trace_store is None:
            return
        self.trace_store.create_record(
            provider=provider,
            chain=[strategy.backend for strategy in chain],
            backend=backend,
            model=model,
            attempts=attempts,
            input_tokens=sum(estimate_token_count(m.content) for m in messages),
            output_tokens=estimate_token_count(answer) if answer else 0,
            latency_ms=latency_ms,
            error=error,
        )
