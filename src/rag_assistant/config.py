"""Configuration models for the assistant."""

from __future__ import annotations

import os

from pydantic import BaseModel, Field

_GREETING_TERMS = (
    "hello",
    "hi",
    "hey",
    "good morning",
    "good afternoon",
    "good evening",
    "howdy",
    "greetings",
    "what's up",
    "sup",
)

_PRODUCT_KEYWORDS = (
    "price",
    "cost",
    "feature",
    "spec",
    "plan",
    "package",
    "integration",
    "api",
    "support",
    "documentation",
    "how to",
    "setup",
    "configure",
    "install",
    "troubleshoot",
    "error",
    "detail",
    "details",
    "information",
    "about",
    "what is",
    "describe",
    "overview",
    "summary",
    "benefits",
    "usp",
)


class ChunkingConfig(BaseModel):
    """Configures sentence-aligned chunking with word overlap."""

    chunk_size_chars: int = Field(default=512, ge=1)
    overlap_words: int = Field(default=50, ge=0)
    min_tail_chars: int = Field(default=0, ge=0)


class RetrievalConfig(BaseModel):
    """Configures query-time retrieval and the retrievable-context probe."""

    rrf_k: int = Field(default=60, ge=1)
    context_probe_threshold: float = Field(default=0.5, ge=0.0, le=1.0)
    context_probe_k: int = Field(default=1, ge=1)
    candidate_multiplier: int = Field(default=2, ge=1)


class RouterConfig(BaseModel):
    """Vocabulary and thresholds used by the main decision tree."""

    greeting_max_length: int = Field(default=30, ge=1)
    greeting_terms: tuple[str, ...] = _GREETING_TERMS
    product_keywords: tuple[str, ...] = _PRODUCT_KEYWORDS
    known_products: tuple[str, ...] = ()


class InferenceConfig(BaseModel):
    """Backend selection, retry budget and per-backend defaults."""

    active_provider: str = "openai"
    default_provider: str = "openai"
    retry_attempts: int = Field(default=3, ge=1)
    initial_delay_seconds: float = Field(default=0.5, ge=0.0)
    max_delay_seconds: float = Field(default=30.0, gt=0.0)
    timeout_seconds: float = Field(default=30.0, gt=0.0)
    temperature: float = Field(default=0.1, ge=0.0, le=2.0)
    max_tokens: int = Field(default=1000, ge=1)

    openai_api_key: str | None = None
    openai_model: str = "gpt-4o-mini"

    groq_api_key: str | None = None
    groq_model: str = "llama-3.1-8b-instant"
    groq_base_url: str = "https://api.groq.com/openai/v1"

    nebius_api_key: str | None = None
    nebius_model: str = "meta-llama/Meta-Llama-3.1-8B-Instruct-fast"
    nebius_base_url: str = "https://studio.nebius.com/api/openai"


class AppConfig(BaseModel):
    """Top-level configuration assembled once at process start."""

    service_name: str = "rag-assistant"
    log_level: str = "INFO"
    embedding_model: str = "text-embedding-3-small"
    chunking: ChunkingConfig = Field(default_factory=ChunkingConfig)
    retrieval: RetrievalConfig = Field(default_factory=RetrievalConfig)
    router: RouterConfig = Field(default_factory=RouterConfig)
    inference: InferenceConfig = Field(default_factory=InferenceConfig)

    @classmethod
    def from_env(cls) -> "AppConfig":
        openai_key = os.getenv("OPENAI_API_KEY") or None
        provider = os.getenv("LLM_PROVIDER") or ("openai" if openai_key else "extractive")
        timeout_ms = int(os.getenv("API_TIMEOUT", "30000"))

        defaults = InferenceConfig()
        inference = InferenceConfig(
            active_provider=provider.lower(),
            timeout_seconds=timeout_ms / 1000.0,
            openai_api_key=openai_key,
            openai_model=os.getenv("OPENAI_MODEL", defaults.openai_model),
            groq_api_key=os.getenv("GROQ_API_KEY") or None,
            groq_model=os.getenv("GROQ_MODEL", defaults.groq_model),
            nebius_api_key=os.getenv("NEBIUS_API_KEY") or None,
            nebius_model=os.getenv("NEBIUS_MODEL", defaults.nebius_model),
            nebius_base_url=os.getenv("NEBIUS_BASE_URL", defaults.nebius_base_url),
        )
        return cls(
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            embedding_model=os.getenv("EMBEDDING_MODEL", "text-embedding-3-small"),
            inference=inference,
        )
