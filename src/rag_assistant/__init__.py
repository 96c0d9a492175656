"""RAG Assistant package."""

from .config import AppConfig, ChunkingConfig, InferenceConfig, RetrievalConfig, RouterConfig
from .container import Services, build_services

__all__ = [
    "AppConfig",
    "ChunkingConfig",
    "InferenceConfig",
    "RetrievalConfig",
    "RouterConfig",
    "Services",
    "build_services",
]
