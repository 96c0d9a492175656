"""Exception taxonomy shared by ingestion, routing and inference."""

from __future__ import annotations

from collections.abc import Sequence


class RagAssistantError(Exception):
    """Base class for all errors raised by this package."""


class ExtractionError(RagAssistantError):
    """Raw document bytes could not be turned into text."""


class UnsupportedTypeError(ExtractionError):
    def __init__(self, file_type: str) -> None:
        super().__init__(f"Unsupported file type: {file_type}")
        self.file_type = file_type


class CorruptDocumentError(ExtractionError):
    pass


class EmbeddingError(RagAssistantError):
    pass


class VectorIndexError(RagAssistantError):
    """Persisting or upserting chunk vectors failed."""


class TreeNotFoundError(RagAssistantError, KeyError):
    def __init__(self, name: str) -> None:
        super().__init__(f"Decision tree '{name}' not found")
        self.name = name

    def __str__(self) -> str:
        return str(self.args[0])


class ProviderError(RagAssistantError):
    """A completion backend failed to produce a response."""

    def __init__(self, backend: str, message: str) -> None:
        super().__init__(f"{backend}: {message}")
        self.backend = backend


class FallbackExhaustedError(ProviderError):
    """Every backend in a fallback chain failed."""

    def __init__(self, failures: Sequence[tuple[str, BaseException]]) -> None:
        self.failures = list(failures)
        names = " and ".join(name for name, _ in self.failures)
        details = "; ".join(f"{name}: {_describe(exc)}" for name, exc in self.failures)
        super().__init__(names or "inference", f"all backends failed ({details})")


def _describe(exc: BaseException) -> str:
    if isinstance(exc, ProviderError) and str(exc).startswith(f"{exc.backend}: "):
        return str(exc)[len(exc.backend) + 2 :]
    return str(exc) or exc.__class__.__name__
