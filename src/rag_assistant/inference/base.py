"""Chat-completion backend interface."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence

from rag_assistant.types import ChatMessage, ChatOptions

EMPTY_COMPLETION = "I couldn't generate a response."


class ChatBackend(ABC):
    """Uniform chat-completion capability.

    A backend holds no per-conversation state: every call carries the full
    message list and options.
    """

    name: str
    default_model: str

    @abstractmethod
    async def complete(self, messages: Sequence[ChatMessage], options: ChatOptions) -> str:
        """Return generated text or raise ``ProviderError``."""
