"""LangChain-backed completion providers."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from langchain_core.language_models.chat_models import BaseChatModel
from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage

from rag_assistant.config import InferenceConfig
from rag_assistant.errors import ProviderError
from rag_assistant.inference.base import EMPTY_COMPLETION, ChatBackend
from rag_assistant.inference.extractive import ExtractiveBackend
from rag_assistant.types import ChatMessage, ChatOptions


class LangChainChatBackend(ChatBackend):
    """Backend over a LangChain chat model (OpenAI or OpenAI-compatible)."""

    def __init__(
        self,
        name: str,
        chat_model: BaseChatModel,
        *,
        default_model: str,
        default_temperature: float = 0.1,
        default_max_tokens: int = 1000,
    ) -> None:
        self.name = name
        self.default_model = default_model
        self._chat_model = chat_model
        self._default_temperature = default_temperature
        self._default_max_tokens = default_max_tokens

    async def complete(self, messages: Sequence[ChatMessage], options: ChatOptions) -> str:
        try:
            response = await self._chat_model.ainvoke(
                to_langchain_messages(messages),
                model=options.model or self.default_model,
                temperature=(
                    self._default_temperature
                    if options.temperature is None
                    else options.temperature
                ),
                max_tokens=options.max_tokens or self._default_max_tokens,
            )
        except Exception as exc:
            raise ProviderError(self.name, str(exc) or exc.__class__.__name__) from exc
        return message_text(response) or EMPTY_COMPLETION


def to_langchain_messages(messages: Sequence[ChatMessage]) -> list[BaseMessage]:
    converted: list[BaseMessage] = []
    for message in messages:
        if message.role == "system":
            converted.append(SystemMessage(content=message.content))
        elif message.role == "assistant":
            converted.append(AIMessage(content=message.content))
        else:
            converted.append(HumanMessage(content=message.content))
    return converted


def message_text(message: Any) -> str:
    content = getattr(message, "content", message)
    if isinstance(content, list):
        parts: list[str] = []
        for item in content:
            if isinstance(item, dict) and "text" in item:
                parts.append(str(item["text"]))
            else:
                parts.append(str(item))
        return " ".join(parts).strip()
    return str(content).strip()


def build_backends(config: InferenceConfig) -> dict[str, ChatBackend]:
    """Create a backend for every provider that has credentials configured."""

    from langchain_openai import ChatOpenAI

    providers = [
        ("openai", config.openai_api_key, config.openai_model, None),
        ("groq", config.groq_api_key, config.groq_model, config.groq_base_url),
        ("nebius", config.nebius_api_key, config.nebius_model, config.nebius_base_url),
    ]

    backends: dict[str, ChatBackend] = {"extractive": ExtractiveBackend()}
    for name, api_key, model, base_url in providers:
        if not api_key:
            continue
        chat_model = ChatOpenAI(
            model=model,
            api_key=api_key,
            base_url=base_url,
            temperature=config.temperature,
            max_tokens=config.max_tokens,
            timeout=config.timeout_seconds,
            max_retries=0,
        )
        backends[name] = LangChainChatBackend(
            name,
            chat_model,
            default_model=model,
            default_temperature=config.temperature,
            default_max_tokens=config.max_tokens,
        )
    return backends
