# src/llm/base_client.py — v1
"""Abstract LLM client interface.

The AI service only needs JSON text completion; adapters for each
provider implement it and may honour a pydantic response schema.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from pydantic import BaseModel

from booknest.llm.models import LLMResponse, Message


class BaseLLMClient(ABC):
    """Unified interface for all LLM providers."""

    @abstractmethod
    async def complete(
        self,
        messages: list[Message],
        system: str | None = None,
        max_tokens: int = 4096,
        temperature: float = 0.3,
        response_format: type[BaseModel] | None = None,
    ) -> LLMResponse:
        """Text completion. When *response_format* is given, JSON is requested."""

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Provider identifier (google, openai, anthropic, ollama)."""
