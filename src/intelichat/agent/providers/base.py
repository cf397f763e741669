"""
Base LLM Provider Implementation.

Provides common functionality for all LLM providers.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Optional

from ..domain.entities import ErrorType, Message, MessageRole
from ..domain.ports import ILLMProvider

logger = logging.getLogger(__name__)


class LLMProviderError(Exception):
    """Base exception for LLM provider errors."""

    def __init__(
        self,
        message: str,
        error_type: ErrorType = ErrorType.RECOVERABLE,
        original_error: Optional[Exception] = None,
    ):
        super().__init__(message)
        self.error_type = error_type
        self.original_error = original_error


@dataclass
class LLMProviderConfig:
    """Configuration for LLM providers.

    Attributes:
        api_key: API key for the provider
        model: Model name to use
        embedding_model: Model for embeddings (if different)
        base_url: Optional custom base URL
        timeout: Request timeout in seconds
        max_retries: Maximum retry attempts
        temperature: Default temperature
        max_tokens: Default max tokens
        extra: Provider-specific settings (e.g. default headers)
    """

    api_key: str
    model: str
    embedding_model: Optional[str] = None
    base_url: Optional[str] = None
    timeout: float = 60.0
    max_retries: int = 3
    temperature: float = 0.7
    max_tokens: int = 1024
    extra: dict[str, Any] = field(default_factory=dict)


class BaseLLMProvider(ILLMProvider, ABC):
    """Base class for LLM provider implementations.

    Provides common message formatting and lifecycle hooks.
    Subclasses must implement the abstract methods for specific APIs.
    """

    def __init__(self, config: LLMProviderConfig):
        """Initialize the provider.

        Args:
            config: Provider configuration
        """
        self.config = config

    @property
    def model_name(self) -> str:
        """Return the model name."""
        return self.config.model

    def _format_messages_for_api(
        self, messages: list[Message], system_prompt: Optional[str] = None
    ) -> list[dict[str, Any]]:
        """Convert domain messages to the chat-completions message format.

        Tool results are sent as user turns so the model reads them as
        fresh input within the same turn.
        """
        api_messages: list[dict[str, Any]] = []

        if system_prompt:
            api_messages.append({"role": "system", "content": system_prompt})

        for msg in messages:
            if msg.role == MessageRole.TOOL_RESULT:
                role = MessageRole.USER.value
            else:
                role = msg.role.value
            api_messages.append({"role": role, "content": msg.content})

        return api_messages

    @abstractmethod
    async def complete(
        self,
        messages: list[Message],
        system_prompt: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: Optional[int] = None,
        json_mode: bool = True,
    ) -> str:
        """Generate a reply. Must be implemented by subclasses."""
        pass

    @abstractmethod
    async def embed(self, text: str) -> tuple[list[float], str, int]:
        """Generate an embedding. Must be implemented by subclasses."""
        pass

    async def close(self) -> None:
        """Release network resources."""
        pass

    async def __aenter__(self):
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.close()
