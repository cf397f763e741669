"""
Ollama LLM Provider.

Implements the ILLMProvider interface for Ollama's local LLM API.
Supports JSON-constrained chat replies and embeddings with locally-hosted models.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import httpx

from ..domain.entities import ErrorType, Message
from .base import BaseLLMProvider, LLMProviderConfig, LLMProviderError

logger = logging.getLogger(__name__)


class OllamaProvider(BaseLLMProvider):
    """Ollama local LLM provider implementation.

    Usage:
        config = LLMProviderConfig(
            api_key="not-needed",  # Ollama doesn't require auth
            model="qwen3:4b",
            base_url="http://localhost:11434",
        )
        provider = OllamaProvider(config)

        reply = await provider.complete(messages, system_prompt=prompt)
    """

    DEFAULT_MODEL = "qwen3:4b"
    DEFAULT_BASE_URL = "http://localhost:11434"
    DEFAULT_EMBEDDING_MODEL = "nomic-embed-text"

    def __init__(self, config: LLMProviderConfig):
        """Initialize the Ollama provider.

        Args:
            config: Provider configuration
        """
        super().__init__(config)

        self.base_url = config.base_url or self.DEFAULT_BASE_URL
        self.embedding_model = (
            config.embedding_model or self.DEFAULT_EMBEDDING_MODEL
        )

        self.client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=config.timeout,
        )

    async def complete(
        self,
        messages: list[Message],
        system_prompt: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: Optional[int] = None,
        json_mode: bool = True,
    ) -> str:
        """Generate a single reply using Ollama's /api/chat.

        Raises:
            LLMProviderError: On HTTP, timeout or connection errors
        """
        payload: dict[str, Any] = {
            "model": self.config.model,
            "messages": self._format_messages_for_api(messages, system_prompt),
            "stream": False,
            "options": {
                "temperature": temperature,
            },
        }

        if max_tokens:
            payload["options"]["num_predict"] = max_tokens

        if json_mode:
            payload["format"] = "json"

        try:
            response = await self.client.post("/api/chat", json=payload)
            response.raise_for_status()
            data = response.json()

        except httpx.HTTPStatusError as e:
            raise LLMProviderError(
                f"Ollama API error: {e.response.status_code} - {e.response.text}",
                error_type=ErrorType.RECOVERABLE,
                original_error=e,
            )
        except httpx.TimeoutException as e:
            raise LLMProviderError(
                f"Ollama request timeout: {str(e)}",
                error_type=ErrorType.TIMEOUT,
                original_error=e,
            )
        except httpx.RequestError as e:
            raise LLMProviderError(
                f"Ollama connection error: {str(e)}",
                error_type=ErrorType.FATAL,
                original_error=e,
            )

        content = (data.get("message") or {}).get("content", "")
        if not content:
            raise LLMProviderError(
                "No content returned from Ollama",
                error_type=ErrorType.RECOVERABLE,
            )

        return content

    async def embed(self, text: str) -> tuple[list[float], str, int]:
        """Generate an embedding using Ollama.

        Raises:
            LLMProviderError: If embedding generation fails
        """
        try:
            response = await self.client.post(
                "/api/embeddings",
                json={
                    "model": self.embedding_model,
                    "prompt": text,
                },
            )
            response.raise_for_status()

        except httpx.HTTPStatusError as e:
            raise LLMProviderError(
                f"Ollama embedding API error: {e.response.status_code} - {e.response.text}",
                error_type=ErrorType.RECOVERABLE,
                original_error=e,
            )
        except httpx.TimeoutException as e:
            raise LLMProviderError(
                f"Ollama embedding timeout: {str(e)}",
                error_type=ErrorType.TIMEOUT,
                original_error=e,
            )
        except httpx.RequestError as e:
            raise LLMProviderError(
                f"Ollama connection error: {str(e)}",
                error_type=ErrorType.FATAL,
                original_error=e,
            )

        embedding = response.json().get("embedding", [])
        if not embedding:
            raise LLMProviderError(
                "No embedding returned from Ollama",
                error_type=ErrorType.RECOVERABLE,
            )

        return embedding, self.embedding_model, len(embedding)

    async def close(self) -> None:
        """Close the HTTP client."""
        await self.client.aclose()
