"""
OpenAI-compatible LLM Provider.

Implements the ILLMProvider interface for OpenAI's chat completions API
and for OpenAI-compatible endpoints (OpenRouter, Groq) reached through
a custom base URL. Supports JSON-object replies and embeddings.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import openai
from openai import AsyncOpenAI

from ..domain.entities import ErrorType, Message
from .base import BaseLLMProvider, LLMProviderConfig, LLMProviderError

logger = logging.getLogger(__name__)


class OpenAIProvider(BaseLLMProvider):
    """OpenAI-compatible provider implementation.

    Supports:
    - OpenAI GPT models
    - OpenRouter and Groq via their OpenAI-compatible base URLs
    - JSON-object response format
    - Embeddings (text-embedding-3-small/large)

    Usage:
        config = LLMProviderConfig(
            api_key="sk-...",
            model="gpt-4o-mini",
        )
        provider = OpenAIProvider(config)

        reply = await provider.complete(messages, system_prompt=prompt)
    """

    DEFAULT_MODEL = "gpt-4o-mini"
    DEFAULT_EMBEDDING_MODEL = "text-embedding-3-small"

    # Embedding input is truncated to this many characters
    MAX_EMBEDDING_INPUT_CHARS = 8000

    def __init__(self, config: LLMProviderConfig):
        """Initialize the OpenAI provider.

        Args:
            config: Provider configuration
        """
        super().__init__(config)

        self.embedding_model = (
            config.embedding_model or self.DEFAULT_EMBEDDING_MODEL
        )

        self.client = AsyncOpenAI(
            api_key=config.api_key,
            base_url=config.base_url,
            timeout=config.timeout,
            max_retries=config.max_retries,
            default_headers=config.extra.get("default_headers"),
        )

    async def complete(
        self,
        messages: list[Message],
        system_prompt: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: Optional[int] = None,
        json_mode: bool = True,
    ) -> str:
        """Generate a single non-streaming reply.

        Args:
            messages: Messages after the system prompt
            system_prompt: System prompt
            temperature: Sampling temperature
            max_tokens: Maximum tokens to generate
            json_mode: Request a JSON-object reply

        Returns:
            Reply text

        Raises:
            LLMProviderError: On API errors or an empty reply
        """
        kwargs: dict[str, Any] = {
            "model": self.config.model,
            "messages": self._format_messages_for_api(messages, system_prompt),
            "temperature": temperature,
            "top_p": 1,
            "stream": False,
        }

        if max_tokens:
            kwargs["max_tokens"] = max_tokens

        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}

        try:
            response = await self.client.chat.completions.create(**kwargs)

        except openai.RateLimitError as e:
            logger.warning(f"Rate limited by provider: {e}")
            raise LLMProviderError(
                f"Rate limited: {e}",
                error_type=ErrorType.RATE_LIMIT,
                original_error=e,
            )
        except openai.APITimeoutError as e:
            logger.error(f"Provider API timeout: {e}")
            raise LLMProviderError(
                f"Request timed out: {e}",
                error_type=ErrorType.TIMEOUT,
                original_error=e,
            )
        except openai.APIError as e:
            logger.error(f"Provider API error: {e}")
            raise LLMProviderError(
                f"API error: {e}",
                error_type=ErrorType.RECOVERABLE,
                original_error=e,
            )

        choice = response.choices[0] if response.choices else None
        content = choice.message.content if choice and choice.message else None
        if not content:
            raise LLMProviderError(
                "The model reply is empty",
                error_type=ErrorType.RECOVERABLE,
            )

        return content

    async def embed(self, text: str) -> tuple[list[float], str, int]:
        """Generate an embedding for text.

        Args:
            text: Text to embed

        Returns:
            Tuple of (embedding_vector, model_name, dimension)

        Raises:
            LLMProviderError: On API errors
        """
        try:
            response = await self.client.embeddings.create(
                model=self.embedding_model,
                input=text[: self.MAX_EMBEDDING_INPUT_CHARS],
            )

            embedding = response.data[0].embedding
            return embedding, self.embedding_model, len(embedding)

        except openai.RateLimitError as e:
            logger.warning(f"Rate limited during embedding: {e}")
            raise LLMProviderError(
                f"Rate limited: {e}",
                error_type=ErrorType.RATE_LIMIT,
                original_error=e,
            )
        except openai.APIError as e:
            logger.error(f"Embedding error: {e}")
            raise LLMProviderError(
                f"Embedding failed: {e}",
                error_type=ErrorType.RECOVERABLE,
                original_error=e,
            )

    async def close(self) -> None:
        """Close the client."""
        await self.client.close()
