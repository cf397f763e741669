"""
Unit tests for the OpenAI-compatible provider.

Tests request construction, JSON-object replies, error mapping and
embeddings against a mocked AsyncOpenAI client.
"""

import httpx
import openai
import pytest
from unittest.mock import AsyncMock, MagicMock

from intelichat.agent.domain.entities import ErrorType, Message, MessageRole
from intelichat.agent.providers.base import LLMProviderConfig, LLMProviderError
from intelichat.agent.providers.openai import OpenAIProvider

API_URL = "https://api.openai.com/v1/chat/completions"


@pytest.fixture
def openai_config():
    """Test OpenAI config."""
    return LLMProviderConfig(api_key="sk-test", model="gpt-4o-mini")


def _completion(content):
    response = MagicMock()
    response.choices = [MagicMock(message=MagicMock(content=content))]
    return response


@pytest.fixture
def mock_openai_client():
    """Mock AsyncOpenAI client."""
    client = MagicMock()
    client.chat.completions.create = AsyncMock(
        return_value=_completion('{"say": "Hola", "action": null}')
    )

    embedding_response = MagicMock()
    embedding_response.data = [MagicMock(embedding=[0.1] * 1536)]
    client.embeddings.create = AsyncMock(return_value=embedding_response)
    client.close = AsyncMock()
    return client


@pytest.fixture
def provider(openai_config, mock_openai_client):
    provider = OpenAIProvider(openai_config)
    provider.client = mock_openai_client
    return provider


class TestOpenAICompletion:
    """Tests for chat completions."""

    @pytest.mark.asyncio
    async def test_complete_request(self, provider, mock_openai_client):
        """complete() sends a non-streaming JSON-object request."""
        messages = [
            Message(role=MessageRole.USER, content="Estado actual: {}"),
            Message(role=MessageRole.ASSISTANT, content="¡Hola!", agent_name="info"),
        ]

        reply = await provider.complete(
            messages, system_prompt="Eres info.", temperature=0.3, max_tokens=512
        )

        assert reply == '{"say": "Hola", "action": null}'
        kwargs = mock_openai_client.chat.completions.create.call_args.kwargs
        assert kwargs["model"] == "gpt-4o-mini"
        assert kwargs["temperature"] == 0.3
        assert kwargs["top_p"] == 1
        assert kwargs["stream"] is False
        assert kwargs["max_tokens"] == 512
        assert kwargs["response_format"] == {"type": "json_object"}
        assert kwargs["messages"][0] == {"role": "system", "content": "Eres info."}
        assert kwargs["messages"][2] == {"role": "assistant", "content": "¡Hola!"}

    @pytest.mark.asyncio
    async def test_tool_results_sent_as_user_turns(self, provider, mock_openai_client):
        """Tool result entries are delivered to the model as user messages."""
        await provider.complete(
            [Message(role=MessageRole.TOOL_RESULT, content="TOOL_RESULT: {}")]
        )

        kwargs = mock_openai_client.chat.completions.create.call_args.kwargs
        assert kwargs["messages"] == [{"role": "user", "content": "TOOL_RESULT: {}"}]

    @pytest.mark.asyncio
    async def test_plain_text_mode(self, provider, mock_openai_client):
        """json_mode=False omits response_format."""
        await provider.complete([], json_mode=False)

        kwargs = mock_openai_client.chat.completions.create.call_args.kwargs
        assert "response_format" not in kwargs

    @pytest.mark.asyncio
    async def test_empty_reply_raises(self, provider, mock_openai_client):
        """An empty completion is a recoverable provider error."""
        mock_openai_client.chat.completions.create = AsyncMock(
            return_value=_completion("")
        )

        with pytest.raises(LLMProviderError) as exc_info:
            await provider.complete([])

        assert exc_info.value.error_type == ErrorType.RECOVERABLE

    @pytest.mark.asyncio
    async def test_rate_limit_error(self, provider, mock_openai_client):
        """Rate limits map to RATE_LIMIT."""
        request = httpx.Request("POST", API_URL)
        mock_openai_client.chat.completions.create = AsyncMock(
            side_effect=openai.RateLimitError(
                "slow down",
                response=httpx.Response(429, request=request),
                body=None,
            )
        )

        with pytest.raises(LLMProviderError) as exc_info:
            await provider.complete([])

        assert exc_info.value.error_type == ErrorType.RATE_LIMIT

    @pytest.mark.asyncio
    async def test_timeout_error(self, provider, mock_openai_client):
        """Client timeouts map to TIMEOUT."""
        mock_openai_client.chat.completions.create = AsyncMock(
            side_effect=openai.APITimeoutError(request=httpx.Request("POST", API_URL))
        )

        with pytest.raises(LLMProviderError) as exc_info:
            await provider.complete([])

        assert exc_info.value.error_type == ErrorType.TIMEOUT

    @pytest.mark.asyncio
    async def test_api_error(self, provider, mock_openai_client):
        """Other API errors are recoverable."""
        mock_openai_client.chat.completions.create = AsyncMock(
            side_effect=openai.APIError(
                "bad gateway", request=httpx.Request("POST", API_URL), body=None
            )
        )

        with pytest.raises(LLMProviderError) as exc_info:
            await provider.complete([])

        assert exc_info.value.error_type == ErrorType.RECOVERABLE


class TestOpenAIEmbedding:
    """Tests for OpenAI embeddings."""

    def test_default_embedding_model(self, provider):
        assert provider.embedding_model == "text-embedding-3-small"

    def test_custom_embedding_model(self):
        provider = OpenAIProvider(
            LLMProviderConfig(
                api_key="sk-test",
                model="gpt-4o-mini",
                embedding_model="text-embedding-3-large",
            )
        )
        assert provider.embedding_model == "text-embedding-3-large"

    @pytest.mark.asyncio
    async def test_embed(self, provider, mock_openai_client):
        """Test embedding generation."""
        embedding, model, dimension = await provider.embed("¿Cuáles son los requisitos?")

        assert len(embedding) == 1536
        assert model == "text-embedding-3-small"
        assert dimension == 1536

    @pytest.mark.asyncio
    async def test_embed_truncates_long_input(self, provider, mock_openai_client):
        """Embedding input is capped at MAX_EMBEDDING_INPUT_CHARS."""
        await provider.embed("x" * 10000)

        kwargs = mock_openai_client.embeddings.create.call_args.kwargs
        assert len(kwargs["input"]) == OpenAIProvider.MAX_EMBEDDING_INPUT_CHARS

    @pytest.mark.asyncio
    async def test_embed_error(self, provider, mock_openai_client):
        mock_openai_client.embeddings.create = AsyncMock(
            side_effect=openai.APIError(
                "boom", request=httpx.Request("POST", API_URL), body=None
            )
        )

        with pytest.raises(LLMProviderError):
            await provider.embed("texto")

    @pytest.mark.asyncio
    async def test_close(self, provider, mock_openai_client):
        await provider.close()

        mock_openai_client.close.assert_awaited_once()
