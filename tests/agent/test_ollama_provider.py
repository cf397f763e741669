"""
Unit tests for Ollama provider.

Tests that Ollama chat and embedding requests are built correctly and
that HTTP failures surface as LLMProviderError.
"""

import httpx
import pytest
from unittest.mock import AsyncMock, MagicMock

from intelichat.agent.domain.entities import ErrorType, Message, MessageRole
from intelichat.agent.providers.base import LLMProviderConfig, LLMProviderError
from intelichat.agent.providers.ollama import OllamaProvider


@pytest.fixture
def ollama_config():
    """Test Ollama config."""
    return LLMProviderConfig(
        api_key="not-needed",  # Ollama doesn't require auth
        model="qwen3:4b",
        base_url="http://localhost:11434",
        embedding_model="nomic-embed-text",
    )


def _response(payload):
    response = MagicMock()
    response.raise_for_status = MagicMock()
    response.json.return_value = payload
    return response


@pytest.fixture
def mock_httpx_client():
    """Mock httpx async client returning a JSON chat reply."""
    client = MagicMock()
    client.post = AsyncMock(
        return_value=_response(
            {"message": {"role": "assistant", "content": '{"say": "Hola"}'}}
        )
    )
    client.aclose = AsyncMock()
    return client


class TestOllamaProvider:
    """Tests for the Ollama provider."""

    def test_defaults(self):
        """Base URL and embedding model fall back to the class defaults."""
        provider = OllamaProvider(LLMProviderConfig(api_key="", model="llama3.1"))

        assert provider.base_url == OllamaProvider.DEFAULT_BASE_URL
        assert provider.embedding_model == "nomic-embed-text"
        assert provider.model_name == "llama3.1"

    @pytest.mark.asyncio
    async def test_complete_posts_json_chat_request(self, ollama_config, mock_httpx_client):
        """complete() posts a non-streaming JSON-format chat request."""
        provider = OllamaProvider(ollama_config)
        provider.client = mock_httpx_client

        messages = [
            Message(role=MessageRole.USER, content="hola"),
            Message(role=MessageRole.TOOL_RESULT, content="TOOL_RESULT: NO_PENDING_DOCS"),
        ]
        reply = await provider.complete(
            messages, system_prompt="Eres info.", temperature=0.2, max_tokens=300
        )

        assert reply == '{"say": "Hola"}'

        path = mock_httpx_client.post.call_args.args[0]
        payload = mock_httpx_client.post.call_args.kwargs["json"]
        assert path == "/api/chat"
        assert payload["model"] == "qwen3:4b"
        assert payload["stream"] is False
        assert payload["format"] == "json"
        assert payload["options"] == {"temperature": 0.2, "num_predict": 300}
        assert payload["messages"] == [
            {"role": "system", "content": "Eres info."},
            {"role": "user", "content": "hola"},
            {"role": "user", "content": "TOOL_RESULT: NO_PENDING_DOCS"},
        ]

    @pytest.mark.asyncio
    async def test_complete_without_json_mode(self, ollama_config, mock_httpx_client):
        """Plain text replies omit the format constraint."""
        provider = OllamaProvider(ollama_config)
        provider.client = mock_httpx_client

        await provider.complete([], json_mode=False)

        payload = mock_httpx_client.post.call_args.kwargs["json"]
        assert "format" not in payload
        assert "num_predict" not in payload["options"]

    @pytest.mark.asyncio
    async def test_empty_reply_raises(self, ollama_config, mock_httpx_client):
        """An empty message content is a provider error."""
        mock_httpx_client.post = AsyncMock(return_value=_response({"message": {}}))
        provider = OllamaProvider(ollama_config)
        provider.client = mock_httpx_client

        with pytest.raises(LLMProviderError) as exc_info:
            await provider.complete([])

        assert exc_info.value.error_type == ErrorType.RECOVERABLE

    @pytest.mark.asyncio
    async def test_http_status_error(self, ollama_config, mock_httpx_client):
        """HTTP error responses are recoverable provider errors."""
        request = httpx.Request("POST", "http://localhost:11434/api/chat")
        error = httpx.HTTPStatusError(
            "server error",
            request=request,
            response=httpx.Response(500, text="model not loaded", request=request),
        )
        response = _response({})
        response.raise_for_status.side_effect = error
        mock_httpx_client.post = AsyncMock(return_value=response)

        provider = OllamaProvider(ollama_config)
        provider.client = mock_httpx_client

        with pytest.raises(LLMProviderError) as exc_info:
            await provider.complete([])

        assert "500" in str(exc_info.value)
        assert exc_info.value.error_type == ErrorType.RECOVERABLE

    @pytest.mark.asyncio
    async def test_timeout(self, ollama_config, mock_httpx_client):
        """Timeouts are reported with the TIMEOUT error type."""
        mock_httpx_client.post = AsyncMock(side_effect=httpx.ReadTimeout("slow"))
        provider = OllamaProvider(ollama_config)
        provider.client = mock_httpx_client

        with pytest.raises(LLMProviderError) as exc_info:
            await provider.complete([])

        assert exc_info.value.error_type == ErrorType.TIMEOUT

    @pytest.mark.asyncio
    async def test_connection_error(self, ollama_config, mock_httpx_client):
        """Connection failures are fatal provider errors."""
        mock_httpx_client.post = AsyncMock(side_effect=httpx.ConnectError("refused"))
        provider = OllamaProvider(ollama_config)
        provider.client = mock_httpx_client

        with pytest.raises(LLMProviderError) as exc_info:
            await provider.complete([])

        assert exc_info.value.error_type == ErrorType.FATAL

    @pytest.mark.asyncio
    async def test_embed(self, ollama_config, mock_httpx_client):
        """Test embedding generation."""
        mock_httpx_client.post = AsyncMock(
            return_value=_response({"embedding": [0.1] * 768})
        )
        provider = OllamaProvider(ollama_config)
        provider.client = mock_httpx_client

        embedding, model, dimension = await provider.embed("Test text")

        assert len(embedding) == 768
        assert model == "nomic-embed-text"
        assert dimension == 768
        assert mock_httpx_client.post.call_args.args[0] == "/api/embeddings"
        assert mock_httpx_client.post.call_args.kwargs["json"] == {
            "model": "nomic-embed-text",
            "prompt": "Test text",
        }

    @pytest.mark.asyncio
    async def test_embed_empty_raises(self, ollama_config, mock_httpx_client):
        """A missing embedding is a provider error."""
        mock_httpx_client.post = AsyncMock(return_value=_response({}))
        provider = OllamaProvider(ollama_config)
        provider.client = mock_httpx_client

        with pytest.raises(LLMProviderError):
            await provider.embed("Test text")

    @pytest.mark.asyncio
    async def test_close(self, ollama_config, mock_httpx_client):
        """close() closes the HTTP client."""
        provider = OllamaProvider(ollama_config)
        provider.client = mock_httpx_client

        await provider.close()

        mock_httpx_client.aclose.assert_awaited_once()
