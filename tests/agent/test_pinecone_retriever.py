"""
Tests for the Pinecone retriever.

Tests cartridge index naming, merging and ranking of matches across
cartridges, threshold and truncation, and index host discovery.
"""

import aiohttp
import pytest
from unittest.mock import AsyncMock, MagicMock

from intelichat.agent.domain.entities import RetrievalSource
from intelichat.agent.domain.exceptions import RetrievalError
from intelichat.agent.persistence.memory import InMemoryAgentStore
from intelichat.agent.retrieval.pinecone import (
    DEFAULT_INDEX_NAME,
    PineconeConfig,
    PineconeRetriever,
    index_name_for,
)


class FakeResponse:
    def __init__(self, status=200, payload=None):
        self.status = status
        self._payload = payload

    async def json(self):
        return self._payload

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False


def _match(score, content):
    return {"score": score, "metadata": {"content": content}}


@pytest.fixture
def store():
    store = InMemoryAgentStore()
    store.add_retrieval_source(
        200, RetrievalSource(id=1, name="guia", provider="pinecone", index_name="guia-idx")
    )
    store.add_retrieval_source(
        200, RetrievalSource(id=2, name="faq", provider="pinecone", index_name="faq-idx")
    )
    store.add_retrieval_source(
        200, RetrievalSource(id=3, name="web", provider="elastic", index_name="web")
    )
    return store


@pytest.fixture
def embedder():
    embedder = MagicMock()
    embedder.embed = AsyncMock(return_value=([0.1, 0.2, 0.3], "text-embedding-3-small", 3))
    return embedder


@pytest.fixture
def retriever(store, embedder):
    return PineconeRetriever(store, embedder, PineconeConfig(api_key="pcsk-test"))


class TestIndexName:
    """Tests for cartridge index naming."""

    def test_explicit_name(self):
        source = RetrievalSource(id=1, name="x", provider="pinecone", index_name="mi-indice")
        assert index_name_for(source) == "mi-indice"

    def test_parsed_from_endpoint(self):
        source = RetrievalSource(
            id=1,
            name="x",
            provider="pinecone",
            endpoint="https://docs-pinecone-abc123.svc.aped-4627-b74a.pinecone.io",
        )
        assert index_name_for(source) == "docs-pinecone"

    def test_default(self):
        source = RetrievalSource(id=1, name="x", provider="pinecone")
        assert index_name_for(source) == DEFAULT_INDEX_NAME


class TestSearch:
    """Tests for ranked search."""

    @pytest.mark.asyncio
    async def test_merges_filters_and_ranks(self, retriever, embedder):
        matches = {
            "guia-idx": [_match(0.75, "Guía A"), _match(0.5, "Guía B")],
            "faq-idx": [_match(0.95, "FAQ A"), {"score": 0.8, "metadata": {"text": "FAQ B"}}],
        }
        retriever._query_index = AsyncMock(side_effect=lambda name, vector, top_k: matches[name])

        result = await retriever.search(
            "¿requisitos?", 200, 3, max_results=2, score_threshold=0.7
        )

        assert [p.content for p in result.passages] == ["FAQ A", "FAQ B"]
        assert [p.source for p in result.passages] == ["faq", "faq"]
        assert result.total_results == 3
        assert retriever._query_index.await_count == 2
        embedder.embed.assert_awaited_once_with("¿requisitos?")

    @pytest.mark.asyncio
    async def test_failing_cartridge_skipped(self, retriever):
        async def query(name, vector, top_k):
            if name == "guia-idx":
                raise aiohttp.ClientConnectionError("reset")
            return [_match(0.9, "FAQ A")]

        retriever._query_index = query

        result = await retriever.search("hola", 200, None, score_threshold=0.5)

        assert [p.content for p in result.passages] == ["FAQ A"]

    @pytest.mark.asyncio
    async def test_no_api_key(self, store, embedder):
        retriever = PineconeRetriever(store, embedder, PineconeConfig(api_key=None))

        result = await retriever.search("hola", 200, None)

        assert result.passages == []
        embedder.embed.assert_not_called()

    @pytest.mark.asyncio
    async def test_agent_without_cartridges(self, retriever, embedder):
        result = await retriever.search("hola", 999, None)

        assert result.total_results == 0
        embedder.embed.assert_not_called()

    @pytest.mark.asyncio
    async def test_embedding_failure_raises(self, retriever, embedder):
        embedder.embed = AsyncMock(side_effect=RuntimeError("quota"))

        with pytest.raises(RetrievalError):
            await retriever.search("hola", 200, None)


class TestIndexQueries:
    """Tests for the Pinecone HTTP calls."""

    @pytest.mark.asyncio
    async def test_host_lookup_cached_and_query_sent(self, retriever):
        session = MagicMock()
        session.closed = False
        session.get = MagicMock(
            return_value=FakeResponse(
                payload={"indexes": [{"name": "guia-idx", "host": "guia-idx-1.svc.pinecone.io"}]}
            )
        )
        session.post = MagicMock(
            side_effect=[
                FakeResponse(payload={"matches": [_match(0.9, "A")]}),
                FakeResponse(payload={"matches": []}),
            ]
        )
        retriever._session = session

        first = await retriever._query_index("guia-idx", [0.1], 5)
        second = await retriever._query_index("guia-idx", [0.1], 5)

        assert first == [_match(0.9, "A")]
        assert second == []
        session.get.assert_called_once()
        assert session.get.call_args.args[0] == "https://api.pinecone.io/indexes"
        assert session.get.call_args.kwargs["headers"]["Api-Key"] == "pcsk-test"
        post_args = session.post.call_args
        assert post_args.args[0] == "https://guia-idx-1.svc.pinecone.io/query"
        assert post_args.kwargs["json"] == {
            "vector": [0.1],
            "topK": 5,
            "includeMetadata": True,
            "includeValues": False,
        }

    @pytest.mark.asyncio
    async def test_unknown_index(self, retriever):
        session = MagicMock()
        session.closed = False
        session.get = MagicMock(return_value=FakeResponse(payload={"indexes": []}))
        session.post = MagicMock()
        retriever._session = session

        assert await retriever._query_index("nope", [0.1], 5) == []
        session.post.assert_not_called()
