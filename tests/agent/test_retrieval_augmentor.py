"""
Tests for retrieval augmentation.

Tests context block rendering, the non-mutating history augmentation and
that retrieval failures never break a turn.
"""

import asyncio

import pytest
from unittest.mock import AsyncMock, MagicMock

from intelichat.agent.domain.entities import (
    AgentBundle,
    Message,
    MessageRole,
    RetrievalPassage,
    RetrievalResult,
)
from intelichat.agent.orchestrator.retrieval_augmentor import (
    CONTEXT_FOOTER,
    CONTEXT_HEADER,
    RetrievalAugmentor,
    augment,
    format_passages,
)


@pytest.fixture
def result():
    return RetrievalResult(
        passages=[
            RetrievalPassage(content="Se requiere número DOT.", score=0.91, source="docs-pinecone"),
            RetrievalPassage(content="El seguro es obligatorio.", score=0.8, source="docs-pinecone"),
        ],
        total_results=3,
    )


@pytest.fixture
def bundle():
    return AgentBundle(name="clientes", agent_id=200, retrieval_enabled=True)


@pytest.fixture
def retrieval_service(result):
    service = MagicMock()
    service.search = AsyncMock(return_value=result)
    return service


class TestFormatPassages:
    """Tests for the context block."""

    def test_block_layout(self, result):
        """The count line reports the passages listed, not every match."""
        block = format_passages(result)

        assert block.startswith("\n\n" + CONTEXT_HEADER)
        assert "Información relevante encontrada (2 resultados):" in block
        assert "[1] (Score: 0.910, Fuente: docs-pinecone)\nSe requiere número DOT." in block
        assert "[2] (Score: 0.800, Fuente: docs-pinecone)" in block
        assert block.index("[1]") < block.index("[2]") < block.index(CONTEXT_FOOTER)

    def test_empty_result(self):
        assert format_passages(RetrievalResult.empty()) == ""


class TestAugment:
    """Tests for prepending the block to the last user entry."""

    def test_prepends_to_last_user_entry_only(self):
        first = Message(role=MessageRole.USER, content="hola")
        reply = Message(role=MessageRole.ASSISTANT, content="¡Hola!", agent_name="info")
        last = Message(role=MessageRole.USER, content="¿requisitos?")
        tool = Message(role=MessageRole.TOOL_RESULT, content="TOOL_RESULT: {}")
        messages = [first, reply, last, tool]

        augmented = augment(messages, "CTX ")

        assert augmented[0] is first
        assert augmented[2].content == "CTX ¿requisitos?"
        assert augmented[2].id == last.id
        assert augmented[3] is tool
        # Input list and entries untouched
        assert last.content == "¿requisitos?"
        assert messages[2] is last

    def test_empty_block_returns_copy(self):
        messages = [Message(role=MessageRole.USER, content="hola")]

        augmented = augment(messages, "")

        assert augmented == messages
        assert augmented is not messages


class TestRetrievalAugmentor:
    """Tests for the retrieval step."""

    @pytest.mark.asyncio
    async def test_fetch(self, retrieval_service, bundle, result):
        augmentor = RetrievalAugmentor(retrieval_service, max_results=5, score_threshold=0.7)

        found, block = await augmentor.fetch("¿requisitos?", bundle, {"cliente_id": 3})

        assert found is result
        assert CONTEXT_HEADER in block
        retrieval_service.search.assert_awaited_once_with(
            "¿requisitos?", 200, 3, max_results=5, score_threshold=0.7
        )

    @pytest.mark.asyncio
    async def test_disabled_agent_skips_search(self, retrieval_service):
        augmentor = RetrievalAugmentor(retrieval_service)

        found, block = await augmentor.fetch("hola", AgentBundle(name="info", agent_id=1), {})

        assert found.passages == []
        assert block == ""
        retrieval_service.search.assert_not_called()

    @pytest.mark.asyncio
    async def test_empty_query_skips_search(self, retrieval_service, bundle):
        augmentor = RetrievalAugmentor(retrieval_service)

        _, block = await augmentor.fetch("   ", bundle, {})

        assert block == ""
        retrieval_service.search.assert_not_called()

    @pytest.mark.asyncio
    async def test_no_service(self, bundle):
        _, block = await RetrievalAugmentor(None).fetch("hola", bundle, {})

        assert block == ""

    @pytest.mark.asyncio
    async def test_failure_returns_empty(self, retrieval_service, bundle):
        retrieval_service.search = AsyncMock(side_effect=ConnectionError("pinecone down"))
        augmentor = RetrievalAugmentor(retrieval_service)

        found, block = await augmentor.fetch("hola", bundle, {})

        assert found.passages == []
        assert block == ""

    @pytest.mark.asyncio
    async def test_timeout_returns_empty(self, retrieval_service, bundle):
        async def slow(*args, **kwargs):
            await asyncio.sleep(1)

        retrieval_service.search = slow
        augmentor = RetrievalAugmentor(retrieval_service, timeout_seconds=0.01)

        _, block = await augmentor.fetch("hola", bundle, {})

        assert block == ""

    @pytest.mark.asyncio
    async def test_no_passages(self, retrieval_service, bundle):
        retrieval_service.search = AsyncMock(return_value=RetrievalResult.empty())
        augmentor = RetrievalAugmentor(retrieval_service)

        _, block = await augmentor.fetch("hola", bundle, {})

        assert block == ""
