"""
Tests for the PostgreSQL stores.

Uses a mocked asyncpg pool; verifies row mapping, session state
round-tripping through system messages and transactional appends.
"""

import json

import pytest
from unittest.mock import AsyncMock, MagicMock

from intelichat.agent.domain.entities import Message, MessageKind, MessageRole
from intelichat.agent.domain.exceptions import AgentNotFoundError
from intelichat.agent.persistence.postgres import (
    MESSAGE_COLUMNS,
    SESSION_STATE_PREFIX,
    PostgresAgentStore,
    PostgresConversationStore,
    bundle_from_row,
)


def _agent_row(**overrides):
    row = {
        "id": 200,
        "nombre": "Onboarding",
        "system_prompt_es": "Eres Onboarding.",
        "system_prompt_en": None,
        "temperatura": 0.3,
        "max_tokens": 800,
        "modelo": "gpt-4o",
        "proveedor": "OpenAI",
        "rag_habilitado": True,
    }
    for _, prefix in MESSAGE_COLUMNS:
        row[f"{prefix}_es"] = None
        row[f"{prefix}_en"] = None
    row.update(overrides)
    return row


@pytest.fixture
def mock_pool():
    """Mock asyncpg pool with a transactional connection."""
    pool = MagicMock()
    pool.fetchrow = AsyncMock(return_value=None)
    pool.fetch = AsyncMock(return_value=[])
    pool.fetchval = AsyncMock(return_value=None)
    pool.execute = AsyncMock(return_value="INSERT 0 1")

    conn = MagicMock()
    conn.executemany = AsyncMock()
    pool.acquire.return_value.__aenter__.return_value = conn
    pool.conn = conn
    return pool


class TestBundleFromRow:
    """Tests for cfg_agente row mapping."""

    def test_maps_columns(self):
        bundle = bundle_from_row(
            _agent_row(
                mensaje_final_tarea_es="Registro completado.",
                mensaje_final_tarea_en="Registration complete.",
                mensaje_despedida_es="Adiós",
            )
        )

        assert bundle.name == "onboarding"
        assert bundle.agent_id == 200
        assert bundle.instructions == {"es": "Eres Onboarding."}
        assert bundle.temperature == 0.3
        assert bundle.max_tokens == 800
        assert bundle.retrieval_enabled is True
        assert bundle.llm_provider == "openai"
        assert bundle.llm_model == "gpt-4o"
        assert bundle.messages == {
            MessageKind.END_OF_TASK: {
                "es": "Registro completado.",
                "en": "Registration complete.",
            },
            MessageKind.FAREWELL: {"es": "Adiós"},
        }

    def test_nullable_columns(self):
        bundle = bundle_from_row(
            _agent_row(temperatura=None, proveedor=None, modelo=None, rag_habilitado=False)
        )

        assert bundle.temperature is None
        assert bundle.llm_provider is None
        assert bundle.retrieval_enabled is False
        assert bundle.messages == {}


class TestPostgresAgentStore:
    """Tests for agent configuration reads."""

    @pytest.mark.asyncio
    async def test_get_agent_bundle(self, mock_pool):
        mock_pool.fetchrow = AsyncMock(return_value=_agent_row())
        store = PostgresAgentStore(mock_pool)

        bundle = await store.get_agent_bundle("ONBOARDING", 7)

        assert bundle.name == "onboarding"
        assert mock_pool.fetchrow.call_args.args[1:] == ("ONBOARDING", 7)

    @pytest.mark.asyncio
    async def test_missing_agent(self, mock_pool):
        store = PostgresAgentStore(mock_pool)

        with pytest.raises(AgentNotFoundError):
            await store.get_agent_bundle("ventas", 7)

    @pytest.mark.asyncio
    async def test_get_tool_route_with_auth(self, mock_pool):
        mock_pool.fetchrow = AsyncMock(
            return_value={
                "base_url": "https://api.example.com",
                "path": "/carriers",
                "metodo": None,
                "auth_id": 4,
                "auth_tipo": "bearer",
                "auth_config": json.dumps({"token_url": "https://api.example.com/login"}),
            }
        )
        store = PostgresAgentStore(mock_pool)

        route = await store.get_tool_route("registerCarrier")

        assert route.method == "POST"
        assert route.auth.id == 4
        assert route.auth.config == {"token_url": "https://api.example.com/login"}

    @pytest.mark.asyncio
    async def test_default_agent_lowercased(self, mock_pool):
        mock_pool.fetchval = AsyncMock(return_value="Info")

        assert await PostgresAgentStore(mock_pool).get_default_agent(7) == "info"

    @pytest.mark.asyncio
    async def test_retrieval_sources(self, mock_pool):
        mock_pool.fetch = AsyncMock(
            return_value=[
                {
                    "id": 1,
                    "nombre": "guia",
                    "proveedor": "pinecone",
                    "indice_nombre": None,
                    "endpoint": "https://guia-abc.svc.pinecone.io",
                    "topk_default": None,
                }
            ]
        )

        sources = await PostgresAgentStore(mock_pool).get_retrieval_sources(200, 3)

        assert sources[0].name == "guia"
        assert sources[0].top_k == 5


class TestPostgresConversationStore:
    """Tests for conversation persistence."""

    @pytest.mark.asyncio
    async def test_session_state_round_trip(self, mock_pool):
        store = PostgresConversationStore(mock_pool)
        state = {"active_agent": "onboarding", "dot_number": "123", "isHandbackTurn": False}

        await store.save_session_state(5, state)

        content = mock_pool.execute.call_args.args[2]
        assert content.startswith(SESSION_STATE_PREFIX)

        mock_pool.fetchval = AsyncMock(return_value=content)
        assert await store.load_session_state(5) == state

    @pytest.mark.asyncio
    async def test_missing_or_corrupt_state(self, mock_pool):
        store = PostgresConversationStore(mock_pool)

        assert await store.load_session_state(5) is None

        mock_pool.fetchval = AsyncMock(return_value=SESSION_STATE_PREFIX + "{broken")
        assert await store.load_session_state(5) is None

    @pytest.mark.asyncio
    async def test_load_history(self, mock_pool):
        mock_pool.fetch = AsyncMock(
            return_value=[
                {"rol": "user", "contenido": "hola", "agente": None, "created_at": None},
                {"rol": "assistant", "contenido": "¡Hola!", "agente": "info", "created_at": None},
                {"rol": "tool_result", "contenido": "TOOL_RESULT: {}", "agente": None, "created_at": None},
            ]
        )

        history = await PostgresConversationStore(mock_pool).load_history(5)

        assert [m.role for m in history] == [
            MessageRole.USER,
            MessageRole.ASSISTANT,
            MessageRole.TOOL_RESULT,
        ]
        assert history[1].agent_name == "info"

    @pytest.mark.asyncio
    async def test_append_messages_in_transaction(self, mock_pool):
        store = PostgresConversationStore(mock_pool)
        messages = [
            Message(role=MessageRole.USER, content="hola"),
            Message(role=MessageRole.ASSISTANT, content="¡Hola!", agent_name="info"),
        ]

        await store.append_messages(5, messages)

        mock_pool.conn.transaction.assert_called_once()
        rows = mock_pool.conn.executemany.call_args.args[1]
        assert [(r[0], r[1], r[2], r[3]) for r in rows] == [
            (5, "user", "hola", None),
            (5, "assistant", "¡Hola!", "info"),
        ]

    @pytest.mark.asyncio
    async def test_append_nothing(self, mock_pool):
        await PostgresConversationStore(mock_pool).append_messages(5, [])

        mock_pool.acquire.assert_not_called()

    @pytest.mark.asyncio
    async def test_extension_fields(self, mock_pool):
        mock_pool.fetchval = AsyncMock(return_value='{"dot_number": "123"}')

        assert await PostgresConversationStore(mock_pool).load_extension_fields(5) == {
            "dot_number": "123"
        }
