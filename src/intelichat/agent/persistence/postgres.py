"""
PostgreSQL Store Implementations.

Agent configuration and conversation persistence on asyncpg:
- PostgresAgentStore reads agents, chatbots, LLM models, RAG cartridges and tool routes
- PostgresConversationStore persists chats, their messages and the session state

Session state is stored as a `SESSION_STATE:<json>` system message after
each turn; system messages are never returned as conversation history.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Optional, Protocol

from ..domain.entities import (
    AgentBundle,
    AgentProfile,
    ChatbotInfo,
    ConversationInfo,
    Message,
    MessageKind,
    MessageRole,
    RetrievalSource,
    SessionState,
    ToolAuth,
    ToolRoute,
    render_state,
)
from ..domain.exceptions import AgentNotFoundError
from ..domain.ports import IAgentStore, IConversationStore

logger = logging.getLogger(__name__)


SESSION_STATE_PREFIX = "SESSION_STATE:"

# Canned message columns: (kind, column prefix); each has _es and _en variants.
MESSAGE_COLUMNS = (
    (MessageKind.WELCOME, "mensaje_bienvenida"),
    (MessageKind.HANDBACK, "mensaje_retorno"),
    (MessageKind.HANDOFF_CONFIRMATION, "mensaje_handoff_confirmacion"),
    (MessageKind.END_OF_TASK, "mensaje_final_tarea"),
    (MessageKind.FAREWELL, "mensaje_despedida"),
)


class IAsyncDBPool(Protocol):
    """Protocol for async database pool."""

    async def acquire(self): ...
    async def execute(self, query: str, *args) -> str: ...
    async def fetch(self, query: str, *args) -> list[Any]: ...
    async def fetchrow(self, query: str, *args) -> Optional[Any]: ...
    async def fetchval(self, query: str, *args) -> Any: ...


def _load_json(value: Any) -> dict[str, Any]:
    """Decode a json/jsonb/text column into a dict ({} when empty or invalid)."""
    if value is None:
        return {}
    if isinstance(value, dict):
        return value
    try:
        decoded = json.loads(value)
    except (TypeError, json.JSONDecodeError) as e:
        logger.error(f"Invalid JSON column value: {e}")
        return {}
    return decoded if isinstance(decoded, dict) else {}


def bundle_from_row(row: Any) -> AgentBundle:
    """Build an AgentBundle from a cfg_agente row."""
    messages: dict[MessageKind, dict[str, str]] = {}
    for kind, prefix in MESSAGE_COLUMNS:
        variants = {
            lang: row[f"{prefix}_{lang}"]
            for lang in ("es", "en")
            if row[f"{prefix}_{lang}"]
        }
        if variants:
            messages[kind] = variants

    instructions = {
        lang: row[f"system_prompt_{lang}"]
        for lang in ("es", "en")
        if row[f"system_prompt_{lang}"]
    }

    temperature = row["temperatura"]
    return AgentBundle(
        name=row["nombre"].lower(),
        instructions=instructions,
        temperature=float(temperature) if temperature is not None else None,
        max_tokens=row["max_tokens"],
        messages=messages,
        agent_id=row["id"],
        retrieval_enabled=bool(row["rag_habilitado"]),
        llm_provider=row["proveedor"].lower() if row["proveedor"] else None,
        llm_model=row["modelo"],
        source="store",
    )


class PostgresAgentStore(IAgentStore):
    """PostgreSQL-backed agent configuration store.

    Usage:
        pool = await asyncpg.create_pool(database_url)
        store = PostgresAgentStore(pool)

        bundle = await store.get_agent_bundle("info", chatbot_id=7)
    """

    def __init__(self, db_pool: IAsyncDBPool):
        """Initialize the agent store.

        Args:
            db_pool: Async database connection pool
        """
        self.db = db_pool

    async def get_agent_bundle(
        self, agent_name: str, chatbot_id: Optional[int]
    ) -> AgentBundle:
        message_columns = ", ".join(
            f"a.{prefix}_{lang}" for _, prefix in MESSAGE_COLUMNS for lang in ("es", "en")
        )
        row = await self.db.fetchrow(
            f"""
            SELECT a.id, a.nombre, a.system_prompt_es, a.system_prompt_en,
                   a.temperatura, a.max_tokens, {message_columns},
                   m.nombre_modelo AS modelo, p.nombre AS proveedor,
                   EXISTS (
                       SELECT 1
                       FROM cfg_agente_rag_cartucho arc
                       JOIN cfg_rag_cartucho c ON c.id = arc.cartucho_id
                       WHERE arc.agente_id = a.id AND c.habilitado
                   ) AS rag_habilitado
            FROM cfg_agente a
            LEFT JOIN cfg_llm_modelo m ON a.llm_modelo_id = m.id
            LEFT JOIN cfg_llm_proveedor p ON m.proveedor_id = p.id
            WHERE LOWER(a.nombre) = LOWER($1)
              AND ($2::int IS NULL OR a.chatbot_id = $2)
              AND a.is_active
            ORDER BY a.orden ASC, a.id ASC
            LIMIT 1
            """,
            agent_name,
            chatbot_id,
        )
        if row is None:
            raise AgentNotFoundError(agent_name, chatbot_id)
        return bundle_from_row(row)

    async def resolve_client_id(self, chatbot_id: int) -> Optional[int]:
        return await self.db.fetchval(
            "SELECT cliente_id FROM cfg_chatbot WHERE id = $1",
            chatbot_id,
        )

    async def get_default_agent(self, chatbot_id: int) -> Optional[str]:
        name = await self.db.fetchval(
            """
            SELECT nombre FROM cfg_agente
            WHERE chatbot_id = $1 AND is_active
            ORDER BY orden ASC, id ASC
            LIMIT 1
            """,
            chatbot_id,
        )
        return name.lower() if name else None

    async def get_chatbot(self, chatbot_id: int) -> Optional[ChatbotInfo]:
        row = await self.db.fetchrow(
            """
            SELECT cb.id, cb.cliente_id, cb.nombre, cl.nombre AS cliente_nombre
            FROM cfg_chatbot cb
            JOIN cfg_cliente cl ON cb.cliente_id = cl.id
            WHERE cb.id = $1 AND cb.is_active AND cl.is_active
            """,
            chatbot_id,
        )
        if row is None:
            return None
        return ChatbotInfo(
            id=row["id"],
            client_id=row["cliente_id"],
            name=row["nombre"],
            client_name=row["cliente_nombre"],
        )

    async def get_agent_profile(
        self, agent_name: str, chatbot_id: Optional[int]
    ) -> Optional[AgentProfile]:
        row = await self.db.fetchrow(
            """
            SELECT a.id, a.nombre, a.color,
                   m.nombre_modelo AS modelo, p.nombre AS proveedor
            FROM cfg_agente a
            LEFT JOIN cfg_llm_modelo m ON a.llm_modelo_id = m.id
            LEFT JOIN cfg_llm_proveedor p ON m.proveedor_id = p.id
            WHERE LOWER(a.nombre) = LOWER($1)
              AND ($2::int IS NULL OR a.chatbot_id = $2)
            ORDER BY a.id ASC
            LIMIT 1
            """,
            agent_name,
            chatbot_id,
        )
        if row is None:
            return None
        return AgentProfile(
            name=row["nombre"],
            id=row["id"],
            color=row["color"],
            model=row["modelo"],
            provider=row["proveedor"],
        )

    async def get_retrieval_sources(
        self, agent_id: int, client_id: Optional[int]
    ) -> list[RetrievalSource]:
        rows = await self.db.fetch(
            """
            SELECT c.id, c.nombre, c.proveedor, c.indice_nombre, c.endpoint,
                   c.topk_default
            FROM cfg_rag_cartucho c
            JOIN cfg_agente_rag_cartucho arc ON c.id = arc.cartucho_id
            WHERE arc.agente_id = $1
              AND ($2::int IS NULL OR c.cliente_id = $2)
              AND c.habilitado
            ORDER BY arc.prioridad_orden ASC
            """,
            agent_id,
            client_id,
        )
        return [
            RetrievalSource(
                id=row["id"],
                name=row["nombre"],
                provider=row["proveedor"],
                index_name=row["indice_nombre"],
                endpoint=row["endpoint"],
                top_k=row["topk_default"] or 5,
            )
            for row in rows
        ]

    async def get_tool_route(self, tool_name: str) -> Optional[ToolRoute]:
        row = await self.db.fetchrow(
            """
            SELECT h.base_url, r.path, r.metodo,
                   auth.id AS auth_id, auth.tipo AS auth_tipo,
                   auth.config_json AS auth_config
            FROM cfg_herramienta_ruta r
            JOIN cfg_herramienta h ON r.herramienta_id = h.id
            LEFT JOIN cfg_herramienta_auth auth ON h.herramienta_auth_id = auth.id
            WHERE r.nombre = $1 AND h.is_active AND r.is_active
            LIMIT 1
            """,
            tool_name,
        )
        if row is None:
            return None

        auth = None
        if row["auth_id"] is not None:
            auth = ToolAuth(
                id=row["auth_id"],
                type=row["auth_tipo"],
                config=_load_json(row["auth_config"]),
            )
        return ToolRoute(
            name=tool_name,
            base_url=row["base_url"],
            path=row["path"] or "",
            method=row["metodo"] or "POST",
            auth=auth,
        )

    async def ping(self) -> bool:
        return await self.db.fetchval("SELECT 1") == 1


class PostgresConversationStore(IConversationStore):
    """PostgreSQL-based conversation store.

    Usage:
        store = PostgresConversationStore(db_pool)

        chat_id = await store.create_conversation(1, 7, "Chat con Soporte")
        await store.append_messages(chat_id, result.new_entries)
        await store.save_session_state(chat_id, result.session_state)
    """

    def __init__(self, db_pool: IAsyncDBPool):
        """Initialize the conversation store.

        Args:
            db_pool: Async database connection pool
        """
        self.db = db_pool

    async def create_conversation(
        self, client_id: int, chatbot_id: int, title: str
    ) -> int:
        chat_id = await self.db.fetchval(
            """
            INSERT INTO ejec_chat (cliente_id, chatbot_id, titulo)
            VALUES ($1, $2, $3)
            RETURNING id
            """,
            client_id,
            chatbot_id,
            title,
        )
        logger.info(f"Created chat {chat_id} for chatbot {chatbot_id}")
        return chat_id

    async def get_conversation(self, chat_id: int) -> Optional[ConversationInfo]:
        row = await self.db.fetchrow(
            "SELECT id, cliente_id, chatbot_id, titulo FROM ejec_chat WHERE id = $1",
            chat_id,
        )
        if row is None:
            return None
        return ConversationInfo(
            id=row["id"],
            client_id=row["cliente_id"],
            chatbot_id=row["chatbot_id"],
            title=row["titulo"],
        )

    async def load_history(self, chat_id: int) -> list[Message]:
        rows = await self.db.fetch(
            """
            SELECT rol, contenido, agente, created_at
            FROM ejec_mensaje
            WHERE chat_id = $1 AND rol <> 'system'
            ORDER BY created_at ASC, id ASC
            """,
            chat_id,
        )
        return [
            Message(
                role=MessageRole(row["rol"]),
                content=row["contenido"],
                agent_name=row["agente"],
                created_at=row["created_at"],
            )
            for row in rows
        ]

    async def append_messages(self, chat_id: int, messages: list[Message]) -> None:
        if not messages:
            return

        async with self.db.acquire() as conn:
            async with conn.transaction():
                await conn.executemany(
                    """
                    INSERT INTO ejec_mensaje (chat_id, rol, contenido, agente, created_at)
                    VALUES ($1, $2, $3, $4, $5)
                    """,
                    [
                        (
                            chat_id,
                            message.role.value,
                            message.content,
                            message.agent_name,
                            message.created_at,
                        )
                        for message in messages
                    ],
                )
        logger.debug(f"Appended {len(messages)} messages to chat {chat_id}")

    async def load_session_state(self, chat_id: int) -> Optional[SessionState]:
        content = await self.db.fetchval(
            """
            SELECT contenido FROM ejec_mensaje
            WHERE chat_id = $1 AND rol = 'system' AND contenido LIKE 'SESSION_STATE:%'
            ORDER BY created_at DESC, id DESC
            LIMIT 1
            """,
            chat_id,
        )
        if content is None:
            return None
        try:
            state = json.loads(content[len(SESSION_STATE_PREFIX):])
        except json.JSONDecodeError as e:
            logger.error(f"Error parsing session state of chat {chat_id}: {e}")
            return None
        return state if isinstance(state, dict) else None

    async def save_session_state(self, chat_id: int, state: SessionState) -> None:
        await self.db.execute(
            """
            INSERT INTO ejec_mensaje (chat_id, rol, contenido)
            VALUES ($1, 'system', $2)
            """,
            chat_id,
            f"{SESSION_STATE_PREFIX}{render_state(state)}",
        )

    async def load_extension_fields(self, chat_id: int) -> dict[str, Any]:
        value = await self.db.fetchval(
            "SELECT extra_json FROM ejec_chat WHERE id = $1",
            chat_id,
        )
        return _load_json(value)
