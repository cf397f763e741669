"""
In-Memory Store Implementations.

Dictionary-backed agent and conversation stores for local development
and tests. They follow the same contracts as the PostgreSQL stores.
"""

from __future__ import annotations

import copy
import itertools
from typing import Any, Optional

from ..domain.entities import (
    AgentBundle,
    AgentProfile,
    ChatbotInfo,
    ConversationInfo,
    Message,
    RetrievalSource,
    SessionState,
    ToolRoute,
)
from ..domain.exceptions import AgentNotFoundError
from ..domain.ports import IAgentStore, IConversationStore


class InMemoryAgentStore(IAgentStore):
    """Agent configuration held in dictionaries.

    Usage:
        store = InMemoryAgentStore()
        store.add_chatbot(ChatbotInfo(id=7, client_id=1, name="Soporte"))
        store.add_agent(7, AgentBundle(name="info", instructions={"es": "..."}))
    """

    def __init__(self):
        self.chatbots: dict[int, ChatbotInfo] = {}
        # chatbot_id -> agents in priority order
        self.agents: dict[Optional[int], list[AgentBundle]] = {}
        self.profiles: dict[tuple[str, Optional[int]], AgentProfile] = {}
        self.sources: dict[int, list[RetrievalSource]] = {}
        self.routes: dict[str, ToolRoute] = {}
        self.available = True

    def add_chatbot(self, chatbot: ChatbotInfo) -> None:
        self.chatbots[chatbot.id] = chatbot

    def add_agent(
        self,
        chatbot_id: Optional[int],
        bundle: AgentBundle,
        profile: Optional[AgentProfile] = None,
    ) -> None:
        self.agents.setdefault(chatbot_id, []).append(bundle)
        if profile is not None:
            self.profiles[(bundle.name.lower(), chatbot_id)] = profile

    def add_retrieval_source(self, agent_id: int, source: RetrievalSource) -> None:
        self.sources.setdefault(agent_id, []).append(source)

    def add_tool_route(self, route: ToolRoute) -> None:
        self.routes[route.name] = route

    async def get_agent_bundle(
        self, agent_name: str, chatbot_id: Optional[int]
    ) -> AgentBundle:
        for bundle in self.agents.get(chatbot_id, []):
            if bundle.name.lower() == agent_name.lower():
                return bundle
        raise AgentNotFoundError(agent_name, chatbot_id)

    async def resolve_client_id(self, chatbot_id: int) -> Optional[int]:
        chatbot = self.chatbots.get(chatbot_id)
        return chatbot.client_id if chatbot else None

    async def get_default_agent(self, chatbot_id: int) -> Optional[str]:
        agents = self.agents.get(chatbot_id)
        return agents[0].name.lower() if agents else None

    async def get_chatbot(self, chatbot_id: int) -> Optional[ChatbotInfo]:
        return self.chatbots.get(chatbot_id)

    async def get_agent_profile(
        self, agent_name: str, chatbot_id: Optional[int]
    ) -> Optional[AgentProfile]:
        return self.profiles.get((agent_name.lower(), chatbot_id))

    async def get_retrieval_sources(
        self, agent_id: int, client_id: Optional[int]
    ) -> list[RetrievalSource]:
        return list(self.sources.get(agent_id, []))

    async def get_tool_route(self, tool_name: str) -> Optional[ToolRoute]:
        return self.routes.get(tool_name)

    async def ping(self) -> bool:
        return self.available


class InMemoryConversationStore(IConversationStore):
    """Conversations held in dictionaries.

    Usage:
        store = InMemoryConversationStore()
        chat_id = await store.create_conversation(1, 7, "Chat con Soporte")
    """

    def __init__(self):
        self._ids = itertools.count(1)
        self.conversations: dict[int, ConversationInfo] = {}
        self.histories: dict[int, list[Message]] = {}
        self.states: dict[int, list[SessionState]] = {}
        self.extension_fields: dict[int, dict[str, Any]] = {}

    async def create_conversation(
        self, client_id: int, chatbot_id: int, title: str
    ) -> int:
        chat_id = next(self._ids)
        self.conversations[chat_id] = ConversationInfo(
            id=chat_id, client_id=client_id, chatbot_id=chatbot_id, title=title
        )
        self.histories[chat_id] = []
        return chat_id

    async def get_conversation(self, chat_id: int) -> Optional[ConversationInfo]:
        return self.conversations.get(chat_id)

    async def load_history(self, chat_id: int) -> list[Message]:
        return list(self.histories.get(chat_id, []))

    async def append_messages(self, chat_id: int, messages: list[Message]) -> None:
        self.histories.setdefault(chat_id, []).extend(messages)

    async def load_session_state(self, chat_id: int) -> Optional[SessionState]:
        states = self.states.get(chat_id)
        return copy.deepcopy(states[-1]) if states else None

    async def save_session_state(self, chat_id: int, state: SessionState) -> None:
        self.states.setdefault(chat_id, []).append(copy.deepcopy(state))

    async def load_extension_fields(self, chat_id: int) -> dict[str, Any]:
        return dict(self.extension_fields.get(chat_id, {}))
