"""
Chat Service.

Conversation bootstrap and persistence around one orchestrated turn:
- Creates a conversation for a (client, chatbot) pair, or loads an existing one
- Seeds or restores the session state, merging persisted extension fields
- Runs the turn and persists its transcript entries and the new state
- Resolves display profiles for every agent that spoke
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Optional

from ..domain.entities import (
    ACTIVE_AGENT_KEY,
    AgentProfile,
    CHAT_ID_KEY,
    CHATBOT_ID_KEY,
    CLIENT_ID_KEY,
    ChatbotInfo,
    LANGUAGE_KEY,
    ResponseMessage,
    SessionState,
)
from ..domain.exceptions import ChatbotNotFoundError, ConversationNotFoundError
from ..domain.ports import IAgentStore, IConversationStore
from .agent import OrchestratorConfig, TurnOrchestrator

logger = logging.getLogger(__name__)


@dataclass
class ChatReply:
    """Outcome of one chat request.

    Attributes:
        chat_id: Conversation id (new or existing)
        messages: Response messages with the profile of the agent that produced each
        active_agent: Profile of the agent active after the turn
        chatbot: Chatbot the conversation belongs to, if known
        session_state: Session state after the turn
        action: Pending action marker from the orchestrator
    """

    chat_id: int
    messages: list[tuple[ResponseMessage, AgentProfile]] = field(default_factory=list)
    active_agent: Optional[AgentProfile] = None
    chatbot: Optional[ChatbotInfo] = None
    session_state: SessionState = field(default_factory=dict)
    action: Optional[str] = None


class ChatService:
    """Runs chat requests against the orchestrator and the stores.

    Usage:
        service = ChatService(orchestrator, agent_store, conversation_store)

        reply = await service.handle_message("hola", client_id=1, chatbot_id=7)
        reply = await service.handle_message("si", chat_id=reply.chat_id)

    Raises ValueError for missing identifiers on a new conversation,
    ChatbotNotFoundError and ConversationNotFoundError for unknown ids.
    """

    def __init__(
        self,
        orchestrator: TurnOrchestrator,
        agent_store: IAgentStore,
        conversation_store: IConversationStore,
        config: Optional[OrchestratorConfig] = None,
    ):
        self.orchestrator = orchestrator
        self.agent_store = agent_store
        self.conversations = conversation_store
        self.config = config or orchestrator.config

    async def handle_message(
        self,
        message: Optional[str],
        chat_id: Optional[int] = None,
        client_id: Optional[int] = None,
        chatbot_id: Optional[int] = None,
    ) -> ChatReply:
        """Process one user message, creating the conversation when needed."""
        chatbot: Optional[ChatbotInfo]
        if chat_id is None:
            if client_id is None or chatbot_id is None:
                raise ValueError("client_id and chatbot_id are required for a new chat")
            chatbot = await self.agent_store.get_chatbot(chatbot_id)
            if chatbot is None or chatbot.client_id != client_id:
                raise ChatbotNotFoundError(chatbot_id, client_id)
            chat_id = await self.conversations.create_conversation(
                client_id, chatbot_id, f"Chat con {chatbot.name}"
            )
            logger.info(f"Created chat {chat_id} for chatbot {chatbot_id}")
        else:
            conversation = await self.conversations.get_conversation(chat_id)
            if conversation is None:
                raise ConversationNotFoundError(chat_id)
            client_id = conversation.client_id
            chatbot_id = conversation.chatbot_id
            chatbot = await self.agent_store.get_chatbot(chatbot_id)

        history = await self.conversations.load_history(chat_id)
        state = await self._load_state(chat_id, client_id, chatbot_id)

        result = await self.orchestrator.process_input(message or "", state, history)

        await self.conversations.append_messages(chat_id, result.new_entries)
        await self.conversations.save_session_state(chat_id, result.session_state)

        final_chatbot_id = result.session_state.get(CHATBOT_ID_KEY, chatbot_id)
        profiles: dict[str, AgentProfile] = {}
        messages = []
        for response in result.messages:
            key = response.agent_name.lower()
            if key not in profiles:
                profiles[key] = await self._profile(response.agent_name, final_chatbot_id)
            messages.append((response, profiles[key]))

        active_agent = result.session_state.get(ACTIVE_AGENT_KEY) or self.config.default_agent
        return ChatReply(
            chat_id=chat_id,
            messages=messages,
            active_agent=await self._profile(active_agent, final_chatbot_id),
            chatbot=chatbot,
            session_state=result.session_state,
            action=result.action,
        )

    async def _load_state(
        self, chat_id: int, client_id: int, chatbot_id: int
    ) -> SessionState:
        """Latest persisted state (or a fresh seed) over the extension fields."""
        state = await self.conversations.load_session_state(chat_id)
        if state is None:
            default_agent = await self.agent_store.get_default_agent(chatbot_id)
            state = {
                CHAT_ID_KEY: chat_id,
                CLIENT_ID_KEY: client_id,
                CHATBOT_ID_KEY: chatbot_id,
                ACTIVE_AGENT_KEY: (default_agent or self.config.default_agent).lower(),
                LANGUAGE_KEY: self.config.default_language,
                "dot_number": None,
                "email": None,
                "intent": None,
                "handoff_decision": None,
            }
            logger.info(f"Seeded session state for chat {chat_id}")

        extra: dict[str, Any] = {}
        try:
            extra = await self.conversations.load_extension_fields(chat_id)
        except Exception as e:
            logger.error(f"Failed to load extension fields for chat {chat_id}: {e}")

        return {**extra, **state}

    async def _profile(self, agent_name: str, chatbot_id: Optional[int]) -> AgentProfile:
        """Display profile for an agent, falling back to its upper-cased name."""
        try:
            profile = await asyncio.wait_for(
                self.agent_store.get_agent_profile(agent_name, chatbot_id),
                timeout=self.config.store_timeout_seconds,
            )
        except Exception as e:
            logger.warning(f"Failed to load profile for agent {agent_name}: {e}")
            profile = None
        return profile or AgentProfile(name=agent_name.upper())
