"""
FastAPI Router for the Chat Engine.

Provides the REST endpoints the chat widgets call:
- POST /api/chat: process one message (creating the conversation when needed)
- GET /api/chat/agent-info: default agent of a chatbot
- GET /api/chat/health: resolver cache and store availability
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from ..domain.entities import AgentProfile
from ..domain.exceptions import ChatbotNotFoundError, ConversationNotFoundError
from ..orchestrator import AgentConfigResolver, ChatService
from .error_sanitizer import sanitize_error_message
from .schemas import (
    AgentInfoResponse,
    AgentSchema,
    ChatMessageSchema,
    ChatRequest,
    ChatResponse,
    HealthResponse,
    LLMSchema,
    NamedEntitySchema,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/chat", tags=["chat"])


# =============================================================================
# Dependencies
# =============================================================================


class ChatDependencies:
    """Container for chat dependencies.

    Injected at application startup.
    """

    chat_service: Optional[ChatService] = None
    resolver: Optional[AgentConfigResolver] = None


_deps = ChatDependencies()


def create_chat_dependencies(
    chat_service: ChatService,
    resolver: Optional[AgentConfigResolver] = None,
) -> None:
    """Initialize chat dependencies.

    Call this at application startup.

    Args:
        chat_service: Conversation service
        resolver: Agent configuration resolver (defaults to the orchestrator's)
    """
    _deps.chat_service = chat_service
    _deps.resolver = resolver or chat_service.orchestrator.resolver


def get_chat_service() -> ChatService:
    """Get the chat service dependency."""
    if not _deps.chat_service:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Chat engine not initialized",
        )
    return _deps.chat_service


def get_resolver() -> AgentConfigResolver:
    """Get the agent configuration resolver dependency."""
    if not _deps.resolver:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Chat engine not initialized",
        )
    return _deps.resolver


def _agent_schema(profile: AgentProfile) -> AgentSchema:
    return AgentSchema(
        id=profile.id,
        name=profile.name,
        nombre=profile.name,
        color=profile.color,
    )


def _llm_schema(profile: AgentProfile) -> LLMSchema:
    return LLMSchema(model=profile.model or "N/A", provider=profile.provider or "N/A")


# =============================================================================
# REST Endpoints
# =============================================================================


@router.post("", response_model=ChatResponse, response_model_by_alias=True)
async def chat(
    request: ChatRequest,
    service: ChatService = Depends(get_chat_service),
) -> ChatResponse:
    """Process one chat message.

    Starts a conversation when `sessionId` is absent.
    """
    try:
        reply = await service.handle_message(
            request.text,
            chat_id=request.session_id,
            client_id=request.client_id,
            chatbot_id=request.chatbot_id,
        )
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except ChatbotNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=e.message)
    except ConversationNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=e.message)
    except Exception as e:
        logger.exception(f"Chat request failed: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=sanitize_error_message(str(e), "Internal server error"),
        )

    active = reply.active_agent or AgentProfile(name="N/A")
    chatbot = reply.chatbot
    return ChatResponse(
        session_id=reply.chat_id,
        agent=_agent_schema(active),
        llm=_llm_schema(active),
        cliente=NamedEntitySchema(
            id=chatbot.client_id if chatbot else None,
            nombre=chatbot.client_name if chatbot else None,
        ),
        chatbot=NamedEntitySchema(
            id=chatbot.id if chatbot else None,
            nombre=chatbot.name if chatbot else None,
        ),
        response=[
            ChatMessageSchema(text=message.text, agent=_agent_schema(profile))
            for message, profile in reply.messages
        ],
        action=reply.action,
    )


@router.get("/agent-info", response_model=AgentInfoResponse)
async def agent_info(
    client_id: Optional[int] = Query(default=None, alias="cliente_id"),
    chatbot_id: Optional[int] = Query(default=None),
    service: ChatService = Depends(get_chat_service),
) -> AgentInfoResponse:
    """Return the default (first active) agent of a chatbot."""
    if client_id is None or chatbot_id is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="cliente_id and chatbot_id are required",
        )

    store = service.agent_store
    chatbot = await store.get_chatbot(chatbot_id)
    agent_name = await store.get_default_agent(chatbot_id) if chatbot else None
    if chatbot is None or chatbot.client_id != client_id or agent_name is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No active agent for cliente_id={client_id} and chatbot_id={chatbot_id}",
        )

    profile = await store.get_agent_profile(agent_name, chatbot_id) or AgentProfile(
        name=agent_name.upper()
    )
    return AgentInfoResponse(
        agent=_agent_schema(profile),
        llm=_llm_schema(profile),
        chatbot=NamedEntitySchema(id=chatbot.id, nombre=chatbot.name),
        cliente=NamedEntitySchema(id=chatbot.client_id, nombre=chatbot.client_name),
    )


@router.get("/health", response_model=HealthResponse)
async def health(
    resolver: AgentConfigResolver = Depends(get_resolver),
) -> HealthResponse:
    """Report resolver cache size and bundle source availability."""
    report = await resolver.status()
    return HealthResponse(
        status="ok" if report["store_available"] else "degraded",
        **report,
    )
