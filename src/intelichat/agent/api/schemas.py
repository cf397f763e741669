"""
Pydantic schemas for the chat API.

Defines request/response models for the chat endpoints. Field names
follow the wire format the chat widgets already speak.
"""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


# =============================================================================
# Constants
# =============================================================================

MAX_MESSAGE_LENGTH = 10000


# =============================================================================
# Chat Schemas
# =============================================================================


class ChatRequest(BaseModel):
    """Request to send a chat message.

    A request without `sessionId` starts a new conversation and must name
    the client and chatbot.
    """

    model_config = ConfigDict(
        populate_by_name=True,
        json_schema_extra={
            "example": {
                "cliente_id": 1,
                "chatbot_id": 7,
                "message": "hola",
                "sessionId": None,
            }
        },
    )

    client_id: Optional[int] = Field(default=None, alias="cliente_id")
    chatbot_id: Optional[int] = None
    message: Optional[str] = Field(default=None, max_length=MAX_MESSAGE_LENGTH)
    initial_message: Optional[str] = Field(default=None, max_length=MAX_MESSAGE_LENGTH)
    session_id: Optional[int] = Field(default=None, alias="sessionId")

    @property
    def text(self) -> Optional[str]:
        """The message to process (`initial_message` wins when present)."""
        return self.initial_message if self.initial_message is not None else self.message


class AgentSchema(BaseModel):
    """Display details of an agent."""

    id: Optional[int] = None
    name: str
    nombre: str
    color: Optional[str] = None


class LLMSchema(BaseModel):
    """Model serving the active agent."""

    model: str = "N/A"
    provider: str = "N/A"


class NamedEntitySchema(BaseModel):
    """A client or chatbot reference."""

    id: Optional[int] = None
    nombre: Optional[str] = None


class ChatMessageSchema(BaseModel):
    """One chat bubble with the agent that produced it."""

    text: str
    agent: AgentSchema


class ChatResponse(BaseModel):
    """Response to a chat message."""

    model_config = ConfigDict(populate_by_name=True)

    session_id: int = Field(alias="sessionId")
    agent: AgentSchema
    llm: LLMSchema
    cliente: NamedEntitySchema
    chatbot: NamedEntitySchema
    response: list[ChatMessageSchema] = Field(default_factory=list)
    action: Optional[Any] = None
    status: str = "success"


class AgentInfoResponse(BaseModel):
    """Default agent of a chatbot."""

    agent: AgentSchema
    llm: LLMSchema
    chatbot: NamedEntitySchema
    cliente: NamedEntitySchema
    status: str = "success"


class HealthResponse(BaseModel):
    """Engine health."""

    status: str
    cache_size: int
    store_available: bool
    files_available: bool


class ErrorResponse(BaseModel):
    """Error body."""

    error: str
    status: str = "error"
