"""Exception hierarchy for the conversation engine.

Errors raised by collaborators are caught inside the orchestrator and
converted into soft outcomes; they never cross the orchestrator boundary.
"""

from __future__ import annotations

from typing import Optional

from .entities import ErrorType


class IntelichatError(Exception):
    """Base exception for all engine errors."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class AgentNotFoundError(IntelichatError):
    """No active agent bundle exists for (agent, chatbot)."""

    def __init__(self, agent_name: str, chatbot_id: Optional[int] = None):
        super().__init__(
            f"Agent {agent_name} not found for chatbot {chatbot_id}",
            details={"agent_name": agent_name, "chatbot_id": chatbot_id},
        )
        self.agent_name = agent_name
        self.chatbot_id = chatbot_id


class ConversationNotFoundError(IntelichatError):
    """The requested chat session does not exist."""

    def __init__(self, chat_id: int):
        super().__init__(f"Chat session {chat_id} not found")
        self.chat_id = chat_id


class DecisionParseError(IntelichatError):
    """The model reply is not a well-formed decision object."""

    def __init__(self, message: str, raw_reply: Optional[str] = None):
        super().__init__(message)
        self.raw_reply = raw_reply


class ToolExecutionError(IntelichatError):
    """A tool failed while executing."""

    def __init__(
        self,
        message: str,
        tool_name: str,
        error_type: ErrorType = ErrorType.RECOVERABLE,
        original_error: Optional[Exception] = None,
    ):
        super().__init__(message)
        self.tool_name = tool_name
        self.error_type = error_type
        self.original_error = original_error


class UnknownToolError(ToolExecutionError):
    """No handler or route is registered for the tool name."""

    def __init__(self, tool_name: str):
        super().__init__(
            f"Tool '{tool_name}' not found or inactive",
            tool_name=tool_name,
            error_type=ErrorType.FATAL,
        )


class RetrievalError(IntelichatError):
    """The retrieval service failed."""


class ChatbotNotFoundError(IntelichatError):
    """The chatbot does not exist, is inactive or belongs to another client."""

    def __init__(self, chatbot_id: int, client_id: Optional[int] = None):
        super().__init__(
            f"Chatbot {chatbot_id} not found or inactive for client {client_id}",
            details={"chatbot_id": chatbot_id, "client_id": client_id},
        )
        self.chatbot_id = chatbot_id
        self.client_id = client_id
