"""
Domain entities for the conversation orchestration engine.

These are pure domain objects with no infrastructure dependencies.
They define the core data structures shared by the orchestrator,
the provider adapters and the persistence adapters.
"""

from __future__ import annotations

import json
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, ClassVar, Optional, Union

# ============================================
# Session State Keys
# ============================================

# Session state is a plain mutable mapping; these are the keys the core reads.
ACTIVE_AGENT_KEY = "active_agent"
LANGUAGE_KEY = "language"
HANDBACK_FLAG_KEY = "isHandbackTurn"
CHAT_ID_KEY = "chat_id"
CHATBOT_ID_KEY = "chatbot_id"
CLIENT_ID_KEY = "cliente_id"

SessionState = dict[str, Any]


# ============================================
# Message Types
# ============================================


class MessageRole(str, Enum):
    """Role of an entry in the conversation history."""

    USER = "user"
    ASSISTANT = "assistant"
    TOOL_RESULT = "tool_result"  # Synthetic, sent to the model as a user turn
    SYSTEM = "system"


@dataclass
class Message:
    """A single entry in a conversation history.

    Attributes:
        role: Entry role (user, assistant, tool_result, system)
        content: Entry text
        agent_name: Agent that produced the entry (assistant entries only)
        id: Unique entry identifier
        created_at: Creation timestamp
    """

    role: MessageRole
    content: str
    agent_name: Optional[str] = None
    id: Optional[uuid.UUID] = None
    created_at: Optional[datetime] = None

    def __post_init__(self):
        if self.id is None:
            self.id = uuid.uuid4()
        if self.created_at is None:
            self.created_at = datetime.utcnow()

    def with_content(self, content: str) -> Message:
        """Return a copy of this entry carrying different content."""
        return Message(
            role=self.role,
            content=content,
            agent_name=self.agent_name,
            id=self.id,
            created_at=self.created_at,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to the (role, content) pair used on the wire."""
        return {"role": self.role.value, "content": self.content}


@dataclass(frozen=True)
class ResponseMessage:
    """One outward-facing chat bubble."""

    text: str
    agent_name: str

    def to_dict(self) -> dict[str, Any]:
        return {"text": self.text, "agentName": self.agent_name}


# ============================================
# Agent Configuration Bundle
# ============================================


class MessageKind(str, Enum):
    """Situations that have a canned, deterministic message."""

    WELCOME = "welcome"
    HANDBACK = "handback"
    HANDOFF_CONFIRMATION = "handoff_confirmation"
    END_OF_TASK = "end_of_task"
    FAREWELL = "farewell"


DEFAULT_INSTRUCTIONS = "Eres un asistente útil."


@dataclass(frozen=True)
class AgentBundle:
    """Snapshot of one agent's behavior, immutable for the turn.

    Attributes:
        name: Agent name (lowercase identifier, e.g. 'info')
        instructions: Instructions keyed by language code
        temperature: Sampling temperature (None = provider fallback)
        max_tokens: Maximum output tokens (None = provider fallback)
        messages: Canned messages keyed by situation, then language
        agent_id: Store identifier, used as the retrieval source id
        retrieval_enabled: True if retrieval context should be injected
        llm_provider: Provider name configured for this agent, if any
        llm_model: Model name configured for this agent, if any
        source: Where the bundle came from ('store', 'files', 'default')
    """

    name: str
    instructions: dict[str, str] = field(default_factory=dict)
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None
    messages: dict[MessageKind, dict[str, str]] = field(default_factory=dict)
    agent_id: Optional[int] = None
    retrieval_enabled: bool = False
    llm_provider: Optional[str] = None
    llm_model: Optional[str] = None
    source: str = "store"

    def instructions_for(self, language: str) -> str:
        """Instructions in the given language, falling back to es, then en."""
        for lang in (language, "es", "en"):
            text = self.instructions.get(lang)
            if text:
                return text
        return DEFAULT_INSTRUCTIONS

    def message_for(self, kind: MessageKind, language: str) -> Optional[str]:
        """Canned message for a situation.

        English sessions read the English variant; every other language
        reads the Spanish one.
        """
        variants = self.messages.get(kind) or {}
        text = variants.get("en" if language == "en" else "es")
        return text or None


# ============================================
# Decisions
# ============================================


class ActionType(str, Enum):
    """Action kinds a model decision can carry."""

    NONE = "none"
    SET_STATE = "set_state"
    CALL_TOOL = "call_tool"
    HANDOFF = "handoff"
    FINISH_TURN = "finish_turn"
    END_CONVERSATION = "end_conversation"


@dataclass(frozen=True)
class SetStateAction:
    """Shallow-merge `patch` into the session state."""

    patch: dict[str, Any]
    type: ClassVar[ActionType] = ActionType.SET_STATE


@dataclass(frozen=True)
class CallToolAction:
    """Invoke a tool and feed its summary back to the model."""

    tool_name: str
    args: dict[str, Any] = field(default_factory=dict)
    type: ClassVar[ActionType] = ActionType.CALL_TOOL


@dataclass(frozen=True)
class HandoffAction:
    """Switch the active agent."""

    target_agent: str
    type: ClassVar[ActionType] = ActionType.HANDOFF


@dataclass(frozen=True)
class FinishTurnAction:
    """The agent considers its task done for this turn."""

    type: ClassVar[ActionType] = ActionType.FINISH_TURN


@dataclass(frozen=True)
class EndConversationAction:
    """The agent closes the conversation."""

    type: ClassVar[ActionType] = ActionType.END_CONVERSATION


@dataclass(frozen=True)
class UnknownAction:
    """An action type the engine does not recognize."""

    raw_type: str
    payload: dict[str, Any] = field(default_factory=dict)
    type: ClassVar[Optional[ActionType]] = None


Action = Union[
    SetStateAction,
    CallToolAction,
    HandoffAction,
    FinishTurnAction,
    EndConversationAction,
    UnknownAction,
]


@dataclass(frozen=True)
class Decision:
    """Parsed output of one model call.

    Attributes:
        say: Utterance for the user (None = nothing to say)
        action: Action to apply (None = stop the loop now)
        is_fallback: True if synthesized after a model failure
    """

    say: Optional[str] = None
    action: Optional[Action] = None
    is_fallback: bool = False

    @classmethod
    def apology(cls, message: str) -> Decision:
        """Create the synthetic decision used when the model fails."""
        return cls(say=message, action=None, is_fallback=True)


# ============================================
# Turn Result
# ============================================


@dataclass
class TurnResult:
    """Outcome of one `process_input` call.

    Attributes:
        session_state: New session state
        messages: Ordered response messages for the user
        history: Full history after the turn
        new_entries: Entries appended during this turn (to persist)
        action: Pending action marker for the caller (currently always None)
        model_calls: Number of model round trips performed
    """

    session_state: SessionState
    messages: list[ResponseMessage] = field(default_factory=list)
    history: list[Message] = field(default_factory=list)
    new_entries: list[Message] = field(default_factory=list)
    action: Optional[str] = None
    model_calls: int = 0


# ============================================
# Tool System
# ============================================


@dataclass
class ToolCall:
    """A tool call requested by the model.

    Attributes:
        id: Unique tool call identifier (for correlation in logs)
        name: Tool name being called
        arguments: Arguments passed to the tool
        result: Raw result from tool execution (set after execution)
        error: Error message if execution failed
        executed_at: When the tool was executed
    """

    name: str
    arguments: dict[str, Any]
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    result: Optional[Any] = None
    error: Optional[str] = None
    executed_at: Optional[datetime] = None

    @property
    def is_executed(self) -> bool:
        """Check if this tool call has been executed."""
        return self.executed_at is not None


@dataclass(frozen=True)
class ToolAuth:
    """Authentication settings for an HTTP tool route.

    Attributes:
        id: Store identifier (token cache key)
        type: 'bearer' or 'api-key'
        config: Auth details (login request for bearer, key placement for api-key)
    """

    id: int
    type: str
    config: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ToolRoute:
    """Configuration of an HTTP-backed tool."""

    name: str
    base_url: str
    path: str
    method: str = "POST"
    auth: Optional[ToolAuth] = None


# ============================================
# Retrieval
# ============================================


@dataclass(frozen=True)
class RetrievalSource:
    """A knowledge source ("cartridge") attached to an agent."""

    id: int
    name: str
    provider: str
    index_name: Optional[str] = None
    endpoint: Optional[str] = None
    top_k: int = 5


@dataclass(frozen=True)
class RetrievalPassage:
    """One ranked passage returned by the retrieval service."""

    content: str
    score: float
    source: str
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class RetrievalResult:
    """Ranked passages plus the total count before truncation."""

    passages: list[RetrievalPassage] = field(default_factory=list)
    total_results: int = 0

    @classmethod
    def empty(cls) -> RetrievalResult:
        return cls()


# ============================================
# Conversation bookkeeping
# ============================================


@dataclass(frozen=True)
class ChatbotInfo:
    """A tenant's chatbot."""

    id: int
    client_id: int
    name: str
    client_name: Optional[str] = None


@dataclass(frozen=True)
class ConversationInfo:
    """A persisted chat session."""

    id: int
    client_id: int
    chatbot_id: int
    title: Optional[str] = None


@dataclass(frozen=True)
class AgentProfile:
    """Display details for an agent, used in API responses."""

    name: str
    id: Optional[int] = None
    color: Optional[str] = None
    model: Optional[str] = None
    provider: Optional[str] = None


class ErrorType(str, Enum):
    """Types of collaborator errors."""

    RECOVERABLE = "recoverable"  # Can retry
    FATAL = "fatal"  # Must abort
    TIMEOUT = "timeout"  # Tool/LLM timeout
    RATE_LIMIT = "rate_limit"  # Rate limited, back off


def render_state(state: SessionState) -> str:
    """Render session state as compact JSON for prompts and storage."""
    return json.dumps(state, ensure_ascii=False, default=str)
