"""Domain entities and port interfaces for the agent module."""

from .entities import (
    ACTIVE_AGENT_KEY,
    CHAT_ID_KEY,
    CHATBOT_ID_KEY,
    CLIENT_ID_KEY,
    HANDBACK_FLAG_KEY,
    LANGUAGE_KEY,
    Action,
    ActionType,
    AgentBundle,
    AgentProfile,
    CallToolAction,
    ChatbotInfo,
    ConversationInfo,
    Decision,
    EndConversationAction,
    ErrorType,
    FinishTurnAction,
    HandoffAction,
    Message,
    MessageKind,
    MessageRole,
    ResponseMessage,
    RetrievalPassage,
    RetrievalResult,
    RetrievalSource,
    SessionState,
    SetStateAction,
    ToolAuth,
    ToolCall,
    ToolRoute,
    TurnResult,
    UnknownAction,
)
from .exceptions import (
    AgentNotFoundError,
    ChatbotNotFoundError,
    ConversationNotFoundError,
    DecisionParseError,
    IntelichatError,
    RetrievalError,
    ToolExecutionError,
    UnknownToolError,
)
from .ports import (
    IAgentStore,
    IConversationStore,
    ILLMProvider,
    IRetrievalService,
    IToolDispatcher,
)

__all__ = [
    # Session keys
    "ACTIVE_AGENT_KEY",
    "CHAT_ID_KEY",
    "CHATBOT_ID_KEY",
    "CLIENT_ID_KEY",
    "HANDBACK_FLAG_KEY",
    "LANGUAGE_KEY",
    # Entities
    "Action",
    "ActionType",
    "AgentBundle",
    "AgentProfile",
    "CallToolAction",
    "ChatbotInfo",
    "ConversationInfo",
    "Decision",
    "EndConversationAction",
    "ErrorType",
    "FinishTurnAction",
    "HandoffAction",
    "Message",
    "MessageKind",
    "MessageRole",
    "ResponseMessage",
    "RetrievalPassage",
    "RetrievalResult",
    "RetrievalSource",
    "SessionState",
    "SetStateAction",
    "ToolAuth",
    "ToolCall",
    "ToolRoute",
    "TurnResult",
    "UnknownAction",
    # Exceptions
    "AgentNotFoundError",
    "ChatbotNotFoundError",
    "ConversationNotFoundError",
    "DecisionParseError",
    "IntelichatError",
    "RetrievalError",
    "ToolExecutionError",
    "UnknownToolError",
    # Ports
    "IAgentStore",
    "IConversationStore",
    "ILLMProvider",
    "IRetrievalService",
    "IToolDispatcher",
]
