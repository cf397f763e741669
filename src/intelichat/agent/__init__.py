"""
InteliChat Conversation Engine.

This module runs multi-agent chat conversations: each user turn is handled
by a bounded decision loop that picks the active agent persona, asks the
language model for a structured decision and applies it.

Architecture:
- Domain: Core entities and port interfaces
- Orchestrator: Turn loop, agent configuration, decisions, tools, retrieval
- Providers: LLM provider implementations (OpenAI-compatible, Ollama)
- Tools: Local and store-configured HTTP tools
- Retrieval: Pinecone passage search
- Persistence: PostgreSQL and in-memory stores
- API: FastAPI router

Key Features:
- Agent hand-offs with deterministic welcome, hand-back and farewell messages
- Per-agent instructions, generation parameters and models
- Tool calls summarized back into the conversation
- Retrieval context for retrieval-enabled agents
"""

# Domain entities
from .domain.entities import (
    AgentBundle,
    Decision,
    Message,
    MessageKind,
    MessageRole,
    ResponseMessage,
    TurnResult,
)

# Orchestrator
from .orchestrator import (
    MAX_ITERATIONS,
    AgentConfigResolver,
    ChatService,
    OrchestratorConfig,
    TurnOrchestrator,
)

# Providers
from .providers import (
    LLMProviderConfig,
    OllamaProvider,
    OpenAIProvider,
    ProviderFactory,
)

# Tools
from .tools import HttpToolClient, ToolRegistry

__all__ = [
    # Domain
    "AgentBundle",
    "Decision",
    "Message",
    "MessageKind",
    "MessageRole",
    "ResponseMessage",
    "TurnResult",
    # Orchestrator
    "MAX_ITERATIONS",
    "AgentConfigResolver",
    "ChatService",
    "OrchestratorConfig",
    "TurnOrchestrator",
    # Providers
    "LLMProviderConfig",
    "OllamaProvider",
    "OpenAIProvider",
    "ProviderFactory",
    # Tools
    "HttpToolClient",
    "ToolRegistry",
]
