"""Turn Orchestrator.

The orchestrator coordinates the components of one conversational turn:
- Agent configuration resolution with a short-lived cache
- Retrieval context for retrieval-enabled agents
- Structured decisions from the language model
- Tool execution with one-line result summaries

Provides:
- Turn orchestrator and configuration
- Decision requester and reply parsing
- Prompt building with session-state placeholders
- Turn transcript with a pending last-message slot
- Chat service for conversation bootstrap and persistence
"""

from .agent import MAX_ITERATIONS, OrchestratorConfig, TurnOrchestrator
from .cache import TTLCache
from .chat_service import ChatReply, ChatService
from .config_resolver import AgentConfigResolver, ResolverConfig
from .decision_requester import DecisionRequester
from .prompt_builder import PromptBuilder
from .reply_schema import parse_decision
from .retrieval_augmentor import RetrievalAugmentor
from .tool_executor import ToolExecutor, summarize_tool_result
from .transcript import TurnTranscript

__all__ = [
    # Main orchestrator
    "MAX_ITERATIONS",
    "OrchestratorConfig",
    "TurnOrchestrator",
    # Turn components
    "AgentConfigResolver",
    "ResolverConfig",
    "TTLCache",
    "DecisionRequester",
    "PromptBuilder",
    "parse_decision",
    "RetrievalAugmentor",
    "ToolExecutor",
    "summarize_tool_result",
    "TurnTranscript",
    # Conversation service
    "ChatReply",
    "ChatService",
]
