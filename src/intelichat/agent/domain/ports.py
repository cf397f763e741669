"""
Port interfaces (abstract base classes) for the conversation engine.

These define the contracts that adapters must implement.
Following the Ports & Adapters (Hexagonal) architecture pattern.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Optional

if TYPE_CHECKING:
    from .entities import (
        AgentBundle,
        AgentProfile,
        ChatbotInfo,
        ConversationInfo,
        Message,
        RetrievalResult,
        RetrievalSource,
        SessionState,
        ToolRoute,
    )


# ============================================
# LLM Provider Interface
# ============================================


class ILLMProvider(ABC):
    """Interface for LLM providers (OpenAI-compatible, Ollama, etc.).

    Implementations handle the specifics of each LLM API while
    providing a consistent request/response exchange to the core.
    """

    @property
    @abstractmethod
    def model_name(self) -> str:
        """Return the model identifier (e.g., 'gpt-4o-mini')."""
        pass

    @abstractmethod
    async def complete(
        self,
        messages: list[Message],
        system_prompt: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: Optional[int] = None,
        json_mode: bool = True,
    ) -> str:
        """Exchange one request for one text reply.

        Args:
            messages: Messages after the system prompt, in order
            system_prompt: System instructions
            temperature: Sampling temperature
            max_tokens: Maximum tokens to generate
            json_mode: Ask the provider to constrain output to a JSON object

        Returns:
            The raw reply text

        Raises:
            LLMProviderError: On transport or provider errors
        """
        pass

    @abstractmethod
    async def embed(self, text: str) -> tuple[list[float], str, int]:
        """Generate an embedding for the given text.

        Returns:
            Tuple of (embedding_vector, model_name, dimension)
        """
        pass


# ============================================
# Agent Configuration Store Interface
# ============================================


class IAgentStore(ABC):
    """Interface for reading agent, chatbot and tool configuration."""

    @abstractmethod
    async def get_agent_bundle(
        self, agent_name: str, chatbot_id: Optional[int]
    ) -> AgentBundle:
        """Fetch an active agent's bundle.

        Raises:
            AgentNotFoundError: If no active agent matches
        """
        pass

    @abstractmethod
    async def resolve_client_id(self, chatbot_id: int) -> Optional[int]:
        """Return the owning client id of a chatbot."""
        pass

    @abstractmethod
    async def get_default_agent(self, chatbot_id: int) -> Optional[str]:
        """Return the name of the first active agent of a chatbot."""
        pass

    @abstractmethod
    async def get_chatbot(self, chatbot_id: int) -> Optional[ChatbotInfo]:
        """Return an active chatbot."""
        pass

    @abstractmethod
    async def get_agent_profile(
        self, agent_name: str, chatbot_id: Optional[int]
    ) -> Optional[AgentProfile]:
        """Return display details for an agent."""
        pass

    @abstractmethod
    async def get_retrieval_sources(
        self, agent_id: int, client_id: Optional[int]
    ) -> list[RetrievalSource]:
        """Return enabled knowledge sources for an agent, by priority."""
        pass

    @abstractmethod
    async def get_tool_route(self, tool_name: str) -> Optional[ToolRoute]:
        """Return the HTTP route configured for a tool."""
        pass

    async def ping(self) -> bool:
        """Check that the store is reachable."""
        return True


# ============================================
# Conversation Store Interface
# ============================================


class IConversationStore(ABC):
    """Interface for conversation persistence."""

    @abstractmethod
    async def create_conversation(
        self, client_id: int, chatbot_id: int, title: str
    ) -> int:
        """Create a conversation and return its id."""
        pass

    @abstractmethod
    async def get_conversation(self, chat_id: int) -> Optional[ConversationInfo]:
        """Return a conversation, or None if it does not exist."""
        pass

    @abstractmethod
    async def load_history(self, chat_id: int) -> list[Message]:
        """Load the history of a conversation in order."""
        pass

    @abstractmethod
    async def append_messages(self, chat_id: int, messages: list[Message]) -> None:
        """Append entries to a conversation history, in order."""
        pass

    @abstractmethod
    async def load_session_state(self, chat_id: int) -> Optional[SessionState]:
        """Load the most recently saved session state."""
        pass

    @abstractmethod
    async def save_session_state(self, chat_id: int, state: SessionState) -> None:
        """Persist the session state after a turn."""
        pass

    @abstractmethod
    async def load_extension_fields(self, chat_id: int) -> dict[str, Any]:
        """Load externally persisted extension fields for a conversation."""
        pass


# ============================================
# Tool Dispatcher Interface
# ============================================


class IToolDispatcher(ABC):
    """Interface for executing named tools."""

    @abstractmethod
    async def invoke(self, tool_name: str, arguments: dict[str, Any]) -> Any:
        """Execute a tool.

        Returns:
            JSON-serializable result

        Raises:
            Exception: Any failure; callers convert it to a TOOL_ERROR line
        """
        pass


# ============================================
# Retrieval Interface
# ============================================


class IRetrievalService(ABC):
    """Interface for ranked passage retrieval."""

    @abstractmethod
    async def search(
        self,
        query: str,
        source_id: int,
        client_id: Optional[int],
        max_results: int = 5,
        score_threshold: float = 0.0,
    ) -> RetrievalResult:
        """Return passages ranked by descending score."""
        pass
