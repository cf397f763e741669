"""Persistence adapters for agent configuration and conversations.

Provides:
- PostgresAgentStore / PostgresConversationStore: asyncpg-backed stores
- InMemoryAgentStore / InMemoryConversationStore: dictionary-backed stores
"""

from .memory import InMemoryAgentStore, InMemoryConversationStore
from .postgres import (
    SESSION_STATE_PREFIX,
    PostgresAgentStore,
    PostgresConversationStore,
    bundle_from_row,
)

__all__ = [
    "InMemoryAgentStore",
    "InMemoryConversationStore",
    "PostgresAgentStore",
    "PostgresConversationStore",
    "SESSION_STATE_PREFIX",
    "bundle_from_row",
]
