"""Retrieval services for agent context."""

from .pinecone import PineconeConfig, PineconeRetriever, index_name_for

__all__ = [
    "PineconeConfig",
    "PineconeRetriever",
    "index_name_for",
]
