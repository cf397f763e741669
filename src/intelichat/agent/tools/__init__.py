"""Tool system for the conversation engine.

Provides:
- ToolRegistry: Name-based dispatch to local callables and HTTP routes
- HttpToolClient: Store-configured HTTP tool routes with auth
"""

from .http_client import HttpRequest, HttpToolClient, HttpToolConfig, build_request
from .registry import ToolRegistry

__all__ = [
    "HttpRequest",
    "HttpToolClient",
    "HttpToolConfig",
    "build_request",
    "ToolRegistry",
]
