"""Chat API module.

Provides:
- FastAPI router for the chat endpoints
- Pydantic request/response schemas
- Error message sanitization
"""

from .router import create_chat_dependencies, router

__all__ = [
    "create_chat_dependencies",
    "router",
]
