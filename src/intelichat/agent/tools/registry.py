"""
Tool Registry.

Provides a unified registry of the tools available to agents and
routes each call to its implementation:
- Local tools registered as Python callables (sync or async)
- HTTP tools configured in the agent store
"""

from __future__ import annotations

import inspect
import logging
from typing import Any, Callable, Optional

from ..domain.exceptions import UnknownToolError
from ..domain.ports import IToolDispatcher
from .http_client import HttpToolClient

logger = logging.getLogger(__name__)


ToolHandler = Callable[..., Any]


class ToolRegistry(IToolDispatcher):
    """Unified registry of agent tools.

    Usage:
        registry = ToolRegistry(http_client)

        @registry.tool("echo")
        async def echo(text: str) -> dict:
            return {"text": text}

        result = await registry.invoke("echo", {"text": "hola"})

    Local tools take precedence over HTTP routes with the same name.
    """

    def __init__(self, http_client: Optional[HttpToolClient] = None):
        """Initialize the tool registry.

        Args:
            http_client: Client for store-configured HTTP tools
        """
        self.http_client = http_client
        self._handlers: dict[str, ToolHandler] = {}

    def register(self, name: str, handler: ToolHandler) -> None:
        """Register a local tool under a name."""
        if name in self._handlers:
            logger.warning(f"Replacing registered tool: {name}")
        self._handlers[name] = handler
        logger.info(f"Registered local tool: {name}")

    def tool(self, name: str) -> Callable[[ToolHandler], ToolHandler]:
        """Decorator form of `register`."""

        def decorator(handler: ToolHandler) -> ToolHandler:
            self.register(name, handler)
            return handler

        return decorator

    @property
    def local_tools(self) -> list[str]:
        return sorted(self._handlers)

    async def invoke(self, tool_name: str, arguments: dict[str, Any]) -> Any:
        """Execute a tool.

        Raises:
            UnknownToolError: If neither a local handler nor a route exists
            Exception: Whatever the tool implementation raises
        """
        handler = self._handlers.get(tool_name)
        if handler is not None:
            logger.debug(f"Executing local tool: {tool_name}")
            result = handler(**arguments)
            if inspect.isawaitable(result):
                result = await result
            return result

        if self.http_client is not None:
            return await self.http_client.call_tool(tool_name, arguments)

        raise UnknownToolError(tool_name)
