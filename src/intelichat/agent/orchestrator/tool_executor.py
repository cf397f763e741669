"""
Tool Executor.

Handles execution of tool calls with error handling and result reduction.
Delegates to an IToolDispatcher and reduces each raw result to a single
line of text the model reads on its next iteration.
"""

from __future__ import annotations

import asyncio
import json
import logging
from datetime import datetime
from typing import Any, Callable, Optional

from ..domain.entities import ToolCall
from ..domain.ports import IToolDispatcher

logger = logging.getLogger(__name__)


TOOL_RESULT_PREFIX = "TOOL_RESULT: "
TOOL_ERROR_PREFIX = "TOOL_ERROR: "
MAX_SUMMARY_LENGTH = 2000


def _to_json(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False, default=str)


def _summarize_find_by_dot_email(result: Any) -> str:
    if isinstance(result, dict) and result.get("is_registered_carrier"):
        return f"{TOOL_RESULT_PREFIX}STATUS_ALREADY_REGISTERED"
    return f"{TOOL_RESULT_PREFIX}STATUS_NOT_REGISTERED"


def _summarize_register_carrier(result: Any) -> str:
    message = result.get("message", "") if isinstance(result, dict) else ""
    if isinstance(message, str) and "exitosamente" in message:
        return f"{TOOL_RESULT_PREFIX}REGISTRATION_SUCCESSFUL"
    return f"{TOOL_ERROR_PREFIX}{_to_json(result)}"


def _summarize_pending_documents(result: Any) -> str:
    info = result.get("pending_documents_info") if isinstance(result, dict) else None
    if isinstance(info, dict) and info.get("has_pending_documents"):
        documents = info.get("pending_documents", [])
        return f"{TOOL_RESULT_PREFIX}PENDING_DOCS_FOUND: {_to_json(documents)}"
    return f"{TOOL_RESULT_PREFIX}NO_PENDING_DOCS"


# Tool-specific reduction rules; unknown tools fall back to the generic summary.
SUMMARIZERS: dict[str, Callable[[Any], str]] = {
    "findByDotEmail": _summarize_find_by_dot_email,
    "registerCarrier": _summarize_register_carrier,
    "pendingDocuments": _summarize_pending_documents,
}


def summarize_tool_result(tool_call: ToolCall) -> str:
    """Reduce an executed tool call to one line for the model.

    Returns:
        `TOOL_ERROR: ...` for failures, a tool-specific status line for
        known tools, otherwise `TOOL_RESULT: <json>`; never longer than
        MAX_SUMMARY_LENGTH characters
    """
    if tool_call.error is not None:
        summary = f"{TOOL_ERROR_PREFIX}{tool_call.error}"
    elif isinstance(tool_call.result, dict) and "error" in tool_call.result:
        summary = f"{TOOL_ERROR_PREFIX}{tool_call.result['error']}"
    elif tool_call.name in SUMMARIZERS:
        summary = SUMMARIZERS[tool_call.name](tool_call.result)
    else:
        summary = f"{TOOL_RESULT_PREFIX}{_to_json(tool_call.result)}"

    if len(summary) > MAX_SUMMARY_LENGTH:
        summary = summary[: MAX_SUMMARY_LENGTH - 3] + "..."
    return summary


class ToolExecutor:
    """Executes tool calls with error handling.

    Wraps an IToolDispatcher so that tool failures are caught and recorded
    on the ToolCall rather than propagated. Every execution leaves the
    ToolCall with either a result or an error.

    Usage:
        executor = ToolExecutor(tool_registry, timeout_seconds=30)

        summary = await executor.invoke("pendingDocuments", {"dot_number": "123"})
        # "TOOL_RESULT: NO_PENDING_DOCS"
    """

    def __init__(self, dispatcher: IToolDispatcher, timeout_seconds: float = 30.0):
        """Initialize the tool executor.

        Args:
            dispatcher: Dispatcher that routes names to tool implementations
            timeout_seconds: Upper bound for one tool call
        """
        self.tools = dispatcher
        self.timeout_seconds = timeout_seconds

    async def execute_tool_call(self, tool_call: ToolCall) -> ToolCall:
        """Execute a tool call, catching every failure into `tool_call.error`."""
        logger.info(f"Executing tool: {tool_call.name}")
        logger.debug(f"Tool {tool_call.name} arguments: {tool_call.arguments}")

        try:
            tool_call.result = await asyncio.wait_for(
                self.tools.invoke(tool_call.name, tool_call.arguments),
                timeout=self.timeout_seconds,
            )
            logger.debug(f"Tool {tool_call.name} result: {tool_call.result}")
        except asyncio.TimeoutError:
            logger.error(
                f"Tool {tool_call.name} timed out after {self.timeout_seconds}s"
            )
            tool_call.error = f"Tool '{tool_call.name}' timed out"
        except Exception as e:
            logger.error(f"Tool execution failed: {tool_call.name}: {e}")
            tool_call.error = str(e) or type(e).__name__
        finally:
            tool_call.executed_at = datetime.utcnow()

        return tool_call

    async def invoke(
        self, tool_name: str, arguments: Optional[dict[str, Any]] = None
    ) -> str:
        """Execute a tool and return its one-line summary."""
        tool_call = ToolCall(name=tool_name, arguments=dict(arguments or {}))
        await self.execute_tool_call(tool_call)
        return summarize_tool_result(tool_call)
