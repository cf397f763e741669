"""
Pydantic schemas for the model's structured reply.

Accepts two reply shapes and converts both into a domain `Decision`:

Tagged form:
    {"say": "...", "action": {"type": "handoff", "target_agent": "onboarding"}}

Control form (the shape the system instruction asks for):
    {"say": "...", "control": {"handoff_to": null, "set": {}},
     "call_tool": {"name": null, "args": {}}}
"""

from __future__ import annotations

import json
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..domain.entities import (
    Action,
    ActionType,
    CallToolAction,
    Decision,
    EndConversationAction,
    FinishTurnAction,
    HandoffAction,
    SetStateAction,
    UnknownAction,
)
from ..domain.exceptions import DecisionParseError


class ActionBlock(BaseModel):
    """Tagged action; type-specific fields are checked on conversion."""

    model_config = ConfigDict(extra="allow")

    type: Optional[str] = None
    payload: Optional[dict[str, Any]] = None
    target_agent: Optional[str] = None
    tool_name: Optional[str] = None
    name: Optional[str] = None
    args: Optional[dict[str, Any]] = None


class ControlBlock(BaseModel):
    """Control block of the reply (hand-off target, state patch)."""

    model_config = ConfigDict(extra="ignore")

    handoff_to: Optional[str] = None
    state_patch: Optional[dict[str, Any]] = Field(default=None, alias="set")
    finish_turn: bool = False
    end_conversation: bool = False


class ToolCallBlock(BaseModel):
    """Tool-call block of the reply (name, arguments)."""

    model_config = ConfigDict(extra="ignore")

    name: Optional[str] = None
    args: Optional[dict[str, Any]] = None


class ModelReply(BaseModel):
    """The complete structured reply."""

    model_config = ConfigDict(extra="ignore")

    say: Optional[str] = None
    action: Optional[ActionBlock] = None
    control: Optional[ControlBlock] = None
    call_tool: Optional[ToolCallBlock] = None


def _tagged_action(block: ActionBlock) -> Optional[Action]:
    """Convert a tagged action block, enforcing each variant's required fields."""
    raw_type = (block.type or "").strip()
    if not raw_type or raw_type == ActionType.NONE.value:
        return None

    if raw_type == ActionType.SET_STATE.value:
        if block.payload is None:
            raise DecisionParseError("set_state action requires a payload object")
        return SetStateAction(patch=dict(block.payload))

    if raw_type == ActionType.CALL_TOOL.value:
        tool_name = block.tool_name or block.name
        if not tool_name:
            raise DecisionParseError("call_tool action requires tool_name")
        return CallToolAction(tool_name=tool_name, args=dict(block.args or {}))

    if raw_type == ActionType.HANDOFF.value:
        if not block.target_agent:
            raise DecisionParseError("handoff action requires target_agent")
        return HandoffAction(target_agent=block.target_agent)

    if raw_type == ActionType.FINISH_TURN.value:
        return FinishTurnAction()

    if raw_type == ActionType.END_CONVERSATION.value:
        return EndConversationAction()

    return UnknownAction(raw_type=raw_type, payload=block.model_dump(exclude_none=True))


def _control_action(reply: ModelReply) -> Optional[Action]:
    """Derive the action from the control and tool-call blocks."""
    if reply.call_tool and reply.call_tool.name:
        return CallToolAction(
            tool_name=reply.call_tool.name,
            args=dict(reply.call_tool.args or {}),
        )

    control = reply.control
    if control is None:
        return None
    if control.handoff_to:
        return HandoffAction(target_agent=control.handoff_to)
    if control.state_patch:
        return SetStateAction(patch=dict(control.state_patch))
    if control.finish_turn:
        return FinishTurnAction()
    if control.end_conversation:
        return EndConversationAction()
    return None


def parse_decision(raw_reply: str) -> Decision:
    """Parse a raw model reply into a Decision.

    Raises:
        DecisionParseError: If the reply is not a single well-formed object
    """
    try:
        data = json.loads(raw_reply)
    except (TypeError, json.JSONDecodeError) as e:
        raise DecisionParseError(f"Reply is not valid JSON: {e}", raw_reply=raw_reply)

    if not isinstance(data, dict):
        raise DecisionParseError("Reply is not a JSON object", raw_reply=raw_reply)

    try:
        reply = ModelReply.model_validate(data)
    except ValidationError as e:
        raise DecisionParseError(f"Reply does not match the schema: {e}", raw_reply=raw_reply)

    try:
        if reply.action is not None:
            action = _tagged_action(reply.action)
        else:
            action = _control_action(reply)
    except DecisionParseError as e:
        e.raw_reply = raw_reply
        raise

    say = reply.say.strip() if reply.say else None
    return Decision(say=say or None, action=action)
