"""
Prompt Builder for the Decision Requester.

Encapsulates model request construction:
- Substituting `{{sessionState.<key>}}` placeholders in agent instructions
- Appending the structured-reply instruction
- Rendering the current session state as the second message
- Appending the (possibly retrieval-augmented) history
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any

from ..domain.entities import AgentBundle, Message, MessageRole, SessionState, render_state

logger = logging.getLogger(__name__)


PLACEHOLDER_PATTERN = re.compile(r"\{\{\s*sessionState\.([A-Za-z0-9_]+)\s*\}\}")

STRUCTURED_REPLY_INSTRUCTION = (
    "IMPORTANTE: Responde SIEMPRE en formato JSON válido con la estructura: "
    '{"say": "tu respuesta", "control": {"handoff_to": null, "set": {}}, '
    '"call_tool": {"name": null, "args": {}}}. '
    "Los campos que no uses deben ir explícitamente en null, nunca omitidos."
)

STATE_PREFIX = "Estado actual: "


@dataclass
class InterpolationResult:
    """Instructions after placeholder substitution."""

    text: str
    unresolved: list[str] = field(default_factory=list)


def _format_value(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, (dict, list)):
        return json.dumps(value, ensure_ascii=False, default=str)
    return str(value)


def interpolate(template: str, state: SessionState) -> InterpolationResult:
    """Replace `{{sessionState.<key>}}` placeholders with session values.

    Only keys present in the state are substituted; unmatched placeholders
    stay in the text verbatim and are reported in `unresolved`.
    """
    unresolved: list[str] = []

    def _replace(match: re.Match) -> str:
        key = match.group(1)
        if key in state:
            return _format_value(state[key])
        if key not in unresolved:
            unresolved.append(key)
        return match.group(0)

    text = PLACEHOLDER_PATTERN.sub(_replace, template)
    return InterpolationResult(text=text, unresolved=unresolved)


class PromptBuilder:
    """Builds the system prompt and message list for one decision request.

    Usage:
        builder = PromptBuilder()

        system_prompt = builder.build_system_prompt(bundle, language, state)
        messages = builder.build_messages(history, state)
    """

    def __init__(self, reply_instruction: str = STRUCTURED_REPLY_INSTRUCTION):
        """Initialize the prompt builder.

        Args:
            reply_instruction: Fragment demanding the structured reply format
        """
        self.reply_instruction = reply_instruction

    def build_system_prompt(
        self, bundle: AgentBundle, language: str, state: SessionState
    ) -> str:
        """Agent instructions with placeholders resolved, plus the reply format."""
        result = interpolate(bundle.instructions_for(language), state)
        if result.unresolved:
            logger.warning(
                f"Unresolved placeholders in {bundle.name} instructions: "
                f"{', '.join(result.unresolved)}"
            )
        return f"{result.text.strip()}\n\n{self.reply_instruction}"

    def build_messages(
        self, history: list[Message], state: SessionState
    ) -> list[Message]:
        """Session-state rendering followed by the history, in order."""
        state_message = Message(
            role=MessageRole.USER,
            content=f"{STATE_PREFIX}{render_state(state)}",
        )
        return [state_message, *history]
