"""
Turn Transcript.

Accumulates one turn's history entries and response messages. The most
recent assistant utterance is held in a pending slot until the turn is
finalized, so a deterministic override can replace it without rewriting
already-committed entries.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from ..domain.entities import Message, MessageRole, ResponseMessage


@dataclass
class TranscriptSnapshot:
    """Finalized transcript of one turn."""

    history: list[Message]
    new_entries: list[Message] = field(default_factory=list)
    responses: list[ResponseMessage] = field(default_factory=list)


class TurnTranscript:
    """History plus this turn's additions.

    Usage:
        transcript = TurnTranscript(history)
        transcript.add_user("hola")
        transcript.emit("¡Hola!", "info")
        transcript.replace_last_emitted("Tarea completada.", "onboarding")
        snapshot = transcript.finalize()
    """

    def __init__(self, history: list[Message]):
        self._base = list(history)
        self._committed: list[Message] = []
        self._responses: list[ResponseMessage] = []
        self._pending: Optional[Message] = None

    @property
    def has_pending(self) -> bool:
        return self._pending is not None

    def _commit_pending(self) -> None:
        if self._pending is not None:
            self._committed.append(self._pending)
            self._pending = None

    def add_user(self, content: str) -> None:
        self._commit_pending()
        self._committed.append(Message(role=MessageRole.USER, content=content))

    def emit(self, text: str, agent_name: str) -> None:
        """Record an assistant utterance and its response message."""
        self._commit_pending()
        self._pending = Message(
            role=MessageRole.ASSISTANT, content=text, agent_name=agent_name
        )
        self._responses.append(ResponseMessage(text=text, agent_name=agent_name))

    def add_tool_result(self, summary: str) -> None:
        """Record a tool summary as a synthetic user-visible-to-model entry."""
        self._commit_pending()
        self._committed.append(Message(role=MessageRole.TOOL_RESULT, content=summary))

    def replace_last_emitted(self, text: str, agent_name: str) -> bool:
        """Swap the pending utterance for a deterministic one.

        Returns:
            False (and changes nothing) when nothing is pending
        """
        if self._pending is None:
            return False
        self._pending = Message(
            role=MessageRole.ASSISTANT, content=text, agent_name=agent_name
        )
        self._responses[-1] = ResponseMessage(text=text, agent_name=agent_name)
        return True

    def replace_or_emit(self, text: str, agent_name: str) -> None:
        if not self.replace_last_emitted(text, agent_name):
            self.emit(text, agent_name)

    def messages(self) -> list[Message]:
        """Everything the model should see: base, committed and pending entries."""
        entries = [*self._base, *self._committed]
        if self._pending is not None:
            entries.append(self._pending)
        return entries

    @property
    def responses(self) -> list[ResponseMessage]:
        return list(self._responses)

    def finalize(self) -> TranscriptSnapshot:
        self._commit_pending()
        return TranscriptSnapshot(
            history=[*self._base, *self._committed],
            new_entries=list(self._committed),
            responses=list(self._responses),
        )
