"""
Retrieval Augmentor.

Fetches ranked context for the current user input when the active agent
is retrieval-enabled and renders it as a block that is prepended to the
most recent user entry of the per-request history copy.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from ..domain.entities import (
    AgentBundle,
    CLIENT_ID_KEY,
    Message,
    MessageRole,
    RetrievalResult,
    SessionState,
)
from ..domain.ports import IRetrievalService

logger = logging.getLogger(__name__)


CONTEXT_HEADER = "--- CONTEXTO RAG ---"
CONTEXT_FOOTER = "--- FIN CONTEXTO RAG ---"
CONTEXT_USAGE = (
    "Usa esta información para responder la pregunta del usuario "
    "de manera precisa y completa."
)


def format_passages(result: RetrievalResult) -> str:
    """Render retrieval results as a prependable text block ('' when empty)."""
    if not result.passages:
        return ""

    lines = [
        "",
        "",
        CONTEXT_HEADER,
        f"Información relevante encontrada ({len(result.passages)} resultados):",
        "",
    ]
    for index, passage in enumerate(result.passages, start=1):
        lines.append(f"[{index}] (Score: {passage.score:.3f}, Fuente: {passage.source})")
        lines.append(passage.content)
        lines.append("")
    lines.extend([CONTEXT_FOOTER, "", CONTEXT_USAGE, ""])
    return "\n".join(lines)


def augment(messages: list[Message], block: str) -> list[Message]:
    """Return a copy of `messages` with `block` prepended to the last user entry.

    The input list and its entries are never modified.
    """
    augmented = list(messages)
    if not block:
        return augmented

    for index in range(len(augmented) - 1, -1, -1):
        entry = augmented[index]
        if entry.role == MessageRole.USER:
            augmented[index] = entry.with_content(block + entry.content)
            break
    return augmented


class RetrievalAugmentor:
    """Optional retrieval step of each loop iteration.

    Usage:
        augmentor = RetrievalAugmentor(retriever)

        result, block = await augmentor.fetch(user_input, bundle, state)
        messages = augment(transcript.messages(), block)

    `fetch` never raises: failures, timeouts and disabled agents all
    return an empty result and an empty block.
    """

    def __init__(
        self,
        retrieval_service: Optional[IRetrievalService],
        max_results: int = 5,
        score_threshold: float = 0.7,
        timeout_seconds: float = 15.0,
    ):
        """Initialize the augmentor.

        Args:
            retrieval_service: Ranked passage search (None disables retrieval)
            max_results: Maximum passages per search
            score_threshold: Minimum passage score
            timeout_seconds: Upper bound for one search
        """
        self.retrieval = retrieval_service
        self.max_results = max_results
        self.score_threshold = score_threshold
        self.timeout_seconds = timeout_seconds

    async def fetch(
        self,
        query: str,
        bundle: AgentBundle,
        session_state: SessionState,
    ) -> tuple[RetrievalResult, str]:
        """Search the active agent's knowledge sources for the query."""
        if (
            self.retrieval is None
            or not bundle.retrieval_enabled
            or bundle.agent_id is None
            or not query.strip()
        ):
            return RetrievalResult.empty(), ""

        logger.info(f"Searching retrieval context for agent {bundle.name}")
        try:
            result = await asyncio.wait_for(
                self.retrieval.search(
                    query,
                    bundle.agent_id,
                    session_state.get(CLIENT_ID_KEY),
                    max_results=self.max_results,
                    score_threshold=self.score_threshold,
                ),
                timeout=self.timeout_seconds,
            )
        except asyncio.TimeoutError:
            logger.warning(
                f"Retrieval for {bundle.name} timed out after {self.timeout_seconds}s"
            )
            return RetrievalResult.empty(), ""
        except Exception as e:
            logger.warning(f"Retrieval for {bundle.name} failed: {e}")
            return RetrievalResult.empty(), ""

        if not result.passages:
            logger.info("Retrieval found no relevant passages")
            return result, ""

        logger.info(f"Retrieval found {result.total_results} relevant passages")
        return result, format_passages(result)
