"""
Pinecone Retriever.

Ranked passage search over the Pinecone "cartridges" attached to an agent.
The query is embedded once, every Pinecone cartridge of the agent is
queried, and the merged passages are sorted by descending score.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any, Optional

import aiohttp

from ..domain.entities import RetrievalPassage, RetrievalResult, RetrievalSource
from ..domain.exceptions import RetrievalError
from ..domain.ports import IAgentStore, ILLMProvider, IRetrievalService

logger = logging.getLogger(__name__)


PINECONE_CONTROL_URL = "https://api.pinecone.io"
DEFAULT_INDEX_NAME = "docs-pinecone"
ENDPOINT_INDEX_PATTERN = re.compile(r"https://([^-]+(?:-[^-]+)*)-[^.]+\.")


@dataclass
class PineconeConfig:
    """Configuration for the Pinecone retriever."""

    api_key: Optional[str] = None
    control_url: str = PINECONE_CONTROL_URL
    timeout: float = 15.0


def index_name_for(source: RetrievalSource) -> str:
    """Index name of a cartridge: explicit name, else parsed from its endpoint."""
    if source.index_name:
        return source.index_name
    if source.endpoint:
        match = ENDPOINT_INDEX_PATTERN.match(source.endpoint)
        if match:
            return match.group(1)
    return DEFAULT_INDEX_NAME


class PineconeRetriever(IRetrievalService):
    """Retrieval service backed by Pinecone indexes.

    Usage:
        retriever = PineconeRetriever(agent_store, embedder, PineconeConfig(api_key=key))

        result = await retriever.search("¿Qué documentos necesito?", source_id=200,
                                        client_id=1, max_results=5, score_threshold=0.7)

    Errors in one cartridge are logged and skipped; a failure to embed the
    query raises RetrievalError, which the augmentor turns into an empty result.
    """

    def __init__(
        self,
        store: IAgentStore,
        embedder: ILLMProvider,
        config: Optional[PineconeConfig] = None,
    ):
        """Initialize the retriever.

        Args:
            store: Store holding the agent's cartridges
            embedder: Provider used to embed the query
            config: Pinecone configuration
        """
        self.store = store
        self.embedder = embedder
        self.config = config or PineconeConfig()
        self._session: Optional[aiohttp.ClientSession] = None
        self._hosts: dict[str, str] = {}

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create HTTP session."""
        if self._session is None or self._session.closed:
            timeout = aiohttp.ClientTimeout(total=self.config.timeout)
            self._session = aiohttp.ClientSession(timeout=timeout)
        return self._session

    async def close(self) -> None:
        """Close the client session."""
        if self._session and not self._session.closed:
            await self._session.close()
            self._session = None

    def _headers(self) -> dict[str, str]:
        return {"Api-Key": self.config.api_key or "", "Content-Type": "application/json"}

    async def _index_host(self, index_name: str) -> Optional[str]:
        """Look up (and remember) the data-plane host of an index."""
        if index_name in self._hosts:
            return self._hosts[index_name]

        session = await self._get_session()
        async with session.get(
            f"{self.config.control_url}/indexes", headers=self._headers()
        ) as response:
            if response.status != 200:
                logger.warning(f"Pinecone index list failed: {response.status}")
                return None
            data = await response.json()

        for index in data.get("indexes") or []:
            if index.get("name") == index_name and index.get("host"):
                self._hosts[index_name] = index["host"]
                return index["host"]

        logger.warning(f"Pinecone index {index_name} not found or has no host")
        return None

    async def _query_index(
        self, index_name: str, vector: list[float], top_k: int
    ) -> list[dict[str, Any]]:
        host = await self._index_host(index_name)
        if host is None:
            return []

        session = await self._get_session()
        async with session.post(
            f"https://{host}/query",
            headers=self._headers(),
            json={
                "vector": vector,
                "topK": top_k,
                "includeMetadata": True,
                "includeValues": False,
            },
        ) as response:
            if response.status != 200:
                logger.warning(f"Pinecone query on {index_name} failed: {response.status}")
                return []
            data = await response.json()

        return data.get("matches") or []

    async def search(
        self,
        query: str,
        source_id: int,
        client_id: Optional[int],
        max_results: int = 5,
        score_threshold: float = 0.0,
    ) -> RetrievalResult:
        """Return passages ranked by descending score.

        `total_results` counts every passage above the threshold before
        truncation to `max_results`.
        """
        if not self.config.api_key:
            logger.warning("Pinecone API key not configured; skipping retrieval")
            return RetrievalResult.empty()

        sources = await self.store.get_retrieval_sources(source_id, client_id)
        pinecone_sources = [s for s in sources if s.provider == "pinecone"]
        if not pinecone_sources:
            logger.info(f"No Pinecone cartridges configured for agent {source_id}")
            return RetrievalResult.empty()

        try:
            vector, _, _ = await self.embedder.embed(query)
        except Exception as e:
            raise RetrievalError(f"Failed to embed retrieval query: {e}")

        passages: list[RetrievalPassage] = []
        for source in pinecone_sources:
            index_name = index_name_for(source)
            try:
                matches = await self._query_index(index_name, vector, source.top_k or max_results)
            except aiohttp.ClientError as e:
                logger.warning(f"Pinecone search in {source.name} failed: {e}")
                continue

            for match in matches:
                metadata = match.get("metadata") or {}
                passages.append(
                    RetrievalPassage(
                        content=metadata.get("content") or metadata.get("text") or "",
                        score=float(match.get("score") or 0.0),
                        source=source.name,
                        metadata=metadata,
                    )
                )
            logger.debug(f"Pinecone cartridge {source.name}: {len(matches)} matches")

        passages = [p for p in passages if p.score >= score_threshold]
        passages.sort(key=lambda p: p.score, reverse=True)

        logger.info(
            f"Retrieval for agent {source_id}: {len(passages)} passages "
            f"from {len(pinecone_sources)} cartridges"
        )
        return RetrievalResult(passages=passages[:max_results], total_results=len(passages))
