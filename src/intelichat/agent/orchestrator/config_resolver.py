"""
Agent Configuration Resolver.

Loads an agent's behavior bundle (instructions, generation parameters,
canned messages) for a language and chatbot:
- Store first, cached with a short TTL
- Prompt files on disk when the store has no bundle or is unreachable
- A built-in default prompt as the last resort
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

from ..domain.entities import AgentBundle, MessageKind
from ..domain.exceptions import AgentNotFoundError
from ..domain.ports import IAgentStore
from .cache import TTLCache

logger = logging.getLogger(__name__)


DEFAULT_PROMPTS = {
    "info": "Eres un asistente de información. Ayuda al usuario con información básica.",
    "onboarding": "Eres un asistente de registro. Ayuda al usuario a completar su registro.",
    "clientes": "Eres un asistente de clientes. Ayuda al usuario con sus consultas.",
}
GENERIC_PROMPT = "Eres un asistente virtual. Ayuda al usuario."


@dataclass
class ResolverConfig:
    """Configuration for the agent configuration resolver.

    Attributes:
        cache_ttl_seconds: Lifetime of a cached store bundle
        prompts_dir: Root of the `<language>/<agent>.md` prompt files
        store_timeout_seconds: Upper bound for one store lookup
    """

    cache_ttl_seconds: float = 120.0
    prompts_dir: Optional[Path] = None
    store_timeout_seconds: float = 10.0


class AgentConfigResolver:
    """Resolves agent bundles with caching and degraded fallbacks.

    Usage:
        resolver = AgentConfigResolver(agent_store, ResolverConfig())

        bundle = await resolver.resolve("info", "es", chatbot_id=7)
        welcome = await resolver.lookup_message(
            "info", MessageKind.WELCOME, "es", chatbot_id=7
        )

    Bundles from the store are cached by (agent, language, chatbot).
    Fallback bundles are never cached, so a recovered store is picked up
    on the next turn.
    """

    def __init__(
        self,
        store: IAgentStore,
        config: Optional[ResolverConfig] = None,
        cache: Optional[TTLCache[AgentBundle]] = None,
    ):
        """Initialize the resolver.

        Args:
            store: Agent configuration store
            config: Resolver configuration
            cache: Bundle cache (created from config when omitted)
        """
        self.store = store
        self.config = config or ResolverConfig()
        self.cache = cache or TTLCache(self.config.cache_ttl_seconds)

    async def resolve(
        self,
        agent_name: str,
        language: str,
        chatbot_id: Optional[int] = None,
    ) -> AgentBundle:
        """Return the bundle for an agent.

        Never raises: store failures degrade to the file or default bundle.
        """
        key = (agent_name.lower(), language, chatbot_id)
        cached = self.cache.get(key)
        if cached is not None:
            logger.debug(f"Agent bundle cache hit: {key}")
            return cached

        try:
            bundle = await asyncio.wait_for(
                self.store.get_agent_bundle(agent_name, chatbot_id),
                timeout=self.config.store_timeout_seconds,
            )
        except AgentNotFoundError as e:
            logger.warning(f"{e.message}; falling back to prompt files")
            return self._fallback_bundle(agent_name, language)
        except Exception as e:
            logger.warning(
                f"Agent store lookup failed for {agent_name}: {e}; falling back to prompt files"
            )
            return self._fallback_bundle(agent_name, language)

        self.cache.set(key, bundle)
        logger.info(f"Agent bundle loaded from store: {agent_name} ({language})")
        return bundle

    async def lookup_message(
        self,
        agent_name: str,
        kind: MessageKind,
        language: str,
        chatbot_id: Optional[int] = None,
    ) -> Optional[str]:
        """Return a canned message, or None when the agent has none configured."""
        bundle = await self.resolve(agent_name, language, chatbot_id)
        return bundle.message_for(kind, language)

    def _fallback_bundle(self, agent_name: str, language: str) -> AgentBundle:
        """Build a degraded bundle from prompt files or the built-in default."""
        name = agent_name.lower()
        text = self._read_prompt_files(name, language)
        source = "files"
        if text is None:
            text = DEFAULT_PROMPTS.get(name, GENERIC_PROMPT)
            source = "default"
            logger.warning(f"Using default prompt for {name}")

        return AgentBundle(
            name=name,
            instructions={language: text},
            source=source,
        )

    def _read_prompt_files(self, agent_name: str, language: str) -> Optional[str]:
        """Read `<language>/common.md` + `<language>/<agent>.md`, if present."""
        if self.config.prompts_dir is None:
            return None

        base = Path(self.config.prompts_dir) / language
        agent_path = base / f"{agent_name}.md"
        if not agent_path.is_file():
            logger.info(f"Prompt file not found: {agent_path}")
            return None

        try:
            agent_text = agent_path.read_text(encoding="utf-8")
            common_path = base / "common.md"
            common_text = (
                common_path.read_text(encoding="utf-8") if common_path.is_file() else ""
            )
        except OSError as e:
            logger.error(f"Failed to read prompt files for {agent_name}: {e}")
            return None

        logger.info(f"Prompt loaded from files: {agent_name} ({language})")
        return f"{common_text}\n\n{agent_text}" if common_text else agent_text

    def clear_cache(self) -> None:
        """Drop every cached bundle."""
        self.cache.clear()
        logger.info("Agent bundle cache cleared")

    async def status(self) -> dict[str, Any]:
        """Report cache size and the availability of each bundle source."""
        try:
            store_available = await asyncio.wait_for(
                self.store.ping(), timeout=self.config.store_timeout_seconds
            )
        except Exception as e:
            logger.warning(f"Agent store not available: {e}")
            store_available = False

        prompts_dir = self.config.prompts_dir
        return {
            "cache_size": len(self.cache),
            "store_available": store_available,
            "files_available": bool(prompts_dir and Path(prompts_dir).is_dir()),
        }
