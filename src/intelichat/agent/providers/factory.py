"""
Provider Factory.

Builds LLM providers by name and keeps one client per
(provider, model, base URL) so agents that share a model share a client.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Optional

from ..domain.ports import ILLMProvider
from .base import LLMProviderConfig
from .ollama import OllamaProvider
from .openai import OpenAIProvider

logger = logging.getLogger(__name__)


# Base URLs for OpenAI-compatible providers
OPENAI_COMPATIBLE_BASE_URLS = {
    "openai": None,
    "openrouter": "https://openrouter.ai/api/v1",
    "groq": "https://api.groq.com/openai/v1",
}

OPENROUTER_HEADERS = {
    "HTTP-Referer": "http://localhost:3000",
    "X-Title": "InteliChat",
}

SUPPORTED_PROVIDERS = frozenset(OPENAI_COMPATIBLE_BASE_URLS) | {"ollama"}


class ProviderFactory:
    """Creates and caches LLM providers.

    Usage:
        factory = ProviderFactory(
            configs={"openai": LLMProviderConfig(api_key="sk-...", model="gpt-4o-mini")},
            default_provider="openai",
        )

        provider = factory.get()                        # default provider/model
        provider = factory.get("openai", "gpt-4o")      # per-agent override
    """

    def __init__(
        self,
        configs: dict[str, LLMProviderConfig],
        default_provider: str = "openai",
    ):
        """Initialize the factory.

        Args:
            configs: Base configuration (credentials, default model) per provider name
            default_provider: Provider used when an agent names none
        """
        self.configs = {name.lower(): cfg for name, cfg in configs.items()}
        self.default_provider = default_provider.lower()
        self._clients: dict[tuple[str, str, Optional[str]], ILLMProvider] = {}

    def get(
        self,
        provider_name: Optional[str] = None,
        model: Optional[str] = None,
    ) -> ILLMProvider:
        """Return a provider for the given name and model.

        Unknown or unconfigured provider names fall back to the default provider.

        Raises:
            ValueError: If the default provider itself is not configured
        """
        name = (provider_name or self.default_provider).lower()
        if name not in self.configs or name not in SUPPORTED_PROVIDERS:
            if provider_name:
                logger.warning(
                    f"Provider '{provider_name}' not configured, using '{self.default_provider}'"
                )
            name = self.default_provider

        base = self.configs.get(name)
        if base is None:
            raise ValueError(f"No configuration for LLM provider '{name}'")

        config = replace(base, model=model) if model else base
        if name in OPENAI_COMPATIBLE_BASE_URLS and not config.base_url:
            config = replace(config, base_url=OPENAI_COMPATIBLE_BASE_URLS[name])
        if name == "openrouter" and "default_headers" not in config.extra:
            config = replace(
                config, extra={**config.extra, "default_headers": OPENROUTER_HEADERS}
            )

        cache_key = (name, config.model, config.base_url)
        provider = self._clients.get(cache_key)
        if provider is None:
            provider = self._create(name, config)
            self._clients[cache_key] = provider
            logger.info(f"Created {name} provider for model {config.model}")

        return provider

    def _create(self, name: str, config: LLMProviderConfig) -> ILLMProvider:
        if name == "ollama":
            return OllamaProvider(config)
        return OpenAIProvider(config)

    async def close(self) -> None:
        """Close every cached provider client."""
        for provider in self._clients.values():
            close = getattr(provider, "close", None)
            if close is not None:
                await close()
        self._clients.clear()
