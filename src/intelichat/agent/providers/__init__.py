"""LLM provider implementations."""

from .base import BaseLLMProvider, LLMProviderError, LLMProviderConfig
from .factory import ProviderFactory
from .ollama import OllamaProvider
from .openai import OpenAIProvider

__all__ = [
    "BaseLLMProvider",
    "LLMProviderError",
    "LLMProviderConfig",
    "OllamaProvider",
    "OpenAIProvider",
    "ProviderFactory",
]
