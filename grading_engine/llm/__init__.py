"""
Text generation providers
"""
from .base import LLMMessage, LLMProvider, LLMResponse, LLMRole
from .factory import LLMProviderFactory
from .mock import MockLLMProvider
from .ollama_provider import OllamaProvider

__all__ = [
    "LLMMessage",
    "LLMProvider",
    "LLMResponse",
    "LLMRole",
    "LLMProviderFactory",
    "MockLLMProvider",
    "OllamaProvider",
]
