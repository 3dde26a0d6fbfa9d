"""
LLM Provider Factory

Registry of text generation providers used for AI feedback and the LLM
safety classifier.

Supports:
- mock: canned responses for tests / development (no network calls)
- ollama: local models through the Ollama HTTP API

Usage:
    >>> provider = LLMProviderFactory.create_from_env()   # LLM_PROVIDER
    >>> provider = LLMProviderFactory.create("ollama", {"model": "mistral"})
    >>> response = await provider.generate(messages, temperature=0.3)
"""
import os
from typing import Any, Dict, Optional

from .base import LLMProvider
from .mock import MockLLMProvider
from .ollama_provider import OllamaProvider


class LLMProviderFactory:
    """Factory for creating LLM providers"""

    _providers = {
        "mock": MockLLMProvider,
        "ollama": OllamaProvider,
    }

    @classmethod
    def create(cls, provider_type: str, config: Optional[Dict[str, Any]] = None) -> LLMProvider:
        """
        Create LLM provider instance

        Raises:
            ValueError: If provider type is not registered
        """
        if provider_type not in cls._providers:
            available = ", ".join(cls.get_available_providers())
            raise ValueError(
                f"Unknown provider type: {provider_type}. "
                f"Available providers: {available}"
            )
        return cls._providers[provider_type](config)

    @classmethod
    def get_available_providers(cls) -> list:
        return list(cls._providers.keys())

    @classmethod
    def create_from_env(cls, provider_type: Optional[str] = None) -> LLMProvider:
        """
        Create provider using environment variables

        Looks for:
        - LLM_PROVIDER (default: mock)
        - OLLAMA_BASE_URL, OLLAMA_MODEL, OLLAMA_TEMPERATURE, OLLAMA_TIMEOUT,
          OLLAMA_KEEP_ALIVE, OLLAMA_NUM_CTX for Ollama
        """
        if provider_type is None:
            provider_type = os.getenv("LLM_PROVIDER", "mock")

        config: Dict[str, Any] = {}

        if provider_type == "ollama":
            config["base_url"] = os.getenv("OLLAMA_BASE_URL", "http://localhost:11434")
            config["model"] = os.getenv("OLLAMA_MODEL", "llama2")
            config["timeout"] = float(os.getenv("OLLAMA_TIMEOUT", "60"))
            temperature = os.getenv("OLLAMA_TEMPERATURE")
            if temperature:
                config["temperature"] = float(temperature)

            # Keep the model loaded between calls
            keep_alive = os.getenv("OLLAMA_KEEP_ALIVE")
            if keep_alive:
                config["keep_alive"] = keep_alive

            num_ctx = os.getenv("OLLAMA_NUM_CTX")
            if num_ctx:
                config["options"] = {"num_ctx": int(num_ctx)}

        return cls.create(provider_type, config)
