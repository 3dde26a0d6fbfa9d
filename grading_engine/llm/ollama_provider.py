"""
Ollama provider (local models) over the HTTP chat API
"""
from typing import Any, Dict, List, Optional
import logging

import httpx

from .base import LLMMessage, LLMProvider, LLMResponse

logger = logging.getLogger(__name__)

DEFAULT_TEMPERATURE = 0.7


class OllamaProvider(LLMProvider):
    """
    Calls ``POST {base_url}/api/chat`` with ``stream: false``.

    Config:
        base_url: default http://localhost:11434
        model: default llama2
        timeout: seconds, default 60
        keep_alive: optional Ollama keep_alive value
        options: optional Ollama model options (num_ctx, ...)
        temperature: used when a call passes none, default 0.7
    """

    name = "ollama"

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        super().__init__(config)
        self.base_url = self.config.get("base_url", "http://localhost:11434").rstrip("/")
        self.model = self.config.get("model", "llama2")
        self.timeout = float(self.config.get("timeout", 60.0))
        self.default_temperature = float(self.config.get("temperature", DEFAULT_TEMPERATURE))

    async def generate(
        self,
        messages: List[LLMMessage],
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> LLMResponse:
        options = dict(self.config.get("options", {}))
        options["temperature"] = self.default_temperature if temperature is None else temperature
        if max_tokens:
            options["num_predict"] = max_tokens

        payload: Dict[str, Any] = {
            "model": self.model,
            "messages": [{"role": m.role.value, "content": m.content} for m in messages],
            "stream": False,
            "options": options,
        }
        if self.config.get("keep_alive"):
            payload["keep_alive"] = self.config["keep_alive"]

        async with httpx.AsyncClient(timeout=self.timeout) as client:
            response = await client.post(f"{self.base_url}/api/chat", json=payload)
            response.raise_for_status()
            data = response.json()

        content = data.get("message", {}).get("content", "")
        logger.debug(
            "Ollama response received",
            extra={"model": self.model, "response_length": len(content)},
        )
        return LLMResponse(
            content=content,
            model=data.get("model", self.model),
            usage={
                "prompt_eval_count": data.get("prompt_eval_count"),
                "eval_count": data.get("eval_count"),
            },
        )
