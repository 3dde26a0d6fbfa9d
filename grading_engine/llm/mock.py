"""
Mock provider for development and tests (no network calls)
"""
from typing import Any, Dict, List, Optional

from .base import LLMMessage, LLMProvider, LLMResponse


class MockLLMProvider(LLMProvider):
    """
    Returns ``config["response"]`` when set, otherwise a short canned
    feedback text. ``config["error"]`` makes every call raise it.
    """

    name = "mock"

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        super().__init__(config)
        self.model = self.config.get("model", "mock")
        self.calls: List[List[LLMMessage]] = []

    async def generate(
        self,
        messages: List[LLMMessage],
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> LLMResponse:
        self.calls.append(list(messages))
        error = self.config.get("error")
        if error is not None:
            raise error
        content = self.config.get(
            "response",
            "Good progress. To reach the next rubric level, explain your reasoning "
            "with a concrete example from your project.",
        )
        return LLMResponse(content=content, model=self.model, usage={"prompt_messages": len(messages)})
