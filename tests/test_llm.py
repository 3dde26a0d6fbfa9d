"""
Test: LLM providers and factory (no network; Ollama runs against a mock transport)
"""
import json

import httpx
import pytest

from grading_engine.llm import ollama_provider
from grading_engine.llm.base import LLMMessage, LLMRole
from grading_engine.llm.factory import LLMProviderFactory
from grading_engine.llm.mock import MockLLMProvider
from grading_engine.llm.ollama_provider import OllamaProvider
from grading_engine.services.ai_feedback import AIFeedbackService
from grading_engine.core.constants import AI_FEEDBACK_FALLBACK


@pytest.fixture
def ollama_requests(monkeypatch):
    """Routes OllamaProvider's httpx client to an in-memory handler"""
    requests = []
    real_client = httpx.AsyncClient

    def handler(request):
        requests.append(json.loads(request.content))
        return httpx.Response(200, json={"model": "mistral", "message": {"role": "assistant", "content": "Nice work."}})

    monkeypatch.setattr(
        ollama_provider.httpx,
        "AsyncClient",
        lambda **kwargs: real_client(transport=httpx.MockTransport(handler), **kwargs),
    )
    return requests


class TestFactory:
    def test_default_is_mock(self, monkeypatch):
        monkeypatch.delenv("LLM_PROVIDER", raising=False)
        assert isinstance(LLMProviderFactory.create_from_env(), MockLLMProvider)

    def test_ollama_from_env(self, monkeypatch):
        monkeypatch.setenv("LLM_PROVIDER", "ollama")
        monkeypatch.setenv("OLLAMA_MODEL", "mistral")
        provider = LLMProviderFactory.create_from_env()
        assert isinstance(provider, OllamaProvider)
        assert provider.model == "mistral"

    def test_unknown_provider(self):
        with pytest.raises(ValueError, match="Available providers: mock, ollama"):
            LLMProviderFactory.create("gpt-unknown")


class TestOllamaProvider:
    async def test_chat_payload(self, ollama_requests):
        provider = OllamaProvider({"model": "mistral", "base_url": "http://ollama.test/"})
        response = await provider.generate(
            [LLMMessage(role=LLMRole.USER, content="Give feedback")], temperature=0.2, max_tokens=50
        )

        assert response.content == "Nice work."
        assert ollama_requests[0]["stream"] is False
        assert ollama_requests[0]["options"] == {"temperature": 0.2, "num_predict": 50}
        assert ollama_requests[0]["messages"] == [{"role": "user", "content": "Give feedback"}]

    async def test_configured_temperature_is_only_a_default(self, ollama_requests):
        provider = OllamaProvider({"temperature": 0.9})
        messages = [LLMMessage(role=LLMRole.USER, content="Classify")]

        await provider.generate(messages, temperature=0.0)
        await provider.generate(messages)

        assert [request["options"]["temperature"] for request in ollama_requests] == [0.0, 0.9]

    async def test_builtin_default_temperature(self, ollama_requests):
        await OllamaProvider().generate([LLMMessage(role=LLMRole.USER, content="Hi")])
        assert ollama_requests[0]["options"] == {"temperature": 0.7}


class TestAIFeedbackService:
    async def test_question_feedback_is_returned_verbatim(self):
        service = AIFeedbackService(MockLLMProvider({"response": "  Clear thesis; add evidence.  "}))
        feedback = await service.generate_question_feedback("Why do bridges sag?", "Gravity", "Explains load paths")
        assert feedback == "Clear thesis; add evidence."

    async def test_empty_reply_and_missing_provider_fall_back(self):
        assert await AIFeedbackService(MockLLMProvider({"response": "   "})).generate_question_feedback("q", "a") == (
            AI_FEEDBACK_FALLBACK
        )
        assert await AIFeedbackService(None).generate_question_feedback("q", "a") == AI_FEEDBACK_FALLBACK
