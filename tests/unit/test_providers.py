"""Unit tests for the chat-completion backends.

Total: 6 tests
  - Provider selection: 2
  - OllamaProvider: 2
  - OpenAIProvider: 2
"""

from __future__ import annotations

import json
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from testbridge.ai.providers import AIMessage, OllamaProvider, OpenAIProvider, get_ai_provider
from testbridge.exceptions import AnalysisError

MESSAGES = [AIMessage(role="system", content="be brief"), AIMessage(role="user", content="why?")]


@pytest.fixture
def ollama_transport(monkeypatch):
    """Route every httpx.AsyncClient through a recording mock transport."""
    seen: list[httpx.Request] = []
    replies: list[httpx.Response] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return replies.pop(0)

    real_client = httpx.AsyncClient
    monkeypatch.setattr(
        httpx,
        "AsyncClient",
        lambda **kwargs: real_client(transport=httpx.MockTransport(handler), **kwargs),
    )
    return seen, replies


def _openai_with_reply(completion) -> OpenAIProvider:
    provider = OpenAIProvider(api_key="sk-test", model="gpt-test")
    client = MagicMock()
    client.chat.completions.create = AsyncMock(return_value=completion)
    provider.client = client
    return provider


# ── Provider selection, 2 tests ───────────────────────────────────────────────

class TestGetProvider:
    def test_ollama_needs_no_key(self, settings_factory):
        provider = get_ai_provider(
            settings_factory(ai_provider="ollama", ai_model="llama3.1:8b", ollama_base_url="http://gpu:11434/")
        )
        assert isinstance(provider, OllamaProvider)
        assert provider.base_url == "http://gpu:11434"
        assert provider.model == "llama3.1:8b"

    def test_hosted_provider_with_key(self, settings_factory):
        provider = get_ai_provider(settings_factory(ai_api_key="sk-live", ai_base_url="https://llm.local/v1"))
        assert isinstance(provider, OpenAIProvider)
        assert provider.base_url == "https://llm.local/v1"
        assert provider.api_key == "sk-live"


# ── OllamaProvider, 2 tests ───────────────────────────────────────────────────

class TestOllama:
    @pytest.mark.asyncio
    async def test_generate_posts_chat_request(self, ollama_transport):
        seen, replies = ollama_transport
        replies.append(
            httpx.Response(200, json={"model": "llama3.1:8b", "message": {"content": "flaky"}, "eval_count": 12})
        )

        response = await OllamaProvider(model="llama3.1:8b").generate(MESSAGES, temperature=0.1, max_tokens=50)

        assert response.content == "flaky"
        assert response.tokens_used == 12
        body = json.loads(seen[0].content)
        assert seen[0].url.path == "/api/chat"
        assert body["stream"] is False
        assert body["options"] == {"temperature": 0.1, "num_predict": 50}
        assert body["messages"][1] == {"role": "user", "content": "why?"}

    @pytest.mark.asyncio
    async def test_reply_without_message_raises(self, ollama_transport):
        _, replies = ollama_transport
        replies.append(httpx.Response(200, json={"done": True}))

        with pytest.raises(AnalysisError):
            await OllamaProvider().generate(MESSAGES)


# ── OpenAIProvider, 2 tests ───────────────────────────────────────────────────

class TestOpenAI:
    @pytest.mark.asyncio
    async def test_first_choice_is_returned(self):
        completion = SimpleNamespace(
            model="gpt-test",
            usage=SimpleNamespace(total_tokens=99),
            choices=[SimpleNamespace(message=SimpleNamespace(content="selector drift"), finish_reason="stop")],
        )
        provider = _openai_with_reply(completion)

        response = await provider.generate(MESSAGES, temperature=0.1, max_tokens=10)

        assert response.content == "selector drift"
        assert response.tokens_used == 99
        assert response.finish_reason == "stop"
        kwargs = provider.client.chat.completions.create.await_args.kwargs
        assert kwargs["messages"][0] == {"role": "system", "content": "be brief"}
        assert kwargs["max_tokens"] == 10

    @pytest.mark.asyncio
    async def test_empty_choices_raise(self):
        provider = _openai_with_reply(SimpleNamespace(model="gpt-test", usage=None, choices=[]))
        with pytest.raises(AnalysisError):
            await provider.generate(MESSAGES)
