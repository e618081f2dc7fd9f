"""Chat-completion backends used by the failure analyzer.

Two transports are supported: any OpenAI-compatible endpoint (OpenRouter
unless ``ai_base_url`` says otherwise) through the ``openai`` SDK, and a
local Ollama daemon spoken to directly over httpx.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from functools import cached_property
from typing import Any

import httpx
from openai import AsyncOpenAI

from testbridge.config import Settings
from testbridge.exceptions import AnalysisError

REQUEST_TITLE = "Test Bridge Analysis"


class ProviderType(str, Enum):
    OPENAI = "openai"
    OLLAMA = "ollama"


@dataclass(frozen=True)
class AIMessage:
    role: str
    content: str

    def as_dict(self) -> dict[str, str]:
        return {"role": self.role, "content": self.content}


@dataclass(frozen=True)
class AIResponse:
    """Text returned by a backend plus whatever accounting it reported."""

    content: str
    model: str
    tokens_used: int | None = None
    finish_reason: str | None = None


class AIProvider(ABC):
    model: str

    @abstractmethod
    async def generate(
        self,
        messages: list[AIMessage],
        temperature: float = 0.7,
        max_tokens: int | None = None,
    ) -> AIResponse:
        """Send the conversation and return the first completion.

        Transport failures propagate; the analyzer decides how to degrade.
        """

    @staticmethod
    def _wire_messages(messages: list[AIMessage]) -> list[dict[str, str]]:
        return [message.as_dict() for message in messages]

    def __repr__(self) -> str:
        return f"{type(self).__name__}(model={self.model!r})"


class OpenAIProvider(AIProvider):
    """Any endpoint that speaks the OpenAI chat completions protocol."""

    def __init__(
        self,
        api_key: str,
        model: str = "anthropic/claude-3.5-sonnet",
        base_url: str | None = None,
        timeout: float = 60.0,
    ) -> None:
        self.api_key = api_key
        self.model = model
        self.base_url = base_url
        self.timeout = timeout

    @cached_property
    def client(self) -> AsyncOpenAI:
        return AsyncOpenAI(
            api_key=self.api_key,
            base_url=self.base_url,
            timeout=self.timeout,
            default_headers={"X-Title": REQUEST_TITLE},
        )

    async def generate(
        self,
        messages: list[AIMessage],
        temperature: float = 0.7,
        max_tokens: int | None = None,
    ) -> AIResponse:
        completion = await self.client.chat.completions.create(
            model=self.model,
            messages=self._wire_messages(messages),
            temperature=temperature,
            max_tokens=max_tokens,
        )
        if not completion.choices:
            raise AnalysisError("No response from AI service")

        first = completion.choices[0]
        usage = completion.usage
        return AIResponse(
            content=first.message.content or "",
            model=completion.model or self.model,
            tokens_used=usage.total_tokens if usage is not None else None,
            finish_reason=first.finish_reason,
        )


class OllamaProvider(AIProvider):
    """Local models served by ``ollama serve``."""

    def __init__(
        self,
        base_url: str = "http://localhost:11434",
        model: str = "llama3.1:8b",
        timeout: float = 120.0,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.timeout = timeout

    def _chat_body(
        self, messages: list[AIMessage], temperature: float, max_tokens: int | None
    ) -> dict[str, Any]:
        options: dict[str, Any] = {"temperature": temperature}
        if max_tokens is not None:
            options["num_predict"] = max_tokens
        return {
            "model": self.model,
            "messages": self._wire_messages(messages),
            "stream": False,
            "options": options,
        }

    async def generate(
        self,
        messages: list[AIMessage],
        temperature: float = 0.7,
        max_tokens: int | None = None,
    ) -> AIResponse:
        body = self._chat_body(messages, temperature, max_tokens)
        async with httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout) as http:
            reply = await http.post("/api/chat", json=body)
        reply.raise_for_status()

        payload = reply.json()
        message = payload.get("message") or {}
        if "content" not in message:
            raise AnalysisError("No response from AI service")
        return AIResponse(
            content=message["content"],
            model=payload.get("model", self.model),
            tokens_used=payload.get("eval_count"),
            finish_reason=payload.get("done_reason"),
        )


def get_ai_provider(settings: Settings) -> AIProvider | None:
    """Build the configured backend, or None when it cannot be used.

    The hosted backend needs an API key; without one the analyzer answers
    with its static fallback instead of calling out.
    """
    if settings.ai_provider == ProviderType.OLLAMA:
        return OllamaProvider(
            base_url=settings.ollama_base_url,
            model=settings.ai_model,
            timeout=settings.ai_timeout,
        )
    if not settings.ai_api_key:
        return None
    return OpenAIProvider(
        api_key=settings.ai_api_key,
        model=settings.ai_model,
        base_url=settings.ai_base_url,
        timeout=settings.ai_timeout,
    )
