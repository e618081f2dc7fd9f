"""Unit tests for FailureAnalyzerAgent and the error categorizer.

Total: 22 tests
  - FailureAnalyzerAgent: 16
  - Error categorizer: 6
"""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from testbridge.ai.agents.failure_analyzer import (
    SERVICE_ERROR,
    UNAVAILABLE,
    UNPARSEABLE,
    FailureAnalyzerAgent,
    FailureContext,
)
from testbridge.ai.providers import AIResponse, get_ai_provider
from testbridge.core.error_categorizer import categorize_error, describe_failure_patterns


# ── Helpers ───────────────────────────────────────────────────────────────────

def _make_response(content: str) -> AIResponse:
    return AIResponse(content=content, model="claude-mock")


def _make_provider(content: str = "{}") -> MagicMock:
    provider = MagicMock()
    provider.generate = AsyncMock(return_value=_make_response(content))
    return provider


def _make_context(**overrides) -> FailureContext:
    values = {
        "test_path": "tests/login.spec.ts",
        "output": "Running 1 test\nTimeoutError: locator.click: Timeout 30000ms exceeded",
        "error": "Test timeout of 30000ms exceeded",
        "errors": ["locator.click: Timeout 30000ms exceeded"],
        "log_lines": ["console line"],
        "artifact_names": ["test-results/login/screenshot.png"],
        "stats": {"duration": 31000},
        "suite_count": 1,
    }
    values.update(overrides)
    return FailureContext(**values)


# ── FailureAnalyzerAgent, 16 tests ────────────────────────────────────────────

class TestAnalyze:
    """Tests for analyze() and its fallbacks."""

    @pytest.mark.asyncio
    async def test_disabled_returns_none(self, settings_factory):
        """No analysis is attached when the feature is switched off."""
        provider = _make_provider()
        agent = FailureAnalyzerAgent(provider, settings_factory(ai_analysis_enabled=False))
        assert await agent.analyze(_make_context()) is None
        provider.generate.assert_not_called()

    @pytest.mark.asyncio
    async def test_no_provider_returns_unavailable(self, settings_factory):
        """Missing API key yields the static unavailable analysis."""
        agent = FailureAnalyzerAgent(None, settings_factory(ai_analysis_enabled=True))
        result = await agent.analyze(_make_context())
        assert result == UNAVAILABLE
        assert result.confidence == 0

    @pytest.mark.asyncio
    async def test_valid_reply_is_parsed(self, settings_factory):
        provider = _make_provider(
            '{"rootCause": "Login button selector changed", '
            '"fixRecommendations": ["Use getByRole"], "confidence": 85}'
        )
        agent = FailureAnalyzerAgent(provider, settings_factory(ai_analysis_enabled=True))

        result = await agent.analyze(_make_context())

        assert result.root_cause == "Login button selector changed"
        assert result.recommendations == ["Use getByRole"]
        assert result.confidence == 85
        _, kwargs = provider.generate.call_args
        assert kwargs["temperature"] == 0.1
        assert kwargs["max_tokens"] == 1000

    @pytest.mark.asyncio
    async def test_service_error_falls_back(self, settings_factory):
        """A provider exception never escapes analyze()."""
        provider = _make_provider()
        provider.generate = AsyncMock(side_effect=RuntimeError("503 upstream"))
        agent = FailureAnalyzerAgent(provider, settings_factory(ai_analysis_enabled=True))
        assert await agent.analyze(_make_context()) == SERVICE_ERROR

    @pytest.mark.asyncio
    async def test_slow_provider_times_out(self, settings_factory):
        async def _slow(*args, **kwargs):
            await asyncio.sleep(5)

        provider = MagicMock()
        provider.generate = _slow
        agent = FailureAnalyzerAgent(provider, settings_factory(ai_analysis_enabled=True, ai_timeout=0.05))
        assert await agent.analyze(_make_context()) == SERVICE_ERROR

    @pytest.mark.asyncio
    async def test_unparseable_reply_falls_back(self, settings_factory):
        provider = _make_provider("I think the selector is wrong, sorry no JSON today.")
        agent = FailureAnalyzerAgent(provider, settings_factory(ai_analysis_enabled=True))
        assert await agent.analyze(_make_context()) == UNPARSEABLE

    @pytest.mark.asyncio
    async def test_non_finite_confidence_keeps_reply(self, settings_factory):
        """A reply with an infinite confidence still yields a usable analysis."""
        provider = _make_provider('{"rootCause": "Stale session cookie", "confidence": 1e999}')
        agent = FailureAnalyzerAgent(provider, settings_factory(ai_analysis_enabled=True))

        result = await agent.analyze(_make_context())

        assert result.root_cause == "Stale session cookie"
        assert result.confidence == 50

    @pytest.mark.asyncio
    async def test_unexpected_parse_error_falls_back(self, settings_factory):
        agent = FailureAnalyzerAgent(_make_provider('{"rootCause": "x"}'), settings_factory(ai_analysis_enabled=True))
        with patch.object(agent, "parse_response", side_effect=OverflowError("too big")):
            assert await agent.analyze(_make_context()) == UNPARSEABLE


class TestParseResponse:
    """Tests for parse_response() tolerance."""

    def setup_method(self):
        self.agent = FailureAnalyzerAgent(_make_provider(), MagicMock())

    def test_fenced_json(self):
        content = 'Here you go:\n```json\n{"rootCause": "x", "recommendations": "retry", "confidence": 40}\n```'
        result = self.agent.parse_response(content)
        assert result.root_cause == "x"
        assert result.recommendations == ["retry"]
        assert result.confidence == 40

    def test_fractional_confidence_scaled(self):
        result = self.agent.parse_response('{"rootCause": "x", "confidence": 0.7}')
        assert result.confidence == 70

    def test_confidence_clamped(self):
        assert self.agent.parse_response('{"rootCause": "x", "confidence": 250}').confidence == 100
        assert self.agent.parse_response('{"rootCause": "x", "confidence": -3}').confidence == 0

    @pytest.mark.parametrize("raw", ["\"nan\"", "\"inf\"", "1e999"])
    def test_non_finite_confidence_defaults(self, raw):
        result = self.agent.parse_response('{"rootCause": "x", "confidence": ' + raw + "}")
        assert result.confidence == 50


class TestBuildPrompt:
    def test_prompt_respects_budgets_and_hints(self, settings_factory):
        agent = FailureAnalyzerAgent(None, settings_factory(ai_max_output_chars=50, ai_max_errors=1))
        prompt = agent.build_prompt(
            _make_context(output="x" * 500, errors=["first error", "second error"])
        )
        assert "x" * 51 not in prompt
        assert "first error" in prompt
        assert "second error" not in prompt
        assert "TIMEOUT DETECTED" in prompt

    def test_no_api_key_means_no_provider(self, settings_factory):
        assert get_ai_provider(settings_factory(ai_api_key="")) is None


# ── Error categorizer, 6 tests ────────────────────────────────────────────────

class TestCategorizeError:
    @pytest.mark.parametrize(
        "message, expected",
        [
            ("Test timeout of 30000ms exceeded", "timeout"),
            ("waiting for locator('#login') to be visible", "selector"),
            ("expect(received).toBe(expected)", "assertion"),
            ("net::ERR_CONNECTION_REFUSED at http://localhost:3000", "network"),
        ],
    )
    def test_categories(self, message, expected):
        assert categorize_error(message) == expected

    def test_empty_input(self):
        assert categorize_error("") is None
        assert categorize_error("something odd happened") == "unknown"

    def test_failure_hints(self):
        hints = describe_failure_patterns("Error: No tests found\nscreenshot saved", "")
        assert any(h.startswith("NO TESTS FOUND") for h in hints)
        assert any(h.startswith("ARTIFACTS AVAILABLE") for h in hints)
