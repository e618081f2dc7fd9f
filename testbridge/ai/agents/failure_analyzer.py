"""Failure Analyzer Agent for root cause analysis of failed runs."""

import asyncio
import json
import logging
import math
import re
from dataclasses import dataclass, field
from pathlib import PurePath
from typing import Any

from testbridge.ai.providers import AIMessage, AIProvider
from testbridge.config import Settings
from testbridge.core.error_categorizer import categorize_error, describe_failure_patterns
from testbridge.exceptions import AnalysisError
from testbridge.schemas.report import AIAnalysis

logger = logging.getLogger(__name__)

_JSON_FENCE_RE = re.compile(r"```(?:json)?\s*(\{.*?\})\s*```", re.DOTALL)
_JSON_OBJECT_RE = re.compile(r"\{.*\}", re.DOTALL)

UNAVAILABLE = AIAnalysis(
    root_cause="AI analysis unavailable - no API key configured for the completion service",
    recommendations=[
        "Set AI_API_KEY (or OPENROUTER_API_KEY) with a valid API key",
        "Restart the bridge after setting the environment variable",
        "Verify the API key is valid and has sufficient credits",
    ],
    confidence=0,
)

SERVICE_ERROR = AIAnalysis(
    root_cause="AI analysis unavailable - the completion service encountered an error",
    recommendations=[
        "Review the raw test output and error messages manually",
        "Check network connectivity and the completion service status",
        "Verify the API key is valid and has sufficient credits",
        "Try running the test again to see if the issue persists",
    ],
    confidence=0,
)

UNPARSEABLE = AIAnalysis(
    root_cause="AI analysis unavailable - the completion service reply could not be parsed",
    recommendations=[
        "Review the raw test output and error messages manually",
        "Check for common issues like element selectors, timing, or network problems",
        "Verify the test environment and application state",
        "Consider adding debug logging or screenshots to identify the issue",
    ],
    confidence=0,
)


def _truncate(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    return text[:limit] + "\n... (truncated)"


@dataclass
class FailureContext:
    """Everything the analyzer may see about one failed run, before budgeting."""

    test_path: str
    output: str = ""
    error: str = ""
    errors: list[str] = field(default_factory=list)
    log_lines: list[str] = field(default_factory=list)
    artifact_names: list[str] = field(default_factory=list)
    stats: dict[str, Any] = field(default_factory=dict)
    suite_count: int = 0


class FailureAnalyzerAgent:
    """Agent for analyzing test failures and finding root causes.

    Never raises: every failure mode maps to a static analysis with
    confidence 0 so a report is never lost to the completion service.
    """

    SYSTEM_PROMPT = """You are an expert Playwright test automation engineer.
Analyze test failures and provide clear, actionable insights.

When analyzing failures:
1. Identify the PRIMARY technical reason for the failure
2. Be specific about error types (timeout, selector, network, assertion)
3. Include specific values (timeouts, selectors, status codes, URLs)
4. Order fix recommendations by likelihood of success

Respond with JSON only:
{"rootCause": "...", "fixRecommendations": ["...", "..."], "confidence": 0-100}
"""

    def __init__(self, provider: AIProvider | None, settings: Settings) -> None:
        """Initialize the failure analyzer agent."""
        self.provider = provider
        self.settings = settings

    @property
    def enabled(self) -> bool:
        return self.settings.ai_analysis_enabled

    def build_prompt(self, ctx: FailureContext) -> str:
        """Build the bounded analysis request."""
        s = self.settings
        hints = describe_failure_patterns(ctx.output, ctx.error)
        category = categorize_error(ctx.error, ctx.output) or "unknown"
        errors = [e[:500] for e in ctx.errors[: s.ai_max_errors]]
        log_lines = ctx.log_lines[-s.ai_max_log_lines:]
        artifacts = ctx.artifact_names[-s.ai_max_artifacts:]

        return f"""Analyze this test failure:

Test Name: {PurePath(ctx.test_path).name}
Test Path: {ctx.test_path}
Error Category: {category}

Output Analysis:
{chr(10).join(hints) or "GENERAL FAILURE: No specific error patterns detected in output"}

Raw Output:
```
{_truncate(ctx.output, s.ai_max_output_chars)}
```

Error Output:
```
{_truncate(ctx.error, s.ai_max_error_chars)}
```

Structured Errors:
{chr(10).join(f"- {e}" for e in errors) or "None extracted"}

Recent Console Output:
{chr(10).join(log_lines) or "None captured"}

Execution Context:
- Suites Found: {ctx.suite_count}
- Execution Duration: {ctx.stats.get("duration", "unknown")}ms
- Artifacts: {", ".join(artifacts) or "none"}
"""

    def parse_response(self, content: str) -> AIAnalysis:
        """Parse the model's reply; raise AnalysisError when it is not usable JSON."""
        candidates = [content.strip()]
        fenced = _JSON_FENCE_RE.search(content)
        if fenced:
            candidates.append(fenced.group(1))
        embedded = _JSON_OBJECT_RE.search(content)
        if embedded:
            candidates.append(embedded.group(0))

        for candidate in candidates:
            try:
                data = json.loads(candidate)
            except json.JSONDecodeError:
                continue
            if isinstance(data, dict):
                break
        else:
            raise AnalysisError("Completion reply was not a JSON object")

        recommendations = data.get("fixRecommendations", data.get("recommendations"))
        if isinstance(recommendations, str):
            recommendations = [recommendations]
        elif not isinstance(recommendations, list):
            recommendations = list(UNPARSEABLE.recommendations)

        try:
            raw_confidence = float(data.get("confidence", 50))
        except (TypeError, ValueError):
            raw_confidence = 50.0
        if not math.isfinite(raw_confidence):
            raw_confidence = 50.0
        # Some models answer with a 0-1 fraction
        if 0 < raw_confidence < 1:
            raw_confidence *= 100
        confidence = int(raw_confidence)

        return AIAnalysis(
            root_cause=str(data.get("rootCause") or "Unable to determine the root cause of the test failure"),
            recommendations=[str(r) for r in recommendations],
            confidence=max(0, min(100, confidence)),
        )

    async def analyze(self, ctx: FailureContext) -> AIAnalysis | None:
        """Analyze a failed run. Returns None only when analysis is disabled."""
        if not self.enabled:
            return None
        if self.provider is None:
            logger.warning("analyzer: no completion provider configured, skipping AI analysis")
            return UNAVAILABLE.model_copy(deep=True)

        messages = [
            AIMessage(role="system", content=self.SYSTEM_PROMPT),
            AIMessage(role="user", content=self.build_prompt(ctx)),
        ]
        try:
            response = await asyncio.wait_for(
                self.provider.generate(messages, temperature=0.1, max_tokens=1000),
                timeout=self.settings.ai_timeout,
            )
        except Exception as exc:
            logger.error("analyzer: completion request failed for %s: %s", ctx.test_path, exc)
            return SERVICE_ERROR.model_copy(deep=True)

        try:
            analysis = self.parse_response(response.content)
        except AnalysisError as exc:
            logger.warning("analyzer: %s", exc.message)
            return UNPARSEABLE.model_copy(deep=True)
        except Exception as exc:
            logger.warning("analyzer: could not interpret reply for %s: %s", ctx.test_path, exc)
            return UNPARSEABLE.model_copy(deep=True)

        logger.info("analyzer: %s analyzed with confidence %d", ctx.test_path, analysis.confidence)
        return analysis
