"""AI agents for failure analysis."""

from testbridge.ai.agents.failure_analyzer import FailureAnalyzerAgent

__all__ = ["FailureAnalyzerAgent"]
