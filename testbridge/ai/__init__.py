"""AI module for failure analysis."""

from testbridge.ai.providers import AIProvider, get_ai_provider

__all__ = [
    "AIProvider",
    "get_ai_provider",
]
