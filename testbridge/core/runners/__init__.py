"""Test runner subprocess supervision."""

from testbridge.core.runners.base import BrowserType, ExecutionConfig, ExecutionResult
from testbridge.core.runners.playwright import PlaywrightRunner

__all__ = [
    "BrowserType",
    "ExecutionConfig",
    "ExecutionResult",
    "PlaywrightRunner",
]
