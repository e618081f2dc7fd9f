"""Execution config and result types shared by the engine and the runner."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from testbridge.exceptions import ValidationError


class BrowserType(str, Enum):
    """Browsers the runner can target."""

    CHROMIUM = "chromium"
    FIREFOX = "firefox"
    WEBKIT = "webkit"


@dataclass
class ExecutionConfig:
    """Per-request execution options. Persisted only as part of a report."""

    browser_type: BrowserType | None = None
    headless: bool = True
    retries: int | None = None
    timeout: int | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Any) -> "ExecutionConfig":
        """Build a config from a request body, rejecting non-object input."""
        if data is None:
            return cls()
        if not isinstance(data, dict):
            raise ValidationError("config must be an object")

        known = {"browserType", "headless", "retries", "timeout"}
        browser: BrowserType | None = None
        browser_raw = data.get("browserType")
        if browser_raw is not None:
            try:
                browser = BrowserType(browser_raw)
            except ValueError:
                raise ValidationError(
                    f"browserType must be one of chromium, firefox, webkit (got {browser_raw!r})"
                )

        headless = data.get("headless", True)
        if not isinstance(headless, bool):
            raise ValidationError("headless must be a boolean")

        retries = data.get("retries")
        if retries is not None and (isinstance(retries, bool) or not isinstance(retries, int) or retries < 0):
            raise ValidationError("retries must be a non-negative integer")

        timeout = data.get("timeout")
        if timeout is not None and (isinstance(timeout, bool) or not isinstance(timeout, int) or timeout <= 0):
            raise ValidationError("timeout must be a positive integer (ms)")

        return cls(
            browser_type=browser,
            headless=headless,
            retries=retries,
            timeout=timeout,
            extra={k: v for k, v in data.items() if k not in known},
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {**self.extra, "headless": self.headless}
        if self.browser_type is not None:
            data["browserType"] = self.browser_type.value
        if self.retries is not None:
            data["retries"] = self.retries
        if self.timeout is not None:
            data["timeout"] = self.timeout
        return data


@dataclass
class ExecutionResult:
    """Raw outcome of one runner invocation, before report assembly."""

    success: bool
    output: str = ""
    error: str | None = None
    error_code: str | None = None
    exit_code: int | None = None
    json_complete: bool = False
    timed_out: bool = False
    killed: bool = False
    duration_ms: int = 0

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"success": self.success, "output": self.output}
        if self.error is not None:
            data["error"] = self.error
        if self.error_code is not None:
            data["errorCode"] = self.error_code
        return data
