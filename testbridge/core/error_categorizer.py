"""Categorize runner failures by pattern matching on output and error text."""

from __future__ import annotations

import re
from collections.abc import Callable

_PATTERNS: list[tuple[re.Pattern[str], str]] = [
    (re.compile(r"TimeoutError|timed\s+out|exceeded\s+\d+\s*ms|timeout", re.IGNORECASE), "timeout"),
    (re.compile(r"element\s+not\s+found|no\s+such\s+element|waiting\s+for\s+locator|strict\s+mode\s+violation", re.IGNORECASE), "selector"),
    (re.compile(r"AssertionError|expect\(|toBe|toHave|toEqual|toMatch", re.IGNORECASE), "assertion"),
    (re.compile(r"ECONNREFUSED|ECONNRESET|connection\s+refused|net::err_|fetch\s+failed|connect\s+ETIMEDOUT", re.IGNORECASE), "network"),
    (re.compile(r"Cannot\s+find\s+module|Module\s+not\s+found|no\s+tests\s+found", re.IGNORECASE), "import_error"),
    (re.compile(r"SyntaxError|unexpected\s+token|Unexpected\s+identifier", re.IGNORECASE), "syntax"),
    (re.compile(r"EACCES|Permission\s+denied|access\s+denied", re.IGNORECASE), "permission"),
    (re.compile(r"config.*invalid|invalid.*config|beforeAll|beforeEach.*failed", re.IGNORECASE), "setup"),
    (re.compile(r"SIGSEGV|page\s+crashed|browser\s+crashed|heap\s+out\s+of\s+memory|Target\s+closed", re.IGNORECASE), "crash"),
]

_TIMEOUT_MS_RE = re.compile(r"timeout (\d+)ms", re.IGNORECASE)
_LOCATOR_RE = re.compile(r"locator\(['\"`]([^'\"`]+)['\"`]\)", re.IGNORECASE)
_NET_ERR_RE = re.compile(r"net::err_([a-z_]+)", re.IGNORECASE)
_URL_RE = re.compile(r"https?://[^\s]+", re.IGNORECASE)
_HTTP_STATUS_RE = re.compile(r"(\d{3})\s+(error|failed)", re.IGNORECASE)


def categorize_error(error_message: str | None, error_stack: str | None = None) -> str | None:
    """Return an error category string or None if no error text is provided.

    Checks both *error_message* and *error_stack* against known patterns.
    Returns the first matching category.
    """
    text = " ".join(filter(None, [error_message, error_stack]))
    if not text.strip():
        return None

    for pattern, category in _PATTERNS:
        if pattern.search(text):
            return category

    return "unknown"


def _first_match(pattern: re.Pattern[str], output: str, error: str) -> re.Match[str] | None:
    return pattern.search(output) or pattern.search(error)


def _timeout_hint(output: str, error: str) -> str:
    match = _first_match(_TIMEOUT_MS_RE, output, error)
    return f"TIMEOUT DETECTED: Test timed out ({match.group(1) if match else 'unknown'}ms timeout configured)"


def _selector_hint(output: str, error: str) -> str:
    match = _first_match(_LOCATOR_RE, output, error)
    selector = match.group(1) if match else "unknown selector"
    return f"ELEMENT NOT FOUND: Cannot locate element with selector: {selector}"


def _network_hint(output: str, error: str) -> str:
    match = _first_match(_NET_ERR_RE, output, error)
    detail = match.group(1) if match else "unknown"
    return f"NETWORK ERROR: {detail.replace('_', ' ')}"


def _refused_hint(output: str, error: str) -> str:
    match = _first_match(_URL_RE, output, error)
    return f"CONNECTION REFUSED: Cannot connect to {match.group(0) if match else 'target server'}"


def _status_hint(output: str, error: str) -> str:
    match = _first_match(_HTTP_STATUS_RE, output, error)
    return f"HTTP ERROR: Received {match.group(1) if match else 'unknown'} status code"


# (predicate on lowercased combined text, hint builder)
_HINTS: list[tuple[Callable[[str, str, str], bool], Callable[[str, str], str]]] = [
    (lambda t, o, e: "timeout" in t or "timed out" in t, _timeout_hint),
    (lambda t, o, e: "element not found" in t or "no such element" in t, _selector_hint),
    (lambda t, o, e: "no tests found" in t,
     lambda o, e: "NO TESTS FOUND: Playwright cannot find any test files matching the pattern"),
    (lambda t, o, e: "network error" in t or "net::err" in t, _network_hint),
    (lambda t, o, e: "page crashed" in t or "browser crashed" in t,
     lambda o, e: "BROWSER CRASH: The browser or page crashed during test execution"),
    (lambda t, o, e: "permission denied" in t or "access denied" in t,
     lambda o, e: "PERMISSION ERROR: Access denied - check file permissions or security settings"),
    (lambda t, o, e: "connection refused" in t or "econnrefused" in t, _refused_hint),
    (lambda t, o, e: "screenshot" in t or "video" in t,
     lambda o, e: "ARTIFACTS AVAILABLE: Screenshots and/or videos were captured for debugging"),
    (lambda t, o, e: _first_match(_HTTP_STATUS_RE, o, e) is not None, _status_hint),
    (lambda t, o, e: "javascript error" in t or "uncaught exception" in t,
     lambda o, e: "JAVASCRIPT ERROR: Page JavaScript error detected"),
    (lambda t, o, e: "config" in t and "invalid" in t,
     lambda o, e: "CONFIGURATION ERROR: Invalid Playwright configuration detected"),
]


def describe_failure_patterns(output: str | None, error: str | None) -> list[str]:
    """Return human-readable hints for every known failure pattern found in the run."""
    output = output or ""
    error = error or ""
    combined = f"{output}\n{error}".lower()
    return [build(output, error) for matches, build in _HINTS if matches(combined, output, error)]
