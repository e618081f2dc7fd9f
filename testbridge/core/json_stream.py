"""Incremental detection of the runner's JSON report on a streaming stdout.

The JSON reporter writes one top-level object. Instead of re-parsing the
whole buffer whenever it happens to mention ``"stats"``, the detector keeps
a small tokenizer state (depth, inside-string, escape) across chunks and only
attempts ``json.loads`` once the first top-level object has closed.
"""

from __future__ import annotations

import json
import logging
from typing import Any

logger = logging.getLogger(__name__)


def is_report_document(data: Any) -> bool:
    """True when *data* looks like a finished runner report (stats with duration)."""
    return (
        isinstance(data, dict)
        and isinstance(data.get("stats"), dict)
        and "duration" in data["stats"]
    )


class JsonCompletionDetector:
    """Feed stdout chunks; ``feed`` returns True once a full report has arrived."""

    def __init__(self) -> None:
        self._text = ""
        self._pos = 0
        self._start: int | None = None
        self._depth = 0
        self._in_string = False
        self._escape = False
        self.document: dict[str, Any] | None = None

    @property
    def complete(self) -> bool:
        return self.document is not None

    @property
    def text(self) -> str:
        return self._text

    def _reset_candidate(self) -> None:
        self._start = None
        self._depth = 0
        self._in_string = False
        self._escape = False

    def _accept(self, candidate: str) -> bool:
        try:
            data = json.loads(candidate)
        except json.JSONDecodeError:
            return False
        if not is_report_document(data):
            return False
        self.document = data
        return True

    def feed(self, chunk: str) -> bool:
        if self.document is not None:
            self._text += chunk
            return True

        self._text += chunk
        text = self._text
        i = self._pos
        while i < len(text):
            ch = text[i]
            if self._start is None:
                if ch == "{":
                    self._start = i
                    self._depth = 1
            elif self._in_string:
                if ch == "\n":
                    # JSON strings never hold a raw newline; the candidate was noise.
                    start = self._start
                    self._reset_candidate()
                    i = start
                elif self._escape:
                    self._escape = False
                elif ch == "\\":
                    self._escape = True
                elif ch == '"':
                    self._in_string = False
            elif ch == '"':
                self._in_string = True
            elif ch == "{" and i > 0 and text[i - 1] == "\n":
                # Only the report itself opens at column 0; abandon the unclosed noise before it.
                self._start = i
                self._depth = 1
            elif ch in "{[":
                self._depth += 1
            elif ch in "}]":
                self._depth -= 1
                if self._depth == 0:
                    start = self._start
                    if self._accept(text[start:i + 1]):
                        self._pos = i + 1
                        logger.debug("json_stream: report complete at offset %d", i)
                        return True
                    # Not the report (noise containing braces); rescan after its opening brace.
                    self._reset_candidate()
                    i = start
            i += 1
        self._pos = i
        return False
