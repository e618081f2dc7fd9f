"""Unit tests for the streaming JSON completion detector.

Total: 9 tests
"""

from __future__ import annotations

import json

from testbridge.core.json_stream import JsonCompletionDetector, is_report_document

REPORT = json.dumps(
    {
        "suites": [{"title": "a {tricky} \"title\" with ] brackets"}],
        "errors": [],
        "stats": {"expected": 1, "unexpected": 0, "duration": 42},
    },
    indent=2,
)


class TestJsonCompletionDetector:
    def test_complete_document_in_one_chunk(self):
        detector = JsonCompletionDetector()
        assert detector.feed(REPORT) is True
        assert detector.document["stats"]["duration"] == 42

    def test_completion_only_after_last_chunk(self):
        detector = JsonCompletionDetector()
        chunks = [REPORT[i:i + 7] for i in range(0, len(REPORT), 7)]
        states = [detector.feed(chunk) for chunk in chunks]
        assert states[-1] is True
        assert not any(states[:-1])

    def test_braces_inside_strings_are_ignored(self):
        detector = JsonCompletionDetector()
        head, tail = REPORT.split("brackets")
        assert detector.feed(head) is False
        assert detector.feed("brackets" + tail) is True

    def test_noise_before_report_is_skipped(self):
        detector = JsonCompletionDetector()
        assert detector.feed("Running 1 test {not json} using 1 worker\n") is False
        assert detector.feed(REPORT) is True
        assert detector.text.startswith("Running 1 test")

    def test_unclosed_brace_in_log_line_is_abandoned(self):
        detector = JsonCompletionDetector()
        assert detector.feed("[WebServer] options {port: 3000,\n") is False
        assert detector.feed(REPORT) is True
        assert detector.document["stats"]["duration"] == 42

    def test_unclosed_quote_in_log_line_is_abandoned(self):
        detector = JsonCompletionDetector()
        assert detector.feed('Loading {"name": "half quoted\nstill loading\n') is False
        assert detector.feed(REPORT) is True

    def test_object_without_stats_duration_is_not_complete(self):
        detector = JsonCompletionDetector()
        assert detector.feed('{"stats": {"expected": 1}}') is False
        assert detector.complete is False

    def test_output_after_completion_still_accumulates(self):
        detector = JsonCompletionDetector()
        detector.feed(REPORT)
        assert detector.feed("\nDone") is True
        assert detector.text.endswith("Done")


def test_is_report_document():
    assert is_report_document({"stats": {"duration": 0}})
    assert not is_report_document({"stats": "fast"})
    assert not is_report_document([])
