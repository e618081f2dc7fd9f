"""Stand-in for ``npx playwright`` used by the runner and engine tests.

Behavior is picked by the FAKE_RUNNER_MODE environment variable:

  pass            JSON report, exit 0
  fail            JSON report with one unexpected test, exit 1
  hang-after-json JSON report, then sleep without exiting
  hang            no output, sleep without exiting
  brace-noise-hang  unclosed brace in a log line, JSON report, then sleep
  crash           message on stderr, exit 2
  noisy           log lines around the JSON report, exit 0
  no-version      ``--version`` exits 1
  slow-version    ``--version`` never returns

``install`` exits 0, or 1 in crash mode.

FAKE_RUNNER_ARTIFACT, when set, is reported as a screenshot attachment.
"""

import json
import os
import sys
import time

MODE = os.environ.get("FAKE_RUNNER_MODE", "pass")


def _report(ok: bool) -> dict:
    attachments = []
    artifact = os.environ.get("FAKE_RUNNER_ARTIFACT")
    if artifact:
        attachments.append({"name": "screenshot", "contentType": "image/png", "path": artifact})
    result = {
        "status": "passed" if ok else "failed",
        "duration": 12,
        "errors": [] if ok else [{"message": "\x1b[31mexpect(received).toBe(expected)\x1b[39m"}],
        "stdout": [{"text": "console line\n"}],
        "stderr": [],
        "attachments": attachments,
    }
    return {
        "config": {"argv": sys.argv[1:]},
        "suites": [{"title": "example", "specs": [{"title": "works", "tests": [{"results": [result]}]}]}],
        "errors": [],
        "stats": {"expected": 1 if ok else 0, "unexpected": 0 if ok else 1, "duration": 12.5},
    }


def _emit(data: dict) -> None:
    sys.stdout.write(json.dumps(data, indent=2))
    sys.stdout.flush()


def main() -> int:
    if sys.argv[1:2] == ["install"]:
        if MODE == "crash":
            sys.stderr.write("Failed to download browsers\n")
            return 1
        print("Downloading Chromium")
        return 0

    if "--version" in sys.argv:
        if MODE == "no-version":
            sys.stderr.write("playwright: command not found\n")
            return 1
        if MODE == "slow-version":
            time.sleep(60)
        print("Version 1.40.0")
        return 0

    if MODE == "pass":
        _emit(_report(True))
        return 0
    if MODE == "fail":
        _emit(_report(False))
        return 1
    if MODE == "hang-after-json":
        _emit(_report(True))
        time.sleep(60)
        return 0
    if MODE == "brace-noise-hang":
        print("[WebServer] starting with options {port: 3000,")
        _emit(_report(True))
        time.sleep(60)
        return 0
    if MODE == "hang":
        time.sleep(60)
        return 0
    if MODE == "crash":
        sys.stderr.write("Error: browserType.launch: Executable doesn't exist\n")
        return 2
    if MODE == "noisy":
        print("Running 1 test using 1 worker {not json}")
        _emit(_report(True))
        print("\nDone")
        return 0
    sys.stderr.write(f"unknown FAKE_RUNNER_MODE {MODE}\n")
    return 3


if __name__ == "__main__":
    sys.exit(main())
