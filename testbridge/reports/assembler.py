"""Turn a raw runner result into a persisted, artifact-linked report."""

from __future__ import annotations

import json
import logging
import re
import secrets
import time
from pathlib import Path
from typing import Any
from urllib.parse import quote

from testbridge.ai.agents.failure_analyzer import FailureAnalyzerAgent, FailureContext
from testbridge.config import Settings
from testbridge.core.json_stream import JsonCompletionDetector
from testbridge.core.runners.base import ExecutionResult
from testbridge.core.security.paths import is_within
from testbridge.reports.store import ReportStore
from testbridge.schemas.base import iso_timestamp
from testbridge.schemas.report import Artifact, TestReport

logger = logging.getLogger(__name__)

ARTIFACT_URL_PREFIX = "/api/artifacts/"

_STATS_OBJECT_RE = re.compile(r"\{[\s\S]*\"stats\"[\s\S]*\}")
_ANSI_RE = re.compile(r"\x1b\[[0-9;]*m")


def new_report_id(now_ms: int | None = None) -> str:
    """``report-<ms>-<7 base36 chars>``: time-ordered and unique per call."""
    stamp = now_ms if now_ms is not None else int(time.time() * 1000)
    suffix = "".join(secrets.choice("0123456789abcdefghijklmnopqrstuvwxyz") for _ in range(7))
    return f"report-{stamp}-{suffix}"


def strip_ansi(text: str) -> str:
    return _ANSI_RE.sub("", text)


def _artifact_kind(node: dict[str, Any]) -> str:
    name = str(node.get("name", "")).lower()
    content_type = str(node.get("contentType", "")).lower()
    if content_type.startswith("video/") or name == "video":
        return "video"
    if name == "trace" or (content_type == "application/zip" and "trace" in name):
        return "trace"
    if content_type.startswith("image/") or "screenshot" in name:
        return "screenshot"
    return "other"


class ReportAssembler:
    """Parse, link artifacts, cap, analyze and persist one execution.

    Only :meth:`persist` touches the disk; the other steps work on plain
    dicts so they can be exercised without a project tree.
    """

    def __init__(
        self,
        project_root: Path,
        store: ReportStore,
        analyzer: FailureAnalyzerAgent,
        settings: Settings,
    ) -> None:
        self.project_root = Path(project_root).resolve()
        self.store = store
        self.analyzer = analyzer
        self.settings = settings

    # -- parsing -------------------------------------------------------------

    def parse_results(self, output: str, success: bool, error: str | None = None) -> dict[str, Any]:
        """Direct JSON parse, then a ``{..."stats"...}`` substring, then a scan, then a stub."""
        text = (output or "").strip()
        if text:
            try:
                data = json.loads(text)
                if isinstance(data, dict):
                    return data
            except json.JSONDecodeError:
                pass

            match = _STATS_OBJECT_RE.search(text)
            if match:
                try:
                    data = json.loads(match.group(0))
                    if isinstance(data, dict):
                        return data
                except json.JSONDecodeError:
                    logger.debug("reports: stats-like substring did not parse")

            # Braces in log lines before the report defeat the greedy match.
            detector = JsonCompletionDetector()
            if detector.feed(text) and detector.document is not None:
                return detector.document

        logger.info("reports: no JSON results in output, synthesizing stub")
        return {
            "stats": {
                "expected": 1 if success else 0,
                "unexpected": 0 if success else 1,
                "duration": 0,
            },
            "suites": [],
            "errors": [{"message": error}] if error else [],
        }

    # -- artifacts -----------------------------------------------------------

    def extract_artifacts(self, results: Any) -> list[Artifact]:
        """Walk *results* and link every ``{path, name}`` attachment in place.

        Attachments resolving outside the project root are skipped. Per-kind
        caps apply in walk order; attachments past a cap are left unlinked.
        """
        caps = {
            "screenshot": self.settings.report_max_screenshots,
            "video": self.settings.report_max_videos,
            "trace": self.settings.report_max_traces,
        }
        counts = dict.fromkeys(caps, 0)
        artifacts: list[Artifact] = []

        def visit(node: Any) -> None:
            if isinstance(node, list):
                for item in node:
                    visit(item)
                return
            if not isinstance(node, dict):
                return

            raw_path, name = node.get("path"), node.get("name")
            if isinstance(raw_path, str) and raw_path and isinstance(name, str) and name:
                self._link(node, raw_path, name, caps, counts, artifacts)

            for value in node.values():
                visit(value)

        visit(results)
        return artifacts

    def _link(
        self,
        node: dict[str, Any],
        raw_path: str,
        name: str,
        caps: dict[str, int],
        counts: dict[str, int],
        artifacts: list[Artifact],
    ) -> None:
        candidate = Path(raw_path)
        if not candidate.is_absolute():
            candidate = self.project_root / candidate
        if not is_within(self.project_root, candidate):
            logger.warning("reports: skipping artifact outside project root: %s", raw_path)
            return

        kind = _artifact_kind(node)
        if kind in caps:
            if counts[kind] >= caps[kind]:
                return
            counts[kind] += 1

        absolute = candidate.resolve()
        relative = absolute.relative_to(self.project_root).as_posix()
        url = ARTIFACT_URL_PREFIX + quote(relative, safe="")
        node["url"] = url
        node["relativePath"] = relative
        artifacts.append(
            Artifact(
                name=name,
                content_type=str(node.get("contentType") or "application/octet-stream"),
                path=str(absolute),
                relative_path=relative,
                url=url,
            )
        )

    # -- caps and extraction -------------------------------------------------

    def apply_caps(self, results: Any) -> None:
        """Trim error lists and per-test stdout/stderr in place."""
        max_errors = self.settings.report_max_errors
        max_lines = self.settings.report_max_log_lines

        if isinstance(results, list):
            for item in results:
                self.apply_caps(item)
            return
        if not isinstance(results, dict):
            return

        errors = results.get("errors")
        if isinstance(errors, list) and len(errors) > max_errors:
            results["errors"] = errors[:max_errors]
        for key in ("stdout", "stderr"):
            entries = results.get(key)
            if isinstance(entries, list) and len(entries) > max_lines:
                results[key] = entries[-max_lines:]

        for value in results.values():
            self.apply_caps(value)

    def collect_errors(self, results: Any, error: str | None = None) -> list[str]:
        """Every error message in the results tree, ANSI codes stripped."""
        messages: list[str] = []
        if error:
            messages.append(f"Main Error: {strip_ansi(error)}")

        def visit(node: Any) -> None:
            if isinstance(node, list):
                for item in node:
                    visit(item)
                return
            if not isinstance(node, dict):
                return
            errors = node.get("errors")
            if isinstance(errors, list):
                for err in errors:
                    if isinstance(err, dict) and err.get("message"):
                        messages.append(strip_ansi(str(err["message"])))
                        loc = err.get("location")
                        if isinstance(loc, dict) and loc.get("file"):
                            messages.append(f"  at {loc['file']}:{loc.get('line')}:{loc.get('column')}")
            single = node.get("error")
            if isinstance(single, dict) and single.get("message"):
                messages.append(strip_ansi(str(single["message"])))
            for value in node.values():
                visit(value)

        visit(results)
        return messages

    def collect_log_lines(self, results: Any) -> list[str]:
        """Console lines the browser test wrote, in order of appearance."""
        lines: list[str] = []

        def visit(node: Any) -> None:
            if isinstance(node, list):
                for item in node:
                    visit(item)
                return
            if not isinstance(node, dict):
                return
            for key in ("stdout", "stderr"):
                entries = node.get(key)
                if isinstance(entries, list):
                    for entry in entries:
                        text = entry.get("text") if isinstance(entry, dict) else entry
                        if isinstance(text, str):
                            lines.extend(l for l in strip_ansi(text).splitlines() if l.strip())
            for value in node.values():
                if isinstance(value, (dict, list)):
                    visit(value)

        visit(results)
        return lines

    @staticmethod
    def summarize(success: bool, results: dict[str, Any], error: str | None) -> str:
        if success:
            return "Test passed successfully"
        stats = results.get("stats") if isinstance(results, dict) else None
        if isinstance(stats, dict) and ("unexpected" in stats or "expected" in stats):
            return f"Test failed: {stats.get('unexpected', 0)} failed, {stats.get('expected', 0)} passed"
        if error:
            return strip_ansi(error).strip().splitlines()[0][:200] if error.strip() else "Test failed"
        return "Test failed"

    def _truncate_output(self, output: str) -> str:
        limit = self.settings.report_max_output_chars
        if len(output) <= limit:
            return output
        return output[:limit] + f"\n... (truncated {len(output) - limit} chars)"

    # -- assembly ------------------------------------------------------------

    async def assemble(
        self,
        test_path: str,
        result: ExecutionResult,
        config: dict[str, Any],
        report_id: str | None = None,
    ) -> TestReport:
        results = self.parse_results(result.output, result.success, result.error)
        self.apply_caps(results)
        artifacts = self.extract_artifacts(results)

        ai_analysis = None
        if not result.success:
            stats = results.get("stats") if isinstance(results.get("stats"), dict) else {}
            ai_analysis = await self.analyzer.analyze(
                FailureContext(
                    test_path=test_path,
                    output=result.output,
                    error=result.error or "",
                    errors=self.collect_errors(results, result.error),
                    log_lines=self.collect_log_lines(results),
                    artifact_names=[a.relative_path for a in artifacts],
                    stats=stats,
                    suite_count=len(results.get("suites") or []),
                )
            )

        duration = None
        stats = results.get("stats")
        if isinstance(stats, dict) and isinstance(stats.get("duration"), (int, float)) and stats["duration"]:
            duration = int(stats["duration"])
        elif result.duration_ms:
            duration = result.duration_ms

        return TestReport(
            id=report_id or new_report_id(),
            test_path=test_path,
            timestamp=iso_timestamp(),
            success=result.success,
            output=self._truncate_output(result.output),
            error=result.error,
            error_code=result.error_code,
            config=config,
            results=results,
            artifacts=artifacts,
            ai_analysis=ai_analysis,
            summary=self.summarize(result.success, results, result.error),
            duration=duration,
        )

    async def persist(
        self,
        test_path: str,
        result: ExecutionResult,
        config: dict[str, Any],
    ) -> TestReport:
        """Assemble and save. Raises PersistenceError if the document cannot be written."""
        report = await self.assemble(test_path, result, config)
        self.store.save(report)
        return report
