"""One-JSON-document-per-report persistence under the bridge's reports directory."""

from __future__ import annotations

import json
import logging
import os
import re
from pathlib import Path
from typing import Any

import pydantic

from testbridge.exceptions import NotFoundError, PersistenceError, ValidationError
from testbridge.schemas.base import iso_timestamp
from testbridge.schemas.report import TestReport

logger = logging.getLogger(__name__)

_REPORT_ID_RE = re.compile(r"^[A-Za-z0-9_.-]+$")


def _check_id(report_id: str) -> str:
    if not isinstance(report_id, str) or not _REPORT_ID_RE.match(report_id) or report_id.strip(".") == "":
        raise ValidationError(f"Invalid report id: {report_id!r}")
    return report_id


class ReportStore:
    """Stores each report as ``<reports_dir>/<id>.json``.

    Writes go through a temp file and ``os.replace`` so a reader never sees
    a half-written document. Concurrent executions write distinct ids and
    never touch each other's files.
    """

    def __init__(self, reports_dir: Path) -> None:
        self.reports_dir = Path(reports_dir)

    def ensure(self) -> Path:
        try:
            self.reports_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise PersistenceError(f"Failed to create reports directory: {exc}") from exc
        return self.reports_dir

    def path_for(self, report_id: str) -> Path:
        return self.reports_dir / f"{_check_id(report_id)}.json"

    def _write(self, report_id: str, payload: dict[str, Any]) -> Path:
        path = self.path_for(report_id)
        tmp = path.with_name(f".{path.name}.tmp")
        try:
            self.ensure()
            tmp.write_text(json.dumps(payload, indent=2), encoding="utf-8")
            os.replace(tmp, path)
        except (OSError, TypeError, ValueError) as exc:
            tmp.unlink(missing_ok=True)
            raise PersistenceError(f"Failed to write report {report_id}: {exc}") from exc
        return path

    def save(self, report: TestReport) -> Path:
        path = self._write(report.id, report.to_wire())
        logger.info("reports: saved %s", path.name)
        return path

    def write_fallback(
        self,
        report_id: str,
        test_path: str,
        save_error: str,
        *,
        error: str | None = None,
        config: dict[str, Any] | None = None,
    ) -> Path:
        """Persist the minimal record used when full assembly could not be saved."""
        payload = {
            "id": report_id,
            "testPath": test_path,
            "timestamp": iso_timestamp(),
            "success": False,
            "output": "",
            "error": error or save_error,
            "config": config or {},
            "results": None,
            "artifacts": [],
            "summary": "Report could not be saved",
            "saveError": save_error,
        }
        path = self._write(report_id, payload)
        logger.warning("reports: wrote fallback report %s", path.name)
        return path

    def _load(self, path: Path) -> TestReport | None:
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
            return TestReport.model_validate(data)
        except (OSError, json.JSONDecodeError, pydantic.ValidationError) as exc:
            logger.warning("reports: skipping unreadable report %s: %s", path.name, exc)
            return None

    def get(self, report_id: str) -> TestReport:
        path = self.path_for(report_id)
        if not path.is_file():
            raise NotFoundError(f"Report not found: {report_id}")
        report = self._load(path)
        if report is None:
            raise NotFoundError(f"Report not found: {report_id}")
        return report

    def list(self) -> list[TestReport]:
        """All readable reports, newest first; missing optional fields take defaults."""
        if not self.reports_dir.is_dir():
            return []
        reports = [r for p in self.reports_dir.glob("*.json") if (r := self._load(p)) is not None]
        reports.sort(key=lambda r: r.timestamp, reverse=True)
        return reports

    def delete(self, report_id: str) -> None:
        path = self.path_for(report_id)
        if not path.is_file():
            raise NotFoundError(f"Report not found: {report_id}")
        path.unlink()
        logger.info("reports: deleted %s", report_id)
