"""Test execution engine.

Drives one execute request through validate, resolve, prepare, preflight,
run and persist. Runner and timeout failures end up inside the returned
result and its report; only validation and security errors are raised.
"""

from __future__ import annotations

import asyncio
import logging
import re
import time
from collections import defaultdict
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import PurePosixPath
from typing import Any, Literal

from testbridge.core.runners.base import ExecutionConfig, ExecutionResult
from testbridge.core.runners.playwright import PlaywrightRunner
from testbridge.core.workspace import TestWorkspace
from testbridge.exceptions import PersistenceError, RunnerUnavailableError, ValidationError
from testbridge.reports.assembler import ReportAssembler
from testbridge.reports.store import ReportStore

logger = logging.getLogger(__name__)

REPORT_CREATION_FAILED = "report-creation-failed"
_GLOBAL_KEY = "*"


def fallback_report_id(test_path: str, now_ms: int | None = None) -> str:
    """``report_<sanitized basename>_<ms>`` for reports written outside the assembler."""
    base = PurePosixPath(test_path.replace("\\", "/")).name.split(".")[0] or "test"
    stamp = now_ms if now_ms is not None else int(time.time() * 1000)
    return f"report_{re.sub(r'[^a-zA-Z0-9]', '_', base)}_{stamp}"


class ExecutionQueue:
    """Serializes executions per test path, or globally.

    Waiters are served in arrival order (``asyncio.Lock`` is FIFO).
    """

    def __init__(self, scope: Literal["path", "global"] = "path") -> None:
        self.scope = scope
        self._locks: dict[str, asyncio.Lock] = {}
        self._waiting: dict[str, int] = defaultdict(int)
        self._running: dict[str, str] = {}

    def key_for(self, test_path: str) -> str:
        return _GLOBAL_KEY if self.scope == "global" else test_path

    @asynccontextmanager
    async def acquire(self, test_path: str) -> AsyncIterator[bool]:
        """Hold the slot for *test_path*; yields True if the caller had to wait."""
        key = self.key_for(test_path)
        lock = self._locks.setdefault(key, asyncio.Lock())
        queued = lock.locked()
        if queued:
            logger.info("engine: %s busy, queueing (%d ahead)", test_path, self._waiting[key] + 1)

        self._waiting[key] += 1
        try:
            await lock.acquire()
        finally:
            self._waiting[key] -= 1
            if not self._waiting[key]:
                del self._waiting[key]

        self._running[key] = test_path
        try:
            yield queued
        finally:
            self._running.pop(key, None)
            lock.release()
            if not lock.locked() and key not in self._waiting:
                self._locks.pop(key, None)

    def status(self) -> dict[str, Any]:
        return {
            "scope": self.scope,
            "busy": bool(self._running),
            "running": sorted(self._running.values()),
            "queued": dict(self._waiting),
        }


class ExecutionEngine:
    """One ``execute`` call runs the whole state machine for a single test."""

    def __init__(
        self,
        workspace: TestWorkspace,
        runner: PlaywrightRunner,
        assembler: ReportAssembler,
        store: ReportStore,
        queue: ExecutionQueue | None = None,
    ) -> None:
        self.workspace = workspace
        self.runner = runner
        self.assembler = assembler
        self.store = store
        self.queue = queue or ExecutionQueue()

    async def execute(self, test_path: Any, config: Any = None) -> dict[str, Any]:
        # 1. Validate
        if not isinstance(test_path, str) or not test_path.strip():
            raise ValidationError("testPath must be a non-empty string")
        exec_config = ExecutionConfig.from_dict(config)
        config_dict = exec_config.to_dict()

        # 2. Resolve (NotFoundError / SecurityError propagate)
        relative, _ = self.workspace.resolve_test_path(test_path.strip())
        logger.info("engine: executing %s", relative)

        # 3. Prepare the report directory
        try:
            self.store.ensure()
        except PersistenceError as exc:
            logger.error("engine: %s", exc.message)
            result = ExecutionResult(success=False, error=exc.message, error_code=exc.code)
            return self._response(result, self._write_fallback(relative, exc.message, result, config_dict))

        async with self.queue.acquire(relative) as queued:
            # 4. Preflight
            try:
                await self.runner.check_available()
            except RunnerUnavailableError as exc:
                logger.error("engine: %s", exc.message)
                result = ExecutionResult(success=False, error=exc.message, error_code=exc.code)
            else:
                # 5-7. Spawn, stream, exit handling
                result = await self.runner.run(relative, exec_config)

        # 8. Persist
        report_id = await self._persist(relative, result, config_dict)
        return self._response(result, report_id, queued=queued)

    async def _persist(self, relative: str, result: ExecutionResult, config: dict[str, Any]) -> str:
        try:
            report = await self.assembler.persist(relative, result, config)
        except Exception as exc:
            logger.exception("engine: report assembly failed for %s", relative)
            message = exc.message if isinstance(exc, PersistenceError) else f"Failed to save report: {exc}"
            return self._write_fallback(relative, message, result, config)
        return report.id

    def _write_fallback(
        self,
        relative: str,
        save_error: str,
        result: ExecutionResult,
        config: dict[str, Any],
    ) -> str:
        report_id = fallback_report_id(relative)
        try:
            self.store.write_fallback(report_id, relative, save_error, error=result.error, config=config)
        except PersistenceError as exc:
            logger.error("engine: fallback report failed too: %s", exc.message)
            return REPORT_CREATION_FAILED
        return report_id

    @staticmethod
    def _response(result: ExecutionResult, report_id: str, queued: bool = False) -> dict[str, Any]:
        return {**result.to_dict(), "reportId": report_id, "queued": queued}

    def status(self) -> dict[str, Any]:
        return self.queue.status()
