"""Playwright runner: preflight, spawn, stream and supervise the test subprocess."""

from __future__ import annotations

import asyncio
import codecs
import logging
import os
import signal
import sys
import time
from pathlib import Path

from testbridge.core.json_stream import JsonCompletionDetector
from testbridge.core.runners.base import ExecutionConfig, ExecutionResult
from testbridge.exceptions import ExecutionTimeoutError, RunnerUnavailableError

logger = logging.getLogger(__name__)

_READ_CHUNK = 4096
# How long to wait for pipe readers after the process is gone
_DRAIN_TIMEOUT = 2.0


def _kill_tree(proc: asyncio.subprocess.Process) -> None:
    """Unconditionally kill the runner and anything it spawned."""
    if proc.returncode is not None:
        return
    try:
        if sys.platform != "win32":
            os.killpg(proc.pid, signal.SIGKILL)
        else:
            proc.kill()
    except ProcessLookupError:
        pass
    except PermissionError:
        proc.kill()


class PlaywrightRunner:
    """Runs ``<command> test <path> --reporter=json`` inside the project root.

    Three independent timers bound a run: the preflight timeout, a grace
    period that starts once a complete JSON report has been seen on stdout,
    and a hard ceiling that always wins.
    """

    def __init__(
        self,
        project_root: Path,
        command: list[str],
        *,
        preflight_timeout: float = 5.0,
        completion_grace: float = 5.0,
        execution_timeout: float = 180.0,
    ) -> None:
        self.project_root = Path(project_root)
        self.command = list(command)
        self.preflight_timeout = preflight_timeout
        self.completion_grace = completion_grace
        self.execution_timeout = execution_timeout

    def build_args(self, test_path: str, config: ExecutionConfig) -> list[str]:
        """Translate an ExecutionConfig into runner CLI flags."""
        args = [*self.command, "test", test_path, "--reporter=json"]
        if not config.headless:
            args.append("--headed")
        if config.browser_type is not None:
            args.append(f"--project={config.browser_type.value}")
        if config.retries:
            args.append(f"--retries={config.retries}")
        if config.timeout:
            args.append(f"--timeout={config.timeout}")
        return args

    async def check_available(self) -> str:
        """Run the version check; raise RunnerUnavailableError on any failure."""
        cmd = [*self.command, "--version"]
        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                cwd=str(self.project_root),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            raise RunnerUnavailableError(f"Playwright not available: {exc}") from exc

        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=self.preflight_timeout)
        except asyncio.TimeoutError:
            try:
                proc.kill()
            except ProcessLookupError:
                pass
            await proc.wait()
            raise RunnerUnavailableError(
                f"Playwright not available: version check timed out after {self.preflight_timeout:g}s"
            )

        if proc.returncode != 0:
            detail = stderr.decode("utf-8", errors="replace").strip()
            raise RunnerUnavailableError(
                f"Playwright not available (exit code: {proc.returncode})"
                + (f": {detail[:300]}" if detail else "")
            )

        version = stdout.decode("utf-8", errors="replace").strip()
        logger.info("runner: playwright available: %s", version)
        return version

    async def run(self, test_path: str, config: ExecutionConfig) -> ExecutionResult:
        """Spawn the runner and supervise it until exit, grace kill or hard timeout."""
        args = self.build_args(test_path, config)
        logger.info("runner: spawning %s in %s", " ".join(args), self.project_root)
        started = time.monotonic()

        try:
            proc = await asyncio.create_subprocess_exec(
                *args,
                cwd=str(self.project_root),
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                start_new_session=sys.platform != "win32",
            )
        except OSError as exc:
            logger.error("runner: failed to start test process: %s", exc)
            return ExecutionResult(
                success=False,
                error=f"Failed to start test process: {exc}",
                error_code="spawn_failed",
            )

        detector = JsonCompletionDetector()
        stderr_parts: list[str] = []
        grace_task: asyncio.Task | None = None
        killed = False

        async def _grace_kill() -> None:
            nonlocal killed
            await asyncio.sleep(self.completion_grace)
            if proc.returncode is None:
                logger.warning(
                    "runner: JSON report complete but process still alive after %.1fs, killing",
                    self.completion_grace,
                )
                killed = True
                _kill_tree(proc)

        async def _read_stdout(stream: asyncio.StreamReader) -> None:
            nonlocal grace_task
            decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
            while True:
                raw = await stream.read(_READ_CHUNK)
                if not raw:
                    break
                chunk = decoder.decode(raw)
                logger.debug("runner: stdout %d bytes", len(raw))
                was_complete = detector.complete
                if detector.feed(chunk) and not was_complete:
                    grace_task = asyncio.create_task(_grace_kill())
            detector.feed(decoder.decode(b"", final=True))

        async def _read_stderr(stream: asyncio.StreamReader) -> None:
            decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
            while True:
                raw = await stream.read(_READ_CHUNK)
                if not raw:
                    break
                stderr_parts.append(decoder.decode(raw))
            stderr_parts.append(decoder.decode(b"", final=True))

        t_out = asyncio.create_task(_read_stdout(proc.stdout))  # type: ignore[arg-type]
        t_err = asyncio.create_task(_read_stderr(proc.stderr))  # type: ignore[arg-type]

        timed_out = False
        try:
            await asyncio.wait_for(proc.wait(), timeout=self.execution_timeout)
        except asyncio.TimeoutError:
            timed_out = True
            killed = True
            logger.warning("runner: hard timeout after %.0fs, killing %s", self.execution_timeout, test_path)
            _kill_tree(proc)
            await proc.wait()
        except asyncio.CancelledError:
            logger.warning("runner: execution of %s cancelled, killing runner", test_path)
            _kill_tree(proc)
            for task in (t_out, t_err):
                task.cancel()
            await asyncio.wait_for(proc.wait(), timeout=_DRAIN_TIMEOUT)
            raise
        finally:
            if grace_task is not None and not grace_task.done():
                grace_task.cancel()

        # Orphaned grandchildren can keep the pipes open; don't wait on them forever.
        _, pending = await asyncio.wait({t_out, t_err}, timeout=_DRAIN_TIMEOUT)
        for task in pending:
            task.cancel()

        stdout_text = detector.text
        stderr_text = "".join(stderr_parts)
        returncode = proc.returncode
        json_complete = detector.complete
        duration_ms = int((time.monotonic() - started) * 1000)

        # A negative return code means the process died from a signal (no exit code).
        exited_by_signal = returncode is None or returncode < 0

        if timed_out and json_complete:
            success = True
        elif timed_out:
            success = False
        else:
            success = returncode == 0 or (exited_by_signal and json_complete)

        error: str | None = None
        error_code: str | None = None
        if not success:
            if timed_out:
                exc = ExecutionTimeoutError(
                    f"Test execution timeout ({self.execution_timeout / 60:g} minutes)"
                )
                error, error_code = exc.message, exc.code
            else:
                error = stderr_text.strip() or stdout_text.strip() or "Test execution failed"
                error_code = "test_failed"

        logger.info(
            "runner: %s finished exit=%s success=%s json_complete=%s killed=%s in %dms",
            test_path,
            returncode,
            success,
            json_complete,
            killed,
            duration_ms,
        )
        return ExecutionResult(
            success=success,
            output=stdout_text or stderr_text,
            error=error,
            error_code=error_code,
            exit_code=returncode,
            json_complete=json_complete,
            timed_out=timed_out,
            killed=killed,
            duration_ms=duration_ms,
        )
