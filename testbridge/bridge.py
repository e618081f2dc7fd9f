"""Wire one bridge (session plus components) for a project directory."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import Path

from testbridge.ai.agents.failure_analyzer import FailureAnalyzerAgent
from testbridge.ai.providers import get_ai_provider
from testbridge.config import Settings
from testbridge.core.commands import CommandHandler
from testbridge.core.engine import ExecutionEngine, ExecutionQueue
from testbridge.core.project import ProjectInfo, detect_project
from testbridge.core.runners.playwright import PlaywrightRunner
from testbridge.core.security.auth import Session, issue_session
from testbridge.core.workspace import TestWorkspace
from testbridge.reports.assembler import ReportAssembler
from testbridge.reports.store import ReportStore

logger = logging.getLogger(__name__)


@dataclass
class Bridge:
    """Everything a transport needs, built once per process."""

    project_root: Path
    project: ProjectInfo
    settings: Settings
    session: Session
    commands: CommandHandler
    started_at: float = field(default_factory=time.monotonic)
    port: int | None = None

    @property
    def token_max_age(self) -> timedelta:
        return timedelta(hours=self.settings.token_max_age_hours)

    @property
    def uptime(self) -> float:
        return time.monotonic() - self.started_at


def build_bridge(project_root: Path | str, settings: Settings, session: Session | None = None) -> Bridge:
    """Detect the project and assemble workspace, runner, reports and commands."""
    root = Path(project_root).resolve()
    project = detect_project(root)
    logger.info("bridge: serving %s (%s) tests in %s", project.name, project.type, project.test_dir)

    workspace = TestWorkspace(root, project)
    runner = PlaywrightRunner(
        root,
        settings.runner_command,
        preflight_timeout=settings.preflight_timeout,
        completion_grace=settings.completion_grace,
        execution_timeout=settings.execution_timeout,
    )
    store = ReportStore(root / settings.reports_dir)
    analyzer = FailureAnalyzerAgent(get_ai_provider(settings), settings)
    assembler = ReportAssembler(root, store, analyzer, settings)
    engine = ExecutionEngine(
        workspace,
        runner,
        assembler,
        store,
        ExecutionQueue(settings.execution_lock_scope),
    )

    return Bridge(
        project_root=root,
        project=project,
        settings=settings,
        session=session or issue_session(),
        commands=CommandHandler(workspace, engine, store),
    )
