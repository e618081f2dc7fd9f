"""Pydantic schemas for persisted test reports."""

from typing import Any

from pydantic import Field

from testbridge.schemas.base import CamelModel


class Artifact(CamelModel):
    """A file produced by a run and referenced from its report."""

    name: str
    content_type: str = "application/octet-stream"
    path: str
    relative_path: str
    url: str


class AIAnalysis(CamelModel):
    """Root-cause analysis attached to failed runs."""

    root_cause: str
    recommendations: list[str] = Field(default_factory=list)
    confidence: int = 0


class TestReport(CamelModel):
    """The durable record of one test execution. Never mutated after creation."""

    __test__ = False

    id: str
    test_path: str = "unknown"
    timestamp: str
    success: bool = False
    output: str = ""
    error: str | None = None
    error_code: str | None = None
    config: dict[str, Any] = Field(default_factory=dict)
    results: dict[str, Any] | None = None
    artifacts: list[Artifact] = Field(default_factory=list)
    ai_analysis: AIAnalysis | None = None
    summary: str = ""
    duration: int | None = None
    save_error: str | None = None
