"""Pydantic schemas for the bridge wire formats."""

from testbridge.schemas.relay import RelayMessage
from testbridge.schemas.report import AIAnalysis, Artifact, TestReport
from testbridge.schemas.test_file import (
    DeleteTestRequest,
    ExecuteTestRequest,
    SaveTestRequest,
    TestFile,
)

__all__ = [
    "AIAnalysis",
    "Artifact",
    "DeleteTestRequest",
    "ExecuteTestRequest",
    "RelayMessage",
    "SaveTestRequest",
    "TestFile",
    "TestReport",
]
