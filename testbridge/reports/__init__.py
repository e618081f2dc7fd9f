"""Report assembly and persistence."""

from testbridge.reports.assembler import ReportAssembler
from testbridge.reports.store import ReportStore

__all__ = [
    "ReportAssembler",
    "ReportStore",
]
