"""Report listing and deletion endpoints."""

from typing import Any

from fastapi import APIRouter, Depends

from testbridge.api.deps import get_commands
from testbridge.core.commands import CommandHandler

router = APIRouter()


@router.get("/reports")
async def list_reports(commands: CommandHandler = Depends(get_commands)) -> dict[str, Any]:
    """All persisted reports, newest first."""
    return await commands.get_reports()


@router.delete("/reports/{report_id}")
async def delete_report(report_id: str, commands: CommandHandler = Depends(get_commands)) -> dict[str, Any]:
    return await commands.delete_report(report_id)
