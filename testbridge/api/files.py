"""Test file and execution endpoints."""

import asyncio
import logging
from typing import Any

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from testbridge.api.deps import get_bridge, get_commands
from testbridge.bridge import Bridge
from testbridge.core.commands import CommandHandler
from testbridge.exceptions import ExecutionTimeoutError
from testbridge.schemas.test_file import DeleteTestRequest, ExecuteTestRequest, SaveTestRequest

logger = logging.getLogger(__name__)

router = APIRouter()


def _log_late_failure(task: "asyncio.Task[Any]") -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error("api: execution finished after response timeout with error: %s", exc)


@router.get("/test-files")
async def list_test_files(commands: CommandHandler = Depends(get_commands)) -> dict[str, Any]:
    return await commands.get_test_files()


@router.post("/save-test")
async def save_test(
    body: SaveTestRequest,
    commands: CommandHandler = Depends(get_commands),
) -> dict[str, Any]:
    return await commands.save_test(body)


@router.delete("/delete-test")
async def delete_test(
    body: DeleteTestRequest,
    commands: CommandHandler = Depends(get_commands),
) -> dict[str, Any]:
    return await commands.delete_test(body.test_path)


@router.post("/execute-test")
async def execute_test(
    body: ExecuteTestRequest,
    bridge: Bridge = Depends(get_bridge),
) -> Any:
    """Run a test and return its result plus report id.

    The response has its own deadline, independent of the runner's timers.
    If it fires, the execution keeps going in the background and its report
    is still written; the caller gets a 504 envelope.
    """
    task = asyncio.ensure_future(bridge.commands.execute_test(body.test_path, body.config))
    try:
        return await asyncio.wait_for(asyncio.shield(task), timeout=bridge.settings.response_timeout)
    except asyncio.TimeoutError:
        task.add_done_callback(_log_late_failure)
        logger.warning(
            "api: execute-test response timeout after %.0fs for %s",
            bridge.settings.response_timeout,
            body.test_path,
        )
        exc = ExecutionTimeoutError("Execution did not finish before the response timeout")
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@router.get("/execution-status")
async def execution_status(commands: CommandHandler = Depends(get_commands)) -> dict[str, Any]:
    """Which test paths are running and how many callers wait on each."""
    return await commands.get_execution_status()
