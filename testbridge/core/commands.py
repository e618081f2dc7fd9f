"""The single command surface shared by the HTTP and relay transports."""

from __future__ import annotations

import logging
import time
from collections.abc import Awaitable, Callable
from typing import Any

import pydantic

from testbridge.core.engine import ExecutionEngine
from testbridge.core.workspace import TestWorkspace
from testbridge.exceptions import UnknownMethodError, ValidationError
from testbridge.reports.store import ReportStore
from testbridge.schemas.test_file import DeleteTestRequest, ExecuteTestRequest, SaveTestRequest

logger = logging.getLogger(__name__)


def _parse(model: type[pydantic.BaseModel], params: dict[str, Any] | None) -> Any:
    try:
        return model.model_validate(params or {})
    except pydantic.ValidationError as exc:
        first = exc.errors()[0]
        field = ".".join(str(p) for p in first.get("loc", ()))
        raise ValidationError(f"{field}: {first.get('msg', 'invalid value')}" if field else "Invalid params")


class CommandHandler:
    """Implements every bridge command once; transports only adapt envelopes.

    Methods return plain JSON-ready dicts. Errors are raised as
    :class:`~testbridge.exceptions.BridgeError` subclasses and rendered by
    the calling transport.
    """

    def __init__(self, workspace: TestWorkspace, engine: ExecutionEngine, store: ReportStore) -> None:
        self.workspace = workspace
        self.engine = engine
        self.store = store
        self._methods: dict[str, Callable[[dict[str, Any] | None], Awaitable[Any]]] = {
            "saveTest": self._rpc_save_test,
            "executeTest": self._rpc_execute_test,
            "getTestFiles": lambda _: self.get_test_files(),
            "getReports": lambda _: self.get_reports(),
            "deleteReport": self._rpc_delete_report,
            "deleteTest": self._rpc_delete_test,
            "getExecutionStatus": lambda _: self.get_execution_status(),
            "ping": lambda _: self.ping(),
        }

    @property
    def methods(self) -> list[str]:
        return list(self._methods)

    async def save_test(self, request: SaveTestRequest) -> dict[str, Any]:
        path = self.workspace.save_test_file(request.content, request.target_name, request.tab_id)
        return {"success": True, "path": path, "filePath": path}

    async def execute_test(self, test_path: Any, config: Any = None) -> dict[str, Any]:
        return await self.engine.execute(test_path, config)

    async def get_test_files(self) -> dict[str, Any]:
        files = self.workspace.list_test_files()
        return {"success": True, "files": [f.to_wire() for f in files]}

    async def get_reports(self) -> dict[str, Any]:
        return {"success": True, "reports": [r.to_wire() for r in self.store.list()]}

    async def delete_report(self, report_id: str) -> dict[str, Any]:
        self.store.delete(report_id)
        return {"success": True}

    async def delete_test(self, test_path: str) -> dict[str, Any]:
        self.workspace.delete_test_file(test_path)
        return {"success": True}

    async def ping(self) -> dict[str, Any]:
        return {"pong": int(time.time() * 1000)}

    async def get_execution_status(self) -> dict[str, Any]:
        return {"success": True, **self.engine.status()}

    # -- relay parameter adaptation -------------------------------------------

    async def _rpc_save_test(self, params: dict[str, Any] | None) -> dict[str, Any]:
        return await self.save_test(_parse(SaveTestRequest, params))

    async def _rpc_execute_test(self, params: dict[str, Any] | None) -> dict[str, Any]:
        request = _parse(ExecuteTestRequest, params)
        return await self.execute_test(request.test_path, request.config)

    async def _rpc_delete_report(self, params: dict[str, Any] | None) -> dict[str, Any]:
        params = params or {}
        report_id = params.get("id", params.get("reportId"))
        if not isinstance(report_id, str) or not report_id:
            raise ValidationError("id is required")
        return await self.delete_report(report_id)

    async def _rpc_delete_test(self, params: dict[str, Any] | None) -> dict[str, Any]:
        return await self.delete_test(_parse(DeleteTestRequest, params).test_path)

    async def dispatch(self, method: str | None, params: dict[str, Any] | None = None) -> Any:
        """Run *method* from the fixed method table; unknown names raise UnknownMethodError."""
        handler = self._methods.get(method or "")
        if handler is None:
            raise UnknownMethodError(str(method))
        logger.debug("commands: dispatching %s", method)
        return await handler(params)
