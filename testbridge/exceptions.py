"""Bridge error taxonomy and its HTTP rendering."""

from __future__ import annotations

import logging

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class BridgeError(Exception):
    """Base class for errors surfaced to a remote caller."""

    status_code: int = 500
    code: str = "bridge_error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict[str, object]:
        return {"success": False, "error": self.message, "code": self.code}


class ValidationError(BridgeError):
    """Request input has the wrong shape."""

    status_code = 400
    code = "validation_error"


class UnknownMethodError(ValidationError):
    """A relay RPC named a method outside the command table."""

    code = "unknown_method"

    def __init__(self, method: str) -> None:
        super().__init__(f"Unknown RPC method: {method}")
        self.method = method


class NotFoundError(BridgeError):
    """A test file, report or artifact does not exist."""

    status_code = 404
    code = "not_found"


class SecurityError(BridgeError):
    """A path escapes the project root."""

    status_code = 403
    code = "security_error"


class TokenError(SecurityError):
    """Bearer token is malformed, expired or not the live session token."""

    status_code = 401

    def __init__(self, reason: str, message: str) -> None:
        super().__init__(message)
        self.reason = reason
        self.code = f"token_{reason}"


class RunnerUnavailableError(BridgeError):
    """The runner's version check failed or timed out."""

    status_code = 503
    code = "runner_unavailable"


class ExecutionTimeoutError(BridgeError):
    """The hard execution ceiling fired before the runner produced results."""

    status_code = 504
    code = "execution_timeout"


class PersistenceError(BridgeError):
    """Writing a report document failed."""

    status_code = 500
    code = "persistence_error"


class AnalysisError(BridgeError):
    """The external completion service could not produce an analysis."""

    status_code = 502
    code = "analysis_error"


async def bridge_error_handler(request: Request, exc: BridgeError) -> JSONResponse:
    """Render a BridgeError as the standard failure envelope."""
    if exc.status_code >= 500:
        logger.error("api: %s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Render body/param validation failures with the same envelope as ValidationError."""
    errors = exc.errors()
    first = errors[0] if errors else {}
    location = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
    message = first.get("msg", "Invalid request")
    if location:
        message = f"{location}: {message}"
    return JSONResponse(
        status_code=400,
        content={"success": False, "error": message, "code": ValidationError.code},
    )
