"""FastAPI application for direct mode."""

import logging
import sys
import time
from typing import Any, Callable

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from testbridge.api import router as api_router
from testbridge.bridge import Bridge
from testbridge.core.security.auth import parse_bearer
from testbridge.exceptions import (
    BridgeError,
    TokenError,
    bridge_error_handler,
    request_validation_handler,
)
from testbridge.schemas.base import iso_timestamp

logger = logging.getLogger(__name__)

CAPABILITIES = [
    "test-files",
    "save-test",
    "delete-test",
    "execute-test",
    "reports",
    "artifacts",
    "execution-status",
]


def _memory_usage() -> dict[str, Any] | None:
    """Peak resident set size of this process, where the platform reports it."""
    if sys.platform == "win32":
        return None
    import resource

    peak = resource.getrusage(resource.RUSAGE_SELF).ru_maxrss
    # Linux reports kilobytes, macOS bytes
    return {"maxRss": peak if sys.platform == "darwin" else peak * 1024}


def create_application(bridge: Bridge) -> FastAPI:
    """Create and configure the FastAPI application for one bridge."""
    settings = bridge.settings
    prefix = settings.api_prefix.rstrip("/")
    origins = settings.cors_origins
    public_paths = {f"{prefix}/health", f"{prefix}/project-info"}
    artifacts_prefix = f"{prefix}/artifacts/"

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Local bridge that runs browser tests for a remote platform",
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )
    app.state.bridge = bridge

    class AuthMiddleware(BaseHTTPMiddleware):
        """Require the live session token on every protected API path."""

        async def dispatch(self, request: Request, call_next: Callable) -> Response:
            path = request.url.path
            if (
                request.method.upper() == "OPTIONS"
                or not path.startswith(prefix + "/")
                or path in public_paths
                or path.startswith(artifacts_prefix)
            ):
                return await call_next(request)
            try:
                token = parse_bearer(request.headers.get("authorization"))
                bridge.session.validate(token, max_age=bridge.token_max_age)
            except TokenError as exc:
                logger.warning("auth: rejected %s %s (%s)", request.method, path, exc.reason)
                return JSONResponse(status_code=exc.status_code, content=exc.to_dict())
            return await call_next(request)

    class RequestLoggingMiddleware(BaseHTTPMiddleware):
        async def dispatch(self, request: Request, call_next: Callable) -> Response:
            start = time.monotonic()
            response = await call_next(request)
            logger.info(
                "api: %s %s -> %d (%.0fms)",
                request.method,
                request.url.path,
                response.status_code,
                (time.monotonic() - start) * 1000,
            )
            return response

    class OriginGuardMiddleware(BaseHTTPMiddleware):
        """Refuse requests from browsers on origins outside the allow-list."""

        async def dispatch(self, request: Request, call_next: Callable) -> Response:
            origin = request.headers.get("origin")
            if origin and origin not in origins:
                logger.warning("cors: blocked origin %s", origin)
                return JSONResponse(
                    status_code=403,
                    content={"success": False, "error": "Not allowed by CORS", "code": "cors_blocked"},
                )
            return await call_next(request)

    # Last added runs first: origin guard, CORS, logging, auth, routes.
    app.add_middleware(AuthMiddleware)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", "X-Requested-With"],
    )
    app.add_middleware(OriginGuardMiddleware)

    app.add_exception_handler(BridgeError, bridge_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> Response:
        """Unknown routes and other HTTP errors use the same failure envelope."""
        code = "not_found" if exc.status_code == 404 else "http_error"
        message = "Endpoint not found" if exc.status_code == 404 else str(exc.detail)
        return JSONResponse(
            status_code=exc.status_code,
            content={"success": False, "error": message, "code": code},
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception) -> Response:
        logger.exception("api: unhandled exception on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=500,
            content={"success": False, "error": "Internal server error", "code": "internal_error"},
        )

    @app.get(f"{prefix}/health", tags=["Health"])
    async def health_check() -> dict[str, Any]:
        """Liveness probe. Reads state only."""
        return {
            "status": "ok",
            "uptime": round(bridge.uptime, 3),
            "memory": _memory_usage(),
            "port": bridge.port,
            "project": bridge.project.name,
            "type": bridge.project.type,
            "testDir": bridge.project.test_dir,
            "timestamp": iso_timestamp(),
        }

    @app.get(f"{prefix}/project-info", tags=["Health"])
    async def project_info() -> dict[str, Any]:
        """Project metadata plus the pairing token and what this bridge can do."""
        return {
            **bridge.project.to_dict(),
            "authToken": bridge.session.token,
            "capabilities": CAPABILITIES,
        }

    app.include_router(api_router, prefix=prefix)

    return app
