"""Artifact server: stream files referenced by reports, never outside the project."""

import logging
from pathlib import Path

from fastapi import APIRouter, Depends
from fastapi.responses import FileResponse

from testbridge.api.deps import get_bridge
from testbridge.bridge import Bridge
from testbridge.core.security.paths import resolve_within
from testbridge.exceptions import NotFoundError

logger = logging.getLogger(__name__)

router = APIRouter()

CACHE_CONTROL = "public, max-age=3600"

MIME_TYPES: dict[str, str] = {
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".gif": "image/gif",
    ".webp": "image/webp",
    ".webm": "video/webm",
    ".mp4": "video/mp4",
    ".zip": "application/zip",
    ".json": "application/json",
    ".txt": "text/plain",
    ".html": "text/html",
    ".md": "text/markdown",
}


def content_type_for(path: Path) -> str:
    return MIME_TYPES.get(path.suffix.lower(), "application/octet-stream")


@router.get("/artifacts/{artifact_path:path}")
async def get_artifact(artifact_path: str, bridge: Bridge = Depends(get_bridge)) -> FileResponse:
    """Serve one artifact. 403 if the path escapes the project, 404 if it is not a file."""
    resolved = resolve_within(bridge.project_root, artifact_path)
    if not resolved.is_file():
        raise NotFoundError(f"Artifact not found: {artifact_path}")

    logger.debug("artifacts: serving %s", resolved)
    return FileResponse(
        resolved,
        media_type=content_type_for(resolved),
        headers={"Cache-Control": CACHE_CONTROL},
    )
