"""Path containment guard keeping every file operation inside the project root."""

from __future__ import annotations

from pathlib import Path

from testbridge.exceptions import SecurityError


def resolve_within(root: Path | str, candidate: Path | str) -> Path:
    """Resolve *candidate* against *root* and reject anything that escapes it.

    Absolute candidates are accepted only when they already live under the
    root. Symlinks are followed before the check.
    """
    base = Path(root).resolve()
    resolved = (base / candidate).resolve()
    if resolved != base and not resolved.is_relative_to(base):
        raise SecurityError("Invalid path - outside project directory")
    return resolved


def is_within(root: Path | str, candidate: Path | str) -> bool:
    """Boolean form of :func:`resolve_within`."""
    try:
        resolve_within(root, candidate)
    except SecurityError:
        return False
    return True
