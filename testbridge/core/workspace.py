"""Test file discovery, save, delete and path resolution inside the project."""

from __future__ import annotations

import logging
import re
from pathlib import Path

from testbridge.core.project import ProjectInfo, ensure_test_directory
from testbridge.core.security.paths import is_within, resolve_within
from testbridge.exceptions import NotFoundError, ValidationError
from testbridge.schemas.base import iso_timestamp
from testbridge.schemas.test_file import TestFile

logger = logging.getLogger(__name__)

TEST_FILE_PATTERNS: tuple[str, ...] = ("*.spec.ts", "*.spec.js", "*.test.ts", "*.test.js")
CANONICAL_SUFFIX = ".spec.ts"

_TEST_SUFFIX_RE = re.compile(r"\.(spec|test)\.(ts|js)$")
_SCRIPT_SUFFIX_RE = re.compile(r"\.(ts|js)$")
_UNSAFE_CHARS_RE = re.compile(r"[^a-zA-Z0-9.-]")


def normalize_filename(filename: str) -> str:
    """Strip any test suffix, sanitize the stem and append ``.spec.ts``.

    >>> normalize_filename("login flow.test.js")
    'login_flow.spec.ts'
    """
    stem = _SCRIPT_SUFFIX_RE.sub("", _TEST_SUFFIX_RE.sub("", filename))
    stem = _UNSAFE_CHARS_RE.sub("_", stem)
    return f"{stem}{CANONICAL_SUFFIX}"


def _has_directory(path: str) -> bool:
    return "/" in path or "\\" in path


class TestWorkspace:
    """File operations on the project's test directory.

    Every path handed in from a caller goes through :func:`resolve_within`
    before the filesystem is touched.
    """

    __test__ = False

    def __init__(self, project_root: Path, project: ProjectInfo) -> None:
        self.project_root = Path(project_root).resolve()
        self.project = project

    @property
    def test_dir(self) -> Path:
        return self.project_root / self.project.test_dir

    def relative(self, path: Path) -> str:
        return path.resolve().relative_to(self.project_root).as_posix()

    def list_test_files(self) -> list[TestFile]:
        """Return every spec/test file under the test directory, sorted by filename."""
        test_dir = ensure_test_directory(self.project_root, self.project.test_dir)

        seen: set[Path] = set()
        files: list[TestFile] = []
        for pattern in TEST_FILE_PATTERNS:
            for path in test_dir.rglob(pattern):
                if path in seen or not path.is_file() or not is_within(self.project_root, path):
                    continue
                seen.add(path)
                try:
                    content = path.read_text(encoding="utf-8")
                    stat = path.stat()
                except (OSError, UnicodeDecodeError) as exc:
                    logger.warning("workspace: skipping unreadable test file %s: %s", path, exc)
                    continue
                created = getattr(stat, "st_birthtime", stat.st_ctime)
                files.append(
                    TestFile(
                        name=path.name,
                        path=self.relative(path),
                        content=content,
                        created_at=iso_timestamp(created),
                        modified_at=iso_timestamp(stat.st_mtime),
                    )
                )

        files.sort(key=lambda f: f.name)
        return files

    def save_test_file(self, content: str, filename: str, tab_id: str | None = None) -> str:
        """Write *content* under a normalized filename; return the project-relative path."""
        if not isinstance(content, str):
            raise ValidationError("content must be a string")
        if not filename or not isinstance(filename, str):
            raise ValidationError("filename is required")

        test_dir = ensure_test_directory(self.project_root, self.project.test_dir)
        # Only the basename is honored; directory parts would escape the test dir.
        target = resolve_within(self.project_root, test_dir / normalize_filename(Path(filename).name))
        target.write_text(content, encoding="utf-8")

        relative = self.relative(target)
        logger.info("workspace: saved %s%s", relative, f" (tab {tab_id})" if tab_id else "")
        return relative

    def delete_test_file(self, test_path: str) -> None:
        """Unlink a test file after checking it lives inside the project root."""
        if not test_path or not isinstance(test_path, str):
            raise ValidationError("testPath is required")

        target = resolve_within(self.project_root, test_path)
        if not target.is_file():
            raise NotFoundError(f"Test file not found: {test_path}")
        target.unlink()
        logger.info("workspace: deleted %s", self.relative(target))

    def resolve_test_path(self, test_path: str) -> tuple[str, Path]:
        """Map a caller-supplied test path to ``(relative, absolute)``.

        A bare filename is looked up inside the test directory (directly,
        then recursively); anything with a directory part is resolved
        against the project root and must exist.
        """
        if not test_path or not isinstance(test_path, str) or not test_path.strip():
            raise ValidationError("testPath must be a non-empty string")

        if not _has_directory(test_path):
            direct = resolve_within(self.project_root, self.test_dir / test_path)
            if direct.is_file():
                return self.relative(direct), direct
            if self.test_dir.is_dir():
                for match in sorted(self.test_dir.rglob("*")):
                    if match.name == test_path and match.is_file():
                        resolved = resolve_within(self.project_root, match)
                        return self.relative(resolved), resolved

        resolved = resolve_within(self.project_root, test_path)
        if not resolved.is_file():
            raise NotFoundError(f"Test file not found: {test_path}")
        return self.relative(resolved), resolved
