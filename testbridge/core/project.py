"""Project detection: what kind of project the bridge serves and where its tests live."""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

_LOCKFILES: tuple[tuple[str, str], ...] = (
    ("bun.lockb", "bun"),
    ("pnpm-lock.yaml", "pnpm"),
    ("yarn.lock", "yarn"),
    ("package-lock.json", "npm"),
)

# Dependency name -> project type, first match wins
_TYPE_MARKERS: tuple[tuple[str, str], ...] = (
    ("next", "nextjs"),
    ("nuxt", "nuxt"),
    ("vue", "vue"),
    ("svelte", "svelte"),
    ("@angular/core", "angular"),
    ("vite", "vite"),
    ("react", "react"),
)

_TEST_DIR_PREFERENCES: dict[str, list[str]] = {
    "nextjs": ["e2e", "tests", "__tests__", "test"],
    "react": ["src/__tests__", "__tests__", "tests", "test"],
    "vue": ["tests", "test", "e2e"],
    "angular": ["e2e"],
    "svelte": ["tests", "test"],
    "nuxt": ["test", "tests"],
    "vite": ["tests", "test", "e2e"],
    "generic": ["tests", "test", "e2e"],
}

_TEST_DIR_DEFAULTS: dict[str, str] = {
    "nextjs": "e2e",
    "angular": "e2e",
    "nuxt": "test",
}

_CONFIG_PATTERNS: tuple[str, ...] = (
    "playwright.config.*",
    "vite.config.*",
    "next.config.*",
    "nuxt.config.*",
    "svelte.config.*",
    "angular.json",
    "tsconfig.json",
)


@dataclass
class ProjectInfo:
    """Static facts about the served project."""

    name: str
    type: str = "generic"
    package_manager: str = "npm"
    test_dir: str = "tests"
    has_playwright: bool = False
    root_dir: str = ""
    scripts: dict[str, str] = field(default_factory=dict)
    config_files: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        return {
            "name": data["name"],
            "type": data["type"],
            "packageManager": data["package_manager"],
            "testDir": data["test_dir"],
            "hasPlaywright": data["has_playwright"],
            "rootDir": data["root_dir"],
            "scripts": data["scripts"],
            "configFiles": data["config_files"],
        }


def _read_package_json(root: Path) -> dict[str, Any]:
    pkg = root / "package.json"
    if not pkg.is_file():
        return {}
    try:
        data = json.loads(pkg.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        logger.warning("project: unreadable package.json at %s: %s", pkg, exc)
        return {}
    return data if isinstance(data, dict) else {}


def _detect_type(deps: dict[str, Any]) -> str:
    for marker, project_type in _TYPE_MARKERS:
        if marker in deps:
            return project_type
    return "generic"


def _detect_package_manager(root: Path) -> str:
    for lockfile, manager in _LOCKFILES:
        if (root / lockfile).exists():
            return manager
    return "npm"


def _detect_test_dir(root: Path, project_type: str) -> str:
    for candidate in _TEST_DIR_PREFERENCES.get(project_type, _TEST_DIR_PREFERENCES["generic"]):
        if (root / candidate).is_dir():
            return candidate
    return _TEST_DIR_DEFAULTS.get(project_type, "tests")


def detect_project(root: Path | str, test_dir: str | None = None) -> ProjectInfo:
    """Inspect *root* and describe the project.

    *test_dir* overrides detection (e.g. from a ``raiken.config.json``).
    """
    base = Path(root).resolve()
    pkg = _read_package_json(base)
    deps = {**(pkg.get("dependencies") or {}), **(pkg.get("devDependencies") or {})}
    project_type = _detect_type(deps)

    if test_dir is None:
        config_file = base / "raiken.config.json"
        if config_file.is_file():
            try:
                test_dir = json.loads(config_file.read_text(encoding="utf-8")).get("testDirectory")
            except (OSError, json.JSONDecodeError, AttributeError):
                test_dir = None

    config_files: list[str] = []
    for pattern in _CONFIG_PATTERNS:
        config_files.extend(p.name for p in base.glob(pattern))

    return ProjectInfo(
        name=str(pkg.get("name") or base.name),
        type=project_type,
        package_manager=_detect_package_manager(base),
        test_dir=test_dir or _detect_test_dir(base, project_type),
        has_playwright="@playwright/test" in deps or "playwright" in deps,
        root_dir=str(base),
        scripts=dict(pkg.get("scripts") or {}),
        config_files=sorted(config_files),
    )


def ensure_test_directory(root: Path | str, test_dir: str) -> Path:
    """Create the project's test directory if absent and return it."""
    path = Path(root) / test_dir
    path.mkdir(parents=True, exist_ok=True)
    return path
