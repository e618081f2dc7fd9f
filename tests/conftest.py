"""Shared pytest fixtures for the test bridge tests."""

from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import AsyncGenerator

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from testbridge.bridge import Bridge, build_bridge
from testbridge.config import Settings
from testbridge.main import create_application

FAKE_RUNNER = Path(__file__).parent / "fake_runner.py"

EXAMPLE_SPEC = """import { test, expect } from '@playwright/test';

test('works', async ({ page }) => {
  await page.goto('http://localhost:3000');
  await expect(page).toHaveTitle(/Demo/);
});
"""


def make_settings(**overrides) -> Settings:
    """Settings isolated from the developer's environment and .env file."""
    values = {
        "runner_command": [sys.executable, str(FAKE_RUNNER)],
        "preflight_timeout": 5.0,
        "completion_grace": 0.5,
        "execution_timeout": 10.0,
        "response_timeout": 30.0,
        "ai_analysis_enabled": False,
        "ai_api_key": "",
        "allowed_origins": [],
        "log_level": "DEBUG",
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


@pytest.fixture(autouse=True)
def fake_runner_env(monkeypatch):
    """Every test starts with the fake runner in its passing mode."""
    monkeypatch.setenv("FAKE_RUNNER_MODE", "pass")
    monkeypatch.delenv("FAKE_RUNNER_ARTIFACT", raising=False)


@pytest.fixture
def project_dir(tmp_path: Path) -> Path:
    """A minimal Playwright project with one spec in tests/."""
    root = tmp_path / "demo-app"
    (root / "tests").mkdir(parents=True)
    (root / "package.json").write_text(
        json.dumps(
            {
                "name": "demo-app",
                "scripts": {"test": "playwright test"},
                "devDependencies": {"@playwright/test": "^1.40.0"},
            }
        ),
        encoding="utf-8",
    )
    (root / "package-lock.json").write_text("{}", encoding="utf-8")
    (root / "tests" / "example.spec.ts").write_text(EXAMPLE_SPEC, encoding="utf-8")
    return root


@pytest.fixture
def settings_factory():
    """Build isolated Settings with per-test overrides."""
    return make_settings


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def bridge(project_dir: Path, settings: Settings) -> Bridge:
    b = build_bridge(project_dir, settings)
    b.port = 3460
    return b


@pytest.fixture
def app(bridge: Bridge) -> FastAPI:
    return create_application(bridge)


@pytest.fixture
def auth_headers(bridge: Bridge) -> dict[str, str]:
    return {"Authorization": f"Bearer {bridge.session.token}"}


@pytest.fixture
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    """HTTP test client bound to the bridge app."""
    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as ac:
        yield ac
