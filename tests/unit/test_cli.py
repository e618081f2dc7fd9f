"""Unit tests for CLI port selection and command wiring.

Total: 9 tests
"""

from __future__ import annotations

import json
import socket
from unittest.mock import patch

import click
import pytest
from click.testing import CliRunner

from testbridge.cli import find_port, main

HOST = "127.0.0.1"


@pytest.fixture
def busy_port():
    """A port held open for the duration of the test."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind((HOST, 0))
        sock.listen(1)
        yield sock.getsockname()[1]


class TestFindPort:
    def test_preferred_port_when_free(self):
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
            sock.bind((HOST, 0))
            free = sock.getsockname()[1]
        assert find_port(HOST, free, free, 1) == free

    def test_falls_back_when_busy(self, busy_port):
        port = find_port(HOST, busy_port, busy_port, 5)
        assert busy_port < port < busy_port + 5

    def test_no_free_port(self, busy_port):
        with pytest.raises(click.ClickException):
            find_port(HOST, busy_port, busy_port, 1)


def test_help_lists_both_modes():
    result = CliRunner().invoke(main, ["--help"])
    assert result.exit_code == 0
    assert "start" in result.output
    assert "relay" in result.output


# ── info and install-browsers ─────────────────────────────────────────────────

@pytest.fixture
def bare_project(tmp_path):
    root = tmp_path / "plain-site"
    root.mkdir()
    (root / "package.json").write_text(json.dumps({"name": "plain-site"}), encoding="utf-8")
    return root


class TestInfo:
    def test_reports_detected_project(self, project_dir):
        result = CliRunner().invoke(main, ["info", "--project", str(project_dir)])
        assert result.exit_code == 0
        assert "Project name:    demo-app" in result.output
        assert "Test directory:  tests" in result.output
        assert "Package manager: npm" in result.output
        assert "Playwright:      configured" in result.output

    def test_missing_playwright_is_flagged(self, bare_project):
        result = CliRunner().invoke(main, ["info", "--project", str(bare_project)])
        assert result.exit_code == 0
        assert "Playwright:      not found" in result.output


class TestInstallBrowsers:
    def test_runs_runner_install(self, project_dir, settings):
        with patch("testbridge.cli.get_settings", return_value=settings):
            result = CliRunner().invoke(main, ["install-browsers", "--project", str(project_dir)])
        assert result.exit_code == 0
        assert "Playwright browsers installed" in result.output

    def test_failed_install_exits_nonzero(self, project_dir, settings, monkeypatch):
        monkeypatch.setenv("FAKE_RUNNER_MODE", "crash")
        with patch("testbridge.cli.get_settings", return_value=settings):
            result = CliRunner().invoke(main, ["install-browsers", "--project", str(project_dir)])
        assert result.exit_code == 1
        assert "Browser installation failed (exit code: 1)" in result.output

    def test_requires_playwright_dependency(self, bare_project, settings):
        with patch("testbridge.cli.get_settings", return_value=settings):
            result = CliRunner().invoke(main, ["install-browsers", "--project", str(bare_project)])
        assert result.exit_code == 1
        assert "Playwright not detected" in result.output
