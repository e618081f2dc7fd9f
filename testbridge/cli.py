"""CLI entry point for the test bridge."""

import asyncio
import logging
import socket
import subprocess
from pathlib import Path

import click
import uvicorn

from testbridge.bridge import Bridge, build_bridge
from testbridge.config import get_settings
from testbridge.core.project import detect_project
from testbridge.main import create_application
from testbridge.relay.client import RelayClient, generate_session_id

logger = logging.getLogger(__name__)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _port_is_free(host: str, port: int) -> bool:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        try:
            sock.bind((host, port))
        except OSError:
            return False
    return True


def find_port(host: str, preferred: int, fallback_start: int, fallback_count: int) -> int:
    """Return *preferred* if free, else the first free port in the fallback range."""
    candidates = [preferred] + [
        p for p in range(fallback_start, fallback_start + fallback_count) if p != preferred
    ]
    for port in candidates:
        if _port_is_free(host, port):
            return port
    raise click.ClickException(
        f"No free port: {preferred} and {fallback_start}-{fallback_start + fallback_count - 1} are all in use"
    )


def _print_banner(bridge: Bridge, host: str, port: int) -> None:
    click.echo(f"Test bridge serving {bridge.project.name} ({bridge.project.type}) from {bridge.project_root}")
    click.echo(f"Listening on http://{host}:{port}{bridge.settings.api_prefix}")
    click.echo("")
    click.echo(f"Pairing token (valid {bridge.settings.token_max_age_hours}h, shown once):")
    click.echo(f"  {bridge.session.token}")
    click.echo("")


def _serve_direct(bridge: Bridge, host: str, port: int) -> None:
    settings = bridge.settings
    bound = find_port(host, port, settings.port_fallback_start, settings.port_fallback_count)
    if bound != port:
        click.echo(f"Port {port} is in use, using {bound}")
    bridge.port = bound
    _print_banner(bridge, host, bound)
    uvicorn.run(
        create_application(bridge),
        host=host,
        port=bound,
        log_level=settings.log_level.lower(),
    )


@click.group()
def main():
    """Local bridge that lets a hosted platform run browser tests on this machine."""
    pass


@main.command()
@click.option("--port", type=int, default=None, help="Port to serve on (falls back to the next free one).")
@click.option("--host", default=None, help="Host to bind to.")
@click.option(
    "--project",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    default=Path("."),
    help="Project root.",
)
def start(port: int | None, host: str | None, project: Path):
    """Start the bridge in direct mode (HTTP server)."""
    settings = get_settings()
    configure_logging(settings.log_level)
    bridge = build_bridge(project, settings)
    _serve_direct(bridge, host or settings.host, port or settings.port)


@main.command()
@click.option("--session", "session_id", default=None, help="Session id shared with the web app.")
@click.option("--url", "relay_url", default=None, help="Relay WebSocket URL.")
@click.option(
    "--project",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    default=Path("."),
    help="Project root.",
)
@click.option("--fallback-direct", is_flag=True, help="Start the HTTP server if the relay is unreachable.")
def relay(session_id: str | None, relay_url: str | None, project: Path, fallback_direct: bool):
    """Connect to a relay server (for networks that block inbound connections)."""
    settings = get_settings()
    configure_logging(settings.log_level)
    bridge = build_bridge(project, settings)

    if not session_id:
        session_id = generate_session_id()
        click.echo(f"Generated session id: {session_id}")
        click.echo("Use this id in the web app to connect.")

    client = RelayClient(
        bridge.commands,
        relay_url or settings.relay_url,
        session_id,
        ping_interval=settings.relay_ping_interval,
        reconnect_delay=settings.relay_reconnect_delay,
        connect_timeout=settings.relay_connect_timeout,
        max_retries=settings.relay_max_retries,
    )
    try:
        ok = asyncio.run(client.run_forever(stop_on_first_failure=fallback_direct))
    except KeyboardInterrupt:
        click.echo("Relay stopped")
        return

    if not ok and fallback_direct:
        click.echo("Relay unreachable, falling back to direct mode")
        _serve_direct(bridge, settings.host, settings.port)
    elif not ok:
        raise click.ClickException("Relay connection could not be established")


@main.command()
@click.option(
    "--project",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    default=Path("."),
    help="Project root.",
)
def info(project: Path):
    """Show what the bridge detects about a project."""
    detected = detect_project(project)
    click.echo(f"Project name:    {detected.name}")
    click.echo(f"Project type:    {detected.type}")
    click.echo(f"Test directory:  {detected.test_dir}")
    click.echo(f"Package manager: {detected.package_manager}")
    if detected.has_playwright:
        click.echo("Playwright:      configured")
    else:
        click.echo("Playwright:      not found (install with: npm install -D @playwright/test)")


@main.command("install-browsers")
@click.option(
    "--project",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    default=Path("."),
    help="Project root.",
)
def install_browsers(project: Path):
    """Install the browsers Playwright needs for this project."""
    settings = get_settings()
    if not detect_project(project).has_playwright:
        raise click.ClickException(
            "Playwright not detected as a dependency; install it first: npm install -D @playwright/test"
        )

    cmd = [*settings.runner_command, "install"]
    click.echo(f"Installing Playwright browsers ({' '.join(cmd)})")
    try:
        completed = subprocess.run(cmd, cwd=project)
    except OSError as exc:
        raise click.ClickException(f"Could not start browser installation: {exc}") from exc
    if completed.returncode != 0:
        raise click.ClickException(f"Browser installation failed (exit code: {completed.returncode})")
    click.echo("Playwright browsers installed")


if __name__ == "__main__":
    main()
