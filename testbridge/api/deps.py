"""Request-scoped accessors for the bridge attached to the app."""

from fastapi import Request

from testbridge.bridge import Bridge
from testbridge.core.commands import CommandHandler


def get_bridge(request: Request) -> Bridge:
    return request.app.state.bridge


def get_commands(request: Request) -> CommandHandler:
    return request.app.state.bridge.commands
