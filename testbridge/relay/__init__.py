"""Relay-mode transport."""

from testbridge.relay.client import RelayClient

__all__ = ["RelayClient"]
