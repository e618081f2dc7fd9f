"""Relay-mode WebSocket client.

The bridge dials out to a relay and answers RPC envelopes there, for
networks where the platform cannot reach the bridge's HTTP server.
"""

from __future__ import annotations

import asyncio
import json
import logging
import secrets
import time
from typing import Any, Callable
from urllib.parse import quote

import pydantic
import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException

from testbridge.core.commands import CommandHandler
from testbridge.core.security.auth import to_base36
from testbridge.exceptions import BridgeError
from testbridge.schemas.relay import RelayMessage

logger = logging.getLogger(__name__)


def generate_session_id() -> str:
    """Random base36 prefix plus a base36 timestamp."""
    return to_base36(secrets.randbits(52)) + to_base36(int(time.time() * 1000))


def build_relay_url(relay_url: str, session_id: str) -> str:
    separator = "&" if "?" in relay_url else "?"
    return f"{relay_url}{separator}role=cli&session={quote(session_id, safe='')}"


class RelayClient:
    """Keeps one relay connection alive and serves RPCs over it.

    Each RPC runs in its own task so a long ``executeTest`` never blocks
    keepalive or other requests on the same connection.
    """

    def __init__(
        self,
        commands: CommandHandler,
        relay_url: str,
        session_id: str,
        *,
        ping_interval: float = 30.0,
        reconnect_delay: float = 5.0,
        connect_timeout: float = 10.0,
        max_retries: int | None = None,
        connect: Callable[..., Any] = websockets.connect,
    ) -> None:
        self.commands = commands
        self.relay_url = relay_url
        self.session_id = session_id
        self.ping_interval = ping_interval
        self.reconnect_delay = reconnect_delay
        self.connect_timeout = connect_timeout
        self.max_retries = max_retries
        self._connect = connect
        self._ws: Any = None
        self._send_lock = asyncio.Lock()
        self._tasks: set[asyncio.Task] = set()
        self._stopped = False

    @property
    def url(self) -> str:
        return build_relay_url(self.relay_url, self.session_id)

    @property
    def connected(self) -> bool:
        return self._ws is not None

    async def handle_message(self, raw: str | bytes) -> dict[str, Any] | None:
        """Turn one inbound frame into the response envelope to send, if any."""
        try:
            message = RelayMessage.model_validate(json.loads(raw))
        except (json.JSONDecodeError, UnicodeDecodeError, pydantic.ValidationError) as exc:
            logger.warning("relay: dropping malformed message: %s", exc)
            return None

        if message.type == "ping":
            return RelayMessage(id=message.id, type="pong").to_wire()
        if message.type == "pong":
            logger.debug("relay: pong %s", message.id)
            return None

        try:
            result = await self.commands.dispatch(message.method, message.params)
        except BridgeError as exc:
            logger.warning("relay: %s failed: %s", message.method, exc.message)
            return RelayMessage(id=message.id, type="rpc", error=exc.message).to_wire()
        except Exception as exc:
            logger.exception("relay: %s raised", message.method)
            return RelayMessage(id=message.id, type="rpc", error=str(exc) or "Unknown error").to_wire()
        return RelayMessage(id=message.id, type="rpc", result=result).to_wire()

    async def send(self, ws: Any, payload: dict[str, Any]) -> bool:
        try:
            async with self._send_lock:
                await ws.send(json.dumps(payload))
        except ConnectionClosed:
            logger.warning("relay: connection closed before %s %s could be sent", payload.get("type"), payload.get("id"))
            return False
        return True

    async def _respond(self, ws: Any, raw: str | bytes) -> None:
        response = await self.handle_message(raw)
        if response is not None:
            await self.send(ws, response)

    async def _ping_loop(self, ws: Any) -> None:
        while True:
            await asyncio.sleep(self.ping_interval)
            ping = RelayMessage(id=f"ping_{int(time.time() * 1000)}", type="ping")
            if not await self.send(ws, ping.to_wire()):
                return

    async def serve(self, ws: Any) -> None:
        """Read frames until the connection closes."""
        self._ws = ws
        ping_task = asyncio.create_task(self._ping_loop(ws))
        try:
            async for raw in ws:
                task = asyncio.create_task(self._respond(ws, raw))
                self._tasks.add(task)
                task.add_done_callback(self._tasks.discard)
        except ConnectionClosed as exc:
            logger.warning("relay: connection closed: %s", exc)
        finally:
            self._ws = None
            ping_task.cancel()

    async def connect_once(self) -> bool:
        """Open one connection and serve it. Returns True if the handshake succeeded."""
        opened = False
        logger.info("relay: connecting to %s", self.url)
        try:
            async with self._connect(self.url, open_timeout=self.connect_timeout) as ws:
                opened = True
                logger.info("relay: connected (session %s)", self.session_id)
                await self.serve(ws)
        except (OSError, asyncio.TimeoutError, WebSocketException) as exc:
            logger.warning("relay: connection %s: %s", "lost" if opened else "failed", exc)
        return opened

    async def run_forever(self, *, stop_on_first_failure: bool = False) -> bool:
        """Reconnect after a fixed delay until stopped.

        Returns False if the very first attempt fails and
        *stop_on_first_failure* is set, or once ``max_retries`` consecutive
        attempts have failed; True when stopped deliberately.
        """
        failures = 0
        ever_connected = False
        while not self._stopped:
            if await self.connect_once():
                ever_connected = True
                failures = 0
            else:
                failures += 1
                if stop_on_first_failure and not ever_connected:
                    return False
                if self.max_retries is not None and failures > self.max_retries:
                    logger.error("relay: giving up after %d failed attempts", failures)
                    return False
            if self._stopped:
                break
            logger.info("relay: reconnecting in %.0fs", self.reconnect_delay)
            await asyncio.sleep(self.reconnect_delay)
        return True

    async def stop(self) -> None:
        self._stopped = True
        if self.connected:
            await self._ws.close()
        for task in list(self._tasks):
            task.cancel()
