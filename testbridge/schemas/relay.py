"""Relay-mode envelope exchanged over the WebSocket."""

from typing import Any, Literal

from pydantic import BaseModel


class RelayMessage(BaseModel):
    """One wire message; ``id`` correlates a response with its request."""

    id: str
    type: Literal["rpc", "ping", "pong"]
    method: str | None = None
    params: dict[str, Any] | None = None
    result: Any = None
    error: str | None = None

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)
