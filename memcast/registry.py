from __future__ import annotations

"""
File: memcast/registry.py
Purpose: Live WebSocket connections and the registry that tracks them.
Key responsibilities:
- Wrap a WebSocket with an id, a lifecycle state and an idempotent close.
- Serialize every registry insert, delete and iteration on one lock.
Key entrypoints:
- ConnectionRegistry.register() / unregister() / for_each()
"""

import asyncio
from enum import Enum
import itertools
import logging
from typing import Awaitable, Callable

from fastapi import WebSocket
from fastapi.websockets import WebSocketState

from memcast.errors import ReadError, SendError

logger = logging.getLogger("memcast")


class ConnectionState(str, Enum):
    CONNECTING = "connecting"
    LIVE = "live"
    CLOSED = "closed"


class Connection:
    """One accepted viewer WebSocket."""
    def __init__(self, websocket: WebSocket, send_timeout_s: float | None = None) -> None:
        self.id: int | None = None
        self.state = ConnectionState.CONNECTING
        self._websocket = websocket
        self._send_timeout_s = send_timeout_s

    def __repr__(self) -> str:
        return f"Connection(id={self.id}, state={self.state.value})"

    @property
    def closed(self) -> bool:
        return self.state is ConnectionState.CLOSED

    async def send_text(self, data: str) -> None:
        """Write one text frame or raise SendError."""
        if self.closed:
            raise SendError(f"connection {self.id} is closed")
        try:
            if self._send_timeout_s:
                await asyncio.wait_for(self._websocket.send_text(data), timeout=self._send_timeout_s)
            else:
                await self._websocket.send_text(data)
        except asyncio.TimeoutError as exc:
            raise SendError(f"send to connection {self.id} timed out") from exc
        except Exception as exc:  # noqa: BLE001
            raise SendError(f"send to connection {self.id} failed: {exc}") from exc

    async def receive(self) -> None:
        """Read and discard one inbound frame; raise ReadError on disconnect or failure."""
        try:
            message = await self._websocket.receive()
        except Exception as exc:  # noqa: BLE001
            raise ReadError(f"read from connection {self.id} failed: {exc}") from exc
        if message["type"] == "websocket.disconnect":
            raise ReadError(f"connection {self.id} closed by peer code={message.get('code')}")

    async def close(self) -> None:
        """Close the transport on the first call only."""
        if self.closed:
            return
        self.state = ConnectionState.CLOSED
        if self._websocket.client_state == WebSocketState.DISCONNECTED:
            return
        try:
            if self._send_timeout_s:
                await asyncio.wait_for(self._websocket.close(), timeout=self._send_timeout_s)
            else:
                await self._websocket.close()
        except Exception as exc:  # noqa: BLE001
            logger.debug("close error connection=%s: %s", self.id, exc)


class ConnectionRegistry:
    """Set of live connections shared by the broadcaster and the lifecycle handler."""
    def __init__(self) -> None:
        self._connections: dict[int, Connection] = {}
        self._ids = itertools.count(1)
        self._lock = asyncio.Lock()

    async def register(self, conn: Connection) -> bool:
        """Add a connection; a closed connection is never re-added."""
        async with self._lock:
            if conn.closed:
                return False
            if conn.id is None:
                conn.id = next(self._ids)
            conn.state = ConnectionState.LIVE
            self._connections[conn.id] = conn
            return True

    async def unregister(self, conn: Connection) -> bool:
        """Remove and close a connection. Returns False if it was already gone."""
        async with self._lock:
            removed = conn.id is not None and self._connections.get(conn.id) is conn
            if removed:
                del self._connections[conn.id]
        await conn.close()
        return removed

    async def for_each(self, fn: Callable[[Connection], Awaitable[None]]) -> None:
        """Call fn for every member at the time of the call.

        The lock is released before fn runs, so fn may unregister the
        connection it is visiting.
        """
        async with self._lock:
            members = list(self._connections.values())
        for conn in members:
            await fn(conn)

    async def members(self) -> list[Connection]:
        async with self._lock:
            return list(self._connections.values())

    async def count(self) -> int:
        async with self._lock:
            return len(self._connections)

    async def close_all(self) -> None:
        for conn in await self.members():
            await self.unregister(conn)
