from __future__ import annotations

"""
File: memcast/lifecycle.py
Purpose: Accept viewer WebSockets and detect when they go away.
Key responsibilities:
- Upgrade and register new connections.
- Read and discard inbound frames until the peer disconnects, then unregister.
Key entrypoints:
- ConnectionHandler.handle()
"""

import logging

from fastapi import WebSocket

from memcast.errors import ReadError, UpgradeError
from memcast.registry import Connection, ConnectionRegistry

logger = logging.getLogger("memcast")


class ConnectionHandler:
    """Per-request lifecycle for viewer connections."""
    def __init__(self, registry: ConnectionRegistry, send_timeout_s: float | None = None) -> None:
        self.registry = registry
        self.send_timeout_s = send_timeout_s

    async def on_connect(self, websocket: WebSocket) -> Connection:
        """Accept the upgrade and register the connection."""
        try:
            await websocket.accept()
        except Exception as exc:  # noqa: BLE001
            raise UpgradeError(f"websocket upgrade failed: {exc}") from exc
        conn = Connection(websocket, send_timeout_s=self.send_timeout_s)
        await self.registry.register(conn)
        logger.info("client connected connection=%s clients=%s", conn.id, await self.registry.count())
        return conn

    async def serve(self, conn: Connection) -> None:
        """Block on reads until the first ReadError, then unregister."""
        try:
            while True:
                await conn.receive()
        except ReadError as exc:
            logger.info("client disconnected connection=%s: %s", conn.id, exc)
        finally:
            await self.registry.unregister(conn)

    async def handle(self, websocket: WebSocket) -> None:
        try:
            conn = await self.on_connect(websocket)
        except UpgradeError as exc:
            # Rejects this request only; other viewers are unaffected.
            logger.warning("rejected connection: %s", exc)
            return
        await self.serve(conn)
