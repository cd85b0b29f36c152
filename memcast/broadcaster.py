from __future__ import annotations

"""
File: memcast/broadcaster.py
Purpose: Fan each sampled snapshot out to every registered viewer.
Key responsibilities:
- Consume snapshots from the channel in order.
- Send one serialized payload to all connections, evicting any that fail.
Key entrypoints:
- Broadcaster.run()
- Broadcaster.broadcast()
"""

import asyncio
import logging

from memcast.errors import SendError
from memcast.registry import Connection, ConnectionRegistry
from memcast.sampler import Snapshot
from memcast.schemas import StatsMessage

logger = logging.getLogger("memcast")


class Broadcaster:
    """Single consumer of the snapshot channel."""
    def __init__(self, channel: asyncio.Queue[Snapshot], registry: ConnectionRegistry) -> None:
        self.channel = channel
        self.registry = registry

    async def run(self) -> None:
        """Broadcast snapshots forever, one round per snapshot."""
        logger.info("broadcaster started")
        while True:
            snapshot = await self.channel.get()
            try:
                await self.broadcast(snapshot)
            except Exception as exc:  # noqa: BLE001
                logger.exception("broadcast round error: %s", exc)
            finally:
                self.channel.task_done()

    async def broadcast(self, snapshot: Snapshot) -> int:
        """Deliver one snapshot to every live connection; return the delivery count."""
        data = StatsMessage.from_snapshot(snapshot).model_dump_json()
        delivered = 0

        async def deliver(conn: Connection) -> None:
            nonlocal delivered
            try:
                await conn.send_text(data)
            except SendError as exc:
                logger.warning("evicting connection=%s: %s", conn.id, exc)
                await self.registry.unregister(conn)
                return
            delivered += 1

        await self.registry.for_each(deliver)
        return delivered
