"""
File: memcast/channel.py
Purpose: Ordered hand-off of snapshots from the sampler to the broadcaster.
"""

import asyncio

from memcast.sampler import Snapshot


def create_channel(capacity: int = 4) -> "asyncio.Queue[Snapshot]":
    """Return a bounded FIFO queue; a full queue makes the producer wait."""
    if capacity < 1:
        raise ValueError("channel capacity must be at least 1")
    return asyncio.Queue(maxsize=capacity)
