from __future__ import annotations

"""
File: memcast/sampler.py
Purpose: Periodic host memory sampling.
Key responsibilities:
- Turn a psutil virtual_memory() reading into an immutable Snapshot.
- Feed snapshots into the distribution channel once per interval.
Key entrypoints:
- MemorySampler.sample()
- MemorySampler.run()
"""

import asyncio
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
import logging
from typing import Any, Callable

import psutil

from memcast.errors import SamplingError

logger = logging.getLogger("memcast")

BYTES_PER_MB = 1024 * 1024
TIME_FORMAT = "%d-%m-%Y %H:%M:%S"


@dataclass(frozen=True, slots=True)
class Snapshot:
    """Memory usage at one sampling tick."""
    total_memory_mb: int
    used_memory_mb: int
    free_memory_mb: int
    used_percent: Decimal
    captured_at: datetime

    @property
    def captured_at_text(self) -> str:
        return self.captured_at.strftime(TIME_FORMAT)


class MemorySampler:
    """Read OS memory counters on a fixed period."""
    def __init__(
        self,
        interval_s: float = 1.0,
        reader: Callable[[], Any] = psutil.virtual_memory,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        if interval_s <= 0:
            raise ValueError("interval_s must be positive")
        self.interval_s = interval_s
        self._reader = reader
        self._clock = clock

    def sample(self) -> Snapshot:
        """Query the OS once and build a Snapshot, or raise SamplingError."""
        try:
            vmem = self._reader()
            return Snapshot(
                total_memory_mb=int(vmem.total) // BYTES_PER_MB,
                used_memory_mb=int(vmem.used) // BYTES_PER_MB,
                free_memory_mb=int(vmem.free) // BYTES_PER_MB,
                used_percent=Decimal(f"{float(vmem.percent):.2f}"),
                captured_at=self._clock(),
            )
        except Exception as exc:  # noqa: BLE001
            raise SamplingError(f"memory query failed: {exc}") from exc

    async def run(self, channel: asyncio.Queue[Snapshot]) -> None:
        """Sample forever, one snapshot per interval; a failed tick is skipped."""
        logger.info("sampler started interval_s=%s", self.interval_s)
        while True:
            try:
                snapshot = self.sample()
            except SamplingError as exc:
                logger.warning("sampling skipped: %s", exc)
            else:
                # Blocks while the channel is full.
                await channel.put(snapshot)
            await asyncio.sleep(self.interval_s)
