from __future__ import annotations

"""
File: memcast/schemas.py
Purpose: Pydantic model for the outbound stats message.
Key responsibilities:
- Define the JSON contract the dashboard reads.
- Render a Snapshot into display strings.
Key entrypoints:
- StatsMessage.from_snapshot()
"""

from pydantic import BaseModel

from memcast.sampler import Snapshot


class StatsMessage(BaseModel):
    """Payload sent to every viewer once per sampling tick."""
    TotalMemory: str
    FreeMemory: str
    UsedMemory: str
    PercentageUsedMemory: str
    Time: str

    @classmethod
    def from_snapshot(cls, snapshot: Snapshot) -> StatsMessage:
        return cls(
            TotalMemory=str(snapshot.total_memory_mb),
            FreeMemory=str(snapshot.free_memory_mb),
            UsedMemory=str(snapshot.used_memory_mb),
            PercentageUsedMemory=f"{snapshot.used_percent:.2f}",
            Time=snapshot.captured_at_text,
        )
