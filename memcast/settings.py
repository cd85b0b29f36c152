"""
File: memcast/settings.py
Purpose: Environment-backed configuration for the memory stats broadcaster.
Key responsibilities:
- Parse listen address, WebSocket path and buffer sizes.
- Parse sampling interval and broadcast channel/timeout settings.
"""

from dataclasses import dataclass
from pathlib import Path
import os


DEFAULT_STATIC_DIR = Path(__file__).parent / "static"


def _float_env(name: str, default: float) -> float:
    """Parse a float env var with a fallback."""
    raw = os.getenv(name, "")
    if raw == "":
        return default
    return float(raw)


@dataclass(frozen=True)
class Settings:
    """Broadcaster configuration parsed from environment."""
    host: str = os.getenv("MEMCAST_HOST", "0.0.0.0")
    port: int = int(os.getenv("MEMCAST_PORT", "3000"))
    ws_path: str = os.getenv("MEMCAST_WS_PATH", "/wsUrl")
    sample_interval_s: float = _float_env("SAMPLE_INTERVAL_S", 1.0)
    channel_capacity: int = int(os.getenv("CHANNEL_CAPACITY", "4"))
    send_timeout_s: float = _float_env("SEND_TIMEOUT_S", 5.0)
    ws_max_size: int = int(os.getenv("WS_MAX_SIZE", str(1024 * 1024)))
    ws_max_queue: int = int(os.getenv("WS_MAX_QUEUE", "32"))
    static_dir: str = os.getenv("MEMCAST_STATIC_DIR", str(DEFAULT_STATIC_DIR))
    log_level: str = os.getenv("LOG_LEVEL", "INFO")


settings = Settings()
