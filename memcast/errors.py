"""
File: memcast/errors.py
Purpose: Error taxonomy for the memory stats broadcaster.
Key responsibilities:
- Separate recoverable per-tick and per-connection failures from fatal startup ones.
"""


class MemcastError(Exception):
    """Base class for all broadcaster errors."""


class SamplingError(MemcastError):
    """The OS memory query failed; the tick is skipped."""


class UpgradeError(MemcastError):
    """An inbound request could not be promoted to a WebSocket."""


class SendError(MemcastError):
    """A write to one connection failed; that connection is evicted."""


class ReadError(MemcastError):
    """A connection's inbound side failed or the peer disconnected."""


class StartupError(MemcastError):
    """The service could not acquire its listening socket."""
