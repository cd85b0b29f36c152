from __future__ import annotations

"""
File: memcast/main.py
Purpose: ASGI entrypoint for the live memory stats broadcaster.
Key responsibilities:
- Wire sampler -> channel -> broadcaster -> connection registry.
- Expose the viewer WebSocket endpoint, /health and the static dashboard.
- Bind the listening socket and run uvicorn.
Key entrypoints:
- create_app()
- main()
Config/env vars:
- MEMCAST_HOST, MEMCAST_PORT, MEMCAST_WS_PATH, MEMCAST_STATIC_DIR
- SAMPLE_INTERVAL_S, CHANNEL_CAPACITY, SEND_TIMEOUT_S
- WS_MAX_SIZE, WS_MAX_QUEUE, LOG_LEVEL
"""

import asyncio
import json
import logging
from pathlib import Path
import socket
import sys
from typing import Any

from fastapi import FastAPI, WebSocket
from fastapi.responses import HTMLResponse
from fastapi.staticfiles import StaticFiles
import uvicorn

from memcast.broadcaster import Broadcaster
from memcast.channel import create_channel
from memcast.errors import StartupError
from memcast.lifecycle import ConnectionHandler
from memcast.registry import ConnectionRegistry
from memcast.sampler import MemorySampler
from memcast.settings import Settings, settings as default_settings

logging.basicConfig(level=default_settings.log_level, format="%(asctime)s %(levelname)s memcast %(message)s")
logger = logging.getLogger("memcast")


def create_app(settings: Settings | None = None, sampler: MemorySampler | None = None) -> FastAPI:
    """Build the application with its own registry, channel and background tasks."""
    settings = settings or default_settings
    app = FastAPI(title="memcast", version="1.0.0")

    registry = ConnectionRegistry()
    handler = ConnectionHandler(registry, send_timeout_s=settings.send_timeout_s)
    app.state.settings = settings
    app.state.registry = registry
    app.state.sampler = sampler or MemorySampler(interval_s=settings.sample_interval_s)
    app.state.tasks = []
    dashboard = render_dashboard(settings)

    @app.on_event("startup")
    async def startup_event() -> None:
        """Start the sampler and broadcaster tasks."""
        channel = create_channel(settings.channel_capacity)
        app.state.broadcaster = Broadcaster(channel, registry)
        app.state.tasks = [
            asyncio.create_task(app.state.sampler.run(channel), name="memcast-sampler"),
            asyncio.create_task(app.state.broadcaster.run(), name="memcast-broadcaster"),
        ]
        logger.info("memcast started ws_path=%s interval_s=%s", settings.ws_path, app.state.sampler.interval_s)

    @app.on_event("shutdown")
    async def shutdown_event() -> None:
        """Stop background tasks and close every viewer."""
        for task in app.state.tasks:
            task.cancel()
        await asyncio.gather(*app.state.tasks, return_exceptions=True)
        app.state.tasks = []
        await registry.close_all()

    @app.get("/", response_class=HTMLResponse)
    async def index() -> HTMLResponse:
        """Serve the dashboard, pointed at the configured stream path."""
        return HTMLResponse(dashboard)

    @app.get("/health")
    async def health() -> dict[str, Any]:
        """Liveness endpoint with the current viewer count."""
        return {"status": "ok", "clients": await registry.count()}

    @app.websocket(settings.ws_path)
    async def stats_ws(websocket: WebSocket) -> None:
        """Viewer stream; inbound frames only signal liveness."""
        await handler.handle(websocket)

    # Mounted last so the routes above take precedence.
    app.mount("/", StaticFiles(directory=settings.static_dir), name="static")
    return app


def render_dashboard(settings: Settings) -> str:
    """Fill the WebSocket path into the dashboard template."""
    template = (Path(settings.static_dir) / "dashboard.html").read_text(encoding="utf-8")
    return template.replace("__WS_PATH__", json.dumps(settings.ws_path))


def bind_socket(host: str, port: int) -> socket.socket:
    """Bind the listening socket up front so a bind failure is a StartupError."""
    family = socket.AF_INET6 if ":" in host else socket.AF_INET
    sock = socket.socket(family, socket.SOCK_STREAM)
    sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
    try:
        sock.bind((host, port))
    except OSError as exc:
        sock.close()
        raise StartupError(f"cannot bind {host}:{port}: {exc}") from exc
    sock.set_inheritable(True)
    return sock


def main() -> None:
    settings = default_settings
    try:
        sock = bind_socket(settings.host, settings.port)
    except StartupError as exc:
        logger.error("startup failed: %s", exc)
        sys.exit(1)

    config = uvicorn.Config(
        create_app(settings),
        ws_max_size=settings.ws_max_size,
        ws_max_queue=settings.ws_max_queue,
        log_level=settings.log_level.lower(),
    )
    server = uvicorn.Server(config)
    logger.info("listening on %s:%s", settings.host, settings.port)
    server.run(sockets=[sock])


if __name__ == "__main__":
    main()
