from __future__ import annotations

import contextlib
import logging
import socket
import threading
import time
from dataclasses import dataclass

import uvicorn
from fastapi import FastAPI

from ..api import create_api_app
from ..config import PlaybackConfig
from .session import ViewerSession

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EpicLoopServer:
    host: str
    port: int
    url: str
    session: ViewerSession
    server: uvicorn.Server
    thread: threading.Thread

    def stop(self, *, timeout_s: float = 5.0) -> None:
        self.server.should_exit = True
        self.thread.join(timeout=timeout_s)


def create_app(config: PlaybackConfig | None = None, *, session: ViewerSession | None = None) -> FastAPI:
    """Create the app for one playback session (built from `config` unless given)."""
    return create_api_app(session or ViewerSession(config or PlaybackConfig.from_env()))


def _find_free_port(host: str) -> int:
    with contextlib.closing(socket.socket(socket.AF_INET, socket.SOCK_STREAM)) as s:
        s.bind((host, 0))
        return int(s.getsockname()[1])


def run(
    *,
    host: str = "127.0.0.1",
    port: int = 0,
    config: PlaybackConfig | None = None,
    log_level: str = "info",
    access_log: bool = False,
) -> EpicLoopServer:
    """Start the playback server in a background thread.

    `port=0` picks a free port. The per-request access log is off by default
    since presentation clients poll `/api/state` continuously.
    """
    if port == 0:
        port = _find_free_port(host)

    session = ViewerSession(config or PlaybackConfig.from_env())
    app = create_app(session=session)

    uv_config = uvicorn.Config(app, host=host, port=port, log_level=log_level, access_log=access_log)
    server = uvicorn.Server(uv_config)

    thread = threading.Thread(target=server.run, daemon=True)
    thread.start()

    # Give it a moment so a subsequent client request doesn't race with startup.
    time.sleep(0.05)

    url = f"http://{host}:{port}/"
    logger.info("epicloop serving %s from %s", url, session.api.name)
    return EpicLoopServer(host=host, port=port, url=url, session=session, server=server, thread=thread)
