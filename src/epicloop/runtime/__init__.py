from __future__ import annotations

from .server import EpicLoopServer, create_app, run
from .session import ViewerSession

__all__ = ["create_app", "EpicLoopServer", "run", "ViewerSession"]
