from __future__ import annotations

from .config import PlaybackConfig
from .core.catalog import FrameCatalog
from .core.cursor import PlaybackCursor
from .core.resource_cache import ResourceCache
from .errors import (
    Aborted,
    CatalogCorrupt,
    DayUnavailable,
    DecodeFailure,
    EpicLoopError,
    RateLimited,
    ResourceError,
    ResourceForbidden,
    ResourceNotFound,
    TransferError,
)
from .runtime.server import EpicLoopServer, run
from .runtime.session import ViewerSession

__all__ = [
    "run",
    "EpicLoopServer",
    "ViewerSession",
    "PlaybackConfig",
    "FrameCatalog",
    "PlaybackCursor",
    "ResourceCache",
    "EpicLoopError",
    "CatalogCorrupt",
    "DayUnavailable",
    "ResourceError",
    "ResourceNotFound",
    "ResourceForbidden",
    "DecodeFailure",
    "TransferError",
    "RateLimited",
    "Aborted",
]
