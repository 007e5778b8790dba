from __future__ import annotations

from .day_loader import DayCatalogLoader
from .epic_api import SOURCES, BlueturnApi, EpicApi, NasaEpicApi, make_api
from .transport import HttpTransport, parse_retry_after, raise_for_status

__all__ = [
    "DayCatalogLoader",
    "EpicApi",
    "NasaEpicApi",
    "BlueturnApi",
    "SOURCES",
    "make_api",
    "HttpTransport",
    "parse_retry_after",
    "raise_for_status",
]
