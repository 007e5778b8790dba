from __future__ import annotations

from .cursor import (
    parse_bool,
    parse_finite,
    parse_slot,
    parse_time_body,
    parse_zoom_body,
)

__all__ = [
    "parse_bool",
    "parse_finite",
    "parse_slot",
    "parse_time_body",
    "parse_zoom_body",
]
