from __future__ import annotations

from .catalog import BoundPair, FrameCatalog
from .cursor import PlaybackCursor
from .day_map import OrderedDayMap, bound_indices, day_of, next_day, prev_day, time_from_date_string, today
from .frames import (
    DAY_UNLOADED,
    UNLOADED,
    DayPending,
    DayResolved,
    DayUnloaded,
    FrameRecord,
    InterpolatedFrame,
    Loaded,
    Loading,
    PivotFrame,
    Unloaded,
    interpolate_frames,
    mix_factor,
    single_frame,
)
from .resource_cache import CacheEntry, CacheStats, ResourceCache

__all__ = [
    "OrderedDayMap",
    "bound_indices",
    "day_of",
    "prev_day",
    "next_day",
    "today",
    "time_from_date_string",
    "FrameRecord",
    "Unloaded",
    "Loading",
    "Loaded",
    "UNLOADED",
    "DayUnloaded",
    "DayPending",
    "DayResolved",
    "DAY_UNLOADED",
    "InterpolatedFrame",
    "PivotFrame",
    "interpolate_frames",
    "single_frame",
    "mix_factor",
    "CacheEntry",
    "CacheStats",
    "ResourceCache",
    "BoundPair",
    "FrameCatalog",
    "PlaybackCursor",
]
