from __future__ import annotations

import os
from dataclasses import asdict, dataclass, fields, replace
from pathlib import Path
from typing import Any, Mapping

from .core.day_map import validate_day
from .sources.epic_api import SOURCES

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


def _parse_bool(value: str) -> bool:
    v = str(value).strip().lower()
    if v in _TRUE:
        return True
    if v in _FALSE:
        return False
    raise ValueError(f"Invalid boolean value {value!r}")


def _parse_viewport(value: str) -> tuple[int, int]:
    parts = str(value).lower().replace("x", ",").split(",")
    if len(parts) != 2:
        raise ValueError(f"Invalid viewport {value!r}, expected WIDTHxHEIGHT")
    return int(parts[0]), int(parts[1])


def _parse_lat_lon(value: str) -> tuple[float, float]:
    parts = str(value).split(",")
    if len(parts) != 2:
        raise ValueError(f"Invalid zoom {value!r}, expected LAT,LON")
    return float(parts[0]), float(parts[1])


def default_cache_path() -> Path:
    return Path.home() / ".cache" / "epicloop" / "cache.sqlite3"


@dataclass(frozen=True)
class PlaybackConfig:
    """Every tunable of a playback session.

    The snap and decay factors, prefetch sizes and retry-after default are
    empirical; they are kept here as named values so they can be overridden.
    """

    source: str = "nasa"
    speed: float = 3600.0
    play: bool = True
    day: str | None = None
    time: str | None = None
    range_sec: float | None = None
    loop_range_sec: float = 24.0 * 3600.0
    zoom: tuple[float, float] | None = None
    snap_factor: float = 0.1
    snap_epsilon_sec: float = 1.0
    decay: float = 0.1
    prefetch_horizon: int = 10
    prefetch_frames: int = 10
    memory_budget_bytes: int = 100 * 2048 * 2048 * 4
    retry_after_default_sec: float = 10.0
    cache_path: str | None = None
    use_disk_cache: bool = True
    viewport: tuple[int, int] = (1024, 1024)
    tick_hz: float = 30.0

    def __post_init__(self) -> None:
        if self.source not in SOURCES:
            raise ValueError(f"Unknown source {self.source!r}. Supported: {list(SOURCES)}")
        if self.day is not None:
            validate_day(self.day)
        if not (self.loop_range_sec > 0):
            raise ValueError("loop_range_sec must be > 0")
        if self.range_sec is not None and not (self.range_sec > 0):
            raise ValueError("range_sec must be > 0 when set")
        if not (0.0 < self.snap_factor <= 1.0):
            raise ValueError("snap_factor must be in (0, 1]")
        if not (0.0 < self.decay <= 1.0):
            raise ValueError("decay must be in (0, 1]")
        if self.snap_epsilon_sec < 0:
            raise ValueError("snap_epsilon_sec must be >= 0")
        if self.prefetch_horizon < 0 or self.prefetch_frames < 0:
            raise ValueError("prefetch sizes must be >= 0")
        if self.memory_budget_bytes <= 0:
            raise ValueError("memory_budget_bytes must be > 0")
        if self.retry_after_default_sec <= 0:
            raise ValueError("retry_after_default_sec must be > 0")
        if self.viewport[0] <= 0 or self.viewport[1] <= 0:
            raise ValueError("viewport must be positive")
        if self.tick_hz <= 0:
            raise ValueError("tick_hz must be > 0")

    @property
    def effective_loop_range_sec(self) -> float:
        """Loop-back distance from the latest frame; the playback window wins when set."""
        return float(self.range_sec) if self.range_sec else float(self.loop_range_sec)

    def resolved_cache_path(self) -> Path | None:
        if not self.use_disk_cache:
            return None
        return Path(self.cache_path) if self.cache_path else default_cache_path()

    def with_overrides(self, **overrides: Any) -> "PlaybackConfig":
        """Copy with some fields replaced; None values are ignored."""
        known = {f.name for f in fields(self)}
        unknown = sorted(set(overrides) - known)
        if unknown:
            raise ValueError(f"Unknown config fields: {unknown}")
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "PlaybackConfig":
        env = os.environ if environ is None else environ
        parsers = {
            "source": str,
            "speed": float,
            "play": _parse_bool,
            "day": str,
            "time": str,
            "range_sec": float,
            "loop_range_sec": float,
            "zoom": _parse_lat_lon,
            "snap_factor": float,
            "snap_epsilon_sec": float,
            "decay": float,
            "prefetch_horizon": int,
            "prefetch_frames": int,
            "memory_budget_bytes": int,
            "retry_after_default_sec": float,
            "cache_path": str,
            "use_disk_cache": _parse_bool,
            "viewport": _parse_viewport,
            "tick_hz": float,
        }
        values: dict[str, Any] = {}
        for name, parse in parsers.items():
            raw = env.get(f"EPICLOOP_{name.upper()}")
            if raw is None or raw == "":
                continue
            try:
                values[name] = parse(raw)
            except ValueError as exc:
                raise ValueError(f"Invalid EPICLOOP_{name.upper()}: {exc}") from exc
        return cls().with_overrides(**values)

    def to_dict(self) -> dict[str, Any]:
        d = asdict(self)
        d["viewport"] = list(self.viewport)
        d["zoom"] = list(self.zoom) if self.zoom is not None else None
        return d
