from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Union

import numpy as np

from .day_map import time_from_date_string
from .geometry import (
    distance_from_position,
    earth_radius_from_distance,
    lat_lon_from_normal,
    lat_lon_north_rotation_matrix,
    mix,
    normal_from_screen_coord,
    pivot_normal,
    unwrap_longitudes,
    wrap_longitude,
)


@dataclass(frozen=True)
class Unloaded:
    pass


@dataclass(frozen=True)
class Loading:
    key: str


@dataclass(frozen=True, eq=False)
class Loaded:
    key: str
    resource: Any


ResourceSlot = Union[Unloaded, Loading, Loaded]
UNLOADED = Unloaded()


def _frozen_matrix(m: np.ndarray) -> np.ndarray:
    out = np.array(m, dtype=np.float64, copy=True).reshape(3, 3)
    out.setflags(write=False)
    return out


@dataclass(eq=False)
class FrameRecord:
    """One catalog frame. Compared by identity: the catalog keeps exactly one per image."""

    day: str
    image_id: str
    date: str
    time_sec: int
    position: tuple[float, float, float]
    centroid_lat: float
    centroid_lon: float
    radius: float
    orientation: np.ndarray
    slot: ResourceSlot = field(default=UNLOADED)

    @classmethod
    def from_payload(cls, day: str, entry: dict[str, Any]) -> "FrameRecord":
        """Build a frame from one entry of a day page, deriving its geometry once.

        Expects the EPIC layout: `image`, `date`, `centroid_coordinates.{lat,lon}`
        and `dscovr_j2000_position.{x,y,z}`.
        """
        try:
            image_id = str(entry["image"])
            date_txt = str(entry["date"])
            centroid = entry["centroid_coordinates"]
            lat = float(centroid["lat"])
            lon = float(centroid["lon"])
            pos_raw = entry["dscovr_j2000_position"]
            position = (float(pos_raw["x"]), float(pos_raw["y"]), float(pos_raw["z"]))
        except (KeyError, TypeError) as ex:
            raise ValueError(f"Malformed frame entry for {day}: missing {ex}") from ex
        if not image_id:
            raise ValueError(f"Malformed frame entry for {day}: empty image id")
        if not (np.isfinite(lat) and np.isfinite(lon)):
            raise ValueError(f"Malformed frame entry for {day}: non-finite centroid")

        return cls(
            day=day,
            image_id=image_id,
            date=date_txt,
            time_sec=time_from_date_string(date_txt),
            position=position,
            centroid_lat=lat,
            centroid_lon=lon,
            radius=earth_radius_from_distance(distance_from_position(position)),
            orientation=_frozen_matrix(lat_lon_north_rotation_matrix(lat, lon)),
        )

    @property
    def resource(self) -> Any | None:
        if isinstance(self.slot, Loaded):
            return self.slot.resource
        return None

    @property
    def is_loaded(self) -> bool:
        return isinstance(self.slot, Loaded)

    @property
    def is_loading(self) -> bool:
        return isinstance(self.slot, Loading)

    @property
    def resource_key(self) -> str | None:
        if isinstance(self.slot, (Loading, Loaded)):
            return self.slot.key
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "day": self.day,
            "image": self.image_id,
            "date": self.date,
            "timeSec": int(self.time_sec),
            "radius": float(self.radius),
            "centroid": {"lat": float(self.centroid_lat), "lon": float(self.centroid_lon)},
            "loaded": self.is_loaded,
            "loading": self.is_loading,
        }


@dataclass(frozen=True)
class DayUnloaded:
    pass


@dataclass(frozen=True)
class DayPending:
    task: asyncio.Task


@dataclass(frozen=True)
class DayResolved:
    frames: tuple[FrameRecord, ...]
    times: tuple[int, ...] = ()

    @classmethod
    def build(cls, frames: list[FrameRecord]) -> "DayResolved":
        ordered: list[FrameRecord] = []
        seen: set[int] = set()
        for f in sorted(frames, key=lambda fr: fr.time_sec):
            if f.time_sec in seen:
                continue
            seen.add(f.time_sec)
            ordered.append(f)
        return cls(frames=tuple(ordered), times=tuple(f.time_sec for f in ordered))


DayState = Union[DayUnloaded, DayPending, DayResolved]
DAY_UNLOADED = DayUnloaded()


@dataclass(frozen=True, eq=False)
class InterpolatedFrame:
    time_sec: float
    mix01: float
    radius: float
    centroid_lat: float
    centroid_lon: float
    orientation: np.ndarray
    frame0: FrameRecord | None
    frame1: FrameRecord | None

    def to_dict(self) -> dict[str, Any]:
        return {
            "timeSec": float(self.time_sec),
            "mix01": float(self.mix01),
            "radius": float(self.radius),
            "centroid": {"lat": float(self.centroid_lat), "lon": float(self.centroid_lon)},
            "orientation": [[float(v) for v in row] for row in self.orientation],
            "frame0": self.frame0.image_id if self.frame0 is not None else None,
            "frame1": self.frame1.image_id if self.frame1 is not None else None,
        }


def mix_factor(frame0: FrameRecord | None, frame1: FrameRecord | None, time_sec: float) -> float:
    if frame0 is None or frame1 is None:
        return 0.0
    total = float(frame1.time_sec - frame0.time_sec)
    if total <= 0.0:
        return 0.0
    return min(1.0, max(0.0, (float(time_sec) - float(frame0.time_sec)) / total))


def single_frame(frame: FrameRecord, time_sec: float, *, as_second: bool) -> InterpolatedFrame:
    return InterpolatedFrame(
        time_sec=float(time_sec),
        mix01=1.0 if as_second else 0.0,
        radius=float(frame.radius),
        centroid_lat=float(frame.centroid_lat),
        centroid_lon=float(frame.centroid_lon),
        orientation=frame.orientation,
        frame0=None if as_second else frame,
        frame1=frame if as_second else None,
    )


def interpolate_frames(frame0: FrameRecord, frame1: FrameRecord, time_sec: float) -> InterpolatedFrame:
    """Blend two bound frames at `time_sec`.

    Radius and ground-track coordinates are blended linearly (longitude
    unwrapped across the antimeridian) and the orientation is rebuilt from the
    blended coordinates.
    """
    a = mix_factor(frame0, frame1, time_sec)
    if a <= 0.0 or a >= 1.0:
        src = frame0 if a <= 0.0 else frame1
        return InterpolatedFrame(
            time_sec=float(time_sec),
            mix01=float(a),
            radius=float(src.radius),
            centroid_lat=float(src.centroid_lat),
            centroid_lon=float(src.centroid_lon),
            orientation=src.orientation,
            frame0=frame0,
            frame1=frame1,
        )

    lon0, lon1 = unwrap_longitudes(frame0.centroid_lon, frame1.centroid_lon)
    lat = mix(frame0.centroid_lat, frame1.centroid_lat, a)
    lon = mix(lon0, lon1, a)
    return InterpolatedFrame(
        time_sec=float(time_sec),
        mix01=float(a),
        radius=mix(frame0.radius, frame1.radius, a),
        centroid_lat=lat,
        centroid_lon=wrap_longitude(lon),
        orientation=_frozen_matrix(lat_lon_north_rotation_matrix(lat, lon)),
        frame0=frame0,
        frame1=frame1,
    )


@dataclass(frozen=True, eq=False)
class PivotFrame:
    """Snapshot of the presented frame taken when a zoom starts."""

    time_sec: float
    radius: float
    orientation: np.ndarray
    screen_pos: tuple[float, float]
    normal: np.ndarray
    lat: float
    lon: float

    @classmethod
    def capture(
        cls,
        frame: InterpolatedFrame,
        screen_pos: tuple[float, float],
        viewport: tuple[int, int],
    ) -> "PivotFrame | None":
        """Copy the geometry of `frame`; None when `screen_pos` misses the globe."""
        width, height = int(viewport[0]), int(viewport[1])
        radius_px = float(frame.radius) / 2.0 * min(width, height)
        normal = normal_from_screen_coord(screen_pos, radius_px, width, height)
        if normal is None:
            return None
        lat, lon = lat_lon_from_normal(normal, frame.orientation)
        normal.setflags(write=False)
        return cls(
            time_sec=float(frame.time_sec),
            radius=float(frame.radius),
            orientation=_frozen_matrix(frame.orientation),
            screen_pos=(float(screen_pos[0]), float(screen_pos[1])),
            normal=normal,
            lat=lat,
            lon=lon,
        )

    def faces_viewer(self, orientation: np.ndarray) -> bool:
        n = pivot_normal(self.normal, self.orientation, orientation)
        return float(n[2]) >= 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "screen": {"x": self.screen_pos[0], "y": self.screen_pos[1]},
            "lat": float(self.lat),
            "lon": float(self.lon),
        }
