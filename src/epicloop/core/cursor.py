from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

from ..errors import EpicLoopError
from .catalog import FrameCatalog
from .day_map import SECONDS_PER_DAY, day_of, day_start, next_day, prev_day, time_from_date_string
from .frames import FrameRecord, InterpolatedFrame, PivotFrame, interpolate_frames, single_frame
from .geometry import lerp, screen_coord_from_lat_lon

if TYPE_CHECKING:
    from ..config import PlaybackConfig

logger = logging.getLogger(__name__)


def _iso_time(time_sec: float) -> str:
    return datetime.fromtimestamp(float(time_sec), tz=timezone.utc).strftime("%Y-%m-%d %H:%M:%S")


class PlaybackCursor:
    """The single playback position over a `FrameCatalog`.

    The cursor only moves to times it can present: every change goes through
    `commit`, which keeps the previous time and frame when the new time cannot
    be interpolated yet (or, while zoomed, when the pivot would turn away from
    the viewer).
    """

    def __init__(self, catalog: FrameCatalog, config: "PlaybackConfig") -> None:
        self.catalog = catalog
        self.config = config

        self.time_sec: float | None = None
        self.velocity = 0.0
        self.speed = float(config.speed)
        self.playing = bool(config.play)
        self.holding = False
        self.snapping = False
        self.pivot: PivotFrame | None = None
        self.viewport: tuple[int, int] = (int(config.viewport[0]), int(config.viewport[1]))

        self._frame: InterpolatedFrame | None = None
        self._bounds: tuple[FrameRecord | None, FrameRecord | None] = (None, None)
        self._window: tuple[float, float] | None = None

    # ---- presentation ----

    @property
    def current_frame(self) -> InterpolatedFrame | None:
        return self._frame

    @property
    def bound_pair(self) -> tuple[FrameRecord | None, FrameRecord | None]:
        return self._bounds

    @property
    def catalog_ready(self) -> bool:
        return bool(self.catalog.ready)

    @property
    def zoomed(self) -> bool:
        return self.pivot is not None

    @property
    def time_window(self) -> tuple[float, float] | None:
        return self._window

    def mark_used(self, frame: FrameRecord | None) -> None:
        self.catalog.mark_used(frame)

    def state(self) -> dict[str, Any]:
        frame = self._frame
        return {
            "timeSec": self.time_sec,
            "date": _iso_time(self.time_sec) if self.time_sec is not None else None,
            "velocity": float(self.velocity),
            "speed": float(self.speed),
            "playing": bool(self.playing),
            "holding": bool(self.holding),
            "snapping": bool(self.snapping),
            "zoomed": self.zoomed,
            "pivot": self.pivot.to_dict() if self.pivot is not None else None,
            "window": list(self._window) if self._window is not None else None,
            "catalogReady": self.catalog_ready,
            "frame": frame.to_dict() if frame is not None else None,
            "bounds": [f.to_dict() if f is not None else None for f in self._bounds],
        }

    # ---- inputs ----

    def set_playing(self, playing: bool) -> None:
        self.playing = bool(playing)

    def set_holding(self, holding: bool) -> None:
        self.holding = bool(holding)

    def set_speed(self, speed: float) -> None:
        self.speed = float(speed)

    def set_viewport(self, width: int, height: int) -> None:
        if int(width) <= 0 or int(height) <= 0:
            raise ValueError("viewport must be positive")
        self.viewport = (int(width), int(height))

    def set_time_range(self, start_sec: float, range_sec: float | None) -> None:
        if range_sec is None or range_sec <= 0:
            self._window = None
        else:
            self._window = (float(start_sec), float(start_sec) + float(range_sec))

    def set_cursor_time(self, time_sec: float) -> bool:
        return self.commit(float(time_sec))

    def drag(self, delta_x_px: float, delta_time_sec: float) -> bool:
        """Scrub by a horizontal drag; a full viewport width spans one day."""
        if self.time_sec is None:
            return False
        delta = float(delta_x_px) / float(self.viewport[0]) * SECONDS_PER_DAY
        ok = self.commit(self.time_sec + delta)
        if delta_time_sec > 0:
            self.velocity = delta / float(delta_time_sec)
        return ok

    def set_zoom_pivot(self, screen_pos: tuple[float, float] | None) -> bool:
        """Zoom on the globe point under `screen_pos`, or unzoom with None."""
        if screen_pos is None:
            self.pivot = None
            return True
        if self._frame is None:
            return False
        pivot = PivotFrame.capture(self._frame, screen_pos, self.viewport)
        self.pivot = pivot
        if pivot is None:
            return False
        logger.info("Zoom pivot at lat %.4f, lon %.4f", pivot.lat, pivot.lon)
        return True

    # ---- time evolution ----

    def advance(self, elapsed_sec: float) -> bool:
        """Move the cursor by one clock tick of `elapsed_sec` seconds."""
        if self.time_sec is None or self.holding or elapsed_sec <= 0:
            return False

        cfg = self.config
        target = self.speed if self.playing else 0.0
        self.velocity = lerp(self.velocity, target, cfg.decay)
        candidate = self.time_sec + self.velocity * float(elapsed_sec)

        snapping = False
        if not self.playing:
            prev, nxt = self.catalog.bound_frames(candidate)
            if prev is not None and nxt is not None:
                closest = prev if candidate - prev.time_sec < nxt.time_sec - candidate else nxt
                dist = abs(candidate - closest.time_sec)
                if abs(self.velocity) <= cfg.snap_factor * dist / float(elapsed_sec):
                    snapping = dist > cfg.snap_epsilon_sec
                    if snapping:
                        candidate = lerp(candidate, float(closest.time_sec), cfg.snap_factor)
                    else:
                        if self.snapping:
                            logger.debug("Snapped to frame %s", closest.date)
                        candidate = float(closest.time_sec)
        self.snapping = snapping
        return self.commit(candidate)

    def clamp(self, time_sec: float) -> float:
        t = float(time_sec)
        latest = self.catalog.latest_time
        oldest = self.catalog.oldest_time
        if latest is not None and t > latest:
            t = float(latest) - self.config.effective_loop_range_sec
        if self._window is not None and t > self._window[1]:
            t = self._window[0]
        if oldest is not None and t < oldest:
            t = float(oldest)
        return t

    def _skip_forward(self, time_sec: float) -> float:
        cat = self.catalog
        latest = cat.latest_time
        if latest is not None and time_sec >= latest:
            return time_sec
        day = day_of(time_sec)
        if cat.is_day_available(day):
            last = cat.last_frame_of(day)
            if last is None or time_sec < last.time_sec:
                return time_sec
            candidate = next_day(day)
            if cat.is_day_available(candidate):
                return time_sec
        else:
            candidate = day
        while not cat.is_day_available(candidate):
            if cat.last_day is None or candidate >= cat.last_day:
                return time_sec
            candidate = next_day(candidate)
        first = cat.first_frame_of(candidate)
        return float(first.time_sec) if first is not None else float(day_start(candidate))

    def _skip_backward(self, time_sec: float) -> float:
        cat = self.catalog
        oldest = cat.oldest_time
        if oldest is not None and time_sec <= oldest:
            return time_sec
        day = day_of(time_sec)
        if cat.is_day_available(day):
            first = cat.first_frame_of(day)
            if first is None or time_sec >= first.time_sec:
                return time_sec
            candidate = prev_day(day)
            if cat.is_day_available(candidate):
                return time_sec
        else:
            candidate = day
        while not cat.is_day_available(candidate):
            if cat.first_day is None or candidate <= cat.first_day:
                return time_sec
            candidate = prev_day(candidate)
        last = cat.last_frame_of(candidate)
        return float(last.time_sec) if last is not None else float(day_start(candidate) + SECONDS_PER_DAY - 1)

    def _interpolate(self, time_sec: float) -> tuple[InterpolatedFrame | None, bool]:
        """Frame at `time_sec` and whether it may be committed."""
        playing = self.playing and self.speed != 0.0
        pair = self.catalog.request_bound_frames(time_sec, playing=playing, velocity=self.velocity)
        if pair is None:
            prev, nxt = self.catalog.bound_frames(time_sec)
            if prev is None and nxt is None:
                self._bounds = (None, None)
                return None, False
            only = prev if prev is not None else nxt
            assert only is not None
            self.catalog.request_image(only)
            self._bounds = (prev, nxt)
            return single_frame(only, time_sec, as_second=prev is None), not playing

        prev, nxt = pair
        self._bounds = (prev, nxt)
        frame = interpolate_frames(prev, nxt, time_sec)
        if playing and not (prev.is_loaded and nxt.is_loaded):
            return frame, False
        return frame, True

    def commit(self, candidate: float) -> bool:
        """Try to move the cursor to `candidate`; False keeps the prior time and frame."""
        if not self.catalog.ready:
            return False

        prior_time = self.time_sec
        prior_bounds = self._bounds
        t = self.clamp(candidate)
        if prior_time is not None:
            if t > prior_time:
                t = self._skip_forward(t)
            elif t < prior_time:
                t = self._skip_backward(t)

        frame, ok = self._interpolate(t)
        if prior_time is None:
            self.time_sec = t
            self._frame = frame
            return ok

        if ok and frame is not None and self.pivot is not None and not self.pivot.faces_viewer(frame.orientation):
            ok = False

        if not ok or frame is None:
            self._bounds = prior_bounds
            return False
        self.time_sec = t
        self._frame = frame
        return True

    # ---- start-up ----

    def initial_time(self) -> float:
        """Start time from the configured day and time of day (defaults: last day, current UTC time)."""
        day = self.config.day or self.catalog.last_day
        if day is None:
            raise EpicLoopError("Catalog is not initialized")
        clock = self.config.time or datetime.now(timezone.utc).strftime("%H:%M:%S")
        return float(time_from_date_string(f"{day} {clock}"))

    async def start(self, start_time: float | None = None) -> float:
        """Position the cursor for the first time; returns the committed start time."""
        cat = self.catalog
        if not cat.ready:
            raise EpicLoopError("Catalog is not initialized")

        t = float(start_time) if start_time is not None else self.initial_time()
        if cat.oldest_time is not None and t < cat.oldest_time:
            logger.warning("Start time %s is older than the oldest frame, using %s", _iso_time(t), _iso_time(cat.oldest_time))
            t = float(cat.oldest_time)
        while (cat.latest_time is not None and t > cat.latest_time) or not cat.is_day_available(day_of(t)):
            if cat.first_day is not None and day_of(t) <= cat.first_day:
                break
            logger.warning("Start time %s is not in the available range, going back one day", _iso_time(t))
            t -= SECONDS_PER_DAY

        if cat.frame_at(t) is None:
            try:
                await cat.resolve_bound_frames(t)
            except EpicLoopError as exc:
                logger.error("Failed to fetch bound frames around start time %s: %s", _iso_time(t), exc)
            prev, nxt = cat.bound_frames(t)
            if prev is not None and nxt is not None:
                t = float(nxt.time_sec if abs(prev.time_sec - t) > abs(nxt.time_sec - t) else prev.time_sec)
            elif prev is not None or nxt is not None:
                only = prev if prev is not None else nxt
                assert only is not None
                t = float(only.time_sec)
        logger.info("Start time: %s", _iso_time(t))

        self.set_time_range(t, self.config.range_sec)
        self.commit(t)
        if self.config.zoom is not None and self._frame is not None:
            self.playing = False
            lat, lon = self.config.zoom
            width, height = self.viewport
            radius_px = self._frame.radius / 2.0 * min(width, height)
            pos = screen_coord_from_lat_lon(lat, lon, self._frame.orientation, radius_px, width, height)
            if pos is not None:
                self.set_zoom_pivot(pos)
        return t
