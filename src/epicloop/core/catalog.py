from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any, Iterable

from ..errors import Aborted, CatalogCorrupt, DayUnavailable, EpicLoopError, RateLimited, ResourceError
from .day_map import OrderedDayMap, bound_indices, day_of, next_day, prev_day
from .frames import (
    DAY_UNLOADED,
    UNLOADED,
    DayPending,
    DayResolved,
    DayState,
    DayUnloaded,
    FrameRecord,
    Loaded,
    Loading,
    Unloaded,
    mix_factor,
)
from .resource_cache import ResourceCache

if TYPE_CHECKING:
    from ..sources.day_loader import DayCatalogLoader

logger = logging.getLogger(__name__)

BoundPair = tuple[FrameRecord, FrameRecord]


class FrameCatalog:
    """Sparse, lazily populated index of frames keyed by calendar day.

    Every available day is registered up front as unloaded; day pages are
    fetched on demand when a lookup needs them. Image resources for frames go
    through the shared `ResourceCache`, and the catalog keeps each frame's
    resource slot in sync with it (including eviction).
    """

    def __init__(
        self,
        loader: DayCatalogLoader,
        cache: ResourceCache,
        *,
        prefetch_horizon: int = 10,
        prefetch_frames: int = 10,
    ) -> None:
        self.loader = loader
        self.cache = cache
        self.prefetch_horizon = int(prefetch_horizon)
        self.prefetch_frames = int(prefetch_frames)

        self._days: OrderedDayMap[DayState] = OrderedDayMap()
        self._first_day: str | None = None
        self._last_day: str | None = None
        self.oldest_time: int | None = None
        self.latest_time: int | None = None
        self.ready = False

        self._by_key: dict[str, FrameRecord] = {}
        self._last_pair: BoundPair | None = None
        self._background: set[asyncio.Task] = set()
        self._resolve_task: asyncio.Task | None = None
        self._resolve_day: str | None = None
        self._pair_task: asyncio.Task | None = None
        self._pair_loading: BoundPair | None = None
        self._prefetch_task: asyncio.Task | None = None

        cache.on_evict = self._on_evict

    # ---- initialization and day state ----

    async def init(self) -> None:
        """Load the list of available days, then the last and first day pages."""
        days = await self.loader.load_available_days()
        if not days:
            await self.loader.clear_cache()
            raise CatalogCorrupt("No available days found in the catalog")

        self._days.clear()
        for day in days:
            self._days.set(day, DAY_UNLOADED)
        self._first_day = days[0]
        self._last_day = days[-1]
        logger.info("Catalog lists %d days, last available day is %s", len(days), self._last_day)

        last = await self.load_day(self._last_day)
        if last is None or not last.frames:
            raise CatalogCorrupt(f"Failed to load last day {self._last_day}")
        self.latest_time = last.frames[-1].time_sec
        self.ready = True
        logger.info("Latest available frame: %s", last.frames[-1].date)

        try:
            first = await self.load_day(self._first_day)
        except EpicLoopError as exc:
            logger.warning("Failed to load first day %s: %s", self._first_day, exc)
            return
        if first is not None and first.frames:
            self.oldest_time = first.frames[0].time_sec
            logger.info("Oldest available frame: %s", first.frames[0].date)

    @property
    def first_day(self) -> str | None:
        return self._first_day

    @property
    def last_day(self) -> str | None:
        return self._last_day

    def is_day_available(self, day: str) -> bool:
        return day in self._days

    def day_state(self, day: str) -> DayState | None:
        return self._days.get(day)

    def available_days(self) -> list[str]:
        return self._days.keys()

    async def load_day(self, day: str) -> DayResolved | None:
        """Resolve one day page, sharing an in-flight load. None when the load was aborted."""
        state = self._days.get(day)
        if state is None:
            raise DayUnavailable(f"Day {day} is not available in the catalog")
        if isinstance(state, DayResolved):
            return state

        if isinstance(state, DayPending):
            task = state.task
        else:
            task = asyncio.get_running_loop().create_task(self._fetch_day(day), name=f"day:{day}")
            self._days.set(day, DayPending(task))

        try:
            return await asyncio.shield(task)
        except asyncio.CancelledError:
            current = asyncio.current_task()
            if task.cancelled() and not (current is not None and current.cancelling()):
                return None
            raise

    async def _fetch_day(self, day: str) -> DayResolved:
        logger.info("Loading frames for day %s", day)
        try:
            page = await self.loader.load_day(day)
            if not page:
                await self.loader.clear_cache(day)
                raise CatalogCorrupt(f"No frames found for day {day}")
            try:
                frames = [FrameRecord.from_payload(day, entry) for entry in page]
            except ValueError as exc:
                await self.loader.clear_cache(day)
                raise CatalogCorrupt(str(exc)) from exc
        except BaseException:
            self._reset_day_if_pending(day, asyncio.current_task())
            raise

        resolved = DayResolved.build(frames)
        self._days.set(day, resolved)
        logger.info("Loaded %d frames for day %s", len(resolved.frames), day)
        return resolved

    def _reset_day_if_pending(self, day: str, task: asyncio.Task | None) -> None:
        state = self._days.get(day)
        if isinstance(state, DayPending) and state.task is task:
            self._days.set(day, DAY_UNLOADED)

    def cancel_day_loads_except(self, days: Iterable[str], reason: str = "") -> list[str]:
        keep = set(days)
        cancelled: list[str] = []
        for day, state in self._days.items():
            if day in keep or not isinstance(state, DayPending):
                continue
            self._days.set(day, DAY_UNLOADED)
            state.task.cancel(reason or None)
            cancelled.append(day)
            logger.info("Aborting load of day %s: %s", day, reason)
        return cancelled

    # ---- frame lookups ----

    def _bucket(self, day: str) -> DayResolved | None:
        state = self._days.get(day)
        if isinstance(state, DayResolved) and state.frames:
            return state
        return None

    def prev_frame(self, time_sec: float, *, strict: bool = False) -> FrameRecord | None:
        """Nearest frame at or before `time_sec` (strictly before when `strict`)."""
        day = day_of(time_sec)
        bucket = self._bucket(day)
        if bucket is None:
            return None
        lo, _ = bound_indices(bucket.times, time_sec, strict)
        if lo >= 0:
            return bucket.frames[lo]
        before = self._bucket(prev_day(day))
        return before.frames[-1] if before is not None else None

    def next_frame(self, time_sec: float) -> FrameRecord | None:
        """Nearest frame strictly after `time_sec`."""
        day = day_of(time_sec)
        bucket = self._bucket(day)
        if bucket is None:
            return None
        _, hi = bound_indices(bucket.times, time_sec, True)
        if hi < len(bucket.frames):
            return bucket.frames[hi]
        after = self._bucket(next_day(day))
        return after.frames[0] if after is not None else None

    def bound_frames(self, time_sec: float, *, strict: bool = False) -> tuple[FrameRecord | None, FrameRecord | None]:
        return self.prev_frame(time_sec, strict=strict), self.next_frame(time_sec)

    def first_frame_of(self, day: str) -> FrameRecord | None:
        bucket = self._bucket(day)
        return bucket.frames[0] if bucket is not None else None

    def last_frame_of(self, day: str) -> FrameRecord | None:
        bucket = self._bucket(day)
        return bucket.frames[-1] if bucket is not None else None

    def frame_at(self, time_sec: float) -> FrameRecord | None:
        bucket = self._bucket(day_of(time_sec))
        if bucket is None:
            return None
        lo, hi = bound_indices(bucket.times, time_sec, False)
        if lo == hi and 0 <= lo < len(bucket.frames):
            return bucket.frames[lo]
        return None

    def is_first_of_day(self, time_sec: float) -> bool:
        bucket = self._bucket(day_of(time_sec))
        return bucket is not None and time_sec <= bucket.times[0]

    def is_last_of_day(self, time_sec: float) -> bool:
        bucket = self._bucket(day_of(time_sec))
        return bucket is not None and time_sec >= bucket.times[-1]

    @staticmethod
    def mix_factor(frame0: FrameRecord | None, frame1: FrameRecord | None, time_sec: float) -> float:
        return mix_factor(frame0, frame1, time_sec)

    # ---- bound resolution ----

    async def _load_missing_day(self, time_sec: float, *, cancel_others: bool) -> bool:
        prev, nxt = self.bound_frames(time_sec)
        day = day_of(time_sec)
        if cancel_others:
            neighborhood = (day, prev_day(day), next_day(day))
            self.cancel_day_loads_except(
                neighborhood,
                f"Aborted loading days except current:{neighborhood[0]}, "
                f"previous:{neighborhood[1]}, next:{neighborhood[2]}",
            )

        if prev is None and nxt is None:
            target = day
        elif prev is None:
            target = prev_day(day)
        else:
            target = next_day(day)

        state = self._days.get(target)
        if state is None or isinstance(state, DayResolved):
            return False
        return await self.load_day(target) is not None

    async def ensure_bound_frames(self, time_sec: float) -> BoundPair | None:
        """Load the one missing day needed around `time_sec` and return the bounds.

        None means the bounds are still incomplete, typically because the load
        was superseded.
        """
        prev, nxt = self.bound_frames(time_sec)
        if prev is not None and nxt is not None:
            return prev, nxt
        await self._load_missing_day(time_sec, cancel_others=True)
        prev, nxt = self.bound_frames(time_sec)
        if prev is not None and nxt is not None:
            return prev, nxt
        return None

    async def resolve_bound_frames(self, time_sec: float, *, cancel_others: bool = True) -> BoundPair | None:
        """Repeat the missing-day load while it makes progress (at most three days)."""
        for _ in range(3):
            prev, nxt = self.bound_frames(time_sec)
            if prev is not None and nxt is not None:
                return prev, nxt
            if not await self._load_missing_day(time_sec, cancel_others=cancel_others):
                return None
        prev, nxt = self.bound_frames(time_sec)
        if prev is not None and nxt is not None:
            return prev, nxt
        return None

    # ---- image resources ----

    def image_key(self, frame: FrameRecord) -> str:
        return frame.resource_key or self.loader.image_url(frame.date, frame.image_id)

    def frame_for_key(self, key: str) -> FrameRecord | None:
        return self._by_key.get(key)

    async def load_image(self, frame: FrameRecord) -> bool:
        """Make the frame's image resident. False when aborted or failed."""
        key = self.image_key(frame)
        if isinstance(frame.slot, Loaded):
            self.cache.mark_used(key)
            return True
        if self.cache.is_failed(key):
            self._reset_slot(frame, key)
            return False

        frame.slot = Loading(key)
        self._by_key[key] = frame
        try:
            resource = await self.cache.request(key)
        except Aborted as exc:
            self._reset_slot(frame, key)
            logger.debug("Image load aborted for %s: %s", key, exc.reason)
            return False
        except RateLimited as exc:
            self._reset_slot(frame, key)
            logger.warning("Image load refused for %s: %s", key, exc)
            return False
        except ResourceError as exc:
            self._reset_slot(frame, key)
            logger.error("Error loading image %s: %s", key, exc)
            self.cache.cancel_all_except((), "Aborted all loading after error")
            return False

        frame.slot = Loaded(key, resource)
        return True

    def _reset_slot(self, frame: FrameRecord, key: str) -> None:
        if isinstance(frame.slot, Loading) and frame.slot.key == key:
            frame.slot = UNLOADED
            if self._by_key.get(key) is frame:
                del self._by_key[key]

    def _loadable(self, frame: FrameRecord) -> bool:
        return isinstance(frame.slot, Unloaded) and not self.cache.is_failed(self.image_key(frame))

    def _on_evict(self, key: str, resource: Any) -> None:
        frame = self._by_key.pop(key, None)
        if frame is not None and isinstance(frame.slot, Loaded) and frame.slot.key == key:
            frame.slot = UNLOADED

    def request_image(self, frame: FrameRecord) -> None:
        """Start loading one frame's image in the background if nothing is loading it."""
        if self._loadable(frame):
            key = self.image_key(frame)
            frame.slot = Loading(key)
            self._by_key[key] = frame
            self._track(asyncio.get_running_loop().create_task(self.load_image(frame), name=f"image:{frame.image_id}"))

    def mark_used(self, frame: FrameRecord | None) -> None:
        if frame is not None and isinstance(frame.slot, Loaded):
            self.cache.mark_used(frame.slot.key)

    # ---- render path ----

    def request_bound_frames(
        self,
        time_sec: float,
        *,
        playing: bool = False,
        velocity: float = 0.0,
    ) -> BoundPair | None:
        """Bound frames for rendering `time_sec`, starting any loads they need.

        Never waits. When a bound is missing a background resolve-then-load is
        scheduled and None is returned.
        """
        if not self.ready:
            return None

        prev, nxt = self.bound_frames(time_sec)
        if prev is None or nxt is None:
            self._schedule_resolve(time_sec, playing, velocity)
            return None

        pair = (prev, nxt)
        self._focus_pair(pair, time_sec, playing, velocity)
        if prev.is_loaded and nxt.is_loaded:
            self._schedule_prefetch(time_sec, playing, velocity)
        else:
            self._schedule_pair_load(pair, time_sec, playing, velocity)
        return pair

    def _focus_pair(self, pair: BoundPair, time_sec: float, playing: bool, velocity: float) -> None:
        last = self._last_pair
        if last is not None and last[0] is pair[0] and last[1] is pair[1]:
            return
        self._last_pair = pair
        keep = self._neighborhood_keys(pair, time_sec, playing, velocity)
        self.cache.cancel_all_except(keep, f"Aborted loading images except bound frames around {time_sec:.0f}")

    def _neighborhood_keys(self, pair: BoundPair, time_sec: float, playing: bool, velocity: float) -> set[str]:
        keys = {self.image_key(pair[0]), self.image_key(pair[1])}
        frame: FrameRecord | None = pair[1]
        for _ in range(self.prefetch_frames):
            frame = self.next_frame(frame.time_sec) if frame is not None else None
            if frame is None:
                break
            keys.add(self.image_key(frame))
        frame = pair[0]
        for _ in range(self.prefetch_frames):
            frame = self.prev_frame(frame.time_sec, strict=True) if frame is not None else None
            if frame is None:
                break
            keys.add(self.image_key(frame))
        if playing and velocity:
            for i in range(1, self.prefetch_horizon + 1):
                t = time_sec + i * velocity
                if self.latest_time is not None and t > self.latest_time:
                    break
                for f in self.bound_frames(t):
                    if f is not None:
                        keys.add(self.image_key(f))
        return keys

    def _track(self, task: asyncio.Task) -> asyncio.Task:
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    def _schedule_resolve(self, time_sec: float, playing: bool, velocity: float) -> None:
        day = day_of(time_sec)
        if self._resolve_task is not None and not self._resolve_task.done():
            if self._resolve_day == day:
                return
            self._resolve_task.cancel()
        self._resolve_day = day
        self._resolve_task = self._track(
            asyncio.get_running_loop().create_task(
                self._resolve_then_load(time_sec, playing, velocity), name=f"resolve:{day}"
            )
        )

    async def _resolve_then_load(self, time_sec: float, playing: bool, velocity: float) -> None:
        try:
            pair = await self.resolve_bound_frames(time_sec)
        except EpicLoopError as exc:
            logger.error("Error fetching bound frames around %.0f: %s", time_sec, exc)
            return
        if pair is None:
            return
        self._focus_pair(pair, time_sec, playing, velocity)
        await self._load_pair(pair, time_sec, playing, velocity)

    def _schedule_pair_load(self, pair: BoundPair, time_sec: float, playing: bool, velocity: float) -> None:
        if not any(self._loadable(f) for f in pair):
            return
        if self._pair_task is not None and not self._pair_task.done() and self._pair_loading == pair:
            return
        self._pair_loading = pair
        self._pair_task = self._track(
            asyncio.get_running_loop().create_task(self._load_pair(pair, time_sec, playing, velocity), name="bound-images")
        )

    async def _load_pair(self, pair: BoundPair, time_sec: float, playing: bool, velocity: float) -> None:
        results = await asyncio.gather(*(self.load_image(f) for f in pair))
        if all(results):
            self._schedule_prefetch(time_sec, playing, velocity)

    def _schedule_prefetch(self, time_sec: float, playing: bool, velocity: float) -> None:
        if self._prefetch_task is not None and not self._prefetch_task.done():
            return
        self._prefetch_task = self._track(
            asyncio.get_running_loop().create_task(self.prefetch(time_sec, playing, velocity), name="prefetch")
        )

    # ---- predictive prefetch ----

    async def _load_images(self, frames: Iterable[FrameRecord]) -> int:
        todo = [f for f in frames if self._loadable(f)]
        if not todo:
            return 0
        results = await asyncio.gather(*(self.load_image(f) for f in todo))
        return sum(1 for ok in results if ok)

    async def _step(self, frame: FrameRecord, *, forward: bool) -> FrameRecord | None:
        def neighbor() -> FrameRecord | None:
            if forward:
                return self.next_frame(frame.time_sec)
            return self.prev_frame(frame.time_sec, strict=True)

        found = neighbor()
        if found is not None:
            return found
        day = next_day(frame.day) if forward else prev_day(frame.day)
        if isinstance(self._days.get(day), (DayUnloaded, DayPending)):
            await self.load_day(day)
            found = neighbor()
        return found

    async def prefetch(self, time_sec: float, playing: bool = False, velocity: float = 0.0) -> None:
        """Best-effort preload of frames the cursor is likely to need next."""
        loaded_play = 0
        loaded_forward = 0
        loaded_backward = 0
        try:
            if playing and velocity:
                for i in range(1, self.prefetch_horizon + 1):
                    t = time_sec + i * velocity
                    if self.latest_time is not None and t > self.latest_time:
                        break
                    pair = await self.resolve_bound_frames(t, cancel_others=False)
                    if pair is None:
                        break
                    loaded_play += await self._load_images(pair)

            pair = await self.resolve_bound_frames(time_sec, cancel_others=False)
            if pair is not None:
                before: FrameRecord | None = pair[0]
                after: FrameRecord | None = pair[1]
                ahead: list[FrameRecord] = []
                behind: list[FrameRecord] = []
                for _ in range(self.prefetch_frames):
                    if after is not None:
                        after = await self._step(after, forward=True)
                        if after is not None:
                            ahead.append(after)
                    if before is not None:
                        before = await self._step(before, forward=False)
                        if before is not None:
                            behind.append(before)
                loaded_forward = await self._load_images(ahead)
                loaded_backward = await self._load_images(behind)
        except EpicLoopError as exc:
            logger.warning("Failed preloading frames around %.0f: %s", time_sec, exc)

        if loaded_play or loaded_forward or loaded_backward:
            logger.info(
                "Preloaded %d frames for play, %d forward and %d backward around %.0f",
                loaded_play,
                loaded_forward,
                loaded_backward,
                time_sec,
            )

    # ---- lifecycle ----

    def stats(self) -> dict[str, Any]:
        resolved = sum(1 for _, s in self._days.items() if isinstance(s, DayResolved))
        pending = sum(1 for _, s in self._days.items() if isinstance(s, DayPending))
        return {
            "ready": bool(self.ready),
            "days": len(self._days),
            "resolvedDays": resolved,
            "pendingDays": pending,
            "firstDay": self._first_day,
            "lastDay": self._last_day,
            "oldestTime": self.oldest_time,
            "latestTime": self.latest_time,
        }

    async def close(self) -> None:
        self.cancel_day_loads_except((), "catalog closed")
        tasks = list(self._background)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self.cache.clear()
        for frame in self._by_key.values():
            frame.slot = UNLOADED
        self._by_key.clear()
