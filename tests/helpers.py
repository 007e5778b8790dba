from __future__ import annotations

import asyncio
from typing import Any

from epicloop.core.catalog import FrameCatalog
from epicloop.core.resource_cache import ResourceCache
from epicloop.errors import DecodeFailure


def frame_entry(
    date: str,
    *,
    image: str | None = None,
    lat: float = 10.0,
    lon: float = 0.0,
    distance: float = 1_500_000.0,
) -> dict[str, Any]:
    """One day-page entry in the EPIC layout."""
    return {
        "image": image or "epic_1b_" + date.replace("-", "").replace(" ", "").replace(":", ""),
        "date": date,
        "centroid_coordinates": {"lat": lat, "lon": lon},
        "dscovr_j2000_position": {"x": distance, "y": 0.0, "z": 0.0},
    }


def day_page(day: str, times: list[str], *, lon0: float = 0.0) -> list[dict[str, Any]]:
    # The sub-satellite longitude moves west by 15 degrees per hour.
    out = []
    for i, clock in enumerate(times):
        hours = int(clock[:2]) + int(clock[3:5]) / 60.0
        lon = lon0 - 15.0 * hours
        while lon < -180.0:
            lon += 360.0
        out.append(frame_entry(f"{day} {clock}", lat=10.0 + i * 0.1, lon=lon))
    return out


HOURS = ["00:30:00", "06:30:00", "12:30:00", "18:30:00"]


class FakeDayLoader:
    """In-process stand-in for `DayCatalogLoader`."""

    def __init__(self, pages: dict[str, list[dict[str, Any]]], days: list[str] | None = None) -> None:
        self.pages = pages
        self.days = sorted(pages) if days is None else list(days)
        self.calls: list[str] = []
        self.cleared: list[str | None] = []
        self.gates: dict[str, asyncio.Event] = {}

    async def load_available_days(self) -> list[str]:
        return list(self.days)

    async def load_day(self, day: str, *, nocache: bool = False) -> list[dict[str, Any]]:
        self.calls.append(day)
        gate = self.gates.get(day)
        if gate is not None:
            await gate.wait()
        return list(self.pages.get(day, []))

    def image_url(self, date: str, image_id: str) -> str:
        return f"mem://{image_id}"

    async def clear_cache(self, day: str | None = None) -> None:
        self.cleared.append(day)


class FakeFetcher:
    """Image fetcher counting transfers; keys can be gated or made to fail."""

    def __init__(self, payloads: dict[str, bytes] | None = None, *, size: int = 100) -> None:
        self.payloads = payloads or {}
        self.size = size
        self.calls: list[str] = []
        self.gates: dict[str, asyncio.Event] = {}
        self.errors: dict[str, Exception] = {}
        self.hold_all: asyncio.Event | None = None

    async def __call__(self, key: str) -> bytes:
        self.calls.append(key)
        gate = self.gates.get(key) or self.hold_all
        if gate is not None:
            await gate.wait()
        if key in self.errors:
            raise self.errors[key]
        return self.payloads.get(key, b"x" * self.size)


def bytes_decoder(data: bytes, key: str) -> tuple[bytes, int]:
    if data == b"corrupt":
        raise DecodeFailure(key, "corrupt payload")
    return bytes(data), len(data)


class ManualClock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = float(now)

    def __call__(self) -> float:
        return self.now

    def advance(self, dt: float) -> None:
        self.now += float(dt)


def make_catalog(
    pages: dict[str, list[dict[str, Any]]],
    *,
    days: list[str] | None = None,
    budget_bytes: int = 100_000,
    fetcher: FakeFetcher | None = None,
    prefetch_frames: int = 0,
    prefetch_horizon: int = 0,
) -> tuple[FrameCatalog, FakeDayLoader, FakeFetcher]:
    loader = FakeDayLoader(pages, days)
    fetch = fetcher or FakeFetcher()
    cache = ResourceCache(fetch, bytes_decoder, budget_bytes=budget_bytes)
    catalog = FrameCatalog(
        loader,  # type: ignore[arg-type]
        cache,
        prefetch_horizon=prefetch_horizon,
        prefetch_frames=prefetch_frames,
    )
    return catalog, loader, fetch


async def settle(rounds: int = 20) -> None:
    """Let background tasks run until they block."""
    for _ in range(rounds):
        await asyncio.sleep(0)
