from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Callable

from ..config import PlaybackConfig
from ..core.catalog import FrameCatalog
from ..core.cursor import PlaybackCursor
from ..core.resource_cache import ResourceCache
from ..io.image import decode_image_resource
from ..io.stores import BlobStore, SqliteBlobStore
from ..sources.day_loader import DayCatalogLoader
from ..sources.epic_api import EpicApi, make_api
from ..sources.transport import HttpTransport

logger = logging.getLogger(__name__)


class ViewerSession:
    """Owns one playback: data source, caches, catalog, cursor and the clock ticker."""

    def __init__(
        self,
        config: PlaybackConfig | None = None,
        *,
        api: EpicApi | None = None,
        transport: HttpTransport | None = None,
        day_store: BlobStore | None = None,
        image_store: BlobStore | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.config = config or PlaybackConfig()
        self.api = api or make_api(self.config.source)
        self.transport = transport or HttpTransport()
        self._clock = clock
        self._owned_stores: list[SqliteBlobStore] = []

        cache_path = self.config.resolved_cache_path()
        if cache_path is not None:
            if day_store is None:
                day_store = SqliteBlobStore(cache_path, table="days")
                self._owned_stores.append(day_store)
            if image_store is None:
                image_store = SqliteBlobStore(cache_path, table="images")
                self._owned_stores.append(image_store)

        self.loader = DayCatalogLoader(self.api, self.transport, day_store)
        self.cache = ResourceCache(
            self._fetch_image,
            decode_image_resource,
            budget_bytes=self.config.memory_budget_bytes,
            store=image_store,
            clock=clock,
            default_retry_after=self.config.retry_after_default_sec,
        )
        self.catalog = FrameCatalog(
            self.loader,
            self.cache,
            prefetch_horizon=self.config.prefetch_horizon,
            prefetch_frames=self.config.prefetch_frames,
        )
        self.cursor = PlaybackCursor(self.catalog, self.config)

        self.error: str | None = None
        self._ticker: asyncio.Task | None = None

    async def _fetch_image(self, key: str) -> bytes:
        return await self.transport.get_bytes(key, params=self.api.query_params(), key=key)

    async def start(self, *, run_ticker: bool = True) -> None:
        """Initialize the catalog, position the cursor and start the clock."""
        try:
            await self.catalog.init()
            await self.cursor.start()
        except Exception as exc:
            self.error = str(exc) or type(exc).__name__
            logger.exception("Failed to start playback session")
            return
        if run_ticker:
            self._ticker = asyncio.get_running_loop().create_task(self._tick_loop(), name="epicloop-ticker")

    async def _tick_loop(self) -> None:
        interval = 1.0 / float(self.config.tick_hz)
        last = self._clock()
        while True:
            await asyncio.sleep(interval)
            now = self._clock()
            self.cursor.advance(now - last)
            last = now
            self.cursor.mark_used(self.cursor.bound_pair[0])
            self.cursor.mark_used(self.cursor.bound_pair[1])

    @property
    def running(self) -> bool:
        return self._ticker is not None and not self._ticker.done()

    def state(self) -> dict[str, Any]:
        return {
            "source": self.api.name,
            "error": self.error,
            "running": self.running,
            "cursor": self.cursor.state(),
            "catalog": self.catalog.stats(),
            "cache": self.cache.stats().to_dict(),
        }

    async def close(self) -> None:
        if self._ticker is not None:
            self._ticker.cancel()
            await asyncio.gather(self._ticker, return_exceptions=True)
            self._ticker = None
        await self.catalog.close()
        await self.cache.flush()
        await self.transport.aclose()
        for store in self._owned_stores:
            store.close()
