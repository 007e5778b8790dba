from __future__ import annotations

import json
import logging
from typing import Any, Callable

from ..core.day_map import today as utc_today
from ..errors import CatalogCorrupt
from ..io.stores import BlobStore
from .epic_api import EpicApi
from .transport import HttpTransport

logger = logging.getLogger(__name__)


class DayCatalogLoader:
    """Fetches the list of available days and per-day frame pages.

    Raw JSON text is kept in a blob store under the call name. A single
    freshness stamp (the UTC day the cache was last written) invalidates every
    cached call once the day changes, since the newest day page keeps growing.
    """

    CACHE_DATE_KEY = "__cache_date__"

    def __init__(
        self,
        api: EpicApi,
        transport: HttpTransport,
        store: BlobStore | None = None,
        *,
        today: Callable[[], str] = utc_today,
    ) -> None:
        self.api = api
        self.transport = transport
        self.store = store
        self._today = today

    @property
    def uses_cache(self) -> bool:
        return self.store is not None

    async def load_available_days(self) -> list[str]:
        """Ascending list of ISO days the source has frames for."""
        call = self.api.available_days_call()
        payload = await self._load_json(call)
        try:
            return self.api.parse_available_days(payload)
        except ValueError as exc:
            await self._forget(call)
            raise CatalogCorrupt(f"Unusable list of available days: {exc}") from exc

    async def load_day(self, day: str, *, nocache: bool = False) -> list[dict[str, Any]]:
        call = self.api.day_call(day)
        logger.info("Loading data for %s from %s", day, self.api.name)
        payload = await self._load_json(call, nocache=nocache)
        if not isinstance(payload, list):
            await self._forget(call)
            raise CatalogCorrupt(f"Day page for {day} is not a list")
        return payload

    def image_url(self, date: str, image_id: str) -> str:
        return self.api.image_url(date, image_id)

    async def clear_cache(self, day: str | None = None) -> None:
        if self.store is None:
            return
        if day is not None:
            call = self.api.day_call(day)
            await self.store.delete(call)
            logger.info("Cleared cache for call %s", call)
        else:
            await self.store.clear()
            logger.info("Cleared all cached catalog calls")

    async def _load_json(self, call: str, *, nocache: bool = False) -> Any:
        if self.store is not None and not nocache:
            cached = await self._read_cached(call)
            if cached is not None:
                try:
                    return json.loads(cached)
                except ValueError:
                    logger.warning("Cached data for %s is corrupted, fetching fresh data", call)
                    await self.store.delete(call)
                    await self.store.delete(self.CACHE_DATE_KEY)

        url = self.api.call_url(call)
        logger.info("Loading EPIC data URL: %s", url)
        text = await self.transport.get_text(url, params=self.api.query_params(), key=call)
        try:
            payload = json.loads(text)
        except ValueError as exc:
            raise CatalogCorrupt(f"Invalid JSON returned for {call}") from exc

        if self.store is not None and not nocache:
            await self.store.put(self.CACHE_DATE_KEY, self._today().encode("utf-8"))
            await self.store.put(call, text.encode("utf-8"))
        return payload

    async def _read_cached(self, call: str) -> bytes | None:
        assert self.store is not None
        stamp = await self.store.get(self.CACHE_DATE_KEY)
        if stamp is None:
            return None
        if stamp.decode("utf-8", errors="replace") != self._today():
            logger.info("Catalog cache is stale, dropping every cached call")
            await self.store.clear()
            return None
        return await self.store.get(call)

    async def _forget(self, call: str) -> None:
        if self.store is not None:
            await self.store.delete(call)
