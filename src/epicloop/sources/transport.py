from __future__ import annotations

import logging
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any

import httpx

from ..errors import RateLimited, ResourceForbidden, ResourceNotFound, TransferError

logger = logging.getLogger(__name__)


def parse_retry_after(value: str | None, *, now: datetime | None = None) -> float:
    """Seconds to wait from a Retry-After header (delta-seconds or HTTP date); 0 when absent."""
    if value is None:
        return 0.0
    txt = str(value).strip()
    if not txt:
        return 0.0
    try:
        return max(0.0, float(txt))
    except ValueError:
        pass
    try:
        when = parsedate_to_datetime(txt)
    except (TypeError, ValueError):
        return 0.0
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    ref = now or datetime.now(timezone.utc)
    return max(0.0, (when - ref).total_seconds())


def raise_for_status(response: httpx.Response, key: str) -> None:
    status = int(response.status_code)
    if status < 400:
        return
    if status == 404:
        raise ResourceNotFound(key)
    if status == 403:
        raise ResourceForbidden(key)
    if status in (429, 503):
        raise RateLimited(key, parse_retry_after(response.headers.get("Retry-After")))
    raise TransferError(key, status, response.reason_phrase)


class HttpTransport:
    """Async GET over a shared `httpx.AsyncClient` with catalog-specific status mapping."""

    def __init__(
        self,
        *,
        client: httpx.AsyncClient | None = None,
        timeout_s: float = 30.0,
        headers: dict[str, str] | None = None,
    ) -> None:
        self._client = client
        self._owns_client = client is None
        self._timeout_s = float(timeout_s)
        self._headers = dict(headers or {})

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self._timeout_s,
                headers=self._headers,
                follow_redirects=True,
            )
        return self._client

    async def get(self, url: str, *, params: dict[str, Any] | None = None, key: str | None = None) -> httpx.Response:
        k = key or url
        logger.debug("GET %s", url)
        try:
            response = await self._get_client().get(url, params=params)
        except httpx.HTTPError as exc:
            raise TransferError(k, None, str(exc) or type(exc).__name__) from exc
        raise_for_status(response, k)
        return response

    async def get_bytes(self, url: str, *, params: dict[str, Any] | None = None, key: str | None = None) -> bytes:
        response = await self.get(url, params=params, key=key)
        return bytes(response.content)

    async def get_text(self, url: str, *, params: dict[str, Any] | None = None, key: str | None = None) -> str:
        response = await self.get(url, params=params, key=key)
        return response.text

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
        self._client = None
