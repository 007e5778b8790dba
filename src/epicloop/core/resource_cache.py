from __future__ import annotations

import asyncio
import itertools
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Iterable

from ..errors import Aborted, DecodeFailure, RateLimited, ResourceError, ResourceForbidden, ResourceNotFound
from ..io.stores import BlobStore

logger = logging.getLogger(__name__)

Fetcher = Callable[[str], Awaitable[bytes]]
Decoder = Callable[[bytes, str], "tuple[Any, int]"]
EvictCallback = Callable[[str, Any], None]
Releaser = Callable[[Any], None]

DEFAULT_RETRY_AFTER_SEC = 10.0

# Failures that stick to a key until it is force-reloaded.
TERMINAL_ERRORS = (ResourceNotFound, ResourceForbidden, DecodeFailure)


@dataclass
class CacheEntry:
    key: str
    resource: Any
    size: int
    last_used: float
    seq: int


@dataclass
class _Pending:
    task: asyncio.Task
    reason: str = ""


@dataclass(frozen=True)
class CacheStats:
    entries: int
    total_bytes: int
    budget_bytes: int
    pending: int
    blocked_for_sec: float
    failed: int = 0
    keys: tuple[str, ...] = field(default_factory=tuple)

    def to_dict(self) -> dict[str, Any]:
        return {
            "entries": int(self.entries),
            "totalBytes": int(self.total_bytes),
            "budgetBytes": int(self.budget_bytes),
            "pending": int(self.pending),
            "blockedForSec": float(self.blocked_for_sec),
            "failed": int(self.failed),
        }


class ResourceCache:
    """Two-tier keyed cache for decoded resources.

    Tier 1 is an in-memory map bounded by `budget_bytes` and evicted by least
    recent use. Tier 2 is an optional durable `BlobStore` holding the raw
    payload bytes; it is written after a successful decode and never evicted
    here.

    Concurrent requests for one key share a single task. Cancelling a key
    aborts its transfer and every waiter gets `Aborted`; resident entries are
    never affected by cancellation.

    A key that failed with not-found, forbidden or an undecodable payload is
    remembered: later requests re-raise that error without a transfer until
    the key is requested with `force_reload=True`.
    """

    def __init__(
        self,
        fetcher: Fetcher,
        decoder: Decoder,
        *,
        budget_bytes: int,
        store: BlobStore | None = None,
        on_evict: EvictCallback | None = None,
        releaser: Releaser | None = None,
        clock: Callable[[], float] = time.monotonic,
        default_retry_after: float = DEFAULT_RETRY_AFTER_SEC,
    ) -> None:
        if int(budget_bytes) <= 0:
            raise ValueError("budget_bytes must be a positive integer")
        self._fetcher = fetcher
        self._decoder = decoder
        self._store = store
        self._budget = int(budget_bytes)
        self.on_evict = on_evict
        self._releaser = releaser
        self._clock = clock
        self._default_retry_after = float(default_retry_after)

        self._entries: dict[str, CacheEntry] = {}
        self._pending: dict[str, _Pending] = {}
        self._failed: dict[str, ResourceError] = {}
        self._persist_tasks: set[asyncio.Task] = set()
        self._total = 0
        self._seq = itertools.count()
        self._blocked_until: float | None = None

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    @property
    def total_bytes(self) -> int:
        return self._total

    @property
    def budget_bytes(self) -> int:
        return self._budget

    def get(self, key: str) -> Any | None:
        entry = self._entries.get(key)
        return entry.resource if entry is not None else None

    def is_resident(self, key: str) -> bool:
        return key in self._entries

    def is_pending(self, key: str) -> bool:
        return key in self._pending

    def pending_keys(self) -> list[str]:
        return list(self._pending)

    def failure(self, key: str) -> ResourceError | None:
        return self._failed.get(key)

    def is_failed(self, key: str) -> bool:
        return key in self._failed

    def blocked_for(self) -> float:
        if self._blocked_until is None:
            return 0.0
        return max(0.0, self._blocked_until - self._clock())

    async def request(self, key: str, *, force_reload: bool = False) -> Any:
        """Return the resource for `key`, loading it if needed.

        Raises `Aborted` when the load is cancelled, `RateLimited` while the
        back-off window is open, and `ResourceError` subclasses for terminal
        failures.
        """
        if force_reload:
            self._failed.pop(key, None)
        else:
            entry = self._entries.get(key)
            if entry is not None:
                self._touch(entry)
                return entry.resource
            failed = self._failed.get(key)
            if failed is not None:
                raise failed.with_traceback(None)

        pending = self._pending.get(key)
        if pending is None:
            task = asyncio.get_running_loop().create_task(self._load(key), name=f"resource:{key}")
            pending = _Pending(task=task)
            self._pending[key] = pending
            task.add_done_callback(lambda _t, k=key, p=pending: self._forget_pending(k, p))
        return await self._join(key, pending)

    async def _join(self, key: str, pending: _Pending) -> Any:
        try:
            return await asyncio.shield(pending.task)
        except asyncio.CancelledError:
            current = asyncio.current_task()
            if current is not None and current.cancelling():
                raise
            if pending.task.cancelled():
                raise Aborted(key, pending.reason) from None
            raise

    def _forget_pending(self, key: str, pending: _Pending) -> None:
        if self._pending.get(key) is pending:
            del self._pending[key]

    def mark_used(self, key: str) -> bool:
        entry = self._entries.get(key)
        if entry is None:
            return False
        self._touch(entry)
        return True

    def cancel(self, key: str, reason: str = "") -> bool:
        pending = self._pending.get(key)
        if pending is None or pending.task.done():
            return False
        del self._pending[key]
        pending.reason = reason
        pending.task.cancel(reason or None)
        logger.info("Aborting request for %s: %s", key, reason)
        return True

    def cancel_all_except(self, keys: Iterable[str], reason: str = "") -> list[str]:
        keep = set(keys)
        cancelled: list[str] = []
        for key in list(self._pending):
            if key in keep:
                continue
            if self.cancel(key, reason):
                cancelled.append(key)
        return cancelled

    def clear(self) -> None:
        self.cancel_all_except((), "cache cleared")
        for entry in list(self._entries.values()):
            self._release(entry)
        self._entries.clear()
        self._failed.clear()
        self._total = 0

    async def flush(self) -> None:
        """Wait until every scheduled secondary-store write has finished."""
        while self._persist_tasks:
            await asyncio.gather(*list(self._persist_tasks), return_exceptions=True)

    def stats(self) -> CacheStats:
        return CacheStats(
            entries=len(self._entries),
            total_bytes=self._total,
            budget_bytes=self._budget,
            pending=len(self._pending),
            blocked_for_sec=self.blocked_for(),
            failed=len(self._failed),
            keys=tuple(self._entries),
        )

    async def _load(self, key: str) -> Any:
        if self._store is not None:
            blob = await self._read_store(key)
            if blob is not None:
                try:
                    resource, size = self._decoder(blob, key)
                except DecodeFailure:
                    logger.warning("Dropping undecodable stored copy of %s", key)
                    await self._store.delete(key)
                else:
                    self._insert(key, resource, size)
                    return resource

        self._check_cooldown(key)
        try:
            payload = await self._fetcher(key)
            resource, size = self._decoder(payload, key)
        except RateLimited as exc:
            self._block_requests(key, exc.retry_after)
            raise
        except TERMINAL_ERRORS as exc:
            self._failed[key] = exc
            logger.warning("Giving up on %s: %s", key, exc)
            raise

        self._insert(key, resource, size)
        self._persist(key, payload)
        return resource

    async def _read_store(self, key: str) -> bytes | None:
        assert self._store is not None
        try:
            return await self._store.get(key)
        except Exception:
            logger.warning("Secondary store read failed for %s", key, exc_info=True)
            return None

    def _persist(self, key: str, payload: bytes) -> None:
        if self._store is None:
            return
        task = asyncio.get_running_loop().create_task(self._write_store(key, payload), name=f"persist:{key}")
        self._persist_tasks.add(task)
        task.add_done_callback(self._persist_tasks.discard)

    async def _write_store(self, key: str, payload: bytes) -> None:
        assert self._store is not None
        try:
            await self._store.put(key, payload)
        except Exception:
            logger.warning("Failed to persist %s in the secondary store", key, exc_info=True)

    def _check_cooldown(self, key: str) -> None:
        remaining = self.blocked_for()
        if remaining > 0.0:
            raise RateLimited(key, remaining)

    def _block_requests(self, key: str, retry_after: float) -> None:
        delay = float(retry_after) if retry_after and retry_after > 0 else self._default_retry_after
        self._blocked_until = self._clock() + delay
        logger.warning("Server asked to back off on %s, blocking requests for %.1fs", key, delay)
        self.cancel_all_except([key], f"requests blocked for {delay:.1f}s")

    def _touch(self, entry: CacheEntry) -> None:
        entry.last_used = self._clock()
        entry.seq = next(self._seq)

    def _insert(self, key: str, resource: Any, size: int) -> None:
        size_i = max(0, int(size))
        previous = self._entries.pop(key, None)
        if previous is not None:
            self._total -= previous.size
            self._release(previous)

        self._evict_for(size_i)
        self._entries[key] = CacheEntry(
            key=key,
            resource=resource,
            size=size_i,
            last_used=self._clock(),
            seq=next(self._seq),
        )
        self._total += size_i

    def _evict_for(self, incoming: int) -> None:
        evicted = 0
        while self._entries and self._total + incoming > self._budget:
            oldest = min(self._entries.values(), key=lambda e: (e.last_used, e.seq))
            del self._entries[oldest.key]
            self._total -= oldest.size
            self._release(oldest)
            if self.on_evict is not None:
                self.on_evict(oldest.key, oldest.resource)
            evicted += 1
        if evicted:
            logger.debug("Evicted %d entries, %d/%d bytes resident", evicted, self._total, self._budget)

    def _release(self, entry: CacheEntry) -> None:
        if self._releaser is not None:
            self._releaser(entry.resource)
