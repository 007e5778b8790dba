from __future__ import annotations

import asyncio
import sqlite3
import threading
from pathlib import Path
from typing import Protocol


class BlobStore(Protocol):
    """Durable key/value store for raw bytes (the secondary cache tier)."""

    async def get(self, key: str) -> bytes | None: ...

    async def put(self, key: str, data: bytes) -> None: ...

    async def delete(self, key: str) -> None: ...

    async def clear(self) -> None: ...


class MemoryBlobStore:
    """In-process store. Handy for tests and for running without a disk cache."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._data: dict[str, bytes] = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._data

    async def get(self, key: str) -> bytes | None:
        with self._lock:
            return self._data.get(key)

    async def put(self, key: str, data: bytes) -> None:
        with self._lock:
            self._data[key] = bytes(data)

    async def delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    async def clear(self) -> None:
        with self._lock:
            self._data.clear()


class SqliteBlobStore:
    """SQLite-backed store; one table per namespace in a shared database file.

    Calls run in a worker thread so they never block the event loop.
    """

    def __init__(self, path: str | Path, *, table: str = "blobs") -> None:
        if not table.isidentifier():
            raise ValueError(f"Invalid table name {table!r}")
        self.path = Path(path)
        self.table = table
        self._lock = threading.RLock()
        self._conn: sqlite3.Connection | None = None

    def _connect_locked(self) -> sqlite3.Connection:
        if self._conn is None:
            if str(self.path) != ":memory:":
                self.path.parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(str(self.path), check_same_thread=False)
            conn.execute(f"CREATE TABLE IF NOT EXISTS {self.table} (key TEXT PRIMARY KEY, data BLOB NOT NULL)")
            conn.commit()
            self._conn = conn
        return self._conn

    def _get_sync(self, key: str) -> bytes | None:
        with self._lock:
            row = self._connect_locked().execute(f"SELECT data FROM {self.table} WHERE key = ?", (key,)).fetchone()
            return bytes(row[0]) if row is not None else None

    def _put_sync(self, key: str, data: bytes) -> None:
        with self._lock:
            conn = self._connect_locked()
            conn.execute(
                f"INSERT OR REPLACE INTO {self.table} (key, data) VALUES (?, ?)",
                (key, sqlite3.Binary(bytes(data))),
            )
            conn.commit()

    def _delete_sync(self, key: str) -> None:
        with self._lock:
            conn = self._connect_locked()
            conn.execute(f"DELETE FROM {self.table} WHERE key = ?", (key,))
            conn.commit()

    def _clear_sync(self) -> None:
        with self._lock:
            conn = self._connect_locked()
            conn.execute(f"DELETE FROM {self.table}")
            conn.commit()

    async def get(self, key: str) -> bytes | None:
        return await asyncio.to_thread(self._get_sync, key)

    async def put(self, key: str, data: bytes) -> None:
        await asyncio.to_thread(self._put_sync, key, data)

    async def delete(self, key: str) -> None:
        await asyncio.to_thread(self._delete_sync, key)

    async def clear(self) -> None:
        await asyncio.to_thread(self._clear_sync)

    def close(self) -> None:
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None
