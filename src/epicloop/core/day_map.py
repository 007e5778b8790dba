from __future__ import annotations

import re
from bisect import bisect_left, bisect_right
from datetime import date, datetime, timedelta, timezone
from typing import Generic, Iterator, Sequence, TypeVar


T = TypeVar("T")
Entry = tuple[str, T]

SECONDS_PER_DAY = 24 * 3600

_DAY_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def validate_day(day: str) -> str:
    """Return `day` if it is an ISO `YYYY-MM-DD` string, raise ValueError otherwise.

    The map relies on lexicographic order of these strings being the same as
    chronological order, which only holds for the zero-padded ISO format.
    """
    d = str(day)
    if not _DAY_RE.match(d):
        raise ValueError(f"Invalid day {day!r}, expected YYYY-MM-DD")
    try:
        date.fromisoformat(d)
    except ValueError as ex:
        raise ValueError(f"Invalid day {day!r}") from ex
    return d


def day_of(time_sec: float) -> str:
    return datetime.fromtimestamp(float(time_sec), tz=timezone.utc).date().isoformat()


def day_start(day: str) -> int:
    d = date.fromisoformat(day)
    return int(datetime(d.year, d.month, d.day, tzinfo=timezone.utc).timestamp())


def prev_day(day: str) -> str:
    return (date.fromisoformat(day) - timedelta(days=1)).isoformat()


def next_day(day: str) -> str:
    return (date.fromisoformat(day) + timedelta(days=1)).isoformat()


def today() -> str:
    return datetime.now(timezone.utc).date().isoformat()


def time_from_date_string(date_time: str) -> int:
    """Parse a catalog date like "2025-04-26 00:13:03" (UTC) into epoch seconds."""
    txt = str(date_time).strip().replace("T", " ")
    try:
        parsed = datetime.strptime(txt, "%Y-%m-%d %H:%M:%S")
    except ValueError as ex:
        raise ValueError(f"Invalid catalog date {date_time!r}") from ex
    return int(parsed.replace(tzinfo=timezone.utc).timestamp())


def bound_indices(keys: Sequence, key, strict: bool) -> tuple[int, int]:
    """Return (lower, upper) indices around `key` in the ascending `keys`.

    `lower` is the greatest index whose key is below `key` and `upper` the
    smallest index whose key is above it. On an exact match at index i the
    result is (i - 1, i + 1) when `strict`, else (i, i). Either index may fall
    outside the sequence (-1 or len(keys)).
    """
    i = bisect_left(keys, key)
    if i < len(keys) and keys[i] == key:
        if strict:
            return i - 1, i + 1
        return i, i
    return i - 1, i


class OrderedDayMap(Generic[T]):
    """Sorted map keyed by ISO day strings.

    Backed by two parallel ascending lists. Lookups are O(log n), inserts and
    deletes O(n); a catalog holds at most a few thousand days.
    """

    def __init__(self) -> None:
        self._keys: list[str] = []
        self._values: list[T] = []

    def __len__(self) -> int:
        return len(self._keys)

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and self._index(key) >= 0

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._keys))

    def _index(self, key: str) -> int:
        i = bisect_left(self._keys, key)
        if i < len(self._keys) and self._keys[i] == key:
            return i
        return -1

    def _entry(self, i: int) -> Entry[T] | None:
        if 0 <= i < len(self._keys):
            return self._keys[i], self._values[i]
        return None

    def set(self, key: str, value: T) -> None:
        k = validate_day(key)
        i = bisect_left(self._keys, k)
        if i < len(self._keys) and self._keys[i] == k:
            self._values[i] = value
            return
        self._keys.insert(i, k)
        self._values.insert(i, value)

    def get(self, key: str, default: T | None = None) -> T | None:
        i = self._index(key)
        return self._values[i] if i >= 0 else default

    def has(self, key: str) -> bool:
        return key in self

    def delete(self, key: str) -> bool:
        i = self._index(key)
        if i < 0:
            return False
        del self._keys[i]
        del self._values[i]
        return True

    def clear(self) -> None:
        self._keys.clear()
        self._values.clear()

    def keys(self) -> list[str]:
        return list(self._keys)

    def items(self) -> list[Entry[T]]:
        return list(zip(self._keys, self._values))

    def first(self) -> Entry[T] | None:
        return self._entry(0)

    def last(self) -> Entry[T] | None:
        return self._entry(len(self._keys) - 1)

    def floor(self, key: str) -> Entry[T] | None:
        """Greatest entry with a key <= `key`."""
        return self._entry(bisect_right(self._keys, key) - 1)

    def ceiling(self, key: str) -> Entry[T] | None:
        """Smallest entry with a key >= `key`."""
        return self._entry(bisect_left(self._keys, key))

    def lower(self, key: str) -> Entry[T] | None:
        """Greatest entry with a key strictly below `key`."""
        return self._entry(bisect_left(self._keys, key) - 1)

    def higher(self, key: str) -> Entry[T] | None:
        """Smallest entry with a key strictly above `key`."""
        return self._entry(bisect_right(self._keys, key))

    def neighbors(self, key: str) -> tuple[Entry[T] | None, Entry[T] | None]:
        """Entries right before and right after an existing `key`.

        Returns (None, None) when `key` itself is not in the map.
        """
        i = self._index(key)
        if i < 0:
            return None, None
        return self._entry(i - 1), self._entry(i + 1)

    def range_lookup(self, key: str, strict: bool = False) -> tuple[Entry[T] | None, Entry[T] | None]:
        lo, hi = bound_indices(self._keys, key, strict)
        return self._entry(lo), self._entry(hi)
