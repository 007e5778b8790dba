from __future__ import annotations

from epicloop.core.day_map import (
    OrderedDayMap,
    bound_indices,
    day_of,
    day_start,
    next_day,
    prev_day,
    time_from_date_string,
    validate_day,
)


def _sample() -> OrderedDayMap[int]:
    m: OrderedDayMap[int] = OrderedDayMap()
    m.set("2024-05-03", 0)
    m.set("2024-05-01", 1)
    m.set("2024-05-05", 2)
    return m


def test_keys_stay_sorted_and_set_overwrites() -> None:
    m = _sample()
    assert m.keys() == ["2024-05-01", "2024-05-03", "2024-05-05"]
    assert list(m) == m.keys()

    m.set("2024-05-03", 7)
    assert len(m) == 3
    assert m.get("2024-05-03") == 7
    assert m.first() == ("2024-05-01", 1)
    assert m.last() == ("2024-05-05", 2)


def test_range_lookup_strict_and_non_strict() -> None:
    m = _sample()

    assert m.range_lookup("2024-05-03") == (("2024-05-03", 0), ("2024-05-03", 0))
    assert m.range_lookup("2024-05-03", strict=True) == (("2024-05-01", 1), ("2024-05-05", 2))

    # Missing keys give the neighbors regardless of strictness.
    assert m.range_lookup("2024-05-02") == (("2024-05-01", 1), ("2024-05-03", 0))
    assert m.range_lookup("2024-05-04", strict=True) == (("2024-05-03", 0), ("2024-05-05", 2))

    assert m.range_lookup("2024-04-01") == (None, ("2024-05-01", 1))
    assert m.range_lookup("2024-06-01") == (("2024-05-05", 2), None)
    assert m.range_lookup("2024-05-01", strict=True) == (None, ("2024-05-03", 0))
    assert m.range_lookup("2024-05-05", strict=True) == (("2024-05-03", 0), None)


def test_floor_ceiling_lower_higher_and_neighbors() -> None:
    m = _sample()
    assert m.floor("2024-05-04") == ("2024-05-03", 0)
    assert m.floor("2024-05-03") == ("2024-05-03", 0)
    assert m.ceiling("2024-05-04") == ("2024-05-05", 2)
    assert m.lower("2024-05-03") == ("2024-05-01", 1)
    assert m.higher("2024-05-03") == ("2024-05-05", 2)
    assert m.floor("2024-04-30") is None
    assert m.higher("2024-05-05") is None

    assert m.neighbors("2024-05-03") == (("2024-05-01", 1), ("2024-05-05", 2))
    assert m.neighbors("2024-05-02") == (None, None)


def test_delete_clear_and_membership() -> None:
    m = _sample()
    assert "2024-05-01" in m
    assert m.has("2024-05-05")
    assert 20240501 not in m

    assert m.delete("2024-05-01") is True
    assert m.delete("2024-05-01") is False
    assert m.keys() == ["2024-05-03", "2024-05-05"]

    m.clear()
    assert len(m) == 0
    assert m.first() is None
    assert m.range_lookup("2024-05-03") == (None, None)


def test_set_rejects_non_iso_days() -> None:
    m: OrderedDayMap[int] = OrderedDayMap()
    for bad in ("2024-5-1", "20240501", "2024-13-01", "yesterday"):
        try:
            m.set(bad, 0)
        except ValueError:
            pass
        else:  # pragma: no cover
            raise AssertionError(f"expected ValueError for {bad!r}")
    assert len(m) == 0
    assert validate_day("2024-02-29") == "2024-02-29"


def test_bound_indices_on_numbers() -> None:
    keys = [10, 20, 30]
    assert bound_indices(keys, 20, False) == (1, 1)
    assert bound_indices(keys, 20, True) == (0, 2)
    assert bound_indices(keys, 25, False) == (1, 2)
    assert bound_indices(keys, 5, True) == (-1, 0)
    assert bound_indices(keys, 35, False) == (2, 3)


def test_day_arithmetic_and_date_parsing() -> None:
    t0 = day_start("2024-05-01")
    assert t0 == 1714521600
    assert day_of(t0) == "2024-05-01"
    assert day_of(t0 - 1) == "2024-04-30"
    assert next_day("2024-02-28") == "2024-02-29"
    assert prev_day("2024-03-01") == "2024-02-29"
    assert next_day("2024-12-31") == "2025-01-01"

    assert time_from_date_string("2024-05-01 00:30:00") == t0 + 1800
    assert time_from_date_string("2024-05-01T00:30:00") == t0 + 1800
    try:
        time_from_date_string("2024-05-01")
    except ValueError:
        pass
    else:  # pragma: no cover
        raise AssertionError("expected ValueError")
