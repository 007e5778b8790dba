from __future__ import annotations

import numpy as np

from epicloop.core.day_map import day_start
from epicloop.core.frames import (
    DayResolved,
    FrameRecord,
    Loaded,
    Loading,
    PivotFrame,
    interpolate_frames,
    mix_factor,
    single_frame,
)
from epicloop.core.geometry import EARTH_RADIUS_SCALE, lat_lon_north_rotation_matrix

from helpers import frame_entry


def _frame(date: str, lat: float, lon: float, distance: float = 1_500_000.0) -> FrameRecord:
    return FrameRecord.from_payload(date[:10], frame_entry(date, lat=lat, lon=lon, distance=distance))


def test_from_payload_derives_time_radius_and_orientation() -> None:
    f = _frame("2024-05-01 12:30:00", 10.0, -20.0, distance=2.0 * EARTH_RADIUS_SCALE)
    assert f.day == "2024-05-01"
    assert f.time_sec == day_start("2024-05-01") + 12 * 3600 + 1800
    assert abs(f.radius - 0.5) < 1e-12
    assert np.allclose(f.orientation, lat_lon_north_rotation_matrix(10.0, -20.0))
    assert f.orientation.flags.writeable is False
    assert f.resource is None
    assert not f.is_loaded and not f.is_loading


def test_from_payload_rejects_malformed_entries() -> None:
    entry = frame_entry("2024-05-01 12:30:00")
    del entry["centroid_coordinates"]
    for bad in (entry, {"image": "", "date": "2024-05-01 12:30:00"}, frame_entry("not a date")):
        try:
            FrameRecord.from_payload("2024-05-01", bad)
        except ValueError:
            pass
        else:  # pragma: no cover
            raise AssertionError(f"expected ValueError for {bad!r}")


def test_resource_slot_transitions() -> None:
    f = _frame("2024-05-01 00:30:00", 0.0, 0.0)
    f.slot = Loading("k")
    assert f.is_loading and f.resource_key == "k" and f.resource is None
    f.slot = Loaded("k", b"pixels")
    assert f.is_loaded and f.resource == b"pixels"
    assert f.to_dict()["loaded"] is True


def test_day_resolved_sorts_and_drops_duplicate_times() -> None:
    a = _frame("2024-05-01 06:30:00", 0.0, 0.0)
    b = _frame("2024-05-01 00:30:00", 0.0, 0.0)
    dup = _frame("2024-05-01 06:30:00", 1.0, 1.0)
    resolved = DayResolved.build([a, b, dup])
    assert resolved.frames == (b, a)
    assert resolved.times == (b.time_sec, a.time_sec)


def test_interpolation_endpoints_reproduce_bound_frames() -> None:
    f0 = _frame("2024-05-01 00:30:00", 10.0, 20.0, distance=1_400_000.0)
    f1 = _frame("2024-05-01 02:30:00", 12.0, -10.0, distance=1_600_000.0)

    at0 = interpolate_frames(f0, f1, f0.time_sec)
    assert at0.mix01 == 0.0
    assert at0.radius == f0.radius
    assert np.allclose(at0.orientation, f0.orientation)

    at1 = interpolate_frames(f0, f1, f1.time_sec)
    assert at1.mix01 == 1.0
    assert at1.radius == f1.radius
    assert np.allclose(at1.orientation, f1.orientation)

    mid = interpolate_frames(f0, f1, (f0.time_sec + f1.time_sec) / 2.0)
    assert abs(mid.mix01 - 0.5) < 1e-12
    assert abs(mid.radius - (f0.radius + f1.radius) / 2.0) < 1e-12
    assert abs(mid.centroid_lat - 11.0) < 1e-9
    assert abs(mid.centroid_lon - 5.0) < 1e-9


def test_interpolation_crosses_the_antimeridian_westward() -> None:
    f0 = _frame("2024-05-01 00:30:00", 0.0, -170.0)
    f1 = _frame("2024-05-01 01:30:00", 0.0, 170.0)
    mid = interpolate_frames(f0, f1, (f0.time_sec + f1.time_sec) / 2.0)
    assert abs(abs(mid.centroid_lon) - 180.0) < 1e-9
    assert np.allclose(mid.orientation, lat_lon_north_rotation_matrix(0.0, 180.0), atol=1e-9)


def test_mix_factor_and_single_frame() -> None:
    f0 = _frame("2024-05-01 00:30:00", 0.0, 0.0)
    f1 = _frame("2024-05-01 01:30:00", 0.0, -15.0)
    assert mix_factor(f0, f1, f0.time_sec - 100) == 0.0
    assert mix_factor(f0, f1, f1.time_sec + 100) == 1.0
    assert mix_factor(None, f1, f1.time_sec) == 0.0
    assert mix_factor(f0, f0, f0.time_sec) == 0.0

    first = single_frame(f1, f1.time_sec - 10, as_second=True)
    assert first.frame0 is None and first.frame1 is f1 and first.mix01 == 1.0
    last = single_frame(f0, f0.time_sec + 10, as_second=False)
    assert last.frame0 is f0 and last.frame1 is None and last.mix01 == 0.0


def test_pivot_capture_and_facing() -> None:
    f0 = _frame("2024-05-01 00:30:00", 0.0, 0.0, distance=EARTH_RADIUS_SCALE)
    frame = single_frame(f0, f0.time_sec, as_second=False)

    assert PivotFrame.capture(frame, (0.0, 0.0), (1000, 1000)) is None

    pivot = PivotFrame.capture(frame, (500.0, 500.0), (1000, 1000))
    assert pivot is not None
    assert abs(pivot.lat) < 1e-9 and abs(pivot.lon) < 1e-9
    assert pivot.faces_viewer(f0.orientation)
    assert pivot.faces_viewer(lat_lon_north_rotation_matrix(0.0, -80.0))
    assert not pivot.faces_viewer(lat_lon_north_rotation_matrix(0.0, 120.0))
