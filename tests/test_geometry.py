from __future__ import annotations

import numpy as np

from epicloop.core.geometry import (
    EARTH_RADIUS_SCALE,
    earth_radius_from_distance,
    globe_vector,
    lat_lon_from_screen_coord,
    lat_lon_north_rotation_matrix,
    normal_from_screen_coord,
    pivot_normal,
    screen_coord_from_lat_lon,
    unwrap_longitudes,
    wrap_longitude,
)


def test_rotation_points_centroid_at_viewer_with_north_up() -> None:
    for lat, lon in [(0.0, 0.0), (12.5, -60.0), (-30.0, 170.0)]:
        m = lat_lon_north_rotation_matrix(lat, lon)
        assert np.allclose(m @ m.T, np.eye(3), atol=1e-12)
        assert np.allclose(m @ globe_vector(lat, lon), [0.0, 0.0, 1.0], atol=1e-12)
        # View y grows downward, like screen rows.
        north = m @ globe_vector(lat + 1.0, lon)
        assert north[1] < 0.0
        assert abs(north[0]) < 1e-9


def test_screen_center_maps_to_centroid() -> None:
    m = lat_lon_north_rotation_matrix(15.0, -45.0)
    got = lat_lon_from_screen_coord((512.0, 512.0), m, 400.0, 1024, 1024)
    assert got is not None
    assert np.allclose(got, (15.0, -45.0), atol=1e-9)


def test_screen_coord_and_lat_lon_are_inverse() -> None:
    m = lat_lon_north_rotation_matrix(5.0, 100.0)
    pos = screen_coord_from_lat_lon(20.0, 110.0, m, 300.0, 800, 600)
    assert pos is not None
    back = lat_lon_from_screen_coord(pos, m, 300.0, 800, 600)
    assert back is not None
    assert np.allclose(back, (20.0, 110.0), atol=1e-6)


def test_far_side_and_outside_disk_give_none() -> None:
    m = lat_lon_north_rotation_matrix(0.0, 0.0)
    assert screen_coord_from_lat_lon(0.0, 180.0, m, 300.0, 800, 600) is None
    assert normal_from_screen_coord((0.0, 0.0), 100.0, 800, 600) is None
    assert lat_lon_from_screen_coord((799.0, 599.0), m, 100.0, 800, 600) is None


def test_pivot_normal_follows_rotation() -> None:
    r0 = lat_lon_north_rotation_matrix(0.0, 0.0)
    n = r0 @ globe_vector(0.0, 0.0)

    same = pivot_normal(n, r0, r0)
    assert np.allclose(same, n)

    # Spinning the globe a quarter turn carries the pivot to the limb, half a turn behind.
    quarter = pivot_normal(n, r0, lat_lon_north_rotation_matrix(0.0, 90.0))
    assert abs(quarter[2]) < 1e-9
    half = pivot_normal(n, r0, lat_lon_north_rotation_matrix(0.0, 180.0))
    assert half[2] < 0.0


def test_longitude_helpers() -> None:
    assert unwrap_longitudes(-170.0, 175.0) == (190.0, 175.0)
    assert unwrap_longitudes(30.0, 15.0) == (30.0, 15.0)
    assert wrap_longitude(190.0) == -170.0
    assert wrap_longitude(-540.0) == -180.0


def test_earth_radius_from_distance() -> None:
    assert earth_radius_from_distance(EARTH_RADIUS_SCALE) == 1.0
    assert earth_radius_from_distance(2.0 * EARTH_RADIUS_SCALE) == 0.5
    try:
        earth_radius_from_distance(0.0)
    except ValueError:
        pass
    else:  # pragma: no cover
        raise AssertionError("expected ValueError")
