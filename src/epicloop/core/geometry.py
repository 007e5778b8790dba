from __future__ import annotations

import numpy as np


# Apparent earth radius (in units of the half viewport) for a spacecraft at
# `distance` km, calibrated on the EPIC 2048px imagery.
EARTH_RADIUS_SCALE = ((1024.0 - 158.0) / 1024.0) * 1386540.0

ScreenCoord = tuple[float, float]


def mix(x: float, y: float, a: float) -> float:
    return x * (1.0 - a) + y * a


def lerp(a: float, b: float, alpha: float) -> float:
    return a + alpha * (b - a)


def normalized_vec3(v: np.ndarray | tuple[float, float, float] | list[float], fallback: tuple[float, float, float]) -> np.ndarray:
    out = np.asarray(v, dtype=np.float64).reshape(3)
    n = float(np.linalg.norm(out))
    if n < 1e-12:
        out = np.asarray(fallback, dtype=np.float64).reshape(3)
        n = float(np.linalg.norm(out))
        if n < 1e-12:
            return np.array([0.0, 0.0, 1.0], dtype=np.float64)
    return out / n


def earth_radius_from_distance(distance: float) -> float:
    d = float(distance)
    if not np.isfinite(d) or d <= 0.0:
        raise ValueError(f"distance must be a positive finite number, got {distance!r}")
    return EARTH_RADIUS_SCALE / d


def distance_from_position(position: tuple[float, float, float] | list[float] | np.ndarray) -> float:
    return float(np.linalg.norm(np.asarray(position, dtype=np.float64).reshape(3)))


def globe_vector(lat_deg: float, lon_deg: float) -> np.ndarray:
    """Unit vector in globe space pointing at (lat, lon)."""
    lat = np.deg2rad(float(lat_deg))
    lon = np.deg2rad(float(lon_deg))
    return np.array(
        [
            -np.cos(lat) * np.cos(lon),
            -np.sin(lat),
            np.cos(lat) * np.sin(lon),
        ],
        dtype=np.float64,
    )


def lat_lon_north_rotation_matrix(lat_deg: float, lon_deg: float) -> np.ndarray:
    """Rotation taking globe space to view space, centered on (lat, lon) with north up.

    Rows are the view axes (x right, y up, z toward the viewer) expressed in
    globe space, so `m @ globe_vector(lat, lon)` is (0, 0, 1).
    """
    z = globe_vector(lat_deg, lon_deg)
    x = normalized_vec3(np.cross(np.array([0.0, 1.0, 0.0]), z), (1.0, 0.0, 0.0))
    y = normalized_vec3(np.cross(z, x), (0.0, 1.0, 0.0))
    return np.stack([x, y, z], axis=0).astype(np.float64)


def unwrap_longitudes(lon0: float, lon1: float) -> tuple[float, float]:
    """Make a pair of longitudes safe to blend linearly.

    The spacecraft ground track moves westward, so when the second longitude
    is larger the pair straddles the antimeridian and the first one is
    shifted by a full turn.
    """
    a = float(lon0)
    b = float(lon1)
    if b > a:
        a += 360.0
    return a, b


def wrap_longitude(lon: float) -> float:
    out = float(lon)
    while out > 180.0:
        out -= 360.0
    while out < -180.0:
        out += 360.0
    return out


def _viewport_scale(radius_px: float, width: float, height: float) -> tuple[float, float]:
    min_size = float(min(width, height))
    if min_size <= 0.0:
        raise ValueError("viewport width and height must be positive")
    if float(radius_px) <= 0.0:
        raise ValueError("radius_px must be positive")
    return min_size, float(radius_px) / (min_size / 2.0)


def normal_from_screen_coord(pos: ScreenCoord, radius_px: float, width: float, height: float) -> np.ndarray | None:
    """View-space surface normal of the globe under a screen position.

    Returns None when the position is outside the globe's disk.
    """
    min_size, scale = _viewport_scale(radius_px, width, height)
    u = (2.0 * float(pos[0]) - float(width)) / min_size / scale
    v = (2.0 * float(pos[1]) - float(height)) / min_size / scale
    xy_sq = u * u + v * v
    if xy_sq > 1.0:
        return None
    return np.array([u, v, float(np.sqrt(1.0 - xy_sq))], dtype=np.float64)


def lat_lon_from_normal(normal: np.ndarray, orientation: np.ndarray) -> tuple[float, float]:
    g = np.asarray(orientation, dtype=np.float64).reshape(3, 3).T @ np.asarray(normal, dtype=np.float64).reshape(3)
    length_xz = float(np.hypot(g[0], g[2]))
    lat = float(np.degrees(np.arctan2(length_xz, g[1]))) - 90.0
    lon = wrap_longitude(180.0 - float(np.degrees(np.arctan2(g[2], g[0]))))
    return lat, lon


def lat_lon_from_screen_coord(
    pos: ScreenCoord,
    orientation: np.ndarray,
    radius_px: float,
    width: float,
    height: float,
) -> tuple[float, float] | None:
    normal = normal_from_screen_coord(pos, radius_px, width, height)
    if normal is None:
        return None
    return lat_lon_from_normal(normal, orientation)


def screen_coord_from_lat_lon(
    lat_deg: float,
    lon_deg: float,
    orientation: np.ndarray,
    radius_px: float,
    width: float,
    height: float,
) -> ScreenCoord | None:
    """Inverse of `lat_lon_from_screen_coord`; None when the point faces away."""
    min_size, scale = _viewport_scale(radius_px, width, height)
    n = np.asarray(orientation, dtype=np.float64).reshape(3, 3) @ globe_vector(lat_deg, lon_deg)
    if float(n[2]) < 0.0:
        return None
    x = (float(n[0]) * scale * min_size + float(width)) / 2.0
    y = (float(n[1]) * scale * min_size + float(height)) / 2.0
    return x, y


def pivot_normal(pivot_normal_view: np.ndarray, pivot_orientation: np.ndarray, current_orientation: np.ndarray) -> np.ndarray:
    """Carry a view-space normal captured under one orientation into another."""
    r_pivot = np.asarray(pivot_orientation, dtype=np.float64).reshape(3, 3)
    r_current = np.asarray(current_orientation, dtype=np.float64).reshape(3, 3)
    return r_current @ (r_pivot.T @ np.asarray(pivot_normal_view, dtype=np.float64).reshape(3))
