from __future__ import annotations

from typing import Any

import numpy as np

from ...core.day_map import time_from_date_string


def parse_bool(value: Any, *, field: str) -> bool:
    if isinstance(value, bool):
        return value
    if value is None:
        raise ValueError(f"Missing {field}")
    s = str(value).strip().lower()
    if s in {"1", "true", "yes", "on"}:
        return True
    if s in {"0", "false", "no", "off"}:
        return False
    raise ValueError(f"Invalid {field}")


def parse_finite(value: Any, *, field: str) -> float:
    if value is None or isinstance(value, bool):
        raise ValueError(f"Missing {field}" if value is None else f"Invalid {field}")
    try:
        v = float(value)
    except Exception as ex:
        raise ValueError(f"Invalid {field}") from ex
    if not np.isfinite(v):
        raise ValueError(f"Invalid {field}")
    return v


def parse_time_body(body: dict[str, Any]) -> float:
    """Cursor time from `timeSec` (UTC seconds) or `date` ("YYYY-MM-DD HH:MM:SS")."""
    has_sec = body.get("timeSec") is not None
    has_date = body.get("date") is not None
    if has_sec and has_date:
        raise ValueError("Provide only one of timeSec or date")
    if has_sec:
        return parse_finite(body.get("timeSec"), field="timeSec")
    if has_date:
        return float(time_from_date_string(str(body.get("date"))))
    raise ValueError("Missing field: timeSec or date")


def parse_zoom_body(body: dict[str, Any]) -> tuple[float, float] | None:
    """Screen position to zoom on, or None to unzoom (`{"zoom": false}` or no position)."""
    if "zoom" in body and not parse_bool(body.get("zoom"), field="zoom"):
        return None
    if body.get("x") is None and body.get("y") is None:
        return None
    return parse_finite(body.get("x"), field="x"), parse_finite(body.get("y"), field="y")


def parse_slot(slot: str) -> int:
    s = str(slot).strip().lower()
    if s in {"0", "prev", "previous"}:
        return 0
    if s in {"1", "next"}:
        return 1
    raise KeyError(slot)
