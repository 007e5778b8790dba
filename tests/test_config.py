from __future__ import annotations

from pathlib import Path

from epicloop.config import PlaybackConfig


def _raises_value_error(**kw) -> bool:
    try:
        PlaybackConfig(**kw)
    except ValueError:
        return True
    return False


def test_defaults() -> None:
    cfg = PlaybackConfig()
    assert cfg.source == "nasa"
    assert cfg.speed == 3600.0
    assert cfg.play is True
    assert cfg.effective_loop_range_sec == 24 * 3600
    assert cfg.memory_budget_bytes == 100 * 2048 * 2048 * 4
    assert cfg.resolved_cache_path() == Path.home() / ".cache" / "epicloop" / "cache.sqlite3"
    d = cfg.to_dict()
    assert d["viewport"] == [1024, 1024]
    assert d["zoom"] is None


def test_validation() -> None:
    assert _raises_value_error(source="ftp")
    assert _raises_value_error(day="05/01/2024")
    assert _raises_value_error(snap_factor=0.0)
    assert _raises_value_error(decay=1.5)
    assert _raises_value_error(range_sec=-1.0)
    assert _raises_value_error(memory_budget_bytes=0)
    assert _raises_value_error(viewport=(0, 10))
    assert not _raises_value_error(source="bt-cdn", day="2024-05-01", range_sec=3600.0)


def test_with_overrides_ignores_none_and_rejects_unknown_fields() -> None:
    cfg = PlaybackConfig().with_overrides(speed=60.0, day=None, use_disk_cache=False)
    assert cfg.speed == 60.0
    assert cfg.day is None
    assert cfg.resolved_cache_path() is None

    windowed = cfg.with_overrides(range_sec=7200.0)
    assert windowed.effective_loop_range_sec == 7200.0

    try:
        cfg.with_overrides(colour="blue")
    except ValueError as exc:
        assert "colour" in str(exc)
    else:  # pragma: no cover
        raise AssertionError("expected ValueError")


def test_from_env() -> None:
    cfg = PlaybackConfig.from_env(
        {
            "EPICLOOP_SOURCE": "bt-s3",
            "EPICLOOP_PLAY": "no",
            "EPICLOOP_SPEED": "120",
            "EPICLOOP_VIEWPORT": "800x600",
            "EPICLOOP_ZOOM": "10.5,-20",
            "EPICLOOP_CACHE_PATH": "/tmp/epic.sqlite3",
            "EPICLOOP_DAY": "",
            "UNRELATED": "1",
        }
    )
    assert cfg.source == "bt-s3"
    assert cfg.play is False
    assert cfg.speed == 120.0
    assert cfg.viewport == (800, 600)
    assert cfg.zoom == (10.5, -20.0)
    assert cfg.day is None
    assert cfg.resolved_cache_path() == Path("/tmp/epic.sqlite3")

    try:
        PlaybackConfig.from_env({"EPICLOOP_PLAY": "maybe"})
    except ValueError as exc:
        assert "EPICLOOP_PLAY" in str(exc)
    else:  # pragma: no cover
        raise AssertionError("expected ValueError")
