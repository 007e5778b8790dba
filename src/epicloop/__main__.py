from __future__ import annotations

import argparse
import logging

from .config import PlaybackConfig
from .runtime.server import run
from .sources.epic_api import SOURCES


def main() -> None:
    p = argparse.ArgumentParser(prog="epicloop", description="epicloop: continuous playback of EPIC Earth frames")
    p.add_argument("--host", default="127.0.0.1")
    p.add_argument("--port", type=int, default=8000)
    p.add_argument("--source", choices=SOURCES, default=None)
    p.add_argument("--speed", type=float, default=None, help="playback speed in seconds of data per second")
    p.add_argument("--no-play", action="store_true", help="start paused")
    p.add_argument("--day", default=None, help="start day, YYYY-MM-DD (default: last available day)")
    p.add_argument("--time", default=None, help="start time of day, HH:MM:SS UTC (default: now)")
    p.add_argument("--range-days", type=float, default=None, help="loop over this many days from the start time")
    p.add_argument("--cache-path", default=None)
    p.add_argument("--no-disk-cache", action="store_true")
    p.add_argument("--log-level", default="info", choices=["critical", "error", "warning", "info", "debug"])
    args = p.parse_args()

    logging.basicConfig(
        level=getattr(logging, args.log_level.upper()),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    config = PlaybackConfig.from_env().with_overrides(
        source=args.source,
        speed=args.speed,
        play=False if args.no_play else None,
        day=args.day,
        time=args.time,
        range_sec=args.range_days * 24 * 3600 if args.range_days else None,
        cache_path=args.cache_path,
        use_disk_cache=False if args.no_disk_cache else None,
    )

    srv = run(host=args.host, port=args.port, config=config, log_level=args.log_level)
    print(srv.url)

    # Block forever (so it behaves like a normal CLI server)
    import time

    try:
        while srv.thread.is_alive():
            time.sleep(1.0)
    except KeyboardInterrupt:
        srv.stop()


if __name__ == "__main__":
    main()
