from __future__ import annotations

import os
from typing import Any, Protocol

from ..core.day_map import validate_day


class EpicApi(Protocol):
    """URL layout of one EPIC data source."""

    name: str

    def call_url(self, call: str) -> str: ...

    def query_params(self) -> dict[str, str]: ...

    def available_days_call(self) -> str: ...

    def day_call(self, day: str) -> str: ...

    def image_url(self, date: str, image_id: str) -> str: ...

    def parse_available_days(self, payload: Any) -> list[str]: ...


def _sorted_days(days: list[str]) -> list[str]:
    out = sorted({validate_day(d) for d in days})
    return out


class NasaEpicApi:
    """The public NASA EPIC API (natural color collection)."""

    name = "nasa"
    JSON_URL = "https://epic.gsfc.nasa.gov/api/natural/"
    IMAGE_URL = "https://api.nasa.gov/EPIC/archive/natural/"
    IMAGE_FORMAT = "jpg"

    def __init__(self, api_key: str | None = None) -> None:
        if api_key is None:
            api_key = os.environ.get("EPICLOOP_NASA_API_KEY", "DEMO_KEY")
        self.api_key = str(api_key).strip()

    def call_url(self, call: str) -> str:
        return self.JSON_URL + call

    def query_params(self) -> dict[str, str]:
        return {"api_key": self.api_key} if self.api_key else {}

    def available_days_call(self) -> str:
        return "all"

    def day_call(self, day: str) -> str:
        return "date/" + validate_day(day)

    def image_url(self, date: str, image_id: str) -> str:
        if not date or not image_id:
            raise ValueError("Invalid date or image name")
        day_path = str(date).split(" ")[0].replace("-", "/")
        return f"{self.IMAGE_URL}{day_path}/{self.IMAGE_FORMAT}/{image_id}.{self.IMAGE_FORMAT}"

    def parse_available_days(self, payload: Any) -> list[str]:
        if not isinstance(payload, list):
            raise ValueError("Expected a list of available days")
        days: list[str] = []
        for item in payload:
            if isinstance(item, dict) and "date" in item:
                days.append(str(item["date"]).split(" ")[0])
            else:
                raise ValueError(f"Unexpected available-day entry {item!r}")
        return _sorted_days(days)


class BlueturnApi:
    """Blueturn mirror of the EPIC catalog, served from S3 or its CDN."""

    S3_URL = "https://storage.googleapis.com/content.blueturn.earth/images/"
    CDN_URL = "https://content.blueturn.earth/images/"
    IMAGE_FORMAT = "jpg"

    def __init__(self, *, use_cdn: bool = False) -> None:
        self.use_cdn = bool(use_cdn)
        self.base_url = self.CDN_URL if self.use_cdn else self.S3_URL
        self.name = "bt-cdn" if self.use_cdn else "bt-s3"

    def call_url(self, call: str) -> str:
        return self.base_url + call

    def query_params(self) -> dict[str, str]:
        return {}

    def available_days_call(self) -> str:
        return "available_dates.json"

    def day_call(self, day: str) -> str:
        return f"list/images_{validate_day(day)}.json"

    def image_url(self, date: str, image_id: str) -> str:
        if not date or not image_id:
            raise ValueError("Invalid date or image name")
        return f"{self.base_url}{self.IMAGE_FORMAT}/{image_id}.{self.IMAGE_FORMAT}"

    def parse_available_days(self, payload: Any) -> list[str]:
        if not isinstance(payload, list):
            raise ValueError("Expected a list of available days")
        return _sorted_days([str(item) for item in payload])


SOURCES = ("nasa", "bt-s3", "bt-cdn")


def make_api(source: str, *, api_key: str | None = None) -> EpicApi:
    s = str(source or "nasa").strip().lower()
    if s == "nasa":
        return NasaEpicApi(api_key=api_key)
    if s == "bt-s3":
        return BlueturnApi(use_cdn=False)
    if s == "bt-cdn":
        return BlueturnApi(use_cdn=True)
    raise ValueError(f"Unknown EPIC source {source!r}. Supported: {list(SOURCES)}")
