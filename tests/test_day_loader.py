from __future__ import annotations

import asyncio
import json

import httpx

from epicloop.errors import CatalogCorrupt
from epicloop.io.stores import MemoryBlobStore
from epicloop.sources.day_loader import DayCatalogLoader
from epicloop.sources.epic_api import BlueturnApi, NasaEpicApi, make_api
from epicloop.sources.transport import HttpTransport

from helpers import HOURS, day_page


class _Server:
    """Canned EPIC JSON responses keyed by URL path, with a request log."""

    def __init__(self, routes: dict[str, object]) -> None:
        self.routes = routes
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        body = self.routes.get(request.url.path)
        if body is None:
            return httpx.Response(404)
        if isinstance(body, (bytes, str)):
            return httpx.Response(200, content=body)
        return httpx.Response(200, json=body)

    def paths(self) -> list[str]:
        return [r.url.path for r in self.requests]


class _Today:
    def __init__(self, day: str) -> None:
        self.day = day

    def __call__(self) -> str:
        return self.day


def _loader(server: _Server, store: MemoryBlobStore | None, today: _Today) -> DayCatalogLoader:
    transport = HttpTransport(client=httpx.AsyncClient(transport=httpx.MockTransport(server)))
    return DayCatalogLoader(NasaEpicApi(api_key="TEST"), transport, store, today=today)


ALL = "/api/natural/all"
DAY = "/api/natural/date/2024-05-02"


def test_available_days_are_sorted_and_sent_with_the_api_key() -> None:
    server = _Server({ALL: [{"date": "2024-05-02"}, {"date": "2024-05-01"}]})

    async def main() -> None:
        loader = _loader(server, None, _Today("2024-05-10"))
        assert await loader.load_available_days() == ["2024-05-01", "2024-05-02"]

    asyncio.run(main())
    assert server.requests[0].url.params["api_key"] == "TEST"


def test_cached_calls_are_reused_within_the_same_day() -> None:
    server = _Server({DAY: day_page("2024-05-02", HOURS)})
    store = MemoryBlobStore()
    today = _Today("2024-05-10")

    async def main() -> None:
        loader = _loader(server, store, today)
        first = await loader.load_day("2024-05-02")
        second = await loader.load_day("2024-05-02")
        assert first == second
        assert len(first) == 4
        assert server.paths() == [DAY]
        assert await store.get(DayCatalogLoader.CACHE_DATE_KEY) == b"2024-05-10"

        # The next day invalidates every cached call.
        today.day = "2024-05-11"
        await loader.load_day("2024-05-02")
        assert server.paths() == [DAY, DAY]
        assert await store.get(DayCatalogLoader.CACHE_DATE_KEY) == b"2024-05-11"

        await loader.load_day("2024-05-02", nocache=True)
        assert server.paths() == [DAY, DAY, DAY]

    asyncio.run(main())


def test_corrupted_cache_entry_is_refetched() -> None:
    server = _Server({DAY: day_page("2024-05-02", HOURS)})
    store = MemoryBlobStore()

    async def main() -> None:
        await store.put(DayCatalogLoader.CACHE_DATE_KEY, b"2024-05-10")
        await store.put("date/2024-05-02", b"{not json")
        loader = _loader(server, store, _Today("2024-05-10"))

        page = await loader.load_day("2024-05-02")
        assert len(page) == 4
        assert server.paths() == [DAY]
        assert json.loads(await store.get("date/2024-05-02") or b"") == page

    asyncio.run(main())


def test_invalid_payloads_raise_catalog_corrupt() -> None:
    server = _Server({ALL: {"oops": True}, DAY: b"<html>"})
    store = MemoryBlobStore()

    async def main() -> None:
        loader = _loader(server, store, _Today("2024-05-10"))
        for call in (loader.load_available_days(), loader.load_day("2024-05-02")):
            try:
                await call
            except CatalogCorrupt:
                pass
            else:  # pragma: no cover
                raise AssertionError("expected CatalogCorrupt")
        assert await store.get("all") is None

    asyncio.run(main())


def test_clear_cache_for_one_day_or_everything() -> None:
    store = MemoryBlobStore()

    async def main() -> None:
        loader = _loader(_Server({}), store, _Today("2024-05-10"))
        await store.put("date/2024-05-02", b"[]")
        await store.put("all", b"[]")
        await loader.clear_cache("2024-05-02")
        assert "date/2024-05-02" not in store
        assert "all" in store
        await loader.clear_cache()
        assert len(store) == 0

    asyncio.run(main())


def test_source_url_layouts() -> None:
    nasa = NasaEpicApi(api_key="K")
    assert nasa.call_url(nasa.day_call("2024-05-02")) == "https://epic.gsfc.nasa.gov/api/natural/date/2024-05-02"
    assert (
        nasa.image_url("2024-05-02 00:31:45", "epic_1b_20240502003145")
        == "https://api.nasa.gov/EPIC/archive/natural/2024/05/02/jpg/epic_1b_20240502003145.jpg"
    )
    assert nasa.query_params() == {"api_key": "K"}

    s3 = BlueturnApi()
    cdn = BlueturnApi(use_cdn=True)
    assert s3.name == "bt-s3" and cdn.name == "bt-cdn"
    assert cdn.call_url(cdn.available_days_call()) == "https://content.blueturn.earth/images/available_dates.json"
    assert s3.call_url(s3.day_call("2024-05-02")).endswith("/list/images_2024-05-02.json")
    assert cdn.image_url("2024-05-02 00:31:45", "x") == "https://content.blueturn.earth/images/jpg/x.jpg"
    assert s3.parse_available_days(["2024-05-03", "2024-05-01", "2024-05-03"]) == ["2024-05-01", "2024-05-03"]


def test_make_api_selects_sources_by_name() -> None:
    assert make_api("nasa", api_key="K").name == "nasa"
    assert make_api("BT-CDN").name == "bt-cdn"
    assert make_api("bt-s3").name == "bt-s3"
    try:
        make_api("ftp")
    except ValueError:
        pass
    else:  # pragma: no cover
        raise AssertionError("expected ValueError")
