from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any, AsyncIterator

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response

from ..io.image import DecodedImage, encode_image
from .parsing import parse_bool, parse_finite, parse_slot, parse_time_body, parse_zoom_body

if TYPE_CHECKING:
    from ..runtime.session import ViewerSession


def create_api_app(session: "ViewerSession", *, manage_session: bool = True, run_ticker: bool = True) -> FastAPI:
    """HTTP surface over one `ViewerSession`.

    With `manage_session` the session is started and closed with the app's
    lifespan, on the server's event loop.
    """

    @asynccontextmanager
    async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
        if manage_session:
            await session.start(run_ticker=run_ticker)
        try:
            yield
        finally:
            if manage_session:
                await session.close()

    app = FastAPI(title="epicloop", version="0.1.0", lifespan=lifespan)
    app.state.session = session

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[
            "http://localhost:5173",
            "http://127.0.0.1:5173",
        ],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    cursor = session.cursor

    def _ok(accepted: bool) -> dict[str, Any]:
        return {"ok": bool(accepted), "cursor": cursor.state()}

    @app.get("/healthz")
    async def healthz() -> dict[str, bool]:
        return {"ok": True}

    @app.get("/api/state")
    async def get_state() -> dict:
        return session.state()

    @app.get("/api/config")
    async def get_config() -> dict:
        return session.config.to_dict()

    @app.post("/api/cursor/time")
    async def set_cursor_time(body: dict) -> dict:
        try:
            t = parse_time_body(body)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
        return _ok(cursor.set_cursor_time(t))

    @app.post("/api/cursor/playing")
    async def set_playing(body: dict) -> dict:
        try:
            playing = parse_bool(body.get("playing"), field="playing")
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
        cursor.set_playing(playing)
        return _ok(True)

    @app.post("/api/cursor/holding")
    async def set_holding(body: dict) -> dict:
        try:
            holding = parse_bool(body.get("holding"), field="holding")
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
        cursor.set_holding(holding)
        return _ok(True)

    @app.post("/api/cursor/speed")
    async def set_speed(body: dict) -> dict:
        try:
            speed = parse_finite(body.get("speed"), field="speed")
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
        cursor.set_speed(speed)
        return _ok(True)

    @app.post("/api/cursor/drag")
    async def drag(body: dict) -> dict:
        try:
            dx = parse_finite(body.get("dx"), field="dx")
            dt = parse_finite(body.get("dt", 0.0), field="dt")
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
        return _ok(cursor.drag(dx, dt))

    @app.post("/api/cursor/zoom")
    async def set_zoom(body: dict) -> dict:
        try:
            pos = parse_zoom_body(body)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
        return _ok(cursor.set_zoom_pivot(pos))

    @app.get("/api/frames/{slot}/image")
    async def get_frame_image(slot: str) -> Response:
        try:
            index = parse_slot(slot)
        except KeyError:
            raise HTTPException(status_code=404, detail=f"Unknown frame slot: {slot}")
        frame = cursor.bound_pair[index]
        if frame is None or not frame.is_loaded:
            raise HTTPException(status_code=404, detail="Frame image is not resident")
        image = frame.resource
        if not isinstance(image, DecodedImage):
            raise HTTPException(status_code=500, detail="Unexpected frame resource")
        cursor.mark_used(frame)
        payload = await asyncio.to_thread(encode_image, image, mime_type="image/png")
        return Response(
            content=payload,
            media_type="image/png",
            headers={"X-Frame-Image": frame.image_id, "X-Frame-Date": frame.date},
        )

    return app


__all__ = ["create_api_app"]
