"""
Viewer streams (SSE + WebSocket) and rendered audio files.
"""

import logging
from typing import AsyncIterator

from fastapi import APIRouter, Depends, HTTPException, WebSocket, WebSocketDisconnect
from fastapi.responses import FileResponse, StreamingResponse

from commentator.api.routes.control import get_engine
from commentator.realtime.broadcast import BroadcastHub, ViewerConnection, ViewerGone, format_sse
from commentator.realtime.runtime import CommentaryEngine

logger = logging.getLogger(__name__)

router = APIRouter()


async def _sse_stream(hub: BroadcastHub, conn: ViewerConnection, keepalive: float) -> AsyncIterator[str]:
    try:
        yield ": connected\n\n"
        while True:
            record = await conn.next_message(timeout=keepalive)
            if record is None:
                yield ": keepalive\n\n"
                continue
            yield format_sse(record)
    except ViewerGone:
        return
    finally:
        hub.disconnect(conn)


@router.get("/events")
async def events(engine: CommentaryEngine = Depends(get_engine)):
    keepalive = engine.config.viewer_keepalive_seconds
    conn = engine.hub.connect()
    return StreamingResponse(
        _sse_stream(engine.hub, conn, keepalive),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
    )


@router.websocket("/ws/events")
async def events_socket(websocket: WebSocket):
    engine = getattr(websocket.app.state, "engine", None)
    if engine is None:
        await websocket.close(code=1013)
        return
    keepalive = engine.config.viewer_keepalive_seconds

    await websocket.accept()
    conn = engine.hub.connect()
    try:
        while True:
            record = await conn.next_message(timeout=keepalive)
            if record is None:
                await websocket.send_json({"type": "ping"})
                continue
            await websocket.send_json(record)
    except (WebSocketDisconnect, ViewerGone):
        pass
    except Exception as exc:
        logger.debug("Viewer socket closed: %s", exc)
    finally:
        engine.hub.disconnect(conn)


@router.get("/audio/{name}")
async def audio(name: str, engine: CommentaryEngine = Depends(get_engine)):
    store = engine.audio_store
    path = store.path_for(name) if store else None
    if path is None:
        raise HTTPException(status_code=404, detail="Audio not found")
    return FileResponse(path, media_type="audio/mpeg")
