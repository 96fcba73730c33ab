"""Fan-out of speech and emotion records to passive viewers."""

from __future__ import annotations

import asyncio
import itertools
import json
import logging
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

Record = Dict[str, Any]

_ids = itertools.count(1)


class ViewerGone(Exception):
    """Viewer closed or cannot keep up; drop it."""


def format_sse(record: Record) -> str:
    return f"data: {json.dumps(record)}\n\n"


def speak_record(text: str, emotion: str, audio: Optional[str]) -> Record:
    return {"type": "speak", "text": text, "emotion": emotion, "audio": audio}


def emotion_record(emotion: str) -> Record:
    return {"type": "emotion", "emotion": emotion}


class ViewerConnection:
    def __init__(self, queue_size: int = 16):
        self.id = next(_ids)
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=queue_size)
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def send_nowait(self, record: Record) -> None:
        if self._closed:
            raise ViewerGone(f"viewer {self.id} closed")
        try:
            self._queue.put_nowait(record)
        except asyncio.QueueFull as exc:
            raise ViewerGone(f"viewer {self.id} is not keeping up") from exc

    async def next_message(self, timeout: Optional[float] = None) -> Optional[Record]:
        """Next record, or None on timeout (used for keepalives)."""
        if self._closed and self._queue.empty():
            raise ViewerGone(f"viewer {self.id} closed")
        try:
            if timeout is None:
                return await self._queue.get()
            return await asyncio.wait_for(self._queue.get(), timeout=timeout)
        except asyncio.TimeoutError:
            return None

    def close(self) -> None:
        self._closed = True

    def pending(self) -> int:
        return self._queue.qsize()


class BroadcastHub:
    def __init__(self, queue_size: int = 16):
        self._queue_size = queue_size
        self._viewers: Dict[int, ViewerConnection] = {}
        self.delivered = 0

    @property
    def viewer_count(self) -> int:
        return len(self._viewers)

    def connect(self) -> ViewerConnection:
        conn = ViewerConnection(self._queue_size)
        self._viewers[conn.id] = conn
        logger.info("Viewer %s connected (%s total)", conn.id, self.viewer_count)
        return conn

    def disconnect(self, conn: ViewerConnection) -> None:
        conn.close()
        if self._viewers.pop(conn.id, None) is not None:
            logger.info("Viewer %s disconnected (%s total)", conn.id, self.viewer_count)

    def broadcast(self, record: Record) -> int:
        """Best-effort write to every viewer; never blocks, failed viewers are removed."""
        gone: List[ViewerConnection] = []
        sent = 0
        for conn in list(self._viewers.values()):
            try:
                conn.send_nowait(record)
                sent += 1
            except ViewerGone as exc:
                logger.debug("Dropping viewer: %s", exc)
                gone.append(conn)
        for conn in gone:
            self.disconnect(conn)
        self.delivered += sent
        return sent

    def close_all(self) -> None:
        for conn in list(self._viewers.values()):
            self.disconnect(conn)
