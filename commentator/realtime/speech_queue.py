"""
Speech queue: single-speaker serialization of utterances.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Awaitable, Callable, Deque, Optional

from commentator.domain.models import SpeechItem, SpeechOrigin

logger = logging.getLogger(__name__)

SpeakHandler = Callable[[SpeechItem], Awaitable[None]]
AudioRenderer = Callable[[str], Awaitable[Optional[str]]]


@dataclass(frozen=True)
class SpeechConfig:
    seconds_per_word: float = 0.2
    min_seconds: float = 3.0
    gap_seconds: float = 0.5
    max_pending: int = 3
    max_age_seconds: float = 30.0


def estimate_speech_duration(text: str, seconds_per_word: float = 0.2, min_seconds: float = 3.0) -> float:
    """Word-count heuristic; the real playback happens on a disconnected viewer."""
    words = len(text.split())
    return max(min_seconds, words * seconds_per_word)


class SpeechQueue:
    def __init__(self, max_pending: int = 3, max_system_pending: Optional[int] = None):
        if max_pending < 1:
            raise ValueError("max_pending must be at least 1")
        if max_system_pending is None:
            max_system_pending = max_pending * 3
        if max_system_pending < max_pending:
            raise ValueError("max_system_pending cannot be below max_pending")
        self._items: Deque[SpeechItem] = deque()
        self._max_pending = max_pending
        self._max_system_pending = max_system_pending
        self._available = asyncio.Event()
        self.dropped = 0

    @property
    def max_pending(self) -> int:
        return self._max_pending

    @property
    def max_system_pending(self) -> int:
        return self._max_system_pending

    def offer(self, item: SpeechItem) -> bool:
        """
        Enqueue unless the backlog bound for the item's origin is reached.

        Trigger items stop at max_pending; operator/system lines may go
        past it up to max_system_pending.
        """
        if item.origin == SpeechOrigin.TRIGGER and self.is_saturated():
            self.dropped += 1
            logger.info("Speech queue full (%s pending); dropping %s", len(self._items), item.trigger_label)
            return False
        if len(self._items) >= self._max_system_pending:
            self.dropped += 1
            logger.warning("Speech queue at hard cap (%s pending); rejecting operator line", len(self._items))
            return False
        self._items.append(item)
        self._available.set()
        return True

    async def get(self) -> SpeechItem:
        while not self._items:
            self._available.clear()
            await self._available.wait()
        item = self._items.popleft()
        if not self._items:
            self._available.clear()
        return item

    def is_saturated(self) -> bool:
        return len(self._items) >= self._max_pending

    def size(self) -> int:
        return len(self._items)

    def clear(self) -> int:
        count = len(self._items)
        self._items.clear()
        self._available.clear()
        return count


class SpeechWorker:
    def __init__(
        self,
        queue: SpeechQueue,
        on_speak: SpeakHandler,
        render_audio: Optional[AudioRenderer] = None,
        config: SpeechConfig = SpeechConfig(),
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._queue = queue
        self._on_speak = on_speak
        self._render_audio = render_audio
        self._config = config
        self._clock = clock
        self._sleep = sleep
        self._task: Optional[asyncio.Task] = None
        self._stop = asyncio.Event()
        self._idle = asyncio.Event()
        self._idle.set()
        self.speaking: Optional[SpeechItem] = None
        self.spoken_count = 0
        self.stale_dropped = 0
        self.last_spoken_at: Optional[datetime] = None
        self.last_spoken_clock: Optional[float] = None

    @property
    def is_speaking(self) -> bool:
        return self.speaking is not None

    def start(self) -> None:
        if self._task is None or self._task.done():
            self._stop.clear()
            self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        self._stop.set()
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        self.speaking = None
        self._idle.set()

    async def drain(self) -> None:
        """Wait until the queue is empty and nothing is speaking."""
        while self._queue.size() or not self._idle.is_set():
            if self._task is None or self._task.done():
                return
            await self._idle.wait()
            if self._queue.size():
                await asyncio.sleep(0)

    async def _run(self) -> None:
        while not self._stop.is_set():
            item = await self._queue.get()
            self._idle.clear()
            try:
                await self._speak(item)
            finally:
                self.speaking = None
                if not self._queue.size():
                    self._idle.set()

    async def _speak(self, item: SpeechItem) -> None:
        age = self._clock() - item.created_at
        if item.origin == SpeechOrigin.TRIGGER and age > self._config.max_age_seconds:
            self.stale_dropped += 1
            logger.info("Dropping stale utterance (%.1fs old): %s", age, item.trigger_label)
            return

        audio_ref = None
        if self._render_audio is not None:
            try:
                audio_ref = await self._render_audio(item.text)
            except Exception as exc:
                logger.warning("Audio rendering failed, speaking text-only: %s", exc)
        if audio_ref:
            item = replace(item, audio_ref=audio_ref)

        self.speaking = item
        try:
            await self._on_speak(item)
        except Exception:
            logger.exception("Speak handler failed; continuing with the next utterance")
        self.spoken_count += 1
        self.last_spoken_at = datetime.now(tz=timezone.utc)
        self.last_spoken_clock = self._clock()

        duration = estimate_speech_duration(
            item.text,
            seconds_per_word=self._config.seconds_per_word,
            min_seconds=self._config.min_seconds,
        )
        await self._sleep(duration + self._config.gap_seconds)
