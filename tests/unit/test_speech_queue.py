import asyncio

import pytest

from commentator.domain.models import Emotion, SpeechItem, SpeechOrigin
from commentator.realtime.speech_queue import (
    SpeechConfig,
    SpeechQueue,
    SpeechWorker,
    estimate_speech_duration,
)


def _item(text: str, origin: SpeechOrigin = SpeechOrigin.TRIGGER, created_at: float = 1000.0) -> SpeechItem:
    return SpeechItem(text=text, origin=origin, trigger_label="periodic", created_at=created_at)


class Recorder:
    def __init__(self):
        self.spoken = []
        self.sleeps = []
        self.active = 0
        self.max_active = 0

    async def on_speak(self, item):
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        self.spoken.append(item)

    async def sleep(self, seconds):
        self.sleeps.append(seconds)
        await asyncio.sleep(0)
        self.active -= 1


def test_estimate_speech_duration():
    assert estimate_speech_duration("gm") == 3.0
    assert estimate_speech_duration(" ".join(["word"] * 20)) == pytest.approx(4.0)
    assert estimate_speech_duration("a b c", seconds_per_word=2.0, min_seconds=1.0) == 6.0


def test_trigger_items_dropped_when_backlog_full():
    queue = SpeechQueue(max_pending=2)

    assert queue.offer(_item("one"))
    assert queue.offer(_item("two"))
    assert queue.is_saturated()
    assert not queue.offer(_item("three"))
    assert queue.dropped == 1

    assert queue.offer(_item("operator line", origin=SpeechOrigin.SYSTEM))
    assert queue.size() == 3


def test_operator_lines_stop_at_hard_cap():
    queue = SpeechQueue(max_pending=2)
    assert queue.max_system_pending == 6

    accepted = [queue.offer(_item(f"line {i}", origin=SpeechOrigin.SYSTEM)) for i in range(8)]

    assert accepted == [True] * 6 + [False, False]
    assert queue.size() == 6
    assert queue.dropped == 2

    with pytest.raises(ValueError):
        SpeechQueue(max_pending=3, max_system_pending=2)


@pytest.mark.asyncio
async def test_worker_speaks_one_at_a_time_in_order(fakes):
    queue = SpeechQueue(max_pending=5)
    recorder = Recorder()
    worker = SpeechWorker(
        queue,
        recorder.on_speak,
        config=SpeechConfig(gap_seconds=0.5),
        clock=fakes.FakeClock(),
        sleep=recorder.sleep,
    )
    for text in ("first line", "second line here", "third"):
        queue.offer(_item(text))

    worker.start()
    await asyncio.wait_for(worker.drain(), timeout=1)
    await worker.stop()

    assert [i.text for i in recorder.spoken] == ["first line", "second line here", "third"]
    assert recorder.max_active == 1
    assert recorder.sleeps == [3.5, 3.5, 3.5]
    assert worker.spoken_count == 3
    assert worker.last_spoken_at is not None
    assert worker.last_spoken_clock == 1000.0


@pytest.mark.asyncio
async def test_stale_trigger_items_are_skipped(fakes):
    clock = fakes.FakeClock(now=1000.0)
    queue = SpeechQueue()
    recorder = Recorder()
    worker = SpeechWorker(
        queue, recorder.on_speak, config=SpeechConfig(max_age_seconds=30), clock=clock, sleep=recorder.sleep
    )
    queue.offer(_item("old news", created_at=900.0))
    queue.offer(_item("old but operator", origin=SpeechOrigin.SYSTEM, created_at=900.0))
    queue.offer(_item("fresh", created_at=995.0))

    worker.start()
    await asyncio.wait_for(worker.drain(), timeout=1)
    await worker.stop()

    assert [i.text for i in recorder.spoken] == ["old but operator", "fresh"]
    assert worker.stale_dropped == 1


@pytest.mark.asyncio
async def test_audio_failure_speaks_text_only_and_handler_errors_do_not_stop_worker(fakes):
    queue = SpeechQueue()
    spoken = []

    async def render(text):
        if text == "broken audio":
            raise RuntimeError("tts down")
        return "/audio/ok.mp3"

    async def on_speak(item):
        spoken.append(item)
        if item.text == "explodes":
            raise RuntimeError("viewer bug")

    async def no_sleep(_):
        await asyncio.sleep(0)

    worker = SpeechWorker(queue, on_speak, render_audio=render, clock=fakes.FakeClock(), sleep=no_sleep)
    for text in ("broken audio", "explodes", "fine"):
        queue.offer(SpeechItem(text=text, emotion=Emotion.BULLISH, created_at=1000.0))

    worker.start()
    await asyncio.wait_for(worker.drain(), timeout=1)
    await worker.stop()

    assert [i.text for i in spoken] == ["broken audio", "explodes", "fine"]
    assert spoken[0].audio_ref is None
    assert spoken[2].audio_ref == "/audio/ok.mp3"
    assert worker.spoken_count == 3


def test_blank_speech_rejected():
    with pytest.raises(ValueError):
        SpeechItem(text="   ")


@pytest.mark.asyncio
async def test_drain_returns_when_worker_never_started(fakes):
    queue = SpeechQueue()
    recorder = Recorder()
    worker = SpeechWorker(queue, recorder.on_speak, clock=fakes.FakeClock(), sleep=recorder.sleep)
    queue.offer(_item("nobody will say this"))

    await asyncio.wait_for(worker.drain(), timeout=1)

    assert queue.size() == 1
    assert recorder.spoken == []
