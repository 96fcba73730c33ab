from types import SimpleNamespace

import pytest

from commentator.telegram.bot import CommentatorTelegramBot, format_status


class FakeMessage:
    def __init__(self):
        self.replies = []

    async def reply_text(self, text, parse_mode=None):
        self.replies.append(text)


def _update(chat_id=42):
    return SimpleNamespace(effective_chat=SimpleNamespace(id=chat_id), message=FakeMessage())


def test_format_status_summarizes_engine():
    text = format_status(
        {
            "live": True,
            "symbol": "SID",
            "address": "Mint",
            "feed_state": "connected",
            "polling": True,
            "queue_depth": 2,
            "viewers": 5,
            "market": {"market_cap": 42100, "change_5m": 12.5, "change_1h": -3},
            "degraded": {"text": True, "voice": False},
        }
    )

    assert "*LIVE* $SID" in text
    assert "connected (polling)" in text
    assert "MCap: $42.1k | 5m +12.5% | 1h -3.0%" in text
    assert "Degraded: text" in text


@pytest.mark.asyncio
async def test_bot_requires_token(live_harness):
    with pytest.raises(ValueError):
        CommentatorTelegramBot(None, live_harness.engine)


@pytest.mark.asyncio
async def test_say_queues_operator_line(live_harness):
    bot = CommentatorTelegramBot("123:abc", live_harness.engine)
    update = _update()

    await bot.say_command(update, SimpleNamespace(args=["gm", "chat"]))

    assert update.message.replies[0].startswith("🗣️ Queued")
    await live_harness.settle()
    assert live_harness.engine.status()["recent_lines"][-1]["text"] == "gm chat"


@pytest.mark.asyncio
async def test_other_chats_are_ignored(live_harness):
    bot = CommentatorTelegramBot("123:abc", live_harness.engine, allowed_chat_id="7")
    update = _update(chat_id=42)

    await bot.status_command(update, SimpleNamespace(args=[]))

    assert update.message.replies == []


@pytest.mark.asyncio
async def test_watch_without_address_shows_usage(live_harness):
    bot = CommentatorTelegramBot("123:abc", live_harness.engine)
    update = _update()

    await bot.watch_command(update, SimpleNamespace(args=[]))

    assert update.message.replies == ["Usage: /watch <token address>"]


@pytest.mark.asyncio
async def test_say_reports_rejected_line(live_harness):
    engine = live_harness.engine
    await engine.worker.stop()
    while engine.say("filler"):
        pass
    bot = CommentatorTelegramBot("123:abc", engine)
    update = _update()

    await bot.say_command(update, SimpleNamespace(args=["one", "more"]))

    assert update.message.replies == ["⚠️ Not queued: engine idle or speech backlog full"]
    assert engine.speech_queue.size() == engine.speech_queue.max_system_pending
