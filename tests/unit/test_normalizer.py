from datetime import datetime, timezone

from commentator.domain.models import TradeKind
from commentator.infrastructure.feeds.normalizer import (
    decode_message,
    parse_chat_reply,
    parse_timestamp,
    parse_trade_item,
    parse_trade_message,
)

MINT = "So1idMint1111111111111111111111111111pump"


def test_decode_message():
    assert decode_message('{"a": 1}') == {"a": 1}
    assert decode_message(b'{"a": 1}') == {"a": 1}
    assert decode_message("[1, 2]") is None
    assert decode_message("not json") is None
    assert decode_message(b"\xff\xfe") is None


def test_parse_timestamp_formats():
    expected = datetime(2024, 1, 1, tzinfo=timezone.utc)

    assert parse_timestamp(1704067200) == expected
    assert parse_timestamp(1704067200000) == expected
    assert parse_timestamp("1704067200") == expected
    assert parse_timestamp("2024-01-01T00:00:00Z") == expected
    assert parse_timestamp("2024-01-01T00:00:00") == expected
    assert parse_timestamp("yesterday") is None
    assert parse_timestamp(None) is None
    assert parse_timestamp(True) is None


def test_push_trade_requires_watched_mint_and_positive_amount():
    payload = {"mint": MINT, "txType": "sell", "solAmount": "0.75", "traderPublicKey": "trader", "signature": "s"}

    trade = parse_trade_message(payload, MINT)
    assert trade.kind == TradeKind.SELL
    assert trade.quantity == 0.75
    assert trade.event_id == "s"

    assert parse_trade_message(payload, "OtherMint") is None
    assert parse_trade_message({**payload, "txType": "create"}, MINT) is None
    assert parse_trade_message({**payload, "solAmount": 0}, MINT) is None
    assert parse_trade_message({**payload, "solAmount": "NaN"}, MINT) is None


def test_trade_row_converts_lamports():
    row = {"is_buy": True, "sol_amount": 1_500_000_000, "user": "wallet", "timestamp": 1704067200, "signature": "x"}

    trade = parse_trade_item(row)

    assert trade.kind == TradeKind.BUY
    assert trade.quantity == 1.5
    assert trade.actor == "wallet"
    assert parse_trade_item({**row, "timestamp": None}) is None
    assert parse_trade_item({"txType": "sell", "solAmount": 0.2, "timestamp": 1704067200}).kind == TradeKind.SELL


def test_chat_reply_author_fallbacks():
    base = {"id": 7, "text": "wen moon", "created_at": "2024-01-01T00:00:00Z"}

    assert parse_chat_reply({**base, "user": {"username": "degen", "wallet": "9xQeWvG"}}).author == "degen"
    assert parse_chat_reply({**base, "user": {"wallet": "9xQeWvG816bUx"}}).author == "9xQeWv"
    assert parse_chat_reply({**base, "user": "Abcdefghij"}).author == "Abcdef"
    assert parse_chat_reply(base).author == "anon"
    assert parse_chat_reply(base).event_id == "7"


def test_chat_reply_rejects_blank_or_untimed():
    assert parse_chat_reply({"text": "  ", "created_at": "2024-01-01T00:00:00Z"}) is None
    assert parse_chat_reply({"text": "hello"}) is None
    assert parse_chat_reply("hello") is None


def test_long_chat_is_truncated():
    chat = parse_chat_reply({"text": "a" * 500, "timestamp": 1704067200})

    assert len(chat.text) == 280
