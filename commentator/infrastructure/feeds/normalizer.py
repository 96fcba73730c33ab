"""
Payload normalization for trade and chat sources.

Every parser returns None for anything it does not understand; callers
drop those payloads without raising.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Union

from commentator.domain.models import ChatEvent, TradeEvent, TradeKind

logger = logging.getLogger(__name__)

_TRADE_KINDS = {"buy": TradeKind.BUY, "sell": TradeKind.SELL}


def decode_message(message: Union[str, bytes, bytearray]) -> Optional[Dict[str, Any]]:
    """Decode a websocket frame into a JSON object (or None)."""
    if isinstance(message, (bytes, bytearray)):
        try:
            message = bytes(message).decode("utf-8")
        except UnicodeDecodeError:
            return None
    try:
        payload = json.loads(message)
    except (TypeError, ValueError):
        return None
    return payload if isinstance(payload, dict) else None


def parse_timestamp(value: Any) -> Optional[datetime]:
    """
    Accept epoch seconds, epoch milliseconds or ISO-8601 strings.
    Naive datetimes are treated as UTC.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        seconds = float(value)
        # pump.fun mixes second and millisecond epochs
        if seconds > 1e11:
            seconds /= 1000.0
        try:
            return datetime.fromtimestamp(seconds, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    text = str(value).strip()
    if not text:
        return None
    if text.isdigit():
        return parse_timestamp(int(text))
    try:
        ts = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        return None
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts


def _positive_float(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if number != number or number <= 0:
        return None
    return number


def parse_trade_message(payload: Dict[str, Any], mint: str) -> Optional[TradeEvent]:
    """PumpPortal push frame -> TradeEvent, only for the watched mint."""
    if not isinstance(payload, dict):
        return None
    if payload.get("mint") != mint:
        return None
    kind = _TRADE_KINDS.get(str(payload.get("txType", "")).lower())
    if kind is None:
        return None
    quantity = _positive_float(payload.get("solAmount"))
    if quantity is None:
        return None
    actor = str(payload.get("traderPublicKey") or "unknown")
    occurred_at = parse_timestamp(payload.get("timestamp")) or datetime.now(tz=timezone.utc)
    event_id = payload.get("signature")
    return TradeEvent(
        kind=kind,
        quantity=quantity,
        actor=actor,
        occurred_at=occurred_at,
        event_id=str(event_id) if event_id else None,
    )


def parse_trade_item(item: Dict[str, Any]) -> Optional[TradeEvent]:
    """pump.fun trades API row -> TradeEvent."""
    if not isinstance(item, dict):
        return None
    is_buy = item.get("is_buy")
    if isinstance(is_buy, bool):
        kind = TradeKind.BUY if is_buy else TradeKind.SELL
    else:
        kind = _TRADE_KINDS.get(str(item.get("txType") or item.get("type") or "").lower())
    if kind is None:
        return None

    quantity = _positive_float(item.get("sol_amount"))
    # trades API reports lamports
    if quantity is not None and quantity >= 1e6:
        quantity /= 1e9
    if quantity is None:
        quantity = _positive_float(item.get("solAmount"))
    if quantity is None:
        return None

    occurred_at = parse_timestamp(item.get("timestamp"))
    if occurred_at is None:
        return None
    actor = str(item.get("user") or item.get("traderPublicKey") or "unknown")
    event_id = item.get("signature")
    return TradeEvent(
        kind=kind,
        quantity=quantity,
        actor=actor,
        occurred_at=occurred_at,
        event_id=str(event_id) if event_id else None,
    )


def parse_chat_reply(item: Dict[str, Any]) -> Optional[ChatEvent]:
    """pump.fun reply row -> ChatEvent. Blank text or missing timestamp is dropped."""
    if not isinstance(item, dict):
        return None
    text = item.get("text")
    if not isinstance(text, str) or not text.strip():
        return None
    occurred_at = parse_timestamp(item.get("created_at") or item.get("timestamp"))
    if occurred_at is None:
        return None

    user = item.get("user")
    if isinstance(user, dict):
        username = user.get("username")
        wallet = str(user.get("wallet") or "")
    else:
        username = item.get("username")
        wallet = str(user or item.get("wallet") or "")
    author = username or wallet[:6] or "anon"
    event_id = item.get("id")
    return ChatEvent(
        author=str(author),
        text=text,
        occurred_at=occurred_at,
        event_id=str(event_id) if event_id is not None else None,
    )
