"""
CONTEXT AGGREGATOR
Sole owner of the rolling context

RESPONSIBILITIES:
- Keep the most recent trades and chat lines (bounded, FIFO)
- Keep the current and previous market snapshot
- Hand out consistent read-only snapshots

All methods are synchronous. On a single event loop no append can
interleave with a snapshot read.
"""

from collections import deque
from typing import Deque, Iterable, Optional

from commentator.domain.models import (
    ChatEvent,
    ContextSnapshot,
    MarketSnapshot,
    TradeEvent,
)


class ContextAggregator:
    """
    Rolling context of trades, chat and market data
    """

    def __init__(self, trade_capacity: int = 20, chat_capacity: int = 10):
        if trade_capacity < 1 or chat_capacity < 1:
            raise ValueError("Context capacities must be at least 1")
        self._trade_capacity = trade_capacity
        self._chat_capacity = chat_capacity
        self._trades: Deque[TradeEvent] = deque(maxlen=trade_capacity)
        self._chats: Deque[ChatEvent] = deque(maxlen=chat_capacity)
        self._market: Optional[MarketSnapshot] = None
        self._previous_market: Optional[MarketSnapshot] = None
        self._total_events = 0

    @property
    def trade_capacity(self) -> int:
        return self._trade_capacity

    @property
    def chat_capacity(self) -> int:
        return self._chat_capacity

    @property
    def trade_count(self) -> int:
        return len(self._trades)

    @property
    def chat_count(self) -> int:
        return len(self._chats)

    @property
    def total_events(self) -> int:
        return self._total_events

    @property
    def market(self) -> Optional[MarketSnapshot]:
        return self._market

    def add_trade(self, trade: TradeEvent) -> None:
        self._trades.append(trade)
        self._total_events += 1

    def add_chats(self, chats: Iterable[ChatEvent]) -> int:
        added = 0
        for chat in chats:
            self._chats.append(chat)
            added += 1
        self._total_events += added
        return added

    def update_market(self, snapshot: MarketSnapshot) -> None:
        """Replace the current snapshot wholesale; the old one becomes previous."""
        self._previous_market = self._market
        self._market = snapshot

    def snapshot(self) -> ContextSnapshot:
        return ContextSnapshot(
            trades=tuple(self._trades),
            chats=tuple(self._chats),
            market=self._market,
            previous_market=self._previous_market,
            total_events=self._total_events,
        )

    def reset(self) -> None:
        """Forget everything (used when the watched asset changes)."""
        self._trades.clear()
        self._chats.clear()
        self._market = None
        self._previous_market = None
        self._total_events = 0
