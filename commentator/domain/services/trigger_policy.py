"""
TRIGGER POLICY
Decide whether the current context warrants a reaction

Rules, first match wins:
1. large trade in the newly arrived trades
2. pump / dump on a fresh market snapshot
3. new chat activity (probabilistic)
4. periodic timer tick after a quiet spell (probabilistic, lower odds)

Pure with respect to the context: the only side input is the
injected random source.
"""

import random
from dataclasses import dataclass
from typing import Optional, Protocol

from commentator.domain.models import (
    ChangeHint,
    ContextSnapshot,
    MarketSnapshot,
    ReactionTrigger,
    TriggerKind,
)


class RandomSource(Protocol):
    def random(self) -> float:
        ...


@dataclass(frozen=True)
class TriggerConfig:
    large_trade_threshold: float = 0.5
    pump_threshold_pct: float = 15.0
    dump_threshold_pct: float = 15.0
    chat_probability: float = 0.3
    periodic_probability: float = 0.2
    periodic_quiet_seconds: float = 30.0

    def __post_init__(self):
        if self.large_trade_threshold <= 0:
            raise ValueError("Large trade threshold must be positive")
        if self.pump_threshold_pct <= 0 or self.dump_threshold_pct <= 0:
            raise ValueError("Pump/dump thresholds must be positive")
        if self.periodic_quiet_seconds < 0:
            raise ValueError("Periodic quiet window cannot be negative")
        for name in ("chat_probability", "periodic_probability"):
            value = getattr(self, name)
            if not 0.0 <= value <= 1.0:
                raise ValueError(f"{name} must be within [0, 1]")


class TriggerPolicy:
    """
    Maps (context, what-changed) to an optional trigger
    """

    def __init__(self, config: TriggerConfig, rng: Optional[RandomSource] = None):
        self.config = config
        self._rng = rng or random.Random()

    def evaluate(self, snapshot: ContextSnapshot, hint: ChangeHint) -> Optional[ReactionTrigger]:
        trigger = self._large_trade(snapshot, hint)
        if trigger:
            return trigger

        trigger = self._price_move(snapshot, hint)
        if trigger:
            return trigger

        if hint.new_chats > 0 and self._rng.random() < self.config.chat_probability:
            return ReactionTrigger(kind=TriggerKind.CHAT_ACTIVITY, context=snapshot)

        if hint.tick and self._quiet_enough(hint) and self._rng.random() < self.config.periodic_probability:
            return ReactionTrigger(kind=TriggerKind.PERIODIC, context=snapshot)

        return None

    def _quiet_enough(self, hint: ChangeHint) -> bool:
        # Unknown silence (nothing spoken yet) counts as quiet
        if hint.quiet_seconds is None:
            return True
        return hint.quiet_seconds >= self.config.periodic_quiet_seconds

    def _large_trade(self, snapshot: ContextSnapshot, hint: ChangeHint) -> Optional[ReactionTrigger]:
        threshold = self.config.large_trade_threshold
        candidates = [t for t in hint.new_trades if t.quantity >= threshold]
        if not candidates:
            return None
        # Largest wins; on equal size the earliest arrival wins
        biggest = max(candidates, key=lambda t: t.quantity)
        return ReactionTrigger(
            kind=TriggerKind.LARGE_TRADE,
            context=snapshot,
            direction=biggest.kind,
            trade=biggest,
        )

    def _price_move(self, snapshot: ContextSnapshot, hint: ChangeHint) -> Optional[ReactionTrigger]:
        if not hint.market_refreshed or snapshot.market is None:
            return None

        current = snapshot.market.change_5m
        previous = snapshot.previous_market

        if current >= self.config.pump_threshold_pct:
            if self._already_beyond(previous, pump=True):
                return None
            return ReactionTrigger(kind=TriggerKind.PUMP, context=snapshot)

        if current <= -self.config.dump_threshold_pct:
            if self._already_beyond(previous, pump=False):
                return None
            return ReactionTrigger(kind=TriggerKind.DUMP, context=snapshot)

        return None

    def _already_beyond(self, previous: Optional[MarketSnapshot], pump: bool) -> bool:
        if previous is None:
            return False
        if pump:
            return previous.change_5m >= self.config.pump_threshold_pct
        return previous.change_5m <= -self.config.dump_threshold_pct
