"""
Domain Models - Entities
Pure domain objects with no infrastructure dependencies
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Tuple

MAX_CHAT_TEXT_LENGTH = 280


class TradeKind(str, Enum):
    """Direction of an observed trade"""
    BUY = "buy"
    SELL = "sell"


class TriggerKind(str, Enum):
    """Why a reaction is warranted"""
    LARGE_TRADE = "large-trade"
    PUMP = "pump"
    DUMP = "dump"
    CHAT_ACTIVITY = "chat-activity"
    PERIODIC = "periodic"


class Emotion(str, Enum):
    """Closed set of emotion tags the avatar understands"""
    NEUTRAL = "neutral"
    BULLISH = "bullish"
    BEARISH = "bearish"
    LAUGHING = "laughing"
    SKEPTICAL = "skeptical"
    SHOCKED = "shocked"

    @classmethod
    def parse(cls, value: Optional[str]) -> "Emotion":
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return cls.NEUTRAL


class Intent(str, Enum):
    """Optional intent tag attached to a reply"""
    NONE = "none"
    BUY_SIGNAL = "buy_signal"
    SELL_SIGNAL = "sell_signal"
    RUG_WARNING = "rug_warning"

    @classmethod
    def parse(cls, value: Optional[str]) -> "Intent":
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return cls.NONE


class SpeechOrigin(str, Enum):
    """Where a speech item came from"""
    TRIGGER = "trigger"
    SYSTEM = "system"


def utc_now() -> datetime:
    return datetime.now(tz=timezone.utc)


@dataclass(frozen=True)
class TradeEvent:
    """Single trade execution seen on the feed - Immutable"""
    kind: TradeKind
    quantity: float
    actor: str
    occurred_at: datetime = field(default_factory=utc_now)
    event_id: Optional[str] = None

    def __post_init__(self):
        if self.quantity <= 0:
            raise ValueError("Trade quantity must be positive")


@dataclass(frozen=True)
class ChatEvent:
    """Single chat line tied to the watched asset - Immutable"""
    author: str
    text: str
    occurred_at: datetime = field(default_factory=utc_now)
    event_id: Optional[str] = None

    def __post_init__(self):
        text = (self.text or "").strip()
        if len(text) > MAX_CHAT_TEXT_LENGTH:
            text = text[:MAX_CHAT_TEXT_LENGTH]
        object.__setattr__(self, "text", text)


@dataclass(frozen=True)
class MarketSnapshot:
    """
    Latest market figures for the watched token.
    Replaced wholesale on each refresh, never mutated.
    """
    symbol: str
    address: str
    price: float
    market_cap: float
    change_5m: float = 0.0
    change_1h: float = 0.0
    change_24h: float = 0.0
    volume_24h: float = 0.0
    liquidity: float = 0.0
    fetched_at: datetime = field(default_factory=utc_now)


@dataclass(frozen=True)
class ContextSnapshot:
    """Consistent read view of the rolling context (oldest first)"""
    trades: Tuple[TradeEvent, ...] = ()
    chats: Tuple[ChatEvent, ...] = ()
    market: Optional[MarketSnapshot] = None
    previous_market: Optional[MarketSnapshot] = None
    total_events: int = 0

    @property
    def latest_chat(self) -> Optional[ChatEvent]:
        return self.chats[-1] if self.chats else None


@dataclass(frozen=True)
class ChangeHint:
    """What just changed in the rolling context"""
    new_trades: Tuple[TradeEvent, ...] = ()
    new_chats: int = 0
    market_refreshed: bool = False
    tick: bool = False
    quiet_seconds: Optional[float] = None


@dataclass(frozen=True)
class ReactionTrigger:
    """Labeled decision that a reaction is warranted. Never persisted."""
    kind: TriggerKind
    context: ContextSnapshot
    direction: Optional[TradeKind] = None
    trade: Optional[TradeEvent] = None

    @property
    def label(self) -> str:
        if self.direction is not None:
            return f"{self.kind.value}:{self.direction.value}"
        return self.kind.value


@dataclass
class SpeechItem:
    """One utterance, owned by the speech queue until spoken"""
    text: str
    emotion: Emotion = Emotion.NEUTRAL
    intent: Intent = Intent.NONE
    audio_ref: Optional[str] = None
    origin: SpeechOrigin = SpeechOrigin.TRIGGER
    trigger_label: Optional[str] = None
    created_at: float = 0.0

    def __post_init__(self):
        if not self.text or not self.text.strip():
            raise ValueError("Speech text cannot be empty")
