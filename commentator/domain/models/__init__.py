"""
Domain Models Package
Export all domain entities
"""

from .entities import (
    # Enums
    Emotion,
    Intent,
    SpeechOrigin,
    TradeKind,
    TriggerKind,

    # Entities
    ChangeHint,
    ChatEvent,
    ContextSnapshot,
    MarketSnapshot,
    ReactionTrigger,
    SpeechItem,
    TradeEvent,

    MAX_CHAT_TEXT_LENGTH,
    utc_now,
)

__all__ = [
    # Enums
    "Emotion",
    "Intent",
    "SpeechOrigin",
    "TradeKind",
    "TriggerKind",

    # Entities
    "ChangeHint",
    "ChatEvent",
    "ContextSnapshot",
    "MarketSnapshot",
    "ReactionTrigger",
    "SpeechItem",
    "TradeEvent",

    "MAX_CHAT_TEXT_LENGTH",
    "utc_now",
]
