"""
FALLBACK RESPONDER
Deterministic local replies used when the text-generation
collaborator is unavailable, slow or returns garbage.

Always produces non-empty text.
"""

import random
import re
from typing import Optional, Tuple

from commentator.domain.models import ChatEvent, Emotion, ReactionTrigger, TradeKind, TriggerKind
from commentator.domain.services.persona import Persona
from commentator.domain.services.trigger_policy import RandomSource

_GREETINGS = frozenset({"gm", "gn", "hello", "hey", "hi", "yo", "sup", "wagmi"})
_RUG_WORDS = ("rug", "scam", "honeypot", "dev sold")
_MOON_WORDS = ("moon", "100x", "pump", "send it", "lfg")
_BUY_WORDS = ("buy", "ape", "entry")

_LAST_RESORT = "Chart's moving, chat's talking, and I'm watching it all."


class FallbackResponder:
    """Pattern-matched local replies keyed off the trigger label"""

    def __init__(self, persona: Persona, rng: Optional[RandomSource] = None):
        self.persona = persona
        self._rng = rng or random.Random()

    def respond(self, trigger: ReactionTrigger) -> Tuple[str, Emotion]:
        text, emotion = self._by_trigger(trigger)
        if not text:
            text, emotion = self._catchphrase(), Emotion.NEUTRAL
        return text, emotion

    def _by_trigger(self, trigger: ReactionTrigger) -> Tuple[Optional[str], Emotion]:
        market = trigger.context.market

        if trigger.kind == TriggerKind.LARGE_TRADE and trigger.trade is not None:
            is_buy = trigger.trade.kind == TradeKind.BUY
            key = "big_buy" if is_buy else "big_sell"
            text = self._pick(key, amount=f"{trigger.trade.quantity:.2f}")
            return text, Emotion.BULLISH if is_buy else Emotion.SKEPTICAL

        if trigger.kind in (TriggerKind.PUMP, TriggerKind.DUMP) and market is not None:
            percent = f"{abs(market.change_5m):.0f}"
            if trigger.kind == TriggerKind.PUMP:
                return self._pick("pump", percent=percent), Emotion.BULLISH
            return self._pick("dump", percent=percent), Emotion.BEARISH

        if trigger.kind == TriggerKind.CHAT_ACTIVITY and trigger.context.latest_chat:
            return self._chat_reply(trigger.context.latest_chat, trigger)

        if trigger.kind == TriggerKind.PERIODIC and market is not None:
            if market.change_1h > 20:
                return self._pick("periodic", "up", symbol=market.symbol, percent=f"{market.change_1h:.0f}"), Emotion.BULLISH
            if market.change_1h < -15:
                return self._pick("periodic", "down", percent=f"{abs(market.change_1h):.0f}"), Emotion.BEARISH
            if market.volume_24h > 100_000:
                return self._pick("periodic", "volume", volume=f"{market.volume_24h / 1000:.0f}"), Emotion.NEUTRAL

        return None, Emotion.NEUTRAL

    def _chat_reply(self, chat: ChatEvent, trigger: ReactionTrigger) -> Tuple[Optional[str], Emotion]:
        lowered = chat.text.lower()
        user = chat.author

        if any(word in lowered for word in _RUG_WORDS):
            return self._pick("chat", "rug", user=user), Emotion.SKEPTICAL
        words = set(re.findall(r"[a-z0-9']+", lowered))
        if words & _GREETINGS or "good morning" in lowered:
            return self._pick("chat", "greeting", user=user), Emotion.LAUGHING
        if any(word in lowered for word in _MOON_WORDS):
            return self._pick("chat", "moon", user=user), Emotion.BULLISH
        if any(word in lowered for word in _BUY_WORDS):
            market = trigger.context.market
            mood = "bullish" if market is not None and market.change_1h > 0 else "choppy"
            return self._pick("chat", "buy", user=user, mood=mood), Emotion.NEUTRAL
        if "?" in lowered:
            return self._pick("chat", "question", user=user), Emotion.NEUTRAL
        return self._pick("chat", "generic", user=user), Emotion.NEUTRAL

    def _pick(self, *path: str, **values: str) -> Optional[str]:
        lines = self.persona.reaction_lines(*path)
        if not lines:
            return None
        template = lines[int(self._rng.random() * len(lines)) % len(lines)]
        try:
            return template.format(**values).strip() or None
        except (KeyError, IndexError, ValueError):
            return None

    def _catchphrase(self) -> str:
        phrases = self.persona.catchphrases
        if not phrases:
            return _LAST_RESORT
        return phrases[int(self._rng.random() * len(phrases)) % len(phrases)]
