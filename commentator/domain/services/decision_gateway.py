"""
DECISION GATEWAY
Turn a reaction trigger into a speech item

RESPONSIBILITIES:
- Enforce the minimum interval between accepted reactions BEFORE
  spending anything on the text-generation collaborator
- Build the structured context block for the collaborator
- Normalize whatever comes back into text + emotion + intent
- Fall back to local pattern-matched replies on any failure

RULES:
❌ No retries (one attempt, then fallback)
❌ No exceptions escape to the speech queue
✅ Always non-empty text when a reaction is accepted
"""

import asyncio
import json
import logging
import re
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Protocol

from pydantic import ValidationError

from commentator.domain.errors import TextGenerationError
from commentator.domain.models import (
    ContextSnapshot,
    ReactionTrigger,
    SpeechItem,
    SpeechOrigin,
)
from commentator.domain.schemas.generation import GeneratedReply
from commentator.domain.services.fallback_responder import FallbackResponder
from commentator.domain.services.persona import Persona

logger = logging.getLogger(__name__)

_FENCE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)
_MAX_WRAPPED_TEXT = 200


@dataclass(frozen=True)
class GenerationRequest:
    """What the text-generation collaborator receives"""
    system: str
    history: List[Dict[str, str]] = field(default_factory=list)
    context_block: str = ""

    def messages(self) -> List[Dict[str, str]]:
        return [*self.history, {"role": "user", "content": self.context_block}]


class TextGenerator(Protocol):
    async def generate(self, request: GenerationRequest) -> str:
        ...


def build_context_block(context: ContextSnapshot, trigger_label: str, persona_name: str = "Sid") -> str:
    """Render the rolling context as the user message for the collaborator."""
    lines: List[str] = ["[MARKET UPDATE]"]
    market = context.market
    if market is not None:
        lines.append(f"Token: ${market.symbol}")
        lines.append(f"Price: ${market.price:.8f} | MCap: ${market.market_cap / 1000:.1f}k")
        lines.append(
            f"5m: {market.change_5m:+.1f}% | 1h: {market.change_1h:+.1f}% | 24h: {market.change_24h:+.1f}%"
        )
        lines.append(
            f"Volume: ${market.volume_24h / 1000:.0f}k | Liquidity: ${market.liquidity / 1000:.0f}k"
        )
    else:
        lines.append("No market data yet")
    lines.append("")

    if context.trades:
        lines.append("[RECENT TRADES]")
        for trade in reversed(context.trades[-5:]):
            lines.append(f"{trade.kind.value.upper()} {trade.quantity:.2f} SOL by {trade.actor[:6]}...")
        lines.append("")

    if context.chats:
        lines.append("[CHAT]")
        for chat in context.chats[-5:]:
            lines.append(f"{chat.author}: {chat.text[:50]}")
        lines.append("")

    lines.append(f"[TRIGGER: {trigger_label}]")
    lines.append(f"Respond naturally as {persona_name}. Keep it short and punchy.")
    return "\n".join(lines)


def parse_reply(raw: str) -> Optional[GeneratedReply]:
    """
    Normalize collaborator output.

    JSON matching the contract is validated; free text is wrapped as a
    neutral reply; blank or unusable output yields None.
    """
    text = _FENCE.sub("", (raw or "").strip()).strip()
    if not text:
        return None

    try:
        data = json.loads(text)
    except ValueError:
        return GeneratedReply(text=text[:_MAX_WRAPPED_TEXT])

    if not isinstance(data, dict):
        return None
    try:
        return GeneratedReply.model_validate(data)
    except ValidationError:
        candidate = data.get("text")
        if isinstance(candidate, str) and candidate.strip():
            return GeneratedReply(text=candidate.strip()[:_MAX_WRAPPED_TEXT])
        return None


class DecisionGateway:
    """
    Decision Gateway
    Rate-limits, asks the collaborator once, falls back locally
    """

    def __init__(
        self,
        generator: Optional[TextGenerator],
        persona: Persona,
        fallback: FallbackResponder,
        min_interval_seconds: float = 8.0,
        history_limit: int = 10,
        generation_timeout_seconds: float = 10.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._generator = generator
        self._persona = persona
        self._fallback = fallback
        self.min_interval_seconds = min_interval_seconds
        # Messages must alternate user/assistant, so keep whole exchanges only
        self._history_limit = max(0, history_limit - history_limit % 2)
        self._timeout = generation_timeout_seconds
        self._clock = clock
        self._history: List[Dict[str, str]] = []
        self._last_accepted_at: Optional[float] = None
        self._in_flight = False
        self.stats: Dict[str, int] = {"generated": 0, "fallback": 0, "rate_limited": 0}

    @property
    def degraded(self) -> bool:
        return self._generator is None

    @property
    def history(self) -> List[Dict[str, str]]:
        return list(self._history)

    def is_rate_limited(self) -> bool:
        if self._in_flight:
            return True
        if self._last_accepted_at is None:
            return False
        return self._clock() - self._last_accepted_at < self.min_interval_seconds

    def reset(self) -> None:
        self._history.clear()
        self._last_accepted_at = None

    async def decide(self, trigger: ReactionTrigger) -> Optional[SpeechItem]:
        if self.is_rate_limited():
            self.stats["rate_limited"] += 1
            logger.debug("Reaction %s discarded by rate limit", trigger.label)
            return None

        # Reserve the slot before awaiting so concurrent triggers cannot both pass
        now = self._clock()
        self._last_accepted_at = now
        self._in_flight = True
        try:
            reply = await self._generate(trigger)
        finally:
            self._in_flight = False

        if reply is None:
            text, emotion = self._fallback.respond(trigger)
            self.stats["fallback"] += 1
            return SpeechItem(
                text=text,
                emotion=emotion,
                origin=SpeechOrigin.TRIGGER,
                trigger_label=trigger.label,
                created_at=now,
            )

        self.stats["generated"] += 1
        return SpeechItem(
            text=reply.text,
            emotion=reply.emotion,
            intent=reply.action,
            origin=SpeechOrigin.TRIGGER,
            trigger_label=trigger.label,
            created_at=now,
        )

    async def _generate(self, trigger: ReactionTrigger) -> Optional[GeneratedReply]:
        if self._generator is None:
            return None

        request = GenerationRequest(
            system=self._persona.system_prompt(),
            history=self._recent_history(),
            context_block=build_context_block(trigger.context, trigger.label, self._persona.name),
        )
        try:
            raw = await asyncio.wait_for(self._generator.generate(request), timeout=self._timeout)
        except asyncio.TimeoutError:
            logger.warning("Text generation timed out after %.1fs; using fallback", self._timeout)
            return None
        except TextGenerationError as exc:
            logger.warning("Text generation failed: %s; using fallback", exc)
            return None
        except Exception as exc:
            logger.warning("Unexpected text generation error: %s; using fallback", exc)
            return None

        reply = parse_reply(raw)
        if reply is None:
            logger.warning("Text generation returned unusable output; using fallback")
            return None

        self._history.append({"role": "user", "content": request.context_block})
        self._history.append({"role": "assistant", "content": raw})
        self._history = self._recent_history()
        return reply

    def _recent_history(self) -> List[Dict[str, str]]:
        if not self._history_limit:
            return []
        return self._history[-self._history_limit:]
