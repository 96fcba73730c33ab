"""
Commentary runtime: owns the feeds, rolling context, trigger policy,
decision gateway, speech serializer and broadcast hub for one watched token.
"""

from __future__ import annotations

import asyncio
import functools
import logging
import time
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Deque, Dict, Iterable, Optional, Set

from commentator.domain.errors import ConfigurationError, FeedUnavailable, MarketDataUnavailable
from commentator.domain.models import (
    ChangeHint,
    ChatEvent,
    Emotion,
    MarketSnapshot,
    ReactionTrigger,
    SpeechItem,
    SpeechOrigin,
    TradeEvent,
)
from commentator.domain.services.context_aggregator import ContextAggregator
from commentator.domain.services.decision_gateway import DecisionGateway, TextGenerator
from commentator.domain.services.fallback_responder import FallbackResponder
from commentator.domain.services.persona import Persona, load_persona
from commentator.domain.services.trigger_policy import RandomSource, TriggerConfig, TriggerPolicy
from commentator.infrastructure.cache.redis_cache import RedisCache
from commentator.infrastructure.feeds.feed_poller import FeedPoller
from commentator.infrastructure.feeds.normalizer import parse_chat_reply, parse_trade_item
from commentator.infrastructure.feeds.pumpfun_client import PumpFunClient
from commentator.infrastructure.feeds.pumpportal_stream import FeedState, PumpPortalStreamClient
from commentator.infrastructure.llm.anthropic_generator import AnthropicTextGenerator
from commentator.infrastructure.market_data.dexscreener_provider import DexScreenerProvider
from commentator.infrastructure.tts.audio_store import AudioStore, VoiceRenderer
from commentator.infrastructure.tts.elevenlabs_synthesizer import ElevenLabsSynthesizer
from commentator.realtime.broadcast import BroadcastHub, emotion_record, speak_record
from commentator.realtime.speech_queue import SpeechConfig, SpeechQueue, SpeechWorker
from commentator.scheduler.engine_scheduler import EngineScheduler

logger = logging.getLogger(__name__)

FeedFactory = Callable[..., Any]

JOB_MARKET = "market_refresh"
JOB_CHAT = "chat_poll"
JOB_TRADES = "trade_poll"
JOB_TICK = "periodic_tick"


@dataclass(frozen=True)
class EngineConfig:
    token_address: Optional[str] = None
    trigger: TriggerConfig = field(default_factory=TriggerConfig)
    speech: SpeechConfig = field(default_factory=SpeechConfig)
    trade_capacity: int = 20
    chat_capacity: int = 10
    min_interval_seconds: float = 8.0
    history_limit: int = 10
    generation_timeout_seconds: float = 10.0
    market_refresh_seconds: float = 20.0
    chat_poll_seconds: float = 15.0
    trade_poll_seconds: float = 10.0
    periodic_tick_seconds: float = 45.0
    feed_ws_url: str = "wss://pumpportal.fun/api/data"
    feed_ack_timeout_seconds: float = 10.0
    feed_reconnect_base_delay_seconds: float = 2.0
    feed_max_reconnect_attempts: int = 5
    seen_ids_max: int = 1000
    seen_ids_retain: int = 500
    viewer_keepalive_seconds: float = 15.0

    @classmethod
    def from_settings(cls, s) -> "EngineConfig":
        return cls(
            token_address=s.TOKEN_ADDRESS,
            trigger=TriggerConfig(
                large_trade_threshold=s.LARGE_TRADE_THRESHOLD,
                pump_threshold_pct=s.PUMP_THRESHOLD_PCT,
                dump_threshold_pct=s.DUMP_THRESHOLD_PCT,
                chat_probability=s.CHAT_REACTION_PROBABILITY,
                periodic_probability=s.PERIODIC_PROBABILITY,
                periodic_quiet_seconds=s.PERIODIC_QUIET_SECONDS,
            ),
            speech=SpeechConfig(
                seconds_per_word=s.SPEECH_SECONDS_PER_WORD,
                min_seconds=s.SPEECH_MIN_SECONDS,
                gap_seconds=s.SPEECH_GAP_SECONDS,
                max_pending=s.SPEECH_MAX_PENDING,
                max_age_seconds=s.SPEECH_MAX_AGE_SECONDS,
            ),
            trade_capacity=s.CONTEXT_TRADE_CAPACITY,
            chat_capacity=s.CONTEXT_CHAT_CAPACITY,
            min_interval_seconds=s.REACTION_MIN_INTERVAL_SECONDS,
            history_limit=s.HISTORY_LIMIT,
            generation_timeout_seconds=s.ANTHROPIC_TIMEOUT_SECONDS,
            market_refresh_seconds=s.MARKET_REFRESH_SECONDS,
            chat_poll_seconds=s.CHAT_POLL_SECONDS,
            trade_poll_seconds=s.TRADE_POLL_SECONDS,
            periodic_tick_seconds=s.PERIODIC_TICK_SECONDS,
            feed_ws_url=s.FEED_WS_URL,
            feed_ack_timeout_seconds=s.FEED_ACK_TIMEOUT_SECONDS,
            feed_reconnect_base_delay_seconds=s.FEED_RECONNECT_BASE_DELAY_SECONDS,
            feed_max_reconnect_attempts=s.FEED_MAX_RECONNECT_ATTEMPTS,
            seen_ids_max=s.SEEN_IDS_MAX,
            seen_ids_retain=s.SEEN_IDS_RETAIN,
            viewer_keepalive_seconds=s.VIEWER_KEEPALIVE_SECONDS,
        )


class CommentaryEngine:
    def __init__(
        self,
        config: EngineConfig,
        persona: Persona,
        market_provider: DexScreenerProvider,
        pull_source: PumpFunClient,
        generator: Optional[TextGenerator] = None,
        voice: Optional[VoiceRenderer] = None,
        hub: Optional[BroadcastHub] = None,
        scheduler: Optional[EngineScheduler] = None,
        cache: Optional[RedisCache] = None,
        feed_factory: Optional[FeedFactory] = None,
        rng: Optional[RandomSource] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Any] = asyncio.sleep,
    ):
        self.config = config
        self.persona = persona
        self._market = market_provider
        self._pull = pull_source
        self._voice = voice
        self._cache = cache
        self._clock = clock
        self._feed_factory = feed_factory or self._default_feed

        self.hub = hub or BroadcastHub()
        self.scheduler = scheduler or EngineScheduler()
        self.aggregator = ContextAggregator(config.trade_capacity, config.chat_capacity)
        self.policy = TriggerPolicy(config.trigger, rng)
        self.gateway = DecisionGateway(
            generator,
            persona,
            FallbackResponder(persona, rng),
            min_interval_seconds=config.min_interval_seconds,
            history_limit=config.history_limit,
            generation_timeout_seconds=config.generation_timeout_seconds,
            clock=clock,
        )
        self.speech_queue = SpeechQueue(config.speech.max_pending)
        self.worker = SpeechWorker(
            self.speech_queue,
            self.on_speak,
            render_audio=voice.render if voice else None,
            config=config.speech,
            clock=clock,
            sleep=sleep,
        )

        self._address: Optional[str] = None
        self._live = False
        self._generation = 0
        self._polling = False
        self._feed: Any = None
        self._feed_status: Dict[str, Any] = {"status": FeedState.DISCONNECTED.value}
        self._chat_poller: Optional[FeedPoller] = None
        self._trade_poller: Optional[FeedPoller] = None
        self._reactions: Set[asyncio.Task] = set()
        self._emotion = Emotion.NEUTRAL
        self._recent_lines: Deque[Dict[str, Any]] = deque(maxlen=10)
        self.skipped_saturated = 0

    # ------------------------------------------------------------------
    # LIFECYCLE
    # ------------------------------------------------------------------

    @property
    def live(self) -> bool:
        return self._live

    @property
    def address(self) -> Optional[str]:
        return self._address

    @property
    def polling(self) -> bool:
        return self._polling

    @property
    def audio_store(self) -> Optional[AudioStore]:
        return self._voice.store if self._voice else None

    async def start(self, address: Optional[str] = None) -> None:
        """Start watching; ConfigurationError / MarketDataUnavailable are fatal."""
        if self._live:
            return
        address = (address or self.config.token_address or "").strip()
        if not address:
            raise ConfigurationError("No token address configured")
        snapshot = await self._fetch_snapshot(address)
        await self._activate(address, snapshot)

    async def stop(self) -> None:
        await self._teardown()
        await self.worker.stop()
        self.scheduler.shutdown()
        self.hub.close_all()
        if self._cache is not None:
            await self._cache.close()
        logger.info("🛑 Commentary engine stopped")

    async def retarget(self, address: str) -> None:
        """Switch to a new token. The old target stays live if the new one has no market data."""
        address = (address or "").strip()
        if not address:
            raise ConfigurationError("Token address cannot be empty")
        if self._live and address == self._address:
            return
        snapshot = await self._fetch_snapshot(address)
        await self._teardown()
        self.aggregator.reset()
        self.gateway.reset()
        dropped = self.speech_queue.clear()
        if dropped:
            logger.info("Dropped %s pending utterances for the previous token", dropped)
        await self._activate(address, snapshot)

    async def _fetch_snapshot(self, address: str) -> MarketSnapshot:
        snapshot = await self._market.get_snapshot(address)
        if snapshot is None:
            raise MarketDataUnavailable(f"No market data for {address}")
        return snapshot

    async def _activate(self, address: str, snapshot: MarketSnapshot) -> None:
        logger.info("=" * 60)
        logger.info("🎙️  Watching $%s (%s)", snapshot.symbol, address)
        self._generation += 1
        generation = self._generation
        self._address = address
        self.aggregator.update_market(snapshot)
        await self._cache_snapshot(snapshot)

        self._chat_poller = FeedPoller(
            "chat",
            fetch=lambda since: self._pull.fetch_replies(address, since),
            normalize=parse_chat_reply,
            ingest=functools.partial(self.ingest_chats, generation=generation),
            max_seen=self.config.seen_ids_max,
            retain_seen=self.config.seen_ids_retain,
        )
        self._trade_poller = FeedPoller(
            "trades",
            fetch=lambda since: self._pull.fetch_trades(address, since),
            normalize=parse_trade_item,
            ingest=functools.partial(self.ingest_trades, generation=generation),
            max_seen=self.config.seen_ids_max,
            retain_seen=self.config.seen_ids_retain,
        )
        await self._chat_poller.prime()

        self._live = True
        self._feed = self._feed_factory(
            address,
            on_trade=functools.partial(self._on_feed_trade, generation=generation),
            on_status=self._on_feed_status,
            on_exhausted=self._on_feed_exhausted,
        )
        try:
            await self._feed.connect()
            logger.info("✅ Trade feed connected")
        except FeedUnavailable as exc:
            logger.warning("⚠️  Trade feed unavailable (%s); polling trades instead", exc)
            await self._start_trade_polling()

        self.worker.start()
        self.scheduler.add_interval(JOB_MARKET, self.refresh_market, self.config.market_refresh_seconds)
        self.scheduler.add_interval(JOB_CHAT, self._chat_poller.poll_once, self.config.chat_poll_seconds)
        self.scheduler.add_interval(JOB_TICK, self._tick_job, self.config.periodic_tick_seconds)
        self.scheduler.start()

        self._say_opening_line(snapshot)
        logger.info(
            "✅ Commentary engine live (text: %s, voice: %s)",
            "fallback" if self.gateway.degraded else "generated",
            "on" if self._voice else "off",
        )
        logger.info("=" * 60)

    async def _teardown(self) -> None:
        self._live = False
        self._generation += 1
        for job_id in (JOB_MARKET, JOB_CHAT, JOB_TRADES, JOB_TICK):
            self.scheduler.remove(job_id)
        if self._feed is not None:
            await self._feed.stop()
            self._feed = None
        self._polling = False
        for task in list(self._reactions):
            task.cancel()
        if self._reactions:
            await asyncio.gather(*self._reactions, return_exceptions=True)
        self._reactions.clear()

    def _default_feed(self, address: str, **handlers) -> PumpPortalStreamClient:
        return PumpPortalStreamClient(
            ws_url=self.config.feed_ws_url,
            token_address=address,
            reconnect_base_delay=self.config.feed_reconnect_base_delay_seconds,
            max_reconnect_attempts=self.config.feed_max_reconnect_attempts,
            ack_timeout=self.config.feed_ack_timeout_seconds,
            **handlers,
        )

    def _say_opening_line(self, snapshot: MarketSnapshot) -> None:
        template = self.persona.opening_line
        if not template:
            return
        try:
            text = template.format(symbol=snapshot.symbol, mcap=f"{snapshot.market_cap / 1000:.0f}")
        except (KeyError, IndexError, ValueError):
            text = template
        self.say(text, Emotion.NEUTRAL)

    # ------------------------------------------------------------------
    # FEED CALLBACKS
    # ------------------------------------------------------------------

    async def _on_feed_trade(self, trade: TradeEvent, generation: Optional[int] = None) -> None:
        self.ingest_trades([trade], generation=generation)

    async def _on_feed_status(self, status: Dict[str, Any]) -> None:
        self._feed_status = status

    async def _on_feed_exhausted(self) -> None:
        await self._start_trade_polling()

    async def _start_trade_polling(self) -> None:
        if self._polling or self._trade_poller is None or not self._live:
            return
        await self._trade_poller.prime()
        self.scheduler.add_interval(JOB_TRADES, self._trade_poller.poll_once, self.config.trade_poll_seconds)
        self._polling = True

    async def _tick_job(self) -> None:
        self.periodic_tick()

    # ------------------------------------------------------------------
    # INGESTION
    # ------------------------------------------------------------------

    def ingest_trades(
        self, trades: Iterable[TradeEvent], generation: Optional[int] = None
    ) -> Optional[ReactionTrigger]:
        if not self._is_current(generation):
            logger.debug("Discarding trades fetched for a previous target")
            return None
        batch = tuple(trades)
        if not batch:
            return None
        for trade in batch:
            self.aggregator.add_trade(trade)
        return self._evaluate(ChangeHint(new_trades=batch))

    def ingest_chats(
        self, chats: Iterable[ChatEvent], generation: Optional[int] = None
    ) -> Optional[ReactionTrigger]:
        if not self._is_current(generation):
            logger.debug("Discarding chat replies fetched for a previous target")
            return None
        added = self.aggregator.add_chats(chats)
        if not added:
            return None
        return self._evaluate(ChangeHint(new_chats=added))

    async def refresh_market(self) -> Optional[ReactionTrigger]:
        address, generation = self._address, self._generation
        if not address:
            return None
        snapshot = await self._market.get_snapshot(address)
        if not self._live or generation != self._generation:
            logger.debug("Discarding market refresh for %s; target changed", address)
            return None
        if snapshot is None:
            logger.info("Market refresh returned nothing; keeping previous snapshot")
            return None
        self.aggregator.update_market(snapshot)
        await self._cache_snapshot(snapshot)
        trigger = self._evaluate(ChangeHint(market_refreshed=True))
        if self._cache is not None:
            await self._cache.store_status(self.status())
        return trigger

    def periodic_tick(self) -> Optional[ReactionTrigger]:
        quiet = None
        if self.worker.last_spoken_clock is not None:
            quiet = self._clock() - self.worker.last_spoken_clock
        return self._evaluate(ChangeHint(tick=True, quiet_seconds=quiet))

    def _is_current(self, generation: Optional[int]) -> bool:
        """Results bound to an activation only apply while it is still the live one."""
        if generation is None:
            return True
        return self._live and generation == self._generation

    def _evaluate(self, hint: ChangeHint) -> Optional[ReactionTrigger]:
        if not self._live:
            return None
        trigger = self.policy.evaluate(self.aggregator.snapshot(), hint)
        if trigger is None:
            return None
        if self.speech_queue.is_saturated():
            self.skipped_saturated += 1
            logger.debug("Speech queue saturated; skipping %s", trigger.label)
            return None
        task = asyncio.create_task(self._react(trigger))
        self._reactions.add(task)
        task.add_done_callback(self._reactions.discard)
        return trigger

    async def _react(self, trigger: ReactionTrigger) -> None:
        try:
            item = await self.gateway.decide(trigger)
        except Exception:
            logger.exception("Reaction to %s failed", trigger.label)
            return
        if item is not None:
            self.speech_queue.offer(item)

    async def wait_for_reactions(self) -> None:
        if self._reactions:
            await asyncio.gather(*list(self._reactions), return_exceptions=True)

    # ------------------------------------------------------------------
    # SPEECH
    # ------------------------------------------------------------------

    def say(self, text: str, emotion: Emotion = Emotion.NEUTRAL) -> bool:
        """Operator or system utterance; bypasses trigger backpressure but not the system cap."""
        if not self._live:
            logger.info("Engine is not live; ignoring utterance")
            return False
        item = SpeechItem(
            text=text.strip(),
            emotion=emotion,
            origin=SpeechOrigin.SYSTEM,
            created_at=self._clock(),
        )
        return self.speech_queue.offer(item)

    async def on_speak(self, item: SpeechItem) -> None:
        if item.emotion != self._emotion:
            self._emotion = item.emotion
            self.hub.broadcast(emotion_record(item.emotion.value))
        self.hub.broadcast(speak_record(item.text, item.emotion.value, item.audio_ref))
        self._recent_lines.append(
            {"text": item.text, "emotion": item.emotion.value, "trigger": item.trigger_label}
        )
        logger.info("🗣️  [%s] %s", item.emotion.value, item.text)

    # ------------------------------------------------------------------
    # STATUS
    # ------------------------------------------------------------------

    def status(self) -> Dict[str, Any]:
        market = self.aggregator.market
        last_spoken: Optional[datetime] = self.worker.last_spoken_at
        return {
            "live": self._live,
            "address": self._address,
            "symbol": market.symbol if market else None,
            "feed_state": self._feed_status.get("status"),
            "polling": self._polling,
            "queue_depth": self.speech_queue.size(),
            "speaking": self.worker.is_speaking,
            "emotion": self._emotion.value,
            "recent_events": self.aggregator.total_events,
            "viewers": self.hub.viewer_count,
            "degraded": {"text": self.gateway.degraded, "voice": self._voice is None},
            "last_spoken_at": last_spoken.isoformat() if last_spoken else None,
            "market": _market_summary(market),
            "stats": {
                **self.gateway.stats,
                "spoken": self.worker.spoken_count,
                "dropped_backlog": self.speech_queue.dropped,
                "dropped_stale": self.worker.stale_dropped,
                "skipped_saturated": self.skipped_saturated,
            },
            "recent_lines": list(self._recent_lines),
        }

    async def _cache_snapshot(self, snapshot: MarketSnapshot) -> None:
        if self._cache is not None:
            await self._cache.store_snapshot(snapshot)


def _market_summary(market: Optional[MarketSnapshot]) -> Optional[Dict[str, Any]]:
    if market is None:
        return None
    return {
        "price": market.price,
        "market_cap": market.market_cap,
        "change_5m": market.change_5m,
        "change_1h": market.change_1h,
        "change_24h": market.change_24h,
        "volume_24h": market.volume_24h,
        "liquidity": market.liquidity,
        "fetched_at": market.fetched_at.isoformat(),
    }


def build_engine(s, hub: Optional[BroadcastHub] = None, persona: Optional[Persona] = None) -> CommentaryEngine:
    """Wire collaborators from settings; missing credentials select degraded mode."""
    persona = persona or load_persona()

    generator: Optional[AnthropicTextGenerator] = None
    if s.ANTHROPIC_API_KEY:
        generator = AnthropicTextGenerator(
            api_key=s.ANTHROPIC_API_KEY,
            model=s.ANTHROPIC_MODEL,
            timeout=s.ANTHROPIC_TIMEOUT_SECONDS,
        )
    else:
        logger.warning("⚠️  ANTHROPIC_API_KEY not set; using local fallback replies")

    voice: Optional[VoiceRenderer] = None
    if s.ELEVENLABS_API_KEY and s.ELEVENLABS_VOICE_ID:
        voice = VoiceRenderer(
            ElevenLabsSynthesizer(
                api_key=s.ELEVENLABS_API_KEY,
                voice_id=s.ELEVENLABS_VOICE_ID,
                model_id=s.ELEVENLABS_MODEL_ID,
            ),
            AudioStore(Path(s.AUDIO_DIR), s.AUDIO_MAX_FILES),
        )
    else:
        logger.warning("⚠️  ElevenLabs not configured; speaking text-only")

    cache: Optional[RedisCache] = None
    if s.REDIS_ENABLED:
        cache = RedisCache(url=s.REDIS_URL, prefix=s.REDIS_PREFIX, ttl_seconds=s.REDIS_SNAPSHOT_TTL_SECONDS)

    return CommentaryEngine(
        config=EngineConfig.from_settings(s),
        persona=persona,
        market_provider=DexScreenerProvider(s.DEXSCREENER_API_URL, s.CHAIN_ID),
        pull_source=PumpFunClient(s.PUMPFUN_API_URL),
        generator=generator,
        voice=voice,
        hub=hub or BroadcastHub(s.VIEWER_QUEUE_SIZE),
        scheduler=EngineScheduler(s.TIMEZONE),
        cache=cache,
    )
