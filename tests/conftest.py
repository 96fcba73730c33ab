import asyncio
from dataclasses import dataclass, field
from types import SimpleNamespace
from datetime import datetime, timezone
from typing import Any, AsyncGenerator, Callable, Dict, List, Optional

import pytest
from fastapi import FastAPI
from httpx import AsyncClient, ASGITransport

from commentator.api.routes import control, health, viewers
from commentator.domain.errors import FeedUnavailable
from commentator.domain.models import MarketSnapshot
from commentator.domain.services.persona import load_persona
from commentator.domain.services.trigger_policy import TriggerConfig
from commentator.realtime.broadcast import BroadcastHub
from commentator.realtime.runtime import CommentaryEngine, EngineConfig
from commentator.realtime.speech_queue import SpeechConfig

TOKEN = "So1idMint1111111111111111111111111111pump"


class SequenceRandom:
    """Deterministic random source cycling through fixed values"""

    def __init__(self, values=(0.99,)):
        self._values = list(values)
        self._index = 0

    def random(self) -> float:
        value = self._values[self._index % len(self._values)]
        self._index += 1
        return value


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class StubMarketProvider:
    """Returns queued snapshots in order; the last one repeats"""

    def __init__(self, snapshots: List[Optional[MarketSnapshot]]):
        self._snapshots = list(snapshots)
        self.calls: List[str] = []

    async def get_snapshot(self, address: str) -> Optional[MarketSnapshot]:
        self.calls.append(address)
        if len(self._snapshots) > 1:
            return self._snapshots.pop(0)
        return self._snapshots[0] if self._snapshots else None


class StubPullSource:
    def __init__(self):
        self.replies: List[Dict[str, Any]] = []
        self.trades: List[Dict[str, Any]] = []

    async def fetch_replies(self, address: str, since=None):
        return list(self.replies)

    async def fetch_trades(self, address: str, since=None):
        return list(self.trades)


class FakeFeed:
    def __init__(self, address, on_trade, on_status=None, on_exhausted=None, fail=False):
        self.address = address
        self.on_trade = on_trade
        self.on_status = on_status
        self.on_exhausted = on_exhausted
        self.fail = fail
        self.connected = False
        self.stopped = False

    async def connect(self):
        if self.fail:
            raise FeedUnavailable("feed down")
        self.connected = True
        if self.on_status:
            await self.on_status({"status": "connected", "attempt": 0})

    async def stop(self):
        self.stopped = True

    async def push(self, trade):
        await self.on_trade(trade)

    async def exhaust(self):
        if self.on_status:
            await self.on_status({"status": "exhausted", "attempt": 5})
        await self.on_exhausted()


class StubGenerator:
    def __init__(self, replies=None, error: Optional[Exception] = None, delay: float = 0.0):
        self._replies = list(replies or [])
        self._error = error
        self._delay = delay
        self.requests = []

    async def generate(self, request):
        self.requests.append(request)
        if self._delay:
            await asyncio.sleep(self._delay)
        if self._error is not None:
            raise self._error
        return self._replies.pop(0) if self._replies else ""


class RecordingScheduler:
    def __init__(self):
        self.jobs: Dict[str, Any] = {}
        self.running = False

    def add_interval(self, job_id, func, seconds):
        self.jobs[job_id] = (func, seconds)

    def remove(self, job_id):
        return self.jobs.pop(job_id, None) is not None

    def job_ids(self):
        return list(self.jobs)

    def start(self):
        self.running = True

    def shutdown(self):
        self.running = False


def snapshot(
    change_5m: float = 0.0,
    change_1h: float = 0.0,
    symbol: str = "SID",
    address: str = TOKEN,
    market_cap: float = 42_000.0,
    volume_24h: float = 50_000.0,
) -> MarketSnapshot:
    return MarketSnapshot(
        symbol=symbol,
        address=address,
        price=0.0000421,
        market_cap=market_cap,
        change_5m=change_5m,
        change_1h=change_1h,
        change_24h=change_1h,
        volume_24h=volume_24h,
        liquidity=12_000.0,
        fetched_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
    )


@dataclass
class EngineHarness:
    engine: CommentaryEngine
    market: StubMarketProvider
    pull: StubPullSource
    scheduler: RecordingScheduler
    clock: FakeClock
    feeds: List[FakeFeed] = field(default_factory=list)
    sleeps: List[float] = field(default_factory=list)

    @property
    def feed(self) -> FakeFeed:
        return self.feeds[-1]

    async def settle(self, rounds: int = 50) -> None:
        """Let reactions finish and the speech worker drain the queue."""
        for _ in range(rounds):
            await self.engine.wait_for_reactions()
            await asyncio.sleep(0)
            if not self.engine.speech_queue.size() and not self.engine.worker.is_speaking:
                await asyncio.sleep(0)
                return


@pytest.fixture
def persona():
    return load_persona()


@pytest.fixture
def fakes():
    return SimpleNamespace(
        TOKEN=TOKEN,
        SequenceRandom=SequenceRandom,
        FakeClock=FakeClock,
        StubGenerator=StubGenerator,
        StubMarketProvider=StubMarketProvider,
    )


@pytest.fixture
def make_snapshot() -> Callable[..., MarketSnapshot]:
    return snapshot


@pytest.fixture
def engine_factory(persona):
    def factory(
        snapshots=None,
        generator=None,
        feed_fail: bool = False,
        rng=None,
        trigger: Optional[TriggerConfig] = None,
        speech: Optional[SpeechConfig] = None,
        min_interval_seconds: float = 8.0,
        token_address: Optional[str] = TOKEN,
    ) -> EngineHarness:
        market = StubMarketProvider(snapshots if snapshots is not None else [snapshot()])
        pull = StubPullSource()
        scheduler = RecordingScheduler()
        clock = FakeClock()
        harness = EngineHarness(
            engine=None,  # type: ignore[arg-type]
            market=market,
            pull=pull,
            scheduler=scheduler,
            clock=clock,
        )

        def feed_factory(address, **handlers):
            feed = FakeFeed(address, fail=feed_fail, **handlers)
            harness.feeds.append(feed)
            return feed

        async def fake_sleep(seconds: float):
            harness.sleeps.append(seconds)
            await asyncio.sleep(0)

        harness.engine = CommentaryEngine(
            config=EngineConfig(
                token_address=token_address,
                trigger=trigger or TriggerConfig(),
                speech=speech or SpeechConfig(),
                min_interval_seconds=min_interval_seconds,
            ),
            persona=persona,
            market_provider=market,
            pull_source=pull,
            generator=generator,
            hub=BroadcastHub(queue_size=8),
            scheduler=scheduler,
            feed_factory=feed_factory,
            rng=rng or SequenceRandom(),
            clock=clock,
            sleep=fake_sleep,
        )
        return harness

    return factory


@pytest.fixture()
async def live_harness(engine_factory) -> AsyncGenerator[EngineHarness, None]:
    harness = engine_factory()
    await harness.engine.start()
    await harness.settle()
    yield harness
    await harness.engine.stop()


@pytest.fixture()
async def app(live_harness) -> FastAPI:
    app = FastAPI()
    app.include_router(health.router, tags=["Health"])
    app.include_router(control.router, prefix="/api/v1", tags=["Control"])
    app.include_router(viewers.router, tags=["Viewers"])
    app.state.engine = live_harness.engine
    app.state.control_token = "s3cret"
    return app


@pytest.fixture()
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
