"""
PumpPortal websocket trade feed.

Connects, subscribes to one token, waits for the acknowledgment and then
pushes normalized trades to the owner. Unexpected closures are retried
with linearly increasing delays; once the attempts run out the owner is
told to switch to polling.
"""

from __future__ import annotations

import asyncio
import json
import logging
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional

import websockets

from commentator.domain.errors import FeedUnavailable
from commentator.domain.models import TradeEvent
from commentator.infrastructure.feeds.normalizer import decode_message, parse_trade_message

logger = logging.getLogger(__name__)

TradeHandler = Callable[[TradeEvent], Awaitable[None]]
StatusHandler = Callable[[Dict[str, Any]], Awaitable[None]]
ExhaustedHandler = Callable[[], Awaitable[None]]
Connector = Callable[[str], Awaitable[Any]]


class FeedState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    CLOSED = "closed"
    RECONNECTING = "reconnecting"
    EXHAUSTED = "exhausted"


async def _default_connector(url: str) -> Any:
    return await websockets.connect(url, ping_interval=20, ping_timeout=20)


class PumpPortalStreamClient:
    def __init__(
        self,
        ws_url: str,
        token_address: str,
        on_trade: TradeHandler,
        on_status: Optional[StatusHandler] = None,
        on_exhausted: Optional[ExhaustedHandler] = None,
        reconnect_base_delay: float = 2.0,
        max_reconnect_attempts: int = 5,
        ack_timeout: float = 10.0,
        connector: Optional[Connector] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._ws_url = ws_url
        self._token_address = token_address
        self._on_trade = on_trade
        self._on_status = on_status
        self._on_exhausted = on_exhausted
        self._base_delay = reconnect_base_delay
        self._max_attempts = max_reconnect_attempts
        self._ack_timeout = ack_timeout
        self._connector = connector or _default_connector
        self._sleep = sleep
        self._ws: Any = None
        self._task: Optional[asyncio.Task] = None
        self._stopping = False
        self._state = FeedState.DISCONNECTED
        self._attempt = 0
        self.trades_received = 0
        self.dropped_messages = 0

    @property
    def state(self) -> FeedState:
        return self._state

    @property
    def token_address(self) -> str:
        return self._token_address

    async def connect(self) -> None:
        """Open, subscribe and wait for the ack. Raises FeedUnavailable."""
        self._stopping = False
        self._attempt = 0
        try:
            await self._open()
        except FeedUnavailable:
            await self._set_state(FeedState.DISCONNECTED)
            raise
        self._task = asyncio.create_task(self._listen())

    async def stop(self) -> None:
        self._stopping = True
        if self._task and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None
        await self._close_socket()
        await self._set_state(FeedState.DISCONNECTED)

    async def _open(self) -> None:
        await self._set_state(FeedState.CONNECTING)
        try:
            ws = await self._connector(self._ws_url)
        except Exception as exc:
            raise FeedUnavailable(f"connect failed: {exc}") from exc

        try:
            await ws.send(json.dumps({"method": "subscribeTokenTrade", "keys": [self._token_address]}))
            await asyncio.wait_for(self._await_ack(ws), timeout=self._ack_timeout)
        except asyncio.TimeoutError as exc:
            await self._safe_close(ws)
            raise FeedUnavailable("subscription was not acknowledged in time") from exc
        except Exception as exc:
            await self._safe_close(ws)
            raise FeedUnavailable(f"subscription failed: {exc}") from exc

        self._ws = ws
        self._attempt = 0
        await self._set_state(FeedState.CONNECTED)
        logger.info("Trade feed subscribed to %s", self._token_address)

    async def _await_ack(self, ws: Any) -> None:
        while True:
            payload = decode_message(await ws.recv())
            if payload is None:
                continue
            message = payload.get("message")
            if isinstance(message, str) and "subscribed" in message.lower():
                return
            trade = parse_trade_message(payload, self._token_address)
            if trade is not None:
                await self._deliver(trade)
                return

    async def _listen(self) -> None:
        while not self._stopping:
            try:
                async for message in self._ws:
                    await self._handle_message(message)
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                logger.info("Trade feed connection dropped: %s", exc)

            if self._stopping:
                return
            await self._close_socket()
            await self._set_state(FeedState.CLOSED)
            if not await self._reconnect():
                if self._stopping:
                    return
                await self._set_state(FeedState.EXHAUSTED)
                logger.warning(
                    "Trade feed gave up after %s reconnect attempts; switching to polling",
                    self._max_attempts,
                )
                if self._on_exhausted:
                    await self._on_exhausted()
                return

    async def _reconnect(self) -> bool:
        while self._attempt < self._max_attempts and not self._stopping:
            self._attempt += 1
            await self._set_state(FeedState.RECONNECTING)
            delay = self._base_delay * self._attempt
            logger.info(
                "Reconnecting trade feed in %.1fs (attempt %s/%s)", delay, self._attempt, self._max_attempts
            )
            await self._sleep(delay)
            if self._stopping:
                return False
            try:
                await self._open()
                return True
            except FeedUnavailable as exc:
                logger.warning("Trade feed reconnect attempt %s failed: %s", self._attempt, exc)
        return False

    async def _handle_message(self, message: Any) -> None:
        payload = decode_message(message)
        trade = parse_trade_message(payload, self._token_address) if payload else None
        if trade is None:
            self.dropped_messages += 1
            logger.debug("Dropping unrecognized feed payload: %.120s", message)
            return
        await self._deliver(trade)

    async def _deliver(self, trade: TradeEvent) -> None:
        self.trades_received += 1
        try:
            await self._on_trade(trade)
        except Exception:
            logger.exception("Trade handler failed")

    async def _close_socket(self) -> None:
        if self._ws is not None:
            await self._safe_close(self._ws)
            self._ws = None

    @staticmethod
    async def _safe_close(ws: Any) -> None:
        try:
            await ws.close()
        except Exception as exc:
            logger.debug("Feed socket close failed: %s", exc)

    async def _set_state(self, state: FeedState) -> None:
        self._state = state
        if self._on_status:
            try:
                await self._on_status({"status": state.value, "attempt": self._attempt})
            except Exception as exc:
                logger.debug("Feed status handler failed: %s", exc)
