"""
DexScreener Market Data Provider
Latest price, market cap, change windows, volume and liquidity for one token.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx

from commentator.domain.models import MarketSnapshot

logger = logging.getLogger(__name__)


def _num(value: Any) -> float:
    if value is None or isinstance(value, bool):
        return 0.0
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    return number if number == number else 0.0


def parse_pair(pair: Dict[str, Any], address: str) -> Optional[MarketSnapshot]:
    if not isinstance(pair, dict):
        return None
    base = pair.get("baseToken") or {}
    change = pair.get("priceChange") or {}
    volume = pair.get("volume") or {}
    liquidity = pair.get("liquidity") or {}
    return MarketSnapshot(
        symbol=str(base.get("symbol") or "UNKNOWN"),
        address=address,
        price=_num(pair.get("priceUsd")),
        market_cap=_num(pair.get("marketCap") or pair.get("fdv")),
        change_5m=_num(change.get("m5")),
        change_1h=_num(change.get("h1")),
        change_24h=_num(change.get("h24")),
        volume_24h=_num(volume.get("h24")),
        liquidity=_num(liquidity.get("usd")),
    )


class DexScreenerProvider:
    def __init__(self, base_url: str = "https://api.dexscreener.com", chain_id: str = "solana", timeout: float = 10.0):
        self.base_url = base_url.rstrip("/")
        self.chain_id = chain_id
        self.timeout = timeout

    async def _request_json(self, url: str) -> Optional[Any]:
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.get(url, headers={"Accept": "application/json"})
                if response.status_code != 200:
                    logger.warning("DexScreener API %s: %s", response.status_code, (response.text or "")[:200])
                    return None
                return response.json()
        except Exception as exc:
            logger.warning("DexScreener request failed: %s", exc)
            return None

    async def get_snapshot(self, address: str) -> Optional[MarketSnapshot]:
        payload = await self._request_json(f"{self.base_url}/tokens/v1/{self.chain_id}/{address}")
        if isinstance(payload, dict):
            payload = payload.get("pairs")
        if not isinstance(payload, list) or not payload:
            logger.debug("DexScreener has no pairs for %s", address)
            return None
        return parse_pair(payload[0], address)
