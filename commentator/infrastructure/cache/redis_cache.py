"""
Redis cache publishing the latest market snapshot and engine status
for external dashboards. Write-only from the engine side.
Best-effort: every Redis failure is logged and ignored.
"""

from __future__ import annotations

import json
import logging
from dataclasses import asdict
from typing import Any, Dict, Optional

import redis.asyncio as redis

from commentator.domain.models import MarketSnapshot

logger = logging.getLogger(__name__)


class RedisCache:
    def __init__(self, url: str, prefix: str = "sid:", ttl_seconds: int = 300, client: Any = None):
        self._client = client if client is not None else redis.Redis.from_url(url, decode_responses=True)
        self._prefix = prefix
        self._ttl = ttl_seconds

    def _key(self, key: str) -> str:
        return f"{self._prefix}{key}"

    async def set_json(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> None:
        try:
            await self._client.set(self._key(key), json.dumps(value, default=str), ex=ttl_seconds or self._ttl)
        except Exception as exc:
            logger.debug("Redis set_json failed: %s", exc)

    async def store_snapshot(self, snapshot: MarketSnapshot) -> None:
        payload = asdict(snapshot)
        payload["fetched_at"] = snapshot.fetched_at.isoformat()
        await self.set_json(f"market:{snapshot.address}", payload)

    async def store_status(self, status: Dict[str, Any]) -> None:
        await self.set_json("status", status)

    async def close(self) -> None:
        try:
            await self._client.aclose()
        except Exception as exc:
            logger.debug("Redis close failed: %s", exc)
