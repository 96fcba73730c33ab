"""
pump.fun frontend API client (pull source for chat replies and trades).
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

import httpx

from commentator.infrastructure.feeds.normalizer import parse_timestamp

logger = logging.getLogger(__name__)


class PumpFunClient:
    def __init__(self, base_url: str = "https://frontend-api.pump.fun", timeout: float = 10.0, page_size: int = 50):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.page_size = page_size

    async def _request_json(self, url: str, params: Optional[dict] = None) -> Any:
        headers = {"Accept": "application/json"}
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            response = await client.get(url, headers=headers, params=params)
            response.raise_for_status()
            return response.json()

    async def fetch_replies(self, address: str, since: Optional[datetime] = None) -> List[Dict[str, Any]]:
        payload = await self._request_json(
            f"{self.base_url}/replies/{address}",
            params={"limit": self.page_size, "offset": 0},
        )
        return self._since(self._rows(payload), since, ("created_at", "timestamp"))

    async def fetch_trades(self, address: str, since: Optional[datetime] = None) -> List[Dict[str, Any]]:
        payload = await self._request_json(
            f"{self.base_url}/trades/all/{address}",
            params={"limit": self.page_size, "offset": 0, "minimumSize": 0},
        )
        return self._since(self._rows(payload), since, ("timestamp",))

    @staticmethod
    def _rows(payload: Any) -> List[Dict[str, Any]]:
        if isinstance(payload, dict):
            payload = payload.get("replies") or payload.get("trades") or payload.get("data") or []
        if not isinstance(payload, list):
            logger.debug("pump.fun returned unexpected payload type %s", type(payload).__name__)
            return []
        return [row for row in payload if isinstance(row, dict)]

    @staticmethod
    def _since(rows: List[Dict[str, Any]], since: Optional[datetime], keys: tuple) -> List[Dict[str, Any]]:
        """Keep rows at or after the cursor; rows without a readable time are left for the normalizer."""
        if since is None:
            return rows
        kept = []
        for row in rows:
            ts = None
            for key in keys:
                ts = parse_timestamp(row.get(key))
                if ts is not None:
                    break
            if ts is None or ts >= since:
                kept.append(row)
        return kept
