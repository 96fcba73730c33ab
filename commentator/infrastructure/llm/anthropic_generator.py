"""
Anthropic Messages API text generator.
"""

from __future__ import annotations

import logging
from typing import Any, Dict

import httpx

from commentator.domain.errors import TextGenerationError
from commentator.domain.services.decision_gateway import GenerationRequest

logger = logging.getLogger(__name__)


class AnthropicTextGenerator:
    def __init__(
        self,
        api_key: str,
        model: str = "claude-3-haiku-20240307",
        max_tokens: int = 150,
        timeout: float = 10.0,
        base_url: str = "https://api.anthropic.com/v1",
    ):
        if not api_key:
            raise ValueError("Anthropic API key is required")
        self.api_key = api_key
        self.model = model
        self.max_tokens = max_tokens
        self.timeout = timeout
        self.base_url = base_url.rstrip("/")

    async def _post(self, url: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        headers = {
            "x-api-key": self.api_key,
            "anthropic-version": "2023-06-01",
            "content-type": "application/json",
        }
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            response = await client.post(url, json=payload, headers=headers)
            response.raise_for_status()
            return response.json()

    async def generate(self, request: GenerationRequest) -> str:
        payload = {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "system": request.system,
            "messages": request.messages(),
        }
        try:
            data = await self._post(f"{self.base_url}/messages", payload)
        except httpx.HTTPStatusError as exc:
            raise TextGenerationError(f"Anthropic API {exc.response.status_code}") from exc
        except (httpx.HTTPError, ValueError) as exc:
            raise TextGenerationError(f"Anthropic request failed: {exc}") from exc

        out = ""
        for block in data.get("content") or []:
            if isinstance(block, dict) and block.get("type") == "text":
                out += block.get("text", "")
        out = out.strip()
        if not out:
            raise TextGenerationError("Anthropic returned no text")
        return out
