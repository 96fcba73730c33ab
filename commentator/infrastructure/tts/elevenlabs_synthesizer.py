"""
ElevenLabs text-to-speech collaborator.
"""

from __future__ import annotations

import logging
from typing import Any, Dict

import httpx

from commentator.domain.errors import SpeechSynthesisError

logger = logging.getLogger(__name__)


class ElevenLabsSynthesizer:
    def __init__(
        self,
        api_key: str,
        voice_id: str,
        model_id: str = "eleven_monolingual_v1",
        stability: float = 0.4,
        similarity_boost: float = 0.7,
        timeout: float = 30.0,
        base_url: str = "https://api.elevenlabs.io/v1",
    ):
        if not api_key or not voice_id:
            raise ValueError("ElevenLabs API key and voice id are required")
        self.api_key = api_key
        self.voice_id = voice_id
        self.model_id = model_id
        self.stability = stability
        self.similarity_boost = similarity_boost
        self.timeout = timeout
        self.base_url = base_url.rstrip("/")

    async def _post(self, url: str, payload: Dict[str, Any]) -> bytes:
        headers = {
            "xi-api-key": self.api_key,
            "Content-Type": "application/json",
            "Accept": "audio/mpeg",
        }
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            response = await client.post(url, json=payload, headers=headers)
            response.raise_for_status()
            return response.content

    async def synthesize(self, text: str) -> bytes:
        payload = {
            "text": text,
            "model_id": self.model_id,
            "voice_settings": {
                "stability": self.stability,
                "similarity_boost": self.similarity_boost,
            },
        }
        try:
            audio = await self._post(f"{self.base_url}/text-to-speech/{self.voice_id}", payload)
        except httpx.HTTPStatusError as exc:
            raise SpeechSynthesisError(f"ElevenLabs API {exc.response.status_code}") from exc
        except httpx.HTTPError as exc:
            raise SpeechSynthesisError(f"ElevenLabs request failed: {exc}") from exc
        if not audio:
            raise SpeechSynthesisError("ElevenLabs returned empty audio")
        return audio
