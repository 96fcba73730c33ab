"""
Rendered audio storage and the voice renderer used by the speech worker.
"""

from __future__ import annotations

import logging
import re
import time
import uuid
from pathlib import Path
from typing import Optional

from commentator.infrastructure.tts.elevenlabs_synthesizer import ElevenLabsSynthesizer

logger = logging.getLogger(__name__)

AUDIO_URL_PREFIX = "/audio/"
_SAFE_NAME = re.compile(r"^[A-Za-z0-9_-]+\.mp3$")


class AudioStore:
    def __init__(self, directory: Path, max_files: int = 50):
        if max_files < 1:
            raise ValueError("max_files must be at least 1")
        self.directory = Path(directory)
        self.max_files = max_files
        self.directory.mkdir(parents=True, exist_ok=True)

    def save(self, audio: bytes) -> str:
        name = f"{int(time.time() * 1000)}-{uuid.uuid4().hex[:8]}.mp3"
        (self.directory / name).write_bytes(audio)
        self._prune()
        return f"{AUDIO_URL_PREFIX}{name}"

    def path_for(self, name: str) -> Optional[Path]:
        """Resolve a served file name; anything that is not a plain stored file is rejected."""
        if not _SAFE_NAME.match(name or ""):
            return None
        path = self.directory / name
        return path if path.is_file() else None

    def files(self) -> list:
        return sorted(self.directory.glob("*.mp3"), key=lambda p: p.stat().st_mtime)

    def _prune(self) -> None:
        files = self.files()
        for stale in files[: max(0, len(files) - self.max_files)]:
            try:
                stale.unlink()
            except OSError as exc:
                logger.debug("Could not remove old audio %s: %s", stale.name, exc)


class VoiceRenderer:
    """Synthesize + store; every failure becomes None so speech goes out text-only."""

    def __init__(self, synthesizer: ElevenLabsSynthesizer, store: AudioStore):
        self._synthesizer = synthesizer
        self.store = store
        self.failures = 0

    async def render(self, text: str) -> Optional[str]:
        try:
            audio = await self._synthesizer.synthesize(text)
            return self.store.save(audio)
        except Exception as exc:
            self.failures += 1
            logger.warning("Voice rendering failed: %s", exc)
            return None
