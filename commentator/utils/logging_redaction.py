"""
Logging redaction helpers.
Redacts API keys and tokens from log messages.
"""

from __future__ import annotations

import logging
import re
from typing import Iterable


_PATTERNS: Iterable[tuple[re.Pattern, str]] = (
    # Telegram bot token in URL: /bot<token>/
    (re.compile(r"bot\d+:[A-Za-z0-9_-]{20,}"), "bot[REDACTED]"),
    # Authorization: Bearer <token>
    (re.compile(r"(Bearer\s+)([A-Za-z0-9\-\._]+)"), r"\1[REDACTED]"),
    # Anthropic / ElevenLabs key headers
    (re.compile(r"(?i)(x-api-key|xi-api-key)(['\"]?\s*[:=]\s*['\"]?)([A-Za-z0-9\-\._]+)"), r"\1\2[REDACTED]"),
    # Anthropic key shape anywhere in a message
    (re.compile(r"sk-ant-[A-Za-z0-9\-_]{8,}"), "sk-ant-[REDACTED]"),
    # Generic key/token assignments
    (re.compile(r"(?i)(api[_-]?key|control[_-]?token)\s*[:=]\s*([A-Za-z0-9\-\._]+)"), r"\1=[REDACTED]"),
)


def redact_message(message: str) -> str:
    redacted = message
    for pattern, replacement in _PATTERNS:
        redacted = pattern.sub(replacement, redacted)
    return redacted


class RedactingFilter(logging.Filter):
    """Filter that redacts sensitive data from log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        try:
            message = record.getMessage()
        except (TypeError, ValueError):
            return True
        record.msg = redact_message(message)
        record.args = ()
        return True


def install_redaction_filter() -> None:
    root = logging.getLogger()
    for existing in root.filters:
        if isinstance(existing, RedactingFilter):
            return
    redacting = RedactingFilter()
    root.addFilter(redacting)
    # Root logger filters do not apply to records propagated from child loggers
    for handler in root.handlers:
        if not any(isinstance(f, RedactingFilter) for f in handler.filters):
            handler.addFilter(redacting)
