"""
Pull-based feed adapter.

Turns a stateless "list recent items since cursor" source into a stream of
new events: normalizes, orders oldest-first, de-duplicates against a
bounded set of seen identifiers and hands each batch to the owner.
"""

from __future__ import annotations

import inspect
import logging
from collections import OrderedDict
from datetime import datetime
from typing import Any, Awaitable, Callable, Generic, List, Optional, Sequence, TypeVar, Union

from commentator.domain.models import ChatEvent, TradeEvent

logger = logging.getLogger(__name__)

E = TypeVar("E", ChatEvent, TradeEvent)

Fetcher = Callable[[Optional[datetime]], Awaitable[Sequence[Any]]]
Normalizer = Callable[[Any], Optional[E]]
Ingestor = Callable[[List[E]], Any]


def event_identity(event: Union[ChatEvent, TradeEvent]) -> str:
    """Stable id; composite of author/actor, time and payload when the source has none."""
    if event.event_id:
        return event.event_id
    stamp = event.occurred_at.isoformat()
    if isinstance(event, ChatEvent):
        return f"{event.author}-{stamp}-{event.text}"
    return f"{event.actor}-{stamp}-{event.kind.value}-{event.quantity}"


class FeedPoller(Generic[E]):
    def __init__(
        self,
        name: str,
        fetch: Fetcher,
        normalize: Normalizer,
        ingest: Ingestor,
        max_seen: int = 1000,
        retain_seen: int = 500,
    ):
        if retain_seen > max_seen:
            raise ValueError("retain_seen cannot exceed max_seen")
        self.name = name
        self._fetch = fetch
        self._normalize = normalize
        self._ingest = ingest
        self._max_seen = max_seen
        self._retain_seen = retain_seen
        self._seen: "OrderedDict[str, None]" = OrderedDict()
        self._cursor: Optional[datetime] = None
        self.polls = 0
        self.failures = 0

    @property
    def cursor(self) -> Optional[datetime]:
        return self._cursor

    @property
    def seen_count(self) -> int:
        return len(self._seen)

    def has_seen(self, identity: str) -> bool:
        return identity in self._seen

    async def prime(self) -> int:
        """Mark the current page as seen without ingesting it."""
        events = await self._collect()
        for event in events:
            self._remember(event_identity(event))
            self._advance(event)
        logger.info("%s poller primed with %s existing items", self.name, len(events))
        return len(events)

    async def poll_once(self) -> int:
        events = await self._collect()
        fresh: List[E] = []
        for event in events:
            identity = event_identity(event)
            if identity in self._seen:
                continue
            self._remember(identity)
            self._advance(event)
            fresh.append(event)

        if fresh:
            result = self._ingest(fresh)
            if inspect.isawaitable(result):
                await result
        return len(fresh)

    def reset(self) -> None:
        self._seen.clear()
        self._cursor = None

    async def _collect(self) -> List[E]:
        self.polls += 1
        try:
            raw_items = await self._fetch(self._cursor)
        except Exception as exc:
            self.failures += 1
            logger.warning("%s poll failed: %s", self.name, exc)
            return []

        events: List[E] = []
        for raw in raw_items or ():
            event = self._normalize(raw)
            if event is None:
                logger.debug("%s poller dropped malformed item", self.name)
                continue
            events.append(event)
        events.sort(key=lambda e: e.occurred_at)
        return events

    def _remember(self, identity: str) -> None:
        self._seen[identity] = None
        if len(self._seen) > self._max_seen:
            while len(self._seen) > self._retain_seen:
                self._seen.popitem(last=False)

    def _advance(self, event: E) -> None:
        if self._cursor is None or event.occurred_at > self._cursor:
            self._cursor = event.occurred_at
