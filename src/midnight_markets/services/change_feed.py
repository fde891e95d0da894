"""Change feed: push committed ledger events to subscribers.

Each subscriber owns a bounded asyncio.Queue. Publishing never blocks an
operation; when a subscriber falls behind, its oldest queued event is
dropped to make room for the newest.

    queue = engine.subscribe()
    event = await queue.get()
    engine.unsubscribe(queue)
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

from midnight_markets.logging_config import get_logger

if TYPE_CHECKING:
    from collections.abc import Iterable

    from midnight_markets.domain.models import LedgerEvent

logger = get_logger(__name__)


class ChangeFeed:
    """Fan-out of LedgerEvents to in-process subscribers."""

    def __init__(self, maxsize: int = 500) -> None:
        self._maxsize = maxsize
        self._subscribers: set[asyncio.Queue[LedgerEvent]] = set()

    def subscribe(self) -> asyncio.Queue[LedgerEvent]:
        queue: asyncio.Queue[LedgerEvent] = asyncio.Queue(maxsize=self._maxsize)
        self._subscribers.add(queue)
        logger.debug("change_feed.subscribed", subscribers=len(self._subscribers))
        return queue

    def unsubscribe(self, queue: asyncio.Queue[LedgerEvent]) -> None:
        self._subscribers.discard(queue)
        logger.debug("change_feed.unsubscribed", subscribers=len(self._subscribers))

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def publish(self, events: Iterable[LedgerEvent]) -> None:
        """Deliver events to every subscriber. Call only after the events committed."""
        for event in events:
            for queue in list(self._subscribers):
                try:
                    queue.put_nowait(event)
                except asyncio.QueueFull:
                    queue.get_nowait()
                    queue.put_nowait(event)
                    logger.warning(
                        "change_feed.dropped",
                        event_type=event.event_type.value,
                        maxsize=self._maxsize,
                    )
