"""
Tier-change notification.

Rank changes are published here as TierChangeEvent values. An outward
reconciliation job (role or badge sync) subscribes and decides what to do
with them; this module never touches anything it does not own.
"""

import asyncio
from typing import Awaitable, Callable, Iterable, List, Union

from ladder.data_models.ranking import TierChangeEvent
from ladder.utils.logger import setup_logger

logger = setup_logger(__name__)

Listener = Callable[[TierChangeEvent], Union[None, Awaitable[None]]]


class TierChangeNotifier:
    """Fan-out of tier-change events to sync or async listeners"""

    def __init__(self):
        self._listeners: List[Listener] = []

    def subscribe(self, listener: Listener):
        if listener not in self._listeners:
            self._listeners.append(listener)

    def unsubscribe(self, listener: Listener):
        if listener in self._listeners:
            self._listeners.remove(listener)

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    async def emit(self, events: Iterable[TierChangeEvent]) -> int:
        """
        Deliver events in order to every listener.

        A failing listener is logged and skipped; it never undoes the rank
        change that produced the event. Returns the number of events delivered.
        """
        delivered = 0
        for event in events:
            scope = event.title.value if event.title else "display"
            logger.info(f"Tier change for player {event.player_id} ({scope}): {event.old_tier} -> {event.new_tier}")
            for listener in list(self._listeners):
                try:
                    result = listener(event)
                    if asyncio.iscoroutine(result):
                        await result
                except Exception as e:
                    logger.error(f"Tier change listener {listener!r} failed for player {event.player_id}: {e}")
            delivered += 1
        return delivered
