"""Tests for tier-change fan-out."""

import pytest

from ladder.database.models import GameTitle
from ladder.data_models.ranking import TierChangeEvent
from ladder.services.notifier import TierChangeNotifier

EVENTS = [
    TierChangeEvent(1, "GRNDS V", "BREAKPOINT I", GameTitle.VALORANT, "match-1"),
    TierChangeEvent(1, "GRNDS V", "BREAKPOINT I", None, "match-1"),
]


class TestTierChangeNotifier:

    @pytest.mark.asyncio
    async def test_sync_and_async_listeners(self):
        notifier = TierChangeNotifier()
        received = []

        async def async_listener(event):
            received.append(("async", event.title))

        notifier.subscribe(lambda event: received.append(("sync", event.title)))
        notifier.subscribe(async_listener)

        delivered = await notifier.emit(EVENTS)

        assert delivered == 2
        assert received == [
            ("sync", GameTitle.VALORANT), ("async", GameTitle.VALORANT),
            ("sync", None), ("async", None),
        ]

    @pytest.mark.asyncio
    async def test_failing_listener_does_not_stop_delivery(self, caplog):
        notifier = TierChangeNotifier()
        received = []

        def broken(event):
            raise RuntimeError("role sync offline")

        notifier.subscribe(broken)
        notifier.subscribe(received.append)

        assert await notifier.emit(EVENTS) == 2
        assert received == EVENTS
        assert "role sync offline" in caplog.text

    def test_subscribe_is_idempotent(self):
        notifier = TierChangeNotifier()
        listener = print
        notifier.subscribe(listener)
        notifier.subscribe(listener)
        assert notifier.listener_count == 1
        notifier.unsubscribe(listener)
        notifier.unsubscribe(listener)
        assert notifier.listener_count == 0
