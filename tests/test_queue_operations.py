"""Tests for the per-title queues."""

import asyncio
from datetime import datetime, timedelta

import pytest

from ladder.database.models import GameTitle
from ladder.data_models.queue import QueueEntry, QueueFailure
from ladder.operations.queue_operations import QueueOperations, QueueStore
from factories import FlakyDatabase, LockingDatabase

VALORANT = GameTitle.VALORANT
MARVEL = GameTitle.MARVEL_RIVALS
T0 = datetime(2025, 1, 1, 12, 0, 0)


def entry(player_id, minutes=0, title=VALORANT):
    return QueueEntry(player_id=player_id, title=title, joined_at=T0 + timedelta(minutes=minutes))


class TestQueueStore:

    def test_capacity_scenario(self):
        store = QueueStore(VALORANT, 10)
        for player_id in range(1, 10):
            assert store.join(entry(player_id, player_id)).success
        assert not store.is_full()

        result = store.join(entry(10, 10))
        assert result.success
        assert result.remaining == 0
        assert store.is_full()

        result = store.join(entry(11, 11))
        assert not result.success
        assert result.reason == QueueFailure.FULL
        assert result.message == "Queue is full."
        assert store.size() == 10

    def test_join_reports_players_needed(self):
        store = QueueStore(VALORANT, 10)
        result = store.join(entry(1))
        assert result.message == "Joined queue. 9 players needed."
        assert result.remaining == 9

    def test_locked_queue_rejects_join_regardless_of_size(self):
        store = QueueStore(VALORANT, 10)
        store.lock()
        result = store.join(entry(1))
        assert not result.success
        assert result.reason == QueueFailure.LOCKED
        assert store.size() == 0

    def test_duplicate_join_is_rejected(self):
        store = QueueStore(VALORANT, 10)
        store.join(entry(1))
        result = store.join(entry(1, 5))
        assert not result.success
        assert result.reason == QueueFailure.ALREADY_QUEUED
        assert store.size() == 1

    def test_leave_absent_player(self):
        store = QueueStore(VALORANT, 10)
        store.join(entry(1))
        result = store.leave(2)
        assert not result.success
        assert result.reason == QueueFailure.NOT_IN_QUEUE
        assert store.size() == 1

    def test_leave_while_locked(self):
        store = QueueStore(VALORANT, 10)
        store.join(entry(1))
        store.lock()
        result = store.leave(1)
        assert result.reason == QueueFailure.LOCKED
        assert store.contains(1)

    def test_lock_is_idempotent(self):
        store = QueueStore(VALORANT, 10)
        store.join(entry(1))
        store.lock()
        once = store.snapshot()
        store.lock()
        assert store.snapshot() == once
        assert store.locked

    def test_clear_is_idempotent(self):
        store = QueueStore(VALORANT, 10)
        store.join(entry(1))
        store.lock()
        store.clear()
        assert store.size() == 0
        assert not store.locked
        store.clear()
        assert store.size() == 0
        assert not store.locked

    def test_join_order_is_preserved(self):
        store = QueueStore(VALORANT, 10)
        store.replace_entries([entry(3, 30), entry(1, 10), entry(2, 20)])
        assert store.player_ids() == [1, 2, 3]


class TestQueueOperations:

    @pytest.mark.asyncio
    async def test_join_and_leave_write_through(self, database):
        queues = QueueOperations(database, capacity=10)

        assert (await queues.join(1, VALORANT)).success
        assert (await queues.join(2, VALORANT)).success
        assert [e.player_id for e in await database.load_queue(VALORANT)] == [1, 2]

        result = await queues.leave(1, VALORANT)
        assert result.success
        assert [e.player_id for e in await database.load_queue(VALORANT)] == [2]

        result = await queues.leave(1, VALORANT)
        assert result.reason == QueueFailure.NOT_IN_QUEUE

    @pytest.mark.asyncio
    async def test_titles_are_isolated(self, database):
        queues = QueueOperations(database, capacity=2)
        await queues.join(1, VALORANT)
        await queues.join(2, VALORANT)
        await queues.lock(VALORANT)

        result = await queues.join(1, MARVEL)
        assert result.success
        status = await queues.get_status(MARVEL)
        assert status.player_ids == (1,)
        assert not status.locked
        assert (await queues.get_status(VALORANT)).locked

    @pytest.mark.asyncio
    async def test_capacity_check_uses_a_fresh_read(self, database):
        queues = QueueOperations(database, capacity=2)
        # Another writer fills the queue behind this process's back
        await database.save_queue_join(entry(1))
        await database.save_queue_join(entry(2))

        result = await queues.join(3, VALORANT)

        assert not result.success
        assert result.reason == QueueFailure.FULL
        assert len(await database.load_queue(VALORANT)) == 2

    @pytest.mark.asyncio
    async def test_concurrent_joins_never_exceed_capacity(self, database):
        queues = QueueOperations(database, capacity=10)

        results = await asyncio.gather(*(queues.join(player_id, VALORANT) for player_id in range(1, 13)))

        assert sum(1 for r in results if r.success) == 10
        assert sum(1 for r in results if r.reason == QueueFailure.FULL) == 2
        assert len(await database.load_queue(VALORANT)) == 10
        assert await queues.is_full(VALORANT)

    @pytest.mark.asyncio
    async def test_locked_queue_rejects_join_and_leave(self, database):
        queues = QueueOperations(database, capacity=10)
        await queues.join(1, VALORANT)
        await queues.lock(VALORANT)

        assert (await queues.join(2, VALORANT)).reason == QueueFailure.LOCKED
        assert (await queues.leave(1, VALORANT)).reason == QueueFailure.LOCKED
        assert [e.player_id for e in await database.load_queue(VALORANT)] == [1]

    @pytest.mark.asyncio
    async def test_clear_empties_and_unlocks(self, database):
        queues = QueueOperations(database, capacity=10)
        await queues.join(1, VALORANT)
        await queues.lock(VALORANT)

        assert (await queues.clear(VALORANT)).success
        status = await queues.get_status(VALORANT)
        assert status.size == 0
        assert not status.locked
        assert await database.load_queue(VALORANT) == []

        assert (await queues.clear(VALORANT)).success
        assert (await queues.get_status(VALORANT)).size == 0

    @pytest.mark.asyncio
    async def test_failed_write_is_reported(self, database):
        flaky = FlakyDatabase(database)
        queues = QueueOperations(flaky, capacity=10)
        flaky.failing.add("save_queue_join")

        result = await queues.join(1, VALORANT)

        assert not result.success
        assert result.reason == QueueFailure.PERSISTENCE
        assert queues.store(VALORANT).size() == 0

    @pytest.mark.asyncio
    async def test_failed_read_falls_back_to_cache(self, database):
        flaky = FlakyDatabase(database)
        queues = QueueOperations(flaky, capacity=10)
        await queues.join(1, VALORANT)
        flaky.failing.add("load_queue")

        status = await queues.get_status(VALORANT)

        assert status.player_ids == (1,)

    @pytest.mark.asyncio
    async def test_remove_expired(self, database):
        queues = QueueOperations(database, capacity=10)
        await queues.join(1, VALORANT, now=T0)
        await queues.join(2, VALORANT, now=T0 + timedelta(minutes=20))

        removed = await queues.remove_expired(VALORANT, T0 + timedelta(minutes=5))

        assert removed == [1]
        assert [e.player_id for e in await database.load_queue(VALORANT)] == [2]

    @pytest.mark.asyncio
    async def test_remove_expired_skips_locked_queue(self, database):
        queues = QueueOperations(database, capacity=10)
        await queues.join(1, VALORANT, now=T0)
        await queues.lock(VALORANT)

        assert await queues.remove_expired(VALORANT, T0 + timedelta(hours=1)) == []
        assert (await queues.get_status(VALORANT)).size == 1

    @pytest.mark.asyncio
    async def test_lock_waits_for_join_in_flight(self, database):
        locking = LockingDatabase(database)
        queues = QueueOperations(locking, capacity=10)
        locking.queues = queues

        result = await queues.join(1, VALORANT)
        await asyncio.gather(*locking.lock_tasks)

        assert result.success
        assert queues.store(VALORANT).player_ids() == [1]
        assert [e.player_id for e in await database.load_queue(VALORANT)] == [1]
        assert queues.store(VALORANT).locked

    @pytest.mark.asyncio
    async def test_lock_waits_for_leave_in_flight(self, database):
        locking = LockingDatabase(database)
        queues = QueueOperations(locking, capacity=10)
        locking.queues = queues
        await database.save_queue_join(entry(1))
        await queues.refresh(VALORANT)

        result = await queues.leave(1, VALORANT)
        await asyncio.gather(*locking.lock_tasks)

        assert result.success
        assert queues.store(VALORANT).size() == 0
        assert await database.load_queue(VALORANT) == []
        assert queues.store(VALORANT).locked

    @pytest.mark.asyncio
    async def test_join_refused_after_write_is_rolled_back(self, database):
        queues = QueueOperations(database, capacity=10)
        original_save = database.save_queue_join

        async def save_then_lock(queue_entry):
            added = await original_save(queue_entry)
            queues.store(queue_entry.title).lock()
            return added

        database.save_queue_join = save_then_lock
        result = await queues.join(1, VALORANT)

        assert result.reason == QueueFailure.LOCKED
        assert queues.store(VALORANT).size() == 0
        assert await database.load_queue(VALORANT) == []

    def test_capacity_must_be_even(self):
        with pytest.raises(ValueError):
            QueueOperations(None, capacity=5)
