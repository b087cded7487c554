"""
Queue Operations Module

Per-title, capacity-bounded join queues. Each title owns an independent
QueueStore (the in-memory working view) guarded by its own asyncio.Lock;
the Database is the write-through durable mirror.

Key functionality:
- join()/leave(): re-validated against a fresh read of the mirror under the title lock
- lock()/unlock(): flip the lock flag, serialized with join/leave (lock is idempotent)
- clear(): empty the queue and unlock it
- remove_expired(): drop entries that have waited too long on an open queue

Validation and persistence failures are returned as QueueResult values,
never raised.
"""

import asyncio
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from ladder.config import Config
from ladder.database.models import GameTitle
from ladder.data_models.queue import QueueEntry, QueueFailure, QueueResult, QueueSnapshot
from ladder.utils.clock import utc_now
from ladder.utils.exceptions import PersistenceError
from ladder.utils.logger import setup_logger

logger = setup_logger(__name__)


def _players_needed(remaining: int) -> str:
    return f"{remaining} player{'s' if remaining != 1 else ''} needed."


class QueueStore:
    """
    In-memory queue for one title.

    States are OPEN and LOCKED. While locked no joins or leaves are accepted,
    and the entry count never exceeds capacity.
    """

    def __init__(self, title: GameTitle, capacity: int):
        self.title = title
        self.capacity = capacity
        self.entries: List[QueueEntry] = []
        self.locked = False

    def size(self) -> int:
        return len(self.entries)

    def is_full(self) -> bool:
        return self.size() >= self.capacity

    def remaining_slots(self) -> int:
        return max(0, self.capacity - self.size())

    def contains(self, player_id: int) -> bool:
        return any(entry.player_id == player_id for entry in self.entries)

    def player_ids(self) -> List[int]:
        return [entry.player_id for entry in self.entries]

    def check_join(self, player_id: int) -> Optional[QueueResult]:
        """The failure a join would hit right now, or None if it would succeed"""
        if self.locked:
            return QueueResult(False, "Queue is locked. A match is in progress.", QueueFailure.LOCKED)
        if self.contains(player_id):
            return QueueResult(False, "You are already in the queue.", QueueFailure.ALREADY_QUEUED)
        if self.is_full():
            return QueueResult(False, "Queue is full.", QueueFailure.FULL)
        return None

    def join(self, entry: QueueEntry) -> QueueResult:
        failure = self.check_join(entry.player_id)
        if failure:
            return failure
        self.entries.append(entry)
        remaining = self.remaining_slots()
        return QueueResult(True, f"Joined queue. {_players_needed(remaining)}", remaining=remaining)

    def leave(self, player_id: int) -> QueueResult:
        if self.locked:
            return QueueResult(False, "Queue is locked. Cannot leave during match.", QueueFailure.LOCKED)
        for index, entry in enumerate(self.entries):
            if entry.player_id == player_id:
                del self.entries[index]
                return QueueResult(True, "Left the queue.", remaining=self.remaining_slots())
        return QueueResult(False, "You are not in the queue.", QueueFailure.NOT_IN_QUEUE)

    def lock(self):
        self.locked = True

    def unlock(self):
        self.locked = False

    def clear(self):
        self.entries = []
        self.locked = False

    def replace_entries(self, entries: Iterable[QueueEntry]):
        """Adopt the mirror's view, keeping join order and the lock flag"""
        ordered = sorted(entries, key=lambda entry: entry.joined_at)
        self.entries = ordered[:self.capacity]
        if len(ordered) > self.capacity:
            logger.warning(
                f"{self.title.value} queue mirror holds {len(ordered)} entries, "
                f"more than capacity {self.capacity}; keeping the earliest"
            )

    def snapshot(self) -> QueueSnapshot:
        return QueueSnapshot(
            title=self.title,
            entries=tuple(self.entries),
            capacity=self.capacity,
            locked=self.locked,
        )

    def __repr__(self):
        return f"<QueueStore(title={self.title.value}, size={self.size()}/{self.capacity}, locked={self.locked})>"


class QueueOperations:
    """
    Registry of per-title queue stores with serialized mutation.

    Titles never share state or locks.
    """

    def __init__(self, database, capacity: int = None, titles: Iterable[GameTitle] = None):
        self.db = database
        self.capacity = capacity or Config.QUEUE_CAPACITY
        if self.capacity <= 0 or self.capacity % 2 != 0:
            raise ValueError(f"Queue capacity must be a positive even number, got {self.capacity}")
        self.titles = list(titles or GameTitle)
        self.stores: Dict[GameTitle, QueueStore] = {
            title: QueueStore(title, self.capacity) for title in self.titles
        }
        self._locks: Dict[GameTitle, asyncio.Lock] = {title: asyncio.Lock() for title in self.titles}
        self.logger = logger

    def store(self, title: GameTitle) -> QueueStore:
        try:
            return self.stores[title]
        except KeyError:
            raise ValueError(f"No queue configured for title '{title}'") from None

    def title_lock(self, title: GameTitle) -> asyncio.Lock:
        """Mutex serializing every mutation of one title's queue"""
        self.store(title)
        return self._locks[title]

    async def refresh(self, title: GameTitle) -> bool:
        """
        Reload a title's entries from the mirror.

        Returns False (keeping the cached view) when the mirror cannot be read.
        """
        store = self.store(title)
        try:
            entries = await self.db.load_queue(title)
        except PersistenceError as e:
            self.logger.warning(f"Using cached {title.value} queue, mirror read failed: {e}")
            return False
        store.replace_entries(entries)
        return True

    async def warm(self):
        """Load every title's queue from the mirror"""
        for title in self.titles:
            await self.refresh(title)

    async def join(self, player_id: int, title: GameTitle, now: datetime = None) -> QueueResult:
        """
        Add a player to a title's queue.

        Capacity and duplicate checks run against a fresh read of the mirror,
        atomically with the write they guard.
        """
        async with self.title_lock(title):
            store = self.store(title)
            if store.locked:
                return store.check_join(player_id)

            await self.refresh(title)
            failure = store.check_join(player_id)
            if failure:
                return failure

            entry = QueueEntry(player_id=player_id, title=title, joined_at=now or utc_now())
            try:
                added = await self.db.save_queue_join(entry)
            except PersistenceError as e:
                self.logger.error(f"Error joining {title.value} queue for player {player_id}: {e}")
                return QueueResult(
                    False, "An error occurred while joining the queue.", QueueFailure.PERSISTENCE
                )

            if not added:
                return QueueResult(False, "You are already in the queue.", QueueFailure.ALREADY_QUEUED)

            result = store.join(entry)
            if not result.success:
                # Memory refused after the mirror accepted; take the row back out
                await self._undo_join(entry)
                return result
            self.logger.info(f"Player {player_id} joined {title.value} queue ({store.size()}/{store.capacity})")
            return result

    async def _undo_join(self, entry: QueueEntry):
        try:
            await self.db.save_queue_leave(entry.title, entry.player_id)
        except PersistenceError as e:
            self.logger.error(
                f"Could not roll back {entry.title.value} queue join for player {entry.player_id}: {e}"
            )

    async def leave(self, player_id: int, title: GameTitle) -> QueueResult:
        async with self.title_lock(title):
            store = self.store(title)
            if store.locked:
                return store.leave(player_id)

            try:
                removed = await self.db.save_queue_leave(title, player_id)
            except PersistenceError as e:
                self.logger.error(f"Error leaving {title.value} queue for player {player_id}: {e}")
                return QueueResult(
                    False, "An error occurred while leaving the queue.", QueueFailure.PERSISTENCE
                )

            result = store.leave(player_id)
            if not removed:
                return QueueResult(False, "You are not in the queue.", QueueFailure.NOT_IN_QUEUE)
            if result.success:
                self.logger.info(f"Player {player_id} left {title.value} queue ({store.size()}/{store.capacity})")
                return result
            return QueueResult(True, "Left the queue.", remaining=store.remaining_slots())

    async def lock(self, title: GameTitle):
        """Lock queue (prevents joins/leaves). Locking a locked queue is a no-op."""
        async with self.title_lock(title):
            self.store(title).lock()

    async def unlock(self, title: GameTitle):
        async with self.title_lock(title):
            self.store(title).unlock()

    async def clear(self, title: GameTitle) -> QueueResult:
        """Empty the queue in the mirror and in memory, then unlock it"""
        async with self.title_lock(title):
            try:
                removed = await self.db.save_queue_clear(title)
            except PersistenceError as e:
                self.logger.error(f"Error clearing {title.value} queue: {e}")
                return QueueResult(
                    False, "An error occurred while clearing the queue.", QueueFailure.PERSISTENCE
                )
            store = self.store(title)
            store.clear()
            if removed:
                self.logger.info(f"Cleared {title.value} queue ({removed} entries)")
            return QueueResult(True, "Queue cleared.", remaining=store.remaining_slots())

    async def get_status(self, title: GameTitle) -> QueueSnapshot:
        """Current queue, falling back to the cached view when the mirror is unavailable"""
        async with self.title_lock(title):
            await self.refresh(title)
            return self.store(title).snapshot()

    async def is_full(self, title: GameTitle) -> bool:
        snapshot = await self.get_status(title)
        return snapshot.is_full

    async def remove_expired(self, title: GameTitle, cutoff: datetime) -> List[int]:
        """
        Remove entries that joined before ``cutoff`` from an open queue.

        Locked queues hold a match roster and are left alone.
        """
        removed: List[int] = []
        async with self.title_lock(title):
            store = self.store(title)
            if store.locked:
                return removed
            await self.refresh(title)
            for entry in list(store.entries):
                if entry.joined_at >= cutoff:
                    continue
                try:
                    await self.db.save_queue_leave(title, entry.player_id)
                except PersistenceError as e:
                    self.logger.error(f"Could not expire player {entry.player_id} from {title.value} queue: {e}")
                    continue
                store.leave(entry.player_id)
                removed.append(entry.player_id)
        if removed:
            self.logger.info(f"Expired {len(removed)} stale entries from {title.value} queue")
        return removed
