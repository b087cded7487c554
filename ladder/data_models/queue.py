"""Queue data models."""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Tuple

from ladder.database.models import GameTitle


class QueueFailure:
    """Machine-readable reasons attached to failed queue operations."""
    LOCKED = "queue_locked"
    FULL = "queue_full"
    ALREADY_QUEUED = "already_queued"
    NOT_IN_QUEUE = "not_in_queue"
    PERSISTENCE = "persistence_error"


@dataclass(frozen=True)
class QueueEntry:
    player_id: int
    title: GameTitle
    joined_at: datetime


@dataclass(frozen=True)
class QueueResult:
    success: bool
    message: str
    reason: Optional[str] = None
    remaining: Optional[int] = None  # Players still needed after a join


@dataclass(frozen=True)
class QueueSnapshot:
    """Read-only view of a title's queue at one point in time."""
    title: GameTitle
    entries: Tuple[QueueEntry, ...]
    capacity: int
    locked: bool

    @property
    def size(self) -> int:
        return len(self.entries)

    @property
    def is_full(self) -> bool:
        return self.size >= self.capacity

    @property
    def player_ids(self) -> Tuple[int, ...]:
        return tuple(entry.player_id for entry in self.entries)
