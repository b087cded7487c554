"""
Rank data models.

Immutable transfer objects for per-title ranks, the displayed combined rank,
rating changes and the events and audit entries derived from them.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Optional

from ladder.database.models import GameTitle, ResolutionMode


@dataclass(frozen=True)
class TitleRank:
    """A player's standing in one game title."""
    title: GameTitle
    rating: int
    tier: str
    tier_value: int
    peak_rating: int = 0


@dataclass(frozen=True)
class CombinedRank:
    """The single displayed rank. ``title`` is None when the player is unranked."""
    title: Optional[GameTitle]
    tier: str
    tier_value: int
    rating: int


@dataclass(frozen=True)
class PlayerProfile:
    player_id: int
    discord_id: int
    username: str
    resolution_mode: ResolutionMode
    primary_title: GameTitle
    ratings: Dict[GameTitle, TitleRank] = field(default_factory=dict)
    display: Optional[CombinedRank] = None

    def rating_for(self, title: GameTitle, default: int = 0) -> int:
        rank = self.ratings.get(title)
        return rank.rating if rank else default


@dataclass(frozen=True)
class RatingChange:
    """Before/after record for one participant of a completed match."""
    player_id: int
    title: GameTitle
    rating_before: int
    rating_after: int
    points_earned: int
    old_tier: str
    new_tier: str
    new_tier_value: int
    peak_rating: int
    display_before: CombinedRank
    display_after: CombinedRank
    used_fallback: bool = False

    @property
    def tier_changed(self) -> bool:
        return self.old_tier != self.new_tier

    @property
    def display_changed(self) -> bool:
        return self.display_before.tier != self.display_after.tier


@dataclass(frozen=True)
class TierChangeEvent:
    """
    Emitted for outward role reconciliation.

    ``title`` is None for a change of the displayed (combined) rank.
    """
    player_id: int
    old_tier: str
    new_tier: str
    title: Optional[GameTitle] = None
    match_id: Optional[str] = None


@dataclass(frozen=True)
class RankHistoryEntry:
    player_id: int
    old_rank: str
    new_rank: str
    old_rating: int
    new_rating: int
    reason: str
    title: Optional[GameTitle] = None
    match_id: Optional[str] = None
    created_at: Optional[datetime] = None


class ProfileFailure:
    """Machine-readable reasons attached to failed placement and profile updates."""
    UNKNOWN_PLAYER = "unknown_player"
    ALREADY_PLACED = "already_placed"
    IN_ACTIVE_MATCH = "in_active_match"
    INVALID_INPUT = "invalid_input"
    PERSISTENCE = "persistence_error"


@dataclass(frozen=True)
class ProfileUpdateResult:
    success: bool
    message: str
    reason: Optional[str] = None
    rank: Optional[TitleRank] = None
    display: Optional[CombinedRank] = None
