"""
Leaderboard data models.

Immutable data transfer objects for leaderboard rows.
"""

from dataclasses import dataclass

from ladder.database.models import GameTitle


@dataclass(frozen=True)
class LeaderboardEntry:
    """Single leaderboard row."""
    rank: int
    player_id: int
    username: str
    title: GameTitle
    rating: int
    tier: str
    peak_rating: int
