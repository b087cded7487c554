"""
Match data models.

``Match`` is the mutable in-memory working state owned by the match
lifecycle; the rest are immutable transfer objects.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from ladder.database.models import GameTitle, MatchStatus, TeamSide
from ladder.data_models.ranking import RatingChange


class MatchFailure:
    """Machine-readable reasons attached to failed match operations."""
    NOT_FOUND = "match_not_found"
    INVALID_STATE = "invalid_state"
    INCOMPLETE_REPORT = "incomplete_report"
    INVALID_REPORT = "invalid_report"
    INVALID_SPLIT = "invalid_split"
    QUEUE_NOT_READY = "queue_not_ready"
    ACTIVE_MATCH_EXISTS = "active_match_exists"
    NOT_HOST = "not_host"
    UNKNOWN_PLAYER = "unknown_player"
    PERSISTENCE = "persistence_error"


@dataclass(frozen=True)
class MatchPlayer:
    """Roster member with the rating snapshot taken at formation."""
    player_id: int
    rating_before: int


@dataclass(frozen=True)
class Team:
    team_id: TeamSide
    players: Tuple[MatchPlayer, ...]

    @property
    def player_ids(self) -> List[int]:
        return [p.player_id for p in self.players]

    @property
    def average_rating(self) -> float:
        if not self.players:
            return 0.0
        return sum(p.rating_before for p in self.players) / len(self.players)


@dataclass(frozen=True)
class PlayerReport:
    """Per-player counters supplied with a result report."""
    kills: int
    deaths: int
    assists: int = 0
    mvp: bool = False
    team_mvp: bool = False


@dataclass(frozen=True)
class MatchPlayerStat:
    player_id: int
    team: TeamSide
    kills: int
    deaths: int
    assists: int
    mvp: bool
    rating_before: int
    rating_after: int
    points_earned: int


@dataclass
class Match:
    match_id: str
    title: GameTitle
    team_a: Team
    team_b: Team
    host_id: int
    started_at: datetime
    status: MatchStatus = MatchStatus.PENDING
    host_confirmed: bool = False
    host_selected_at: Optional[datetime] = None
    host_confirmed_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None
    winner: Optional[TeamSide] = None
    score: Optional[Tuple[int, int]] = None
    stats: Dict[int, MatchPlayerStat] = field(default_factory=dict)

    @property
    def is_terminal(self) -> bool:
        return self.status in (MatchStatus.COMPLETED, MatchStatus.CANCELLED)

    @property
    def roster(self) -> List[MatchPlayer]:
        return list(self.team_a.players) + list(self.team_b.players)

    @property
    def roster_ids(self) -> List[int]:
        return [p.player_id for p in self.roster]

    def __repr__(self):
        return f"<Match(id={self.match_id}, title={self.title.value}, status={self.status.value})>"


@dataclass(frozen=True)
class MatchActionResult:
    success: bool
    message: str
    reason: Optional[str] = None
    match: Optional[Match] = None
    changes: Tuple[RatingChange, ...] = ()
