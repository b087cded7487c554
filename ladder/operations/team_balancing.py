"""
Team balancing.

Splits a full roster into two teams. The match lifecycle accepts any split
that passes ``validate_split``; the draft strategies here are the default
collaborator.
"""

import random
from typing import Dict, List, Optional, Sequence, Tuple

from ladder.utils.exceptions import TeamSplitError
from ladder.utils.logger import setup_logger

logger = setup_logger(__name__)

Split = Tuple[List[int], List[int]]


class TeamBalancer:
    """Draft strategies over a rating snapshot"""

    SNAKE = "snake"
    CAPTAINS = "captains"

    def __init__(self, strategy: str = SNAKE, rng: Optional[random.Random] = None):
        if strategy not in (self.SNAKE, self.CAPTAINS):
            raise ValueError(f"Unknown balancing strategy '{strategy}'")
        self.strategy = strategy
        self.rng = rng or random.Random()

    def split(self, ratings: Dict[int, int]) -> Split:
        """Split the roster (player id -> pre-match rating) into teams A and B"""
        if self.strategy == self.CAPTAINS:
            return self.captains_draft(ratings)
        return self.snake_draft(ratings)

    @staticmethod
    def _by_rating(ratings: Dict[int, int]) -> List[int]:
        # Highest first; player id keeps the order stable
        return sorted(ratings, key=lambda pid: (-ratings[pid], pid))

    @staticmethod
    def snake_draft(ratings: Dict[int, int]) -> Split:
        """A, B, B, A, A, B, ... over players sorted by rating"""
        team_a: List[int] = []
        team_b: List[int] = []
        for index, player_id in enumerate(TeamBalancer._by_rating(ratings)):
            if index % 4 in (0, 3):
                team_a.append(player_id)
            else:
                team_b.append(player_id)
        return team_a, team_b

    def captains_draft(self, ratings: Dict[int, int]) -> Split:
        """
        Two random captains, then alternating picks of the best remaining
        player, starting with the captain whose rating is lower.
        """
        pool = self._by_rating(ratings)
        if len(pool) < 2:
            return list(pool), []

        captain_a, captain_b = self.rng.sample(pool, 2)
        if ratings[captain_a] > ratings[captain_b]:
            captain_a, captain_b = captain_b, captain_a

        team_a, team_b = [captain_a], [captain_b]
        remaining = [pid for pid in pool if pid not in (captain_a, captain_b)]
        picking_a = True
        for player_id in remaining:
            (team_a if picking_a else team_b).append(player_id)
            picking_a = not picking_a
        logger.debug(f"Captains draft: A led by {captain_a}, B led by {captain_b}")
        return team_a, team_b


def validate_split(roster: Sequence[int], team_a: Sequence[int], team_b: Sequence[int], team_size: int):
    """
    Check that the split is a complete partition of the roster into exactly
    two non-empty teams of ``team_size`` players.

    Raises:
        TeamSplitError: describing the first problem found
    """
    if not team_a or not team_b:
        raise TeamSplitError("Both teams must have players", "Each team needs at least one player.")
    if len(team_a) != team_size or len(team_b) != team_size:
        raise TeamSplitError(
            f"Teams have {len(team_a)} and {len(team_b)} players, expected {team_size} each",
            f"Each team needs exactly {team_size} players.",
        )

    split = list(team_a) + list(team_b)
    if len(set(split)) != len(split):
        raise TeamSplitError("A player appears more than once in the split", "A player is on both teams.")

    roster_ids = set(roster)
    if len(roster_ids) != len(roster):
        raise TeamSplitError("Roster contains duplicate players")
    if set(split) != roster_ids:
        missing = sorted(roster_ids - set(split))
        extra = sorted(set(split) - roster_ids)
        raise TeamSplitError(
            f"Split does not match the roster (missing={missing}, extra={extra})",
            "Teams must contain exactly the queued players.",
        )
