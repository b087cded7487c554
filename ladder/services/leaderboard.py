"""
Leaderboard service.

Per-title standings read straight from the durable mirror.
"""

import logging
from typing import List

from sqlalchemy import select

from ladder.services.base import BaseService
from ladder.data_models.leaderboard import LeaderboardEntry
from ladder.database.models import GameTitle, Player, PlayerTitleRating

logger = logging.getLogger(__name__)


class LeaderboardService(BaseService):
    """Service for per-title leaderboard queries."""

    MAX_LIMIT = 100

    async def top_players(self, title: GameTitle, limit: int = 10, offset: int = 0) -> List[LeaderboardEntry]:
        """
        Highest-rated players in a title.

        Ordered by rating, then peak rating, then registration order.
        """
        limit = max(1, min(limit, self.MAX_LIMIT))
        offset = max(0, offset)

        async def _query():
            async with self.get_session() as session:
                result = await session.execute(
                    select(PlayerTitleRating, Player.username)
                    .join(Player, Player.id == PlayerTitleRating.player_id)
                    .where(PlayerTitleRating.title == title)
                    .order_by(
                        PlayerTitleRating.rating.desc(),
                        PlayerTitleRating.peak_rating.desc(),
                        Player.id,
                    )
                    .offset(offset)
                    .limit(limit)
                )
                return result.all()

        rows = await self.execute_with_retry(_query)
        entries = [
            LeaderboardEntry(
                rank=offset + index + 1,
                player_id=row.player_id,
                username=username,
                title=row.title,
                rating=row.rating,
                tier=row.tier,
                peak_rating=row.peak_rating,
            )
            for index, (row, username) in enumerate(rows)
        ]
        logger.debug(f"Loaded {len(entries)} leaderboard rows for {title.value}")
        return entries
