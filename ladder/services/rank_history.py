"""
Rank history service.

Read access to the append-only rank history.
"""

from typing import List, Optional

from sqlalchemy import select

from ladder.services.base import BaseService
from ladder.data_models.ranking import RankHistoryEntry
from ladder.database.models import GameTitle, RankHistory


class RankHistoryService(BaseService):
    """Service for reading a player's rank history."""

    async def history_for_player(
        self,
        player_id: int,
        limit: int = 20,
        title: Optional[GameTitle] = None,
    ) -> List[RankHistoryEntry]:
        """Newest entries first, optionally restricted to one title"""

        async def _query():
            async with self.get_session() as session:
                query = select(RankHistory).where(RankHistory.player_id == player_id)
                if title is not None:
                    query = query.where(RankHistory.title == title)
                query = query.order_by(RankHistory.created_at.desc(), RankHistory.id.desc()).limit(limit)
                result = await session.execute(query)
                return result.scalars().all()

        rows = await self.execute_with_retry(_query)
        return [
            RankHistoryEntry(
                player_id=row.player_id,
                old_rank=row.old_rank,
                new_rank=row.new_rank,
                old_rating=row.old_rating,
                new_rating=row.new_rating,
                reason=row.reason,
                title=row.title,
                match_id=row.match_id,
                created_at=row.created_at,
            )
            for row in rows
        ]
