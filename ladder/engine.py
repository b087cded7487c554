"""
Ladder engine wiring.

Builds every operations object and service once, at process start, and
hands the same instances to each other. Callers (bot commands, HTTP
handlers, schedulers) hold a LadderEngine and go through its members.
"""

import random
from typing import Optional

from ladder.config import Config
from ladder.database.database import Database
from ladder.database.models import GameTitle, ResolutionMode
from ladder.data_models.ranking import PlayerProfile
from ladder.operations.match_operations import MatchOperations
from ladder.operations.placement_operations import PlacementOperations
from ladder.operations.queue_operations import QueueOperations
from ladder.operations.rating_operations import RatingOperations
from ladder.services.housekeeping import HousekeepingService
from ladder.services.leaderboard import LeaderboardService
from ladder.services.notifier import TierChangeNotifier
from ladder.services.rank_history import RankHistoryService
from ladder.utils.logger import setup_logger


class LadderEngine:
    """Rating & matchmaking queue engine"""

    def __init__(
        self,
        database: Database = None,
        capacity: int = None,
        rng: random.Random = None,
        require_host_confirmation: bool = None,
    ):
        self.logger = setup_logger(__name__)
        Config.validate()
        self.db = database or Database()
        self.notifier = TierChangeNotifier()
        self.queues = QueueOperations(self.db, capacity)
        self.ratings = RatingOperations()
        self.matches = MatchOperations(
            self.db,
            self.queues,
            self.ratings,
            self.notifier,
            rng=rng,
            require_host_confirmation=require_host_confirmation,
        )
        self.placements = PlacementOperations(self.db, self.notifier, self.matches)
        self.housekeeping = HousekeepingService(self.queues, self.matches)
        self.leaderboard: Optional[LeaderboardService] = None
        self.rank_history: Optional[RankHistoryService] = None

    async def initialize(self):
        """Create tables, then load queues and active matches from the mirror"""
        self.logger.info("Setting up ladder engine...")
        await self.db.initialize()

        self.leaderboard = LeaderboardService(self.db.async_session)
        self.rank_history = RankHistoryService(self.db.async_session)

        await self.queues.warm()
        await self.matches.restore_active_matches()
        self.logger.info("Ladder engine setup complete!")

    async def register_player(
        self,
        discord_id: int,
        username: str,
        resolution_mode: ResolutionMode = ResolutionMode.HIGHEST,
        primary_title: GameTitle = GameTitle.VALORANT,
    ) -> PlayerProfile:
        """Register a player, or return the existing profile for ``discord_id``"""
        player = await self.db.get_player_by_discord_id(discord_id)
        if player is None:
            player = await self.db.create_player(discord_id, username, resolution_mode, primary_title)
            self.logger.info(f"Registered player {player.id} for Discord user {discord_id} ({username})")
        return await self.db.load_player_profile(player.id)

    async def close(self):
        await self.housekeeping.stop()
        await self.db.close()
