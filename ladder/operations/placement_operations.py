"""
Placement Operations Module

Seeds a new player's starting rating in a title and changes how a player's
displayed rank is resolved. Both write the recomputed displayed rank in the
same transaction as the change that caused it, append a rank history entry
and emit tier-change events after the write succeeds.
"""

from datetime import datetime
from typing import Optional

from ladder.config import Config
from ladder.constants import TierConstants
from ladder.database.models import GameTitle, ResolutionMode
from ladder.data_models.ranking import (
    ProfileFailure, ProfileUpdateResult, RankHistoryEntry, TierChangeEvent
)
from ladder.utils.clock import utc_now
from ladder.utils.combined_rank import resolve_combined_rank
from ladder.utils.exceptions import PersistenceError
from ladder.utils.logger import setup_logger
from ladder.utils.placement import LifetimeStats, PlacementCalculator
from ladder.utils.rank_tiers import RankTierTable, get_rank_table

logger = setup_logger(__name__)

HISTORY_REASON_PLACEMENT = "placement"
HISTORY_REASON_MODE_CHANGE = "mode_change"


class PlacementOperations:
    """Business logic for initial placement and resolution-mode changes"""

    def __init__(
        self,
        database,
        notifier,
        match_ops,
        calculator: PlacementCalculator = None,
        tier_table: RankTierTable = None,
    ):
        self.db = database
        self.notifier = notifier
        self.matches = match_ops
        self.calculator = calculator or PlacementCalculator()
        self.tiers = tier_table or get_rank_table(Config.PROGRESSION_TABLE)
        self.logger = logger

    async def seed_player(
        self,
        player_id: int,
        title: GameTitle,
        external_rank: Optional[str],
        external_value: Optional[float] = None,
        lifetime_stats: Optional[LifetimeStats] = None,
        now: datetime = None,
    ) -> ProfileUpdateResult:
        """
        Place a player in a title for the first time.

        The seeded rating comes from the placement calculator; its tier comes
        from the progression table like every other stored rating. A player on
        the roster of the title's active match cannot be placed until it ends,
        since the match result is computed from the rating snapshot taken at
        formation.
        """
        now = now or utc_now()
        # Formation snapshots ratings under the same lock
        async with self.matches.queues.title_lock(title):
            active = self.matches.active_match(title)
            if active is not None and player_id in active.roster_ids:
                return ProfileUpdateResult(
                    False,
                    f"Cannot be placed in {title.value} during a match. Try again after it ends.",
                    ProfileFailure.IN_ACTIVE_MATCH,
                )
            result, events = await self._place(
                player_id, title, external_rank, external_value, lifetime_stats, now
            )

        if events:
            await self.notifier.emit(events)
        return result

    async def _place(self, player_id, title, external_rank, external_value, lifetime_stats, now):
        try:
            profile = await self.db.load_player_profile(player_id)
        except PersistenceError as e:
            return ProfileUpdateResult(False, e.user_message, ProfileFailure.PERSISTENCE), []
        if profile is None:
            return ProfileUpdateResult(False, "Player is not registered.", ProfileFailure.UNKNOWN_PLAYER), []
        if title in profile.ratings:
            return ProfileUpdateResult(
                False, f"Already placed in {title.value}.", ProfileFailure.ALREADY_PLACED,
                rank=profile.ratings[title], display=profile.display,
            ), []

        rating = self.calculator.initial_rating(title, external_rank, external_value, lifetime_stats)
        rank = self.tiers.title_rank(title, rating, rating)

        ratings_after = dict(profile.ratings)
        ratings_after[title] = rank
        display_before = resolve_combined_rank(profile.ratings, profile.resolution_mode, profile.primary_title)
        display_after = resolve_combined_rank(ratings_after, profile.resolution_mode, profile.primary_title)

        history = RankHistoryEntry(
            player_id=player_id,
            old_rank=TierConstants.UNRANKED_LABEL,
            new_rank=rank.tier,
            old_rating=0,
            new_rating=rating,
            reason=HISTORY_REASON_PLACEMENT,
            title=title,
            created_at=now,
        )

        try:
            await self.db.save_title_rank(player_id, rank, display_after, history)
        except PersistenceError as e:
            return ProfileUpdateResult(False, e.user_message, ProfileFailure.PERSISTENCE), []

        events = [TierChangeEvent(player_id, TierConstants.UNRANKED_LABEL, rank.tier, title=title)]
        if display_before.tier != display_after.tier:
            events.append(TierChangeEvent(player_id, display_before.tier, display_after.tier))

        self.logger.info(
            f"Placed player {player_id} in {title.value} at {rating} ({rank.tier}) "
            f"from external rank '{external_rank}'"
        )
        result = ProfileUpdateResult(
            True, f"Placed at {rank.tier} ({rating}).", rank=rank, display=display_after
        )
        return result, events

    async def set_resolution_mode(
        self,
        player_id: int,
        mode,
        primary_title: Optional[GameTitle] = None,
        now: datetime = None,
    ) -> ProfileUpdateResult:
        """
        Change how the displayed rank is resolved and store the recomputed
        rank immediately. ``primary_title`` defaults to the player's current one.
        """
        now = now or utc_now()
        try:
            mode = ResolutionMode(mode)
            if primary_title is not None:
                primary_title = GameTitle(primary_title)
        except ValueError:
            return ProfileUpdateResult(
                False, "Unknown resolution mode or title.", ProfileFailure.INVALID_INPUT
            )

        try:
            profile = await self.db.load_player_profile(player_id)
        except PersistenceError as e:
            return ProfileUpdateResult(False, e.user_message, ProfileFailure.PERSISTENCE)
        if profile is None:
            return ProfileUpdateResult(False, "Player is not registered.", ProfileFailure.UNKNOWN_PLAYER)

        primary_title = primary_title or profile.primary_title
        display_before = resolve_combined_rank(profile.ratings, profile.resolution_mode, profile.primary_title)
        display_after = resolve_combined_rank(profile.ratings, mode, primary_title)

        history = None
        if display_before.tier != display_after.tier or display_before.rating != display_after.rating:
            history = RankHistoryEntry(
                player_id=player_id,
                old_rank=display_before.tier,
                new_rank=display_after.tier,
                old_rating=display_before.rating,
                new_rating=display_after.rating,
                reason=HISTORY_REASON_MODE_CHANGE,
                created_at=now,
            )

        try:
            await self.db.save_resolution_mode(player_id, mode, primary_title, display_after, history)
        except PersistenceError as e:
            return ProfileUpdateResult(False, e.user_message, ProfileFailure.PERSISTENCE)

        if display_before.tier != display_after.tier:
            await self.notifier.emit([
                TierChangeEvent(player_id, display_before.tier, display_after.tier)
            ])

        self.logger.info(
            f"Player {player_id} now resolves rank by {mode.value} "
            f"(primary {primary_title.value}): {display_after.tier}"
        )
        return ProfileUpdateResult(True, f"Displayed rank is now {display_after.tier}.", display=display_after)
