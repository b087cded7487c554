"""
Rating Operations Module

Turns a validated result report into per-participant rating changes.

Every participant's update is computed from the pre-match snapshot taken at
formation and the two teams' snapshot averages, never from another
participant's already-updated rating. After the Rating Engine runs, the
progression table reclassifies the new rating and the combined-rank resolver
recomputes the displayed rank.

Nothing here touches the database: the caller persists the returned update in
one transaction and emits the events only after that succeeds.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Mapping

from ladder.config import Config
from ladder.constants import TierConstants
from ladder.data_models.match import Match, MatchPlayerStat, PlayerReport
from ladder.data_models.ranking import (
    PlayerProfile, RankHistoryEntry, RatingChange, TierChangeEvent
)
from ladder.database.models import TeamSide
from ladder.utils.combined_rank import resolve_combined_rank
from ladder.utils.logger import setup_logger
from ladder.utils.rank_tiers import RankTierTable, get_rank_table
from ladder.utils.rating import ParticipantInput, RatingCalculator, is_finite_number

logger = setup_logger(__name__)

HISTORY_REASON_MATCH = "match"


@dataclass
class MatchRatingUpdate:
    """Everything a completed match writes, in roster order"""
    stats: Dict[int, MatchPlayerStat] = field(default_factory=dict)
    changes: List[RatingChange] = field(default_factory=list)
    history: List[RankHistoryEntry] = field(default_factory=list)
    events: List[TierChangeEvent] = field(default_factory=list)


def _stored_counter(value):
    """Counter as stored with the match; malformed values are kept as unknown"""
    if is_finite_number(value) and value >= 0:
        return int(value)
    return None


class RatingOperations:
    """Applies the Rating Engine, the progression table and the resolver to a match"""

    def __init__(self, tier_table: RankTierTable = None):
        self.tiers = tier_table or get_rank_table(Config.PROGRESSION_TABLE)
        self.logger = logger

    def compute_match_update(
        self,
        match: Match,
        winner: TeamSide,
        reports: Mapping[int, PlayerReport],
        profiles: Mapping[int, PlayerProfile],
        now: datetime,
    ) -> MatchRatingUpdate:
        """
        Compute stats, rating changes, history entries and tier-change events.

        Args:
            match: The match being completed, with its formation snapshots
            winner: Winning team
            reports: Counters for every roster member
            profiles: Current profiles of every roster member
            now: Timestamp for history entries
        """
        update = MatchRatingUpdate()
        team_a_average = match.team_a.average_rating
        team_b_average = match.team_b.average_rating

        for team in (match.team_a, match.team_b):
            won = team.team_id == winner
            team_average, opponent_average = (
                (team_a_average, team_b_average) if team.team_id == TeamSide.A
                else (team_b_average, team_a_average)
            )
            for member in team.players:
                report = reports[member.player_id]
                profile = profiles[member.player_id]

                outcome = RatingCalculator.apply_match_result(ParticipantInput(
                    rating_before=member.rating_before,
                    won=won,
                    kills=report.kills,
                    deaths=report.deaths,
                    assists=report.assists,
                    mvp=report.mvp,
                    team_average=team_average,
                    opponent_average=opponent_average,
                    team_mvp=report.team_mvp,
                ))

                change = self._rating_change(match, profile, outcome)
                update.changes.append(change)
                update.stats[member.player_id] = MatchPlayerStat(
                    player_id=member.player_id,
                    team=team.team_id,
                    kills=_stored_counter(report.kills),
                    deaths=_stored_counter(report.deaths),
                    assists=_stored_counter(report.assists),
                    mvp=report.mvp is True,
                    rating_before=change.rating_before,
                    rating_after=change.rating_after,
                    points_earned=change.points_earned,
                )

                if change.tier_changed:
                    update.history.append(RankHistoryEntry(
                        player_id=change.player_id,
                        old_rank=change.old_tier,
                        new_rank=change.new_tier,
                        old_rating=change.rating_before,
                        new_rating=change.rating_after,
                        reason=HISTORY_REASON_MATCH,
                        title=match.title,
                        match_id=match.match_id,
                        created_at=now,
                    ))
                update.events.extend(self.tier_change_events(change, match.match_id))

        return update

    def _rating_change(self, match: Match, profile: PlayerProfile, outcome) -> RatingChange:
        current = profile.ratings.get(match.title)
        if current is None:
            # First rated match in this title
            old_tier = TierConstants.UNRANKED_LABEL
            previous_peak = 0
        else:
            old_tier = self.tiers.tier_for_rating(outcome.rating_before)
            previous_peak = current.peak_rating
        new_rank = self.tiers.title_rank(
            match.title, outcome.new_rating, max(previous_peak, outcome.rating_before)
        )

        ratings_after = dict(profile.ratings)
        ratings_after[match.title] = new_rank

        display_before = resolve_combined_rank(profile.ratings, profile.resolution_mode, profile.primary_title)
        display_after = resolve_combined_rank(ratings_after, profile.resolution_mode, profile.primary_title)

        return RatingChange(
            player_id=profile.player_id,
            title=match.title,
            rating_before=outcome.rating_before,
            rating_after=outcome.new_rating,
            points_earned=outcome.points_earned,
            old_tier=old_tier,
            new_tier=new_rank.tier,
            new_tier_value=new_rank.tier_value,
            peak_rating=new_rank.peak_rating,
            display_before=display_before,
            display_after=display_after,
            used_fallback=outcome.used_fallback,
        )

    @staticmethod
    def tier_change_events(change: RatingChange, match_id: str = None) -> List[TierChangeEvent]:
        """Title-level event for a tier change, display-level event for a displayed-rank change"""
        events = []
        if change.tier_changed:
            events.append(TierChangeEvent(
                player_id=change.player_id,
                old_tier=change.old_tier,
                new_tier=change.new_tier,
                title=change.title,
                match_id=match_id,
            ))
        if change.display_changed:
            events.append(TierChangeEvent(
                player_id=change.player_id,
                old_tier=change.display_before.tier,
                new_tier=change.display_after.tier,
                match_id=match_id,
            ))
        return events

    def describe(self, change: RatingChange) -> str:
        """One-line before/after summary for a rating change"""
        text = (
            f"{change.rating_before} -> {change.rating_after} "
            f"({RatingCalculator.format_points_change(change.points_earned)})"
        )
        if change.tier_changed:
            text += f", {change.old_tier} -> {change.new_tier}"
        return text
