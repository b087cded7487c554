"""
Initial placement.

Seeds a brand-new player's starting rating from the rank an external
verification source reports. This is separate from the post-match rating
update: it runs once per player and title, and never places anybody above
the configured ceiling.
"""

from dataclasses import dataclass
from typing import Optional, Tuple

from ladder.config import Config
from ladder.constants import PlacementConstants
from ladder.database.models import GameTitle
from ladder.utils.logger import setup_logger
from ladder.utils.rank_tiers import RankTierTable, get_rank_table
from ladder.utils.rating import is_finite_number, round_half_up

logger = setup_logger(__name__)

_UNRANKED_LABELS = ('', 'unranked', 'unrated', 'none')
_ROMAN_DIVISIONS = {'I': 1, 'II': 2, 'III': 3}


@dataclass(frozen=True)
class LifetimeStats:
    wins: int = 0
    games_played: int = 0
    peak_rank: Optional[str] = None


class PlacementCalculator:
    """Maps an external rank and rating-like value onto a starting rating"""

    def __init__(self, placement_table: RankTierTable = None, ceiling: int = None):
        self.placement_table = placement_table or get_rank_table(Config.PLACEMENT_TABLE)
        self.ceiling = Config.PLACEMENT_CEILING if ceiling is None else ceiling

    def initial_rating(
        self,
        title: GameTitle,
        external_rank: Optional[str],
        external_value: Optional[float] = None,
        lifetime_stats: Optional[LifetimeStats] = None,
    ) -> int:
        """Starting rating, floored at 0 and capped at the placement ceiling"""
        rank = (external_rank or '').strip()
        if rank.lower() in _UNRANKED_LABELS:
            logger.info(f"Unranked {title.value} account, placing at 0")
            return 0

        if title == GameTitle.VALORANT:
            rating = self._valorant_rating(rank, external_value, lifetime_stats)
        else:
            rating = self._marvel_rivals_rating(rank, external_value)

        return max(0, min(rating, self.ceiling))

    @staticmethod
    def _value_fraction(external_value: Optional[float]) -> Optional[float]:
        if not is_finite_number(external_value):
            return None
        ceiling = PlacementConstants.EXTERNAL_VALUE_CEILING
        return min(max(external_value, 0), ceiling) / ceiling

    @staticmethod
    def _interpolate(bracket: Tuple[int, int], fraction: float) -> int:
        low, high = bracket
        return low + round_half_up((high - low) * fraction)

    def _valorant_rating(
        self,
        rank: str,
        external_value: Optional[float],
        lifetime_stats: Optional[LifetimeStats],
    ) -> int:
        bracket = PlacementConstants.VALORANT_BRACKETS.get(rank)
        if bracket is None:
            logger.warning(f"Unknown Valorant rank '{rank}', using default bracket")
            bracket = PlacementConstants.UNKNOWN_BRACKET

        fraction = self._value_fraction(external_value)
        rating = self._interpolate(bracket, fraction or 0.0)
        return rating + self._confidence_boost(rank, lifetime_stats)

    def _confidence_boost(self, rank: str, lifetime_stats: Optional[LifetimeStats]) -> int:
        if lifetime_stats is None:
            return 0

        boost = 0
        games = lifetime_stats.games_played or 0
        if games > PlacementConstants.MIN_GAMES_FOR_WIN_RATE_BOOST:
            win_rate = (lifetime_stats.wins or 0) / games
            if win_rate > PlacementConstants.HIGH_WIN_RATE:
                boost += PlacementConstants.HIGH_WIN_RATE_BOOST
            elif win_rate > PlacementConstants.ABOVE_AVERAGE_WIN_RATE:
                boost += PlacementConstants.ABOVE_AVERAGE_WIN_RATE_BOOST

        if lifetime_stats.peak_rank:
            peak_step = self.valorant_rank_step(lifetime_stats.peak_rank)
            current_step = self.valorant_rank_step(rank)
            if peak_step > current_step + PlacementConstants.PEAK_RANK_STEP_GAP:
                boost += PlacementConstants.PEAK_RANK_BOOST

        return boost

    @staticmethod
    def valorant_rank_step(rank: str) -> int:
        """1-based position on the Valorant ladder; unknown ranks count as the first step"""
        try:
            return PlacementConstants.VALORANT_RANK_ORDER.index(rank) + 1
        except ValueError:
            return 1

    def marvel_rivals_tier(self, rank: str) -> str:
        """Placement tier for a Marvel Rivals rank such as 'Gold II' or 'Platinum 3'"""
        normalized = rank.lower()
        division = self._parse_division(rank)

        for family, tiers in PlacementConstants.MARVEL_RIVALS_FAMILIES:
            if family in normalized:
                index = min(max(division, 1), len(tiers)) - 1
                return tiers[index]

        logger.warning(f"Unknown Marvel Rivals rank '{rank}', placing in lowest tier")
        return self.placement_table.lowest.label

    @staticmethod
    def _parse_division(rank: str) -> int:
        for token in reversed(rank.replace('-', ' ').split()):
            upper = token.upper()
            if upper in _ROMAN_DIVISIONS:
                return _ROMAN_DIVISIONS[upper]
            if upper.isdigit():
                return int(upper)
        return 1

    def _marvel_rivals_rating(self, rank: str, external_value: Optional[float]) -> int:
        tier = self.marvel_rivals_tier(rank)
        band = self.placement_table.band_for_tier(tier)
        fraction = self._value_fraction(external_value)

        if fraction is None or band is None:
            return PlacementConstants.PLACEMENT_ANCHORS.get(tier, 0)

        upper = band.max_rating if band.max_rating is not None else self.ceiling
        return self._interpolate((band.min_rating, upper), fraction)
