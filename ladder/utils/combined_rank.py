"""
Combined-rank resolution.

Derives the single displayed rank from a player's per-title ranks. The result
is a pure function of its inputs and has to be recomputed whenever any
per-title rating changes.
"""

from typing import Mapping

from ladder.constants import TierConstants
from ladder.database.models import GameTitle, ResolutionMode
from ladder.data_models.ranking import CombinedRank, TitleRank

UNRANKED = CombinedRank(
    title=None,
    tier=TierConstants.UNRANKED_LABEL,
    tier_value=TierConstants.UNRANKED_VALUE,
    rating=0,
)

_TITLE_ORDER = {title: index for index, title in enumerate(GameTitle)}


def _as_combined(rank: TitleRank) -> CombinedRank:
    return CombinedRank(title=rank.title, tier=rank.tier, tier_value=rank.tier_value, rating=rank.rating)


def resolve_combined_rank(
    ratings: Mapping[GameTitle, TitleRank],
    mode: ResolutionMode,
    primary_title: GameTitle,
) -> CombinedRank:
    """
    Resolve the displayed rank.

    ``primary`` shows the primary title's rank whatever the other titles say.
    ``highest`` orders by tier ordinal, then raw rating; a full tie goes to the
    title declared first in ``GameTitle``.
    """
    if mode == ResolutionMode.PRIMARY:
        rank = ratings.get(primary_title)
        return _as_combined(rank) if rank else UNRANKED

    if not ratings:
        return UNRANKED

    best = max(
        ratings.values(),
        key=lambda rank: (rank.tier_value, rank.rating, -_TITLE_ORDER[rank.title]),
    )
    return _as_combined(best)
