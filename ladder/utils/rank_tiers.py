"""
Rank tier tables.

Maps an integer rating onto a discrete tier label and each label onto an
ordinal used for cross-title and cross-player comparison. Tables are built
once from the band definitions in ``ladder.constants`` and looked up by name,
so the progression ladder and the placement ladder can never drift apart
between call sites.
"""

from bisect import bisect_right
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

from ladder.constants import TierConstants
from ladder.database.models import GameTitle
from ladder.data_models.ranking import TitleRank


@dataclass(frozen=True)
class TierBand:
    """Inclusive rating band bound to one label. ``max_rating`` None = open-ended."""
    label: str
    min_rating: int
    max_rating: Optional[int]
    value: int

    def contains(self, rating: int) -> bool:
        if rating < self.min_rating:
            return False
        return self.max_rating is None or rating <= self.max_rating


@dataclass(frozen=True)
class RankProgress:
    """Where a rating sits inside its band and how far the next tier is."""
    tier: str
    rating: int
    next_tier: Optional[str]
    next_tier_rating: Optional[int]
    rating_needed: int
    progress_percent: int


class RankTierTable:
    """Ordered, contiguous, non-overlapping rating bands."""

    def __init__(self, name: str, bands: Sequence[Tuple[str, int, Optional[int]]]):
        self.name = name
        self.bands: List[TierBand] = [
            TierBand(label, min_rating, max_rating, index + 1)
            for index, (label, min_rating, max_rating) in enumerate(bands)
        ]
        self._validate()
        self._mins = [band.min_rating for band in self.bands]
        self._by_label: Dict[str, TierBand] = {band.label: band for band in self.bands}

    def _validate(self):
        if not self.bands:
            raise ValueError(f"Rank table '{self.name}' has no bands")
        if self.bands[0].min_rating != 0:
            raise ValueError(f"Rank table '{self.name}' must start at rating 0")
        for previous, current in zip(self.bands, self.bands[1:]):
            if previous.max_rating is None:
                raise ValueError(f"Rank table '{self.name}': only the last band may be open-ended")
            if current.min_rating != previous.max_rating + 1:
                raise ValueError(
                    f"Rank table '{self.name}': gap or overlap between "
                    f"{previous.label} and {current.label}"
                )
        if self.bands[-1].max_rating is not None:
            raise ValueError(f"Rank table '{self.name}': last band must be open-ended")

    @property
    def lowest(self) -> TierBand:
        return self.bands[0]

    @property
    def highest(self) -> TierBand:
        return self.bands[-1]

    @property
    def labels(self) -> List[str]:
        return [band.label for band in self.bands]

    def band_for_rating(self, rating: int) -> TierBand:
        """Band containing ``rating``; anything below zero maps to the lowest band."""
        index = bisect_right(self._mins, rating) - 1
        if index < 0:
            return self.lowest
        return self.bands[index]

    def tier_for_rating(self, rating: int) -> str:
        return self.band_for_rating(rating).label

    def value_for_tier(self, tier: str) -> int:
        band = self._by_label.get(tier)
        return band.value if band else TierConstants.UNRANKED_VALUE

    def band_for_tier(self, tier: str) -> Optional[TierBand]:
        return self._by_label.get(tier)

    def title_rank(self, title: GameTitle, rating: int, peak_rating: int = 0) -> TitleRank:
        band = self.band_for_rating(rating)
        return TitleRank(
            title=title,
            rating=rating,
            tier=band.label,
            tier_value=band.value,
            peak_rating=max(peak_rating, rating),
        )

    def progression(self, rating: int) -> RankProgress:
        band = self.band_for_rating(rating)
        position = self.bands.index(band)

        if band.max_rating is None:
            return RankProgress(
                tier=band.label,
                rating=rating,
                next_tier=None,
                next_tier_rating=None,
                rating_needed=0,
                progress_percent=100,
            )

        next_band = self.bands[position + 1]
        band_width = band.max_rating - band.min_rating
        progress = 0
        if band_width > 0:
            progress = int((rating - band.min_rating) / band_width * 100 + 0.5)

        return RankProgress(
            tier=band.label,
            rating=rating,
            next_tier=next_band.label,
            next_tier_rating=next_band.min_rating,
            rating_needed=next_band.min_rating - rating,
            progress_percent=progress,
        )

    def __repr__(self):
        return f"<RankTierTable(name='{self.name}', bands={len(self.bands)})>"


RANK_TABLES: Dict[str, RankTierTable] = {
    'progression': RankTierTable('progression', TierConstants.PROGRESSION_BANDS),
    'placement': RankTierTable('placement', TierConstants.PLACEMENT_BANDS),
}


def get_rank_table(name: str) -> RankTierTable:
    """Look up a rank table by its configured name."""
    try:
        return RANK_TABLES[name]
    except KeyError:
        raise ValueError(f"Unknown rank table '{name}'") from None
