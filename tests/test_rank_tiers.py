"""Tests for the rank tier tables."""

import pytest

from ladder.constants import TierConstants
from ladder.database.models import GameTitle
from ladder.utils.rank_tiers import RANK_TABLES, RankTierTable, get_rank_table


@pytest.fixture
def progression():
    return get_rank_table("progression")


@pytest.fixture
def placement():
    return get_rank_table("placement")


class TestBandCoverage:

    @pytest.mark.parametrize("name", sorted(RANK_TABLES))
    def test_every_rating_maps_to_exactly_one_band(self, name):
        table = get_rank_table(name)
        for rating in range(0, 5001):
            matches = [band for band in table.bands if band.contains(rating)]
            assert len(matches) == 1, f"{name}: rating {rating} matched {len(matches)} bands"
            assert table.tier_for_rating(rating) == matches[0].label

    def test_progression_has_fourteen_ordered_tiers(self, progression):
        assert len(progression.bands) == 14
        assert [band.value for band in progression.bands] == list(range(1, 15))
        assert progression.lowest.label == "GRNDS I"
        assert progression.highest.label == "X"
        assert progression.highest.max_rating is None

    @pytest.mark.parametrize("rating, tier", [
        (0, "GRNDS I"),
        (299, "GRNDS I"),
        (300, "GRNDS II"),
        (1499, "GRNDS V"),
        (1500, "BREAKPOINT I"),
        (2299, "BREAKPOINT IV"),
        (2300, "BREAKPOINT V"),
        (2399, "BREAKPOINT V"),
        (2400, "CHALLENGER I"),
        (2599, "CHALLENGER II"),
        (2600, "CHALLENGER III"),
        (2999, "CHALLENGER III"),
        (3000, "X"),
        (1_000_000, "X"),
    ])
    def test_progression_boundaries(self, progression, rating, tier):
        assert progression.tier_for_rating(rating) == tier

    def test_negative_rating_defaults_to_lowest_tier(self, progression):
        assert progression.tier_for_rating(-25) == "GRNDS I"

    def test_placement_table_tops_out_at_grnds_v(self, placement):
        assert placement.labels == ["GRNDS I", "GRNDS II", "GRNDS III", "GRNDS IV", "GRNDS V"]
        assert placement.tier_for_rating(1499) == "GRNDS V"
        assert placement.tier_for_rating(5000) == "GRNDS V"


class TestTierValues:

    def test_values_follow_band_order(self, progression):
        assert progression.value_for_tier("GRNDS I") == 1
        assert progression.value_for_tier("BREAKPOINT I") == 6
        assert progression.value_for_tier("X") == 14

    def test_unknown_tier_ranks_below_everything(self, progression):
        assert progression.value_for_tier("ABSOLUTE") == TierConstants.UNRANKED_VALUE
        assert progression.value_for_tier(TierConstants.UNRANKED_LABEL) == 0

    def test_title_rank_keeps_peak(self, progression):
        rank = progression.title_rank(GameTitle.VALORANT, 1600, peak_rating=1800)
        assert rank.tier == "BREAKPOINT I"
        assert rank.tier_value == 6
        assert rank.peak_rating == 1800

        rank = progression.title_rank(GameTitle.VALORANT, 1600, peak_rating=100)
        assert rank.peak_rating == 1600


class TestProgression:

    def test_start_of_band(self, progression):
        progress = progression.progression(1500)
        assert progress.tier == "BREAKPOINT I"
        assert progress.next_tier == "BREAKPOINT II"
        assert progress.next_tier_rating == 1700
        assert progress.rating_needed == 200
        assert progress.progress_percent == 0

    def test_middle_of_band_rounds_half_up(self, progression):
        # (1600 - 1500) / 199 = 50.25%
        assert progression.progression(1600).progress_percent == 50

    def test_top_band_is_complete(self, progression):
        progress = progression.progression(3500)
        assert progress.tier == "X"
        assert progress.next_tier is None
        assert progress.rating_needed == 0
        assert progress.progress_percent == 100


class TestTableValidation:

    def test_gap_is_rejected(self):
        with pytest.raises(ValueError):
            RankTierTable("broken", [("A", 0, 99), ("B", 101, None)])

    def test_overlap_is_rejected(self):
        with pytest.raises(ValueError):
            RankTierTable("broken", [("A", 0, 100), ("B", 100, None)])

    def test_must_start_at_zero(self):
        with pytest.raises(ValueError):
            RankTierTable("broken", [("A", 10, 99), ("B", 100, None)])

    def test_only_last_band_open_ended(self):
        with pytest.raises(ValueError):
            RankTierTable("broken", [("A", 0, None), ("B", 100, None)])
        with pytest.raises(ValueError):
            RankTierTable("broken", [("A", 0, 99), ("B", 100, 199)])

    def test_unknown_table_name(self):
        with pytest.raises(ValueError):
            get_rank_table("legacy")
