"""Tests for the post-match rating update."""

import logging
import math

import pytest

from ladder.utils.rating import (
    ParticipantInput, RatingCalculator, round_half_up
)


def participant(**overrides):
    values = dict(
        rating_before=1000,
        won=True,
        kills=10,
        deaths=10,
        assists=0,
        mvp=False,
        team_average=1000,
        opponent_average=1000,
    )
    values.update(overrides)
    return ParticipantInput(**values)


class TestExpectedScore:

    def test_equal_teams(self):
        assert RatingCalculator.calculate_expected_score(1500, 1500) == pytest.approx(0.5)

    def test_underdog(self):
        expected = RatingCalculator.calculate_expected_score(1500, 1700)
        assert expected == pytest.approx(1 / (1 + 10 ** 0.5))
        assert expected == pytest.approx(0.24, abs=0.005)

    def test_team_scores_sum_to_one(self):
        team_a, team_b = RatingCalculator.calculate_team_expected_scores(1234, 2345)
        assert team_a + team_b == pytest.approx(1.0)
        assert team_a < 0.5 < team_b

    def test_clamped(self):
        assert 0.0 <= RatingCalculator.calculate_expected_score(0, 100000) <= 1.0
        assert 0.0 <= RatingCalculator.calculate_expected_score(100000, 0) <= 1.0


class TestBasePoints:

    def test_underdog_win_rounding(self):
        expected = RatingCalculator.calculate_expected_score(1500, 1700)
        # round(30 * 0.76) = 23
        assert RatingCalculator.calculate_base_points(30, expected, True) == 23

    def test_midpoint_symmetry(self):
        assert RatingCalculator.calculate_base_points(30, 0.5, True) == 15
        assert RatingCalculator.calculate_base_points(30, 0.5, False) == -15

    @pytest.mark.parametrize("rating, k_factor", [
        (0, 36), (1499, 36),
        (1500, 30), (2399, 30),
        (2400, 26), (2599, 26),
        (2600, 22), (2999, 22),
        (3000, 18), (4500, 18),
    ])
    def test_k_factor_bands(self, rating, k_factor):
        assert RatingCalculator.get_k_factor(rating) == k_factor


class TestRounding:

    @pytest.mark.parametrize("value, rounded", [
        (2.5, 3), (-2.5, -2), (0.5, 1), (22.5, 23), (-21.6, -22), (20.7, 21), (7.2, 7),
    ])
    def test_half_up(self, value, rounded):
        assert round_half_up(value) == rounded


class TestPerformanceMultiplier:

    def test_even_kd_on_win_is_neutral(self):
        assert RatingCalculator.get_performance_multiplier(1.0, True) == 1.0

    @pytest.mark.parametrize("kd, multiplier", [
        (3.0, 1.3), (2.0, 1.3), (1.5, 1.15), (1.2, 1.0), (0.7, 0.9), (0.5, 0.8), (0.0, 0.8),
    ])
    def test_win_bands(self, kd, multiplier):
        assert RatingCalculator.get_performance_multiplier(kd, True) == multiplier

    @pytest.mark.parametrize("kd, multiplier", [
        (2.0, 0.9), (1.5, 0.9), (1.0, 1.0), (0.5, 1.1), (0.3, 1.2),
    ])
    def test_loss_bands(self, kd, multiplier):
        assert RatingCalculator.get_performance_multiplier(kd, False) == multiplier

    def test_kd_without_deaths_uses_kills(self):
        assert RatingCalculator.calculate_kd_ratio(7, 0) == 7.0
        assert RatingCalculator.calculate_kd_ratio(6, 4) == 1.5


class TestBonuses:

    def test_mvp_bonus(self):
        assert RatingCalculator.get_mvp_bonus(True, False, True) == 6
        assert RatingCalculator.get_mvp_bonus(True, False, False) == 3
        assert RatingCalculator.get_mvp_bonus(False, False, True) == 0

    def test_team_mvp_only_counts_on_a_win(self):
        assert RatingCalculator.get_mvp_bonus(False, True, True) == 4
        assert RatingCalculator.get_mvp_bonus(False, True, False) == 0
        assert RatingCalculator.get_mvp_bonus(True, True, True) == 10


class TestStickyMultiplier:

    @pytest.mark.parametrize("below, at", [(1499, 1500), (2599, 2600), (2999, 3000)])
    def test_gain_strictly_decreases_across_boundaries(self, below, at):
        assert RatingCalculator.get_sticky_multiplier(at, True) < RatingCalculator.get_sticky_multiplier(below, True)

    def test_losses_shrink_less_than_gains(self):
        for rating in (0, 1500, 2600, 3000):
            gain = RatingCalculator.get_sticky_multiplier(rating, True)
            loss = RatingCalculator.get_sticky_multiplier(rating, False)
            assert loss >= gain
        assert RatingCalculator.get_sticky_multiplier(3000, True) == 0.8
        assert RatingCalculator.get_sticky_multiplier(3000, False) == 0.9


class TestApplyMatchResult:

    def test_midpoint_win_and_loss_below_1500(self):
        win = RatingCalculator.apply_match_result(participant(won=True))
        loss = RatingCalculator.apply_match_result(participant(won=False))
        assert win.points_earned == 18
        assert loss.points_earned == -18
        assert win.new_rating == 1018
        assert loss.new_rating == 982

    def test_high_kd_mvp_win(self):
        # base 18, x1.3 = 23.4 -> 23, +6 MVP = 29, sticky 1.0
        outcome = RatingCalculator.apply_match_result(participant(kills=20, deaths=10, mvp=True))
        assert outcome.base_points == 18
        assert outcome.performance_multiplier == 1.3
        assert outcome.mvp_bonus == 6
        assert outcome.points_earned == 29
        assert outcome.new_rating == 1029

    def test_top_band_gain_is_damped(self):
        outcome = RatingCalculator.apply_match_result(
            participant(rating_before=3000, team_average=3000, opponent_average=3000)
        )
        # K=18 -> 9, sticky 0.8 -> 7.2 -> 7
        assert outcome.k_factor == 18
        assert outcome.points_earned == 7

    def test_underdog_win_at_1500(self):
        outcome = RatingCalculator.apply_match_result(
            participant(rating_before=1500, team_average=1500, opponent_average=1700)
        )
        # base 23, sticky 0.9 -> 20.7 -> 21
        assert outcome.base_points == 23
        assert outcome.points_earned == 21

    def test_rating_never_negative(self):
        outcome = RatingCalculator.apply_match_result(
            participant(rating_before=5, won=False, kills=0, deaths=5, team_average=5, opponent_average=5)
        )
        assert outcome.points_earned == -22
        assert outcome.new_rating == 0

    def test_new_rating_matches_points(self):
        for rating in (0, 700, 1500, 2450, 2800, 3200):
            for won in (True, False):
                outcome = RatingCalculator.apply_match_result(
                    participant(rating_before=rating, won=won, team_average=rating, opponent_average=1600)
                )
                assert outcome.new_rating == max(0, rating + outcome.points_earned)
                assert not outcome.used_fallback


class TestFallback:

    def test_non_finite_stats_fall_back_on_win(self, caplog):
        with caplog.at_level(logging.WARNING):
            outcome = RatingCalculator.apply_match_result(participant(kills=math.nan))
        assert outcome.used_fallback
        assert outcome.points_earned == 15
        assert outcome.new_rating == 1015
        assert "Data quality" in caplog.text

    def test_missing_stats_fall_back_on_loss(self):
        outcome = RatingCalculator.apply_match_result(participant(won=False, deaths=None))
        assert outcome.used_fallback
        assert outcome.points_earned == -8
        assert outcome.new_rating == 992

    def test_infinite_team_average(self):
        outcome = RatingCalculator.apply_match_result(participant(opponent_average=math.inf))
        assert outcome.used_fallback
        assert outcome.points_earned == 15

    def test_fallback_never_goes_negative(self):
        outcome = RatingCalculator.apply_match_result(participant(rating_before=3, won=False, kills=-1))
        assert outcome.new_rating == 0

    def test_malformed_rating_is_treated_as_zero(self):
        outcome = RatingCalculator.apply_match_result(participant(rating_before=math.nan, won=True))
        assert outcome.rating_before == 0
        assert outcome.new_rating == 15

    def test_format_points_change(self):
        assert RatingCalculator.format_points_change(12) == "+12"
        assert RatingCalculator.format_points_change(-8) == "-8"
        assert RatingCalculator.format_points_change(0) == "±0"
