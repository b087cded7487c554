import math
from dataclasses import dataclass
from typing import Tuple

from ladder.config import Config
from ladder.constants import RatingConstants
from ladder.utils.logger import setup_logger

logger = setup_logger(__name__)


def round_half_up(value: float) -> int:
    """Round to the nearest integer with halves going up (2.5 -> 3, -2.5 -> -2)"""
    return int(math.floor(value + 0.5))


def is_finite_number(value) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value)


@dataclass(frozen=True)
class ParticipantInput:
    """Everything the rating update needs to know about one participant"""
    rating_before: int
    won: bool
    kills: int
    deaths: int
    assists: int
    mvp: bool
    team_average: float
    opponent_average: float
    team_mvp: bool = False


@dataclass(frozen=True)
class RatingOutcome:
    """Result of the rating update with its breakdown"""
    rating_before: int
    new_rating: int
    points_earned: int
    expected_score: float = 0.0
    k_factor: int = 0
    base_points: int = 0
    performance_multiplier: float = 1.0
    mvp_bonus: int = 0
    sticky_multiplier: float = 1.0
    used_fallback: bool = False


class RatingCalculator:
    """Handles rating calculations for team matches"""

    @staticmethod
    def calculate_expected_score(team_average: float, opponent_average: float) -> float:
        """
        Calculate the expected score for a team against its opponent

        Args:
            team_average: Team's average pre-match rating
            opponent_average: Opposing team's average pre-match rating

        Returns:
            Expected score clamped to 0.0 - 1.0
        """
        exponent = (opponent_average - team_average) / RatingConstants.ELO_SCALE
        expected = 1 / (1 + math.pow(10, exponent))
        return min(max(expected, 0.0), 1.0)

    @staticmethod
    def calculate_team_expected_scores(team_a_average: float, team_b_average: float) -> Tuple[float, float]:
        """Expected scores for both teams; they always sum to 1"""
        team_a_expected = RatingCalculator.calculate_expected_score(team_a_average, team_b_average)
        return team_a_expected, 1 - team_a_expected

    @staticmethod
    def get_k_factor(rating: int) -> int:
        """
        Get the K-factor for a pre-match rating

        Lower ratings move faster, higher ratings are more stable.
        """
        for min_rating, k_factor in RatingConstants.K_FACTOR_BANDS:
            if rating >= min_rating:
                return k_factor
        return RatingConstants.K_FACTOR_BANDS[-1][1]

    @staticmethod
    def calculate_base_points(k_factor: int, expected_score: float, won: bool) -> int:
        """round(K * (actual - expected)) with actual 1 for a win and 0 for a loss"""
        actual_score = 1.0 if won else 0.0
        return round_half_up(k_factor * (actual_score - expected_score))

    @staticmethod
    def calculate_kd_ratio(kills: int, deaths: int) -> float:
        """Kill/death ratio, using kills directly when there are no deaths"""
        if deaths <= 0:
            return float(kills)
        return kills / deaths

    @staticmethod
    def get_performance_multiplier(kd_ratio: float, won: bool) -> float:
        """
        Asymmetric K/D multiplier

        Wins with a high K/D gain more; losses with a high K/D lose less and
        losses with a low K/D lose more.
        """
        bands = RatingConstants.WIN_PERFORMANCE_BANDS if won else RatingConstants.LOSS_PERFORMANCE_BANDS
        for min_kd, multiplier in bands:
            if kd_ratio >= min_kd:
                return multiplier
        return bands[-1][1]

    @staticmethod
    def get_mvp_bonus(mvp: bool, team_mvp: bool, won: bool) -> int:
        bonus = 0
        if mvp:
            bonus += RatingConstants.MVP_WIN_BONUS if won else RatingConstants.MVP_LOSS_BONUS
        if team_mvp and won:
            bonus += RatingConstants.TEAM_MVP_WIN_BONUS
        return bonus

    @staticmethod
    def get_sticky_multiplier(rating: int, is_gain: bool) -> float:
        """Gains shrink faster than losses as rating climbs"""
        for min_rating, gain_multiplier, loss_multiplier in RatingConstants.STICKY_BANDS:
            if rating >= min_rating:
                return gain_multiplier if is_gain else loss_multiplier
        return 1.0

    @staticmethod
    def validate_input(participant: ParticipantInput) -> None:
        """Raise ValueError describing the first malformed field"""
        if not isinstance(participant.won, bool):
            raise ValueError(f"won must be a bool, got {participant.won!r}")
        if not is_finite_number(participant.rating_before) or participant.rating_before < 0:
            raise ValueError(f"invalid rating_before {participant.rating_before!r}")
        for name in ('kills', 'deaths', 'assists'):
            value = getattr(participant, name)
            if not is_finite_number(value) or value < 0:
                raise ValueError(f"invalid {name} {value!r}")
        for name in ('team_average', 'opponent_average'):
            value = getattr(participant, name)
            if not is_finite_number(value) or value < 0:
                raise ValueError(f"invalid {name} {value!r}")

    @staticmethod
    def fallback_outcome(participant: ParticipantInput, error: str) -> RatingOutcome:
        """Fixed deterministic shift used when the inputs cannot be trusted"""
        won = participant.won is True
        rating_before = participant.rating_before
        if not is_finite_number(rating_before) or rating_before < 0:
            rating_before = 0
        rating_before = int(rating_before)

        points = Config.FALLBACK_WIN_POINTS if won else Config.FALLBACK_LOSS_POINTS
        logger.warning(
            f"Data quality: malformed rating input ({error}); "
            f"applying fallback {RatingCalculator.format_points_change(points)} to rating {rating_before}"
        )
        return RatingOutcome(
            rating_before=rating_before,
            new_rating=max(0, rating_before + points),
            points_earned=points,
            base_points=points,
            used_fallback=True,
        )

    @staticmethod
    def apply_match_result(participant: ParticipantInput) -> RatingOutcome:
        """
        Calculate the new rating for one participant of a completed match

        Args:
            participant: Pre-match rating, result, counters and team averages

        Returns:
            RatingOutcome with the new rating (never negative) and breakdown
        """
        try:
            RatingCalculator.validate_input(participant)
        except ValueError as e:
            return RatingCalculator.fallback_outcome(participant, str(e))

        rating_before = int(participant.rating_before)
        won = participant.won

        expected_score = RatingCalculator.calculate_expected_score(
            participant.team_average, participant.opponent_average
        )
        k_factor = RatingCalculator.get_k_factor(rating_before)
        base_points = RatingCalculator.calculate_base_points(k_factor, expected_score, won)

        kd_ratio = RatingCalculator.calculate_kd_ratio(participant.kills, participant.deaths)
        performance_multiplier = RatingCalculator.get_performance_multiplier(kd_ratio, won)
        adjusted_points = round_half_up(base_points * performance_multiplier)

        mvp_bonus = RatingCalculator.get_mvp_bonus(participant.mvp, participant.team_mvp, won)
        raw_points = adjusted_points + mvp_bonus

        sticky_multiplier = RatingCalculator.get_sticky_multiplier(rating_before, raw_points > 0)
        points_earned = round_half_up(raw_points * sticky_multiplier)

        logger.debug(
            f"Rating update: before={rating_before} expected={expected_score:.3f} K={k_factor} "
            f"base={base_points} perf={performance_multiplier} mvp={mvp_bonus} "
            f"sticky={sticky_multiplier} points={points_earned}"
        )

        return RatingOutcome(
            rating_before=rating_before,
            new_rating=max(0, rating_before + points_earned),
            points_earned=points_earned,
            expected_score=expected_score,
            k_factor=k_factor,
            base_points=base_points,
            performance_multiplier=performance_multiplier,
            mvp_bonus=mvp_bonus,
            sticky_multiplier=sticky_multiplier,
        )

    @staticmethod
    def format_points_change(points: int) -> str:
        """Format a point change for display"""
        if points > 0:
            return f"+{points}"
        elif points < 0:
            return str(points)
        else:
            return "±0"
