"""Tests for team balancing and split validation."""

import random

import pytest

from ladder.operations.team_balancing import TeamBalancer, validate_split
from ladder.utils.exceptions import TeamSplitError

RATINGS = {player_id: 1100 - player_id * 100 for player_id in range(1, 11)}


class TestSnakeDraft:

    def test_snake_order(self):
        team_a, team_b = TeamBalancer.snake_draft(RATINGS)
        assert team_a == [1, 4, 5, 8, 9]
        assert team_b == [2, 3, 6, 7, 10]

    def test_snake_is_balanced(self):
        team_a, team_b = TeamBalancer().split(RATINGS)
        total_a = sum(RATINGS[pid] for pid in team_a)
        total_b = sum(RATINGS[pid] for pid in team_b)
        assert abs(total_a - total_b) <= 100


class TestCaptainsDraft:

    def test_produces_a_valid_split(self):
        balancer = TeamBalancer(TeamBalancer.CAPTAINS, rng=random.Random(3))
        team_a, team_b = balancer.split(RATINGS)
        validate_split(list(RATINGS), team_a, team_b, 5)

    def test_lower_rated_captain_leads_team_a(self):
        balancer = TeamBalancer(TeamBalancer.CAPTAINS, rng=random.Random(11))
        team_a, team_b = balancer.split(RATINGS)
        assert RATINGS[team_a[0]] <= RATINGS[team_b[0]]

    def test_unknown_strategy(self):
        with pytest.raises(ValueError):
            TeamBalancer("random")


class TestValidateSplit:

    roster = [1, 2, 3, 4]

    def test_valid_partition(self):
        validate_split(self.roster, [1, 4], [2, 3], 2)

    def test_empty_team(self):
        with pytest.raises(TeamSplitError):
            validate_split(self.roster, [1, 2, 3, 4], [], 2)

    def test_wrong_team_size(self):
        with pytest.raises(TeamSplitError):
            validate_split(self.roster, [1], [2, 3, 4], 2)

    def test_player_on_both_teams(self):
        with pytest.raises(TeamSplitError):
            validate_split(self.roster, [1, 2], [2, 3], 2)

    def test_player_outside_roster(self):
        with pytest.raises(TeamSplitError) as excinfo:
            validate_split(self.roster, [1, 2], [3, 5], 2)
        assert excinfo.value.reason == "invalid_split"
