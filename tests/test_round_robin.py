"""
Tests for round-robin pairing
"""

from itertools import combinations

import pytest
from engine.round_robin import matchdays_per_cycle, pairs_by_matchday


class TestPairsByMatchday:
    """Tests for the circle method."""

    def test_four_teams(self):
        """Test four teams meet once each over three matchdays."""
        schedule = pairs_by_matchday([1, 2, 3, 4])

        assert sorted(schedule) == [1, 2, 3]
        assert schedule[1] == [(1, 4), (2, 3)]
        met = {frozenset(p) for pairs in schedule.values() for p in pairs}
        assert met == {frozenset(p) for p in combinations([1, 2, 3, 4], 2)}

    def test_odd_field_has_rest_days(self):
        """Test five teams: five matchdays, each team rests once."""
        teams = [1, 2, 3, 4, 5]
        schedule = pairs_by_matchday(teams)

        assert len(schedule) == 5
        rests = []
        for pairs in schedule.values():
            assert len(pairs) == 2
            playing = {t for p in pairs for t in p}
            rests += [t for t in teams if t not in playing]
        assert sorted(rests) == teams

    @pytest.mark.parametrize("n", [2, 3, 6, 7, 8])
    def test_no_team_plays_twice_a_day(self, n):
        """Test each team appears at most once per matchday."""
        for pairs in pairs_by_matchday(list(range(n))).values():
            playing = [t for p in pairs for t in p]
            assert len(playing) == len(set(playing))

    def test_second_cycle_swaps_home_and_away(self):
        """Test a double round repeats the first cycle reversed."""
        schedule = pairs_by_matchday([1, 2, 3, 4], repeats=2)

        assert len(schedule) == 6
        for matchday in (1, 2, 3):
            assert schedule[matchday + 3] == [(a, h) for h, a in schedule[matchday]]

    def test_too_few_teams(self):
        """Test no schedule for fewer than two teams."""
        assert pairs_by_matchday([]) == {}
        assert pairs_by_matchday([1]) == {}

    def test_matchdays_per_cycle(self):
        """Test matchday counts for even and odd fields."""
        assert [matchdays_per_cycle(n) for n in (1, 2, 4, 5)] == [0, 1, 3, 5]
