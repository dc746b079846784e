from __future__ import annotations

import numpy as np
import pytest

from leaguesim.elo import update_ratings
from leaguesim.models import Fixture
from leaguesim.season import replay_played_prefix, simulate_season

from .conftest import RecordingRng


def test_played_fixtures_are_replayed_without_draws(four_teams, played_season):
    ratings = {team.team_id: team.elo for team in four_teams}
    rng = RecordingRng([])
    final, completed = simulate_season(ratings, played_season, 20.0, 65.0, rng)
    assert rng.calls == 0
    assert completed == played_season
    assert sum(final.values()) == pytest.approx(sum(ratings.values()))


def test_caller_ratings_are_not_mutated(four_teams, double_round_robin):
    ratings = {team.team_id: team.elo for team in four_teams}
    snapshot = dict(ratings)
    simulate_season(ratings, double_round_robin(four_teams), 20.0, 65.0, np.random.default_rng(1))
    assert ratings == snapshot


def test_simulated_results_feed_later_fixtures():
    ratings = {1: 1500.0, 2: 1500.0}
    fixtures = [Fixture(1, 2), Fixture(2, 1)]
    # Home side scores 0 then 3+ in the first match; the second match sees the update.
    rng = RecordingRng([0.0, 0.999, 0.5, 0.5])
    final, completed = simulate_season(ratings, fixtures, 20.0, 0.0, rng)
    first = completed[0]
    assert first.home_goals == 0 and first.away_goals >= 3
    after_first = update_ratings(1500.0, 1500.0, first.home_goals, first.away_goals, 20.0, 0.0)
    second = completed[1]
    expected_away, expected_home = update_ratings(
        after_first[1], after_first[0], second.home_goals, second.away_goals, 20.0, 0.0
    )
    assert final[1] == pytest.approx(expected_home)
    assert final[2] == pytest.approx(expected_away)
    assert rng.calls == 4


def test_every_unplayed_fixture_gets_a_result(four_teams, double_round_robin):
    ratings = {team.team_id: team.elo for team in four_teams}
    fixtures = double_round_robin(four_teams)
    _, completed = simulate_season(ratings, fixtures, 20.0, 65.0, np.random.default_rng(3))
    assert len(completed) == len(fixtures)
    assert all(fixture.is_played for fixture in completed)
    assert [(f.home_id, f.away_id) for f in completed] == [
        (f.home_id, f.away_id) for f in fixtures
    ]


def test_replay_prefix_stops_at_first_unplayed(played_season):
    ratings = {1: 1600.0, 2: 1550.0, 3: 1500.0, 4: 1450.0}
    fixtures = played_season[:3] + [Fixture(2, 3)] + played_season[3:]
    prefix_ratings, index = replay_played_prefix(ratings, fixtures, 20.0, 65.0)
    assert index == 3
    expected, _ = simulate_season(ratings, played_season[:3], 20.0, 65.0, RecordingRng([]))
    assert prefix_ratings == expected


def test_replay_prefix_of_complete_season(played_season):
    ratings = {1: 1600.0, 2: 1550.0, 3: 1500.0, 4: 1450.0}
    _, index = replay_played_prefix(ratings, played_season, 20.0, 65.0)
    assert index == len(played_season)
