"""Replay and simulation of one season trajectory, fixture by fixture."""

from __future__ import annotations

from typing import Dict, List, Mapping, Sequence, Tuple

from .elo import update_ratings
from .match import GOAL_INTERCEPT, GOAL_SLOPE, UniformSource, simulate_match
from .models import Fixture


def simulate_season(
    ratings: Mapping[int, float],
    fixtures: Sequence[Fixture],
    mod_factor: float,
    home_advantage: float,
    rng: UniformSource,
    *,
    slope: float = GOAL_SLOPE,
    intercept: float = GOAL_INTERCEPT,
) -> Tuple[Dict[int, float], List[Fixture]]:
    """Complete a season and return ``(final_ratings, completed_fixtures)``.

    Played fixtures are replayed through the rating update; unplayed ones are
    sampled. Either way the shared rating map is advanced before the next
    fixture is looked at, so fixture ``k`` always sees the results of
    fixtures ``1..k-1`` of the same trajectory. ``ratings`` is left untouched.
    """

    current = dict(ratings)
    completed: List[Fixture] = []
    for fixture in fixtures:
        home_id = fixture.home_id
        away_id = fixture.away_id
        if fixture.is_played:
            current[home_id], current[away_id] = update_ratings(
                current[home_id],
                current[away_id],
                fixture.home_goals,
                fixture.away_goals,
                mod_factor,
                home_advantage,
            )
            completed.append(fixture)
            continue
        home_goals, away_goals, current[home_id], current[away_id] = simulate_match(
            current[home_id],
            current[away_id],
            mod_factor,
            home_advantage,
            rng,
            slope=slope,
            intercept=intercept,
        )
        completed.append(fixture.with_result(home_goals, away_goals))
    return current, completed


def replay_played_prefix(
    ratings: Mapping[int, float],
    fixtures: Sequence[Fixture],
    mod_factor: float,
    home_advantage: float,
) -> Tuple[Dict[int, float], int]:
    """Fold the leading run of played fixtures into the ratings.

    Returns the ratings after that run and the index of the first unplayed
    fixture (``len(fixtures)`` when the season is complete). The run is the
    same in every trial, so callers can do this once up front.
    """

    current = dict(ratings)
    for index, fixture in enumerate(fixtures):
        if not fixture.is_played:
            return current, index
        current[fixture.home_id], current[fixture.away_id] = update_ratings(
            current[fixture.home_id],
            current[fixture.away_id],
            fixture.home_goals,
            fixture.away_goals,
            mod_factor,
            home_advantage,
        )
    return current, len(fixtures)


__all__ = ["replay_played_prefix", "simulate_season"]
