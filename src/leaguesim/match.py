"""Sampling of a single unplayed match from the current ratings."""

from __future__ import annotations

import math
from typing import Protocol, Tuple

from .elo import update_ratings

# Extra goals per rating point of advantage and the mean goal count between
# equally rated sides, fitted on historical league results.
GOAL_SLOPE = 0.0017854953143549
GOAL_INTERCEPT = 1.32183908045977
MIN_GOAL_RATE = 0.001
MAX_GOALS = 50


class UniformSource(Protocol):
    def random(self) -> float:
        """Return a float uniformly drawn from ``[0, 1)``."""


def goal_rates(
    home_elo: float,
    away_elo: float,
    home_advantage: float,
    *,
    slope: float = GOAL_SLOPE,
    intercept: float = GOAL_INTERCEPT,
) -> Tuple[float, float]:
    """Expected goals of the home and away side."""

    rating_delta = home_elo + home_advantage - away_elo
    lambda_home = max(rating_delta * slope + intercept, MIN_GOAL_RATE)
    lambda_away = max(-rating_delta * slope + intercept, MIN_GOAL_RATE)
    return lambda_home, lambda_away


def poisson_quantile(p: float, lam: float) -> int:
    """Smallest ``k`` whose Poisson(``lam``) CDF reaches ``p``."""

    if p <= 0.0:
        return 0
    term = math.exp(-lam)
    cumulative = term
    k = 0
    while cumulative < p and k < MAX_GOALS:
        k += 1
        term *= lam / k
        previous = cumulative
        cumulative += term
        # Past this point the tail no longer moves the sum; p sits in the last ulp.
        if cumulative == previous and previous > 0.0:
            break
    return k


def simulate_match(
    home_elo: float,
    away_elo: float,
    mod_factor: float,
    home_advantage: float,
    rng: UniformSource,
    *,
    slope: float = GOAL_SLOPE,
    intercept: float = GOAL_INTERCEPT,
) -> Tuple[int, int, float, float]:
    """Draw a score and return ``(home_goals, away_goals, new_home, new_away)``.

    Exactly two uniforms are taken from ``rng``, home side first, so a trial's
    stream stays aligned with its fixture list.
    """

    lambda_home, lambda_away = goal_rates(
        home_elo, away_elo, home_advantage, slope=slope, intercept=intercept
    )
    home_goals = poisson_quantile(rng.random(), lambda_home)
    away_goals = poisson_quantile(rng.random(), lambda_away)
    new_home, new_away = update_ratings(
        home_elo, away_elo, home_goals, away_goals, mod_factor, home_advantage
    )
    return home_goals, away_goals, new_home, new_away


__all__ = [
    "GOAL_INTERCEPT",
    "GOAL_SLOPE",
    "MIN_GOAL_RATE",
    "UniformSource",
    "goal_rates",
    "poisson_quantile",
    "simulate_match",
]
