"""ELO rating update applied after every played or simulated match."""

from __future__ import annotations

import math
from typing import Tuple

ELO_SCALE = 400.0
# Rating gaps beyond this value no longer move the win expectancy.
ELO_GAP_CAP = 400.0

DEFAULT_MOD_FACTOR = 20.0
DEFAULT_HOME_ADVANTAGE = 65.0


def expected_home_score(home_elo: float, away_elo: float, home_advantage: float) -> float:
    """Win expectancy of the home side, between 0 and 1."""

    gap = home_elo + home_advantage - away_elo
    gap = min(max(gap, -ELO_GAP_CAP), ELO_GAP_CAP)
    return 1.0 / (1.0 + 10.0 ** (-gap / ELO_SCALE))


def match_result_score(home_goals: int, away_goals: int) -> float:
    """1.0 for a home win, 0.5 for a draw and 0.0 for an away win."""

    if home_goals > away_goals:
        return 1.0
    if home_goals < away_goals:
        return 0.0
    return 0.5


def goal_margin_modifier(home_goals: int, away_goals: int) -> float:
    return math.sqrt(max(abs(home_goals - away_goals), 1))


def update_ratings(
    home_elo: float,
    away_elo: float,
    home_goals: int,
    away_goals: int,
    mod_factor: float,
    home_advantage: float,
) -> Tuple[float, float]:
    """Return the ratings of both sides after one result.

    The home side gains exactly what the away side loses.
    """

    expected = expected_home_score(home_elo, away_elo, home_advantage)
    actual = match_result_score(home_goals, away_goals)
    delta = mod_factor * goal_margin_modifier(home_goals, away_goals) * (actual - expected)
    return home_elo + delta, away_elo - delta


__all__ = [
    "DEFAULT_HOME_ADVANTAGE",
    "DEFAULT_MOD_FACTOR",
    "ELO_GAP_CAP",
    "ELO_SCALE",
    "expected_home_score",
    "goal_margin_modifier",
    "match_result_score",
    "update_ratings",
]
