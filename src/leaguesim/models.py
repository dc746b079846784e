"""Typed records for teams, fixtures, table adjustments and standings rows."""

from __future__ import annotations

import dataclasses
import math
from typing import (
    Any,
    Dict,
    Iterable,
    List,
    Mapping,
    Sequence,
    SupportsFloat,
    SupportsIndex,
    SupportsInt,
    Tuple,
)

import polars as pl

from .errors import ValidationError

ADJUSTMENT_FIELDS: Tuple[str, ...] = (
    "points",
    "goals_for",
    "goals_against",
    "goal_difference",
)


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------


@dataclasses.dataclass(frozen=True, slots=True)
class Team:
    """A club taking part in the league together with its starting rating."""

    team_id: int
    name: str
    elo: float
    league: str | None = None
    promotion: int = 0


@dataclasses.dataclass(frozen=True, slots=True)
class Fixture:
    """One scheduled match. Missing goals mark the match as unplayed."""

    home_id: int
    away_id: int
    home_goals: int | None = None
    away_goals: int | None = None

    @property
    def is_played(self) -> bool:
        return self.home_goals is not None and self.away_goals is not None

    def with_result(self, home_goals: int, away_goals: int) -> "Fixture":
        return dataclasses.replace(self, home_goals=home_goals, away_goals=away_goals)


@dataclasses.dataclass(frozen=True, slots=True)
class Adjustments:
    """Per-team table corrections aligned with the roster order.

    Each vector holds one integer per team. An empty vector means no
    adjustment for that column. The goal difference vector is applied on its
    own and is never derived from the goal vectors.
    """

    points: Tuple[int, ...] = ()
    goals_for: Tuple[int, ...] = ()
    goals_against: Tuple[int, ...] = ()
    goal_difference: Tuple[int, ...] = ()

    @classmethod
    def from_mapping(
        cls,
        team_ids: Sequence[int],
        mapping: Mapping[int, Mapping[str, int]],
    ) -> "Adjustments":
        """Build aligned vectors from ``{team_id: {"points": -50, ...}}``."""

        index = {team_id: position for position, team_id in enumerate(team_ids)}
        vectors: Dict[str, List[int]] = {
            name: [0] * len(team_ids) for name in ADJUSTMENT_FIELDS
        }
        for team_id, values in mapping.items():
            if team_id not in index:
                raise ValidationError(f"Adjustment given for unknown team {team_id!r}")
            for name, value in values.items():
                if name not in vectors:
                    raise ValidationError(f"Unknown adjustment column {name!r}")
                vectors[name][index[team_id]] = _coerce_int(value, name)
        return cls(**{name: tuple(values) for name, values in vectors.items()})

    def vector(self, name: str, size: int) -> Tuple[int, ...]:
        values = getattr(self, name)
        if not values:
            return (0,) * size
        if len(values) != size:
            raise ValidationError(
                f"Adjustment vector {name!r} has {len(values)} entries, expected {size}"
            )
        return tuple(values)

    def validate(self, size: int) -> None:
        for name in ADJUSTMENT_FIELDS:
            values = self.vector(name, size)
            for value in values:
                if isinstance(value, bool) or not isinstance(value, int):
                    raise ValidationError(
                        f"Adjustment vector {name!r} must contain integers, got {value!r}"
                    )

    @property
    def is_empty(self) -> bool:
        return not any(any(getattr(self, name)) for name in ADJUSTMENT_FIELDS)


@dataclasses.dataclass(frozen=True, slots=True)
class StandingsRow:
    """A single line of a league table."""

    team_id: int
    played: int = 0
    won: int = 0
    drawn: int = 0
    lost: int = 0
    goals_for: int = 0
    goals_against: int = 0
    goal_difference: int = 0
    points: int = 0
    rank: int = 0


# ---------------------------------------------------------------------------
# Coercion helpers
# ---------------------------------------------------------------------------


def _coerce_int(value: object | None, field: str) -> int:
    if value is None:
        raise ValidationError(f"Missing required field {field}")
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if not math.isfinite(value) or not value.is_integer():
            raise ValidationError(f"Field {field} expected an integer, got {value!r}")
        return int(value)
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError as exc:
            raise ValidationError(f"Field {field} expected an integer, got {value!r}") from exc
    if isinstance(value, (SupportsInt, SupportsIndex)):
        return int(value)
    raise TypeError(
        f"Field {field} expected int-compatible value, got {type(value).__name__}"
    )


def _coerce_float(value: object | None, field: str) -> float:
    if value is None:
        raise ValidationError(f"Missing required field {field}")
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value)
        except ValueError as exc:
            raise ValidationError(f"Field {field} expected a number, got {value!r}") from exc
    if isinstance(value, SupportsFloat):
        return float(value)
    raise TypeError(
        f"Field {field} expected float-compatible value, got {type(value).__name__}"
    )


def _coerce_goals(value: object | None, field: str) -> int | None:
    if value is None:
        return None
    if isinstance(value, float) and math.isnan(value):
        return None
    if isinstance(value, str) and not value.strip():
        return None
    goals = _coerce_int(value, field)
    if goals < 0:
        raise ValidationError(f"Field {field} cannot be negative, got {goals}")
    return goals


def _rows(source: Iterable[Any] | pl.DataFrame) -> Iterable[Any]:
    if isinstance(source, pl.DataFrame):
        return source.iter_rows(named=True)
    return source


def _lookup(row: object, *names: str, default: object | None = None) -> object | None:
    for name in names:
        if isinstance(row, Mapping):
            if name in row:
                return row[name]
        elif hasattr(row, name):
            return getattr(row, name)
    return default


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------


def build_teams(rows: Iterable[Team | Mapping[str, object] | object] | pl.DataFrame) -> List[Team]:
    """Normalise roster rows into :class:`Team` instances.

    Rows may be ``Team`` objects, mappings, attribute-bearing objects or the
    rows of a Polars frame with ``team_id``, ``name`` and ``elo`` columns
    (``initial_elo`` is accepted for the rating).
    """

    teams: List[Team] = []
    for row in _rows(rows):
        if isinstance(row, Team):
            teams.append(row)
            continue
        league = _lookup(row, "league")
        teams.append(
            Team(
                team_id=_coerce_int(_lookup(row, "team_id", "id"), "team_id"),
                name=str(_lookup(row, "name", "short_name", default="")),
                elo=_coerce_float(_lookup(row, "elo", "initial_elo"), "elo"),
                league=None if league is None else str(league),
                promotion=_coerce_int(_lookup(row, "promotion", default=0), "promotion"),
            )
        )
    return teams


def build_fixtures(
    rows: Iterable[Fixture | Mapping[str, object] | object] | pl.DataFrame,
) -> List[Fixture]:
    """Normalise schedule rows into :class:`Fixture` instances.

    Null or NaN goals mark a match as unplayed. Row order is preserved since
    it carries the chronology of the season.
    """

    fixtures: List[Fixture] = []
    for position, row in enumerate(_rows(rows)):
        if isinstance(row, Fixture):
            fixtures.append(row)
            continue
        home_goals = _coerce_goals(_lookup(row, "home_goals"), "home_goals")
        away_goals = _coerce_goals(_lookup(row, "away_goals"), "away_goals")
        if (home_goals is None) != (away_goals is None):
            raise ValidationError(
                f"Fixture #{position + 1} has goals for only one side"
            )
        fixtures.append(
            Fixture(
                home_id=_coerce_int(_lookup(row, "home_id"), "home_id"),
                away_id=_coerce_int(_lookup(row, "away_id"), "away_id"),
                home_goals=home_goals,
                away_goals=away_goals,
            )
        )
    return fixtures


def promotion_adjustments(
    teams: Sequence[Team],
    *,
    penalty: int | None = None,
    reserve_suffix: str = "2",
) -> Adjustments:
    """Points penalties that keep ineligible sides out of promotion places.

    Without ``penalty`` every team's own ``promotion`` value is used. With a
    ``penalty`` it is applied to each team whose name ends in
    ``reserve_suffix`` (reserve sides of bigger clubs).
    """

    if penalty is None:
        points = tuple(team.promotion for team in teams)
    else:
        points = tuple(
            penalty if team.name.endswith(reserve_suffix) else 0 for team in teams
        )
    return Adjustments(points=points)


__all__ = [
    "ADJUSTMENT_FIELDS",
    "Adjustments",
    "Fixture",
    "StandingsRow",
    "Team",
    "build_fixtures",
    "build_teams",
    "promotion_adjustments",
]
