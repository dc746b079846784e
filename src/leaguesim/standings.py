"""League table computation with deterministic tie-breaks."""

from __future__ import annotations

import dataclasses
from typing import Dict, Iterable, List, Sequence

import polars as pl

from .errors import ValidationError
from .models import Adjustments, Fixture, StandingsRow, Team


@dataclasses.dataclass(slots=True)
class _Tally:
    played: int = 0
    won: int = 0
    drawn: int = 0
    lost: int = 0
    goals_for: int = 0
    goals_against: int = 0

    def record(self, scored: int, conceded: int) -> None:
        self.played += 1
        self.goals_for += scored
        self.goals_against += conceded
        if scored > conceded:
            self.won += 1
        elif scored < conceded:
            self.lost += 1
        else:
            self.drawn += 1


def compute_standings(
    fixtures: Iterable[Fixture],
    teams: Sequence[Team],
    adjustments: Adjustments | None = None,
) -> List[StandingsRow]:
    """Rank every team in ``teams`` from the played fixtures.

    Points are three per win and one per draw. Adjustments are added after
    aggregation, column by column. Ties are broken by goal difference, then
    goals scored, then the order of ``teams``.
    """

    tallies: Dict[int, _Tally] = {team.team_id: _Tally() for team in teams}
    for fixture in fixtures:
        if not fixture.is_played:
            continue
        try:
            home = tallies[fixture.home_id]
            away = tallies[fixture.away_id]
        except KeyError as exc:
            raise ValidationError(f"Fixture references unknown team {exc.args[0]!r}") from exc
        home.record(fixture.home_goals, fixture.away_goals)
        away.record(fixture.away_goals, fixture.home_goals)

    size = len(teams)
    adjustments = adjustments or Adjustments()
    adj_points = adjustments.vector("points", size)
    adj_goals_for = adjustments.vector("goals_for", size)
    adj_goals_against = adjustments.vector("goals_against", size)
    adj_goal_difference = adjustments.vector("goal_difference", size)

    rows: List[StandingsRow] = []
    for index, team in enumerate(teams):
        tally = tallies[team.team_id]
        rows.append(
            StandingsRow(
                team_id=team.team_id,
                played=tally.played,
                won=tally.won,
                drawn=tally.drawn,
                lost=tally.lost,
                goals_for=tally.goals_for + adj_goals_for[index],
                goals_against=tally.goals_against + adj_goals_against[index],
                goal_difference=tally.goals_for
                - tally.goals_against
                + adj_goal_difference[index],
                points=3 * tally.won + tally.drawn + adj_points[index],
            )
        )

    # sorted() is stable, so equal keys keep roster order.
    ordered = sorted(rows, key=lambda row: (-row.points, -row.goal_difference, -row.goals_for))
    return [dataclasses.replace(row, rank=rank) for rank, row in enumerate(ordered, start=1)]


def standings_frame(rows: Sequence[StandingsRow], teams: Sequence[Team]) -> pl.DataFrame:
    """Render a table as a Polars frame, one row per team in rank order."""

    names = {team.team_id: team.name for team in teams}
    return pl.DataFrame(
        {
            "rank": [row.rank for row in rows],
            "team_id": [row.team_id for row in rows],
            "team": [names.get(row.team_id, "") for row in rows],
            "played": [row.played for row in rows],
            "won": [row.won for row in rows],
            "drawn": [row.drawn for row in rows],
            "lost": [row.lost for row in rows],
            "goals_for": [row.goals_for for row in rows],
            "goals_against": [row.goals_against for row in rows],
            "goal_difference": [row.goal_difference for row in rows],
            "points": [row.points for row in rows],
        },
        schema={
            "rank": pl.Int64,
            "team_id": pl.Int64,
            "team": pl.Utf8,
            "played": pl.Int64,
            "won": pl.Int64,
            "drawn": pl.Int64,
            "lost": pl.Int64,
            "goals_for": pl.Int64,
            "goals_against": pl.Int64,
            "goal_difference": pl.Int64,
            "points": pl.Int64,
        },
    )


__all__ = ["compute_standings", "standings_frame"]
