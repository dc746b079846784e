"""Monte Carlo league engine.

Each trial completes the season once: the played fixtures are replayed, the
unplayed ones are sampled, and the resulting table is ranked. Trials are
independent of one another, so they are grouped into fixed-size chunks and
handed to a pool of worker processes. Every chunk returns its own count
matrix and the partial matrices are summed once all chunks are in.

Each trial draws from its own random stream derived from ``(base_seed,
trial_index)``. Chunk boundaries only depend on the number of iterations and
the chunk size, which makes the result identical for any number of workers.
"""

from __future__ import annotations

import dataclasses
import logging
import math
import multiprocessing as mp
import os
from typing import Any, Dict, Iterable, List, Protocol, Sequence, Tuple

import numpy as np
import polars as pl

from .config import get_config
from .elo import DEFAULT_HOME_ADVANTAGE, DEFAULT_MOD_FACTOR
from .errors import NumericError, SimulationCancelled, ValidationError
from .match import GOAL_INTERCEPT, GOAL_SLOPE
from .models import (
    Adjustments,
    Fixture,
    StandingsRow,
    Team,
    build_fixtures,
    build_teams,
)
from .probability import PartialTally, ProbabilityMatrix, merge_partials
from .season import replay_played_prefix, simulate_season
from .standings import compute_standings

logger = logging.getLogger(__name__)

DEFAULT_ITERATIONS = 10_000
# Seconds between cancellation checks while waiting on the pool.
_POLL_SECONDS = 0.05


class CancelToken(Protocol):
    def is_set(self) -> bool:
        """Return ``True`` once the run should stop."""


# ---------------------------------------------------------------------------
# Immutable trial inputs
# ---------------------------------------------------------------------------


@dataclasses.dataclass(frozen=True)
class SeasonPlan:
    """Validated inputs shared read-only by every trial.

    ``opening_ratings`` already include the leading run of played fixtures;
    trials start their fold at ``first_unplayed``.
    """

    teams: Tuple[Team, ...]
    fixtures: Tuple[Fixture, ...]
    opening_ratings: Dict[int, float]
    first_unplayed: int
    mod_factor: float
    home_advantage: float
    goal_slope: float
    goal_intercept: float
    adjustments: Adjustments
    base_seed: int

    @property
    def team_ids(self) -> Tuple[int, ...]:
        return tuple(team.team_id for team in self.teams)

    @property
    def unplayed(self) -> int:
        return sum(1 for fixture in self.fixtures if not fixture.is_played)


@dataclasses.dataclass(frozen=True)
class Trajectory:
    """One completed season: final ratings, full fixture list and table."""

    trial_index: int
    final_ratings: Dict[int, float]
    fixtures: Tuple[Fixture, ...]
    standings: Tuple[StandingsRow, ...]


@dataclasses.dataclass(frozen=True)
class SimulationResult:
    """Outcome of :meth:`MonteCarloEngine.run`."""

    matrix: ProbabilityMatrix
    played_ratings: Dict[int, float]
    mean_final_ratings: Dict[int, float]
    base_seed: int

    def ratings_frame(self) -> pl.DataFrame:
        """Ratings per team for presentation or carryover collaborators."""

        return pl.DataFrame(
            {
                "team_id": list(self.matrix.team_ids),
                "team": list(self.matrix.team_names),
                "played_elo": [self.played_ratings[team_id] for team_id in self.matrix.team_ids],
                "mean_final_elo": [
                    self.mean_final_ratings[team_id] for team_id in self.matrix.team_ids
                ],
            }
        )


# ---------------------------------------------------------------------------
# Trial execution (pure functions, safe to run in worker processes)
# ---------------------------------------------------------------------------


def trial_rng(base_seed: int, trial_index: int) -> np.random.Generator:
    """Random stream owned by a single trial."""

    return np.random.default_rng(
        np.random.SeedSequence(entropy=base_seed, spawn_key=(trial_index,))
    )


def run_trial(plan: SeasonPlan, trial_index: int) -> Trajectory:
    rng = trial_rng(plan.base_seed, trial_index)
    final_ratings, tail = simulate_season(
        plan.opening_ratings,
        plan.fixtures[plan.first_unplayed :],
        plan.mod_factor,
        plan.home_advantage,
        rng,
        slope=plan.goal_slope,
        intercept=plan.goal_intercept,
    )
    for team_id, rating in final_ratings.items():
        if not math.isfinite(rating):
            raise NumericError(
                f"Trial {trial_index} produced a non-finite rating for team {team_id}"
            )
    fixtures = plan.fixtures[: plan.first_unplayed] + tuple(tail)
    standings = compute_standings(fixtures, plan.teams, plan.adjustments)
    return Trajectory(
        trial_index=trial_index,
        final_ratings=final_ratings,
        fixtures=fixtures,
        standings=tuple(standings),
    )


def run_chunk(
    plan: SeasonPlan,
    chunk_index: int,
    start: int,
    stop: int,
    cancel_event: CancelToken | None = None,
) -> PartialTally:
    """Run trials ``start..stop-1`` and tally finishing ranks."""

    team_ids = plan.team_ids
    size = len(team_ids)
    row_of = {team_id: row for row, team_id in enumerate(team_ids)}
    counts = np.zeros((size, size), dtype=np.int64)
    rating_sums = np.zeros(size, dtype=np.float64)
    for trial_index in range(start, stop):
        if cancel_event is not None and cancel_event.is_set():
            raise SimulationCancelled(f"Cancelled before trial {trial_index}")
        trajectory = run_trial(plan, trial_index)
        for standing in trajectory.standings:
            counts[row_of[standing.team_id], standing.rank - 1] += 1
        for row, team_id in enumerate(team_ids):
            rating_sums[row] += trajectory.final_ratings[team_id]
    return PartialTally(
        chunk_index=chunk_index,
        trials=stop - start,
        counts=counts,
        rating_sums=rating_sums,
    )


_WORKER_PLAN: SeasonPlan | None = None
_WORKER_CANCEL: Any = None


def _worker_init(plan: SeasonPlan, cancel_event: Any) -> None:
    global _WORKER_PLAN, _WORKER_CANCEL
    _WORKER_PLAN = plan
    _WORKER_CANCEL = cancel_event


def _worker_run(task: Tuple[int, int, int]) -> PartialTally:
    if _WORKER_PLAN is None:  # pragma: no cover - initializer always runs first
        raise RuntimeError("Worker used before initialisation")
    chunk_index, start, stop = task
    return run_chunk(_WORKER_PLAN, chunk_index, start, stop, _WORKER_CANCEL)


def chunk_bounds(iterations: int, chunk_size: int) -> List[Tuple[int, int, int]]:
    """``(chunk_index, start, stop)`` triples covering ``range(iterations)``."""

    return [
        (index, start, min(start + chunk_size, iterations))
        for index, start in enumerate(range(0, iterations, chunk_size))
    ]


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


def _validate_iterations(iterations: object) -> int:
    if isinstance(iterations, bool) or not isinstance(iterations, (int, np.integer)):
        raise ValidationError(f"iterations must be an integer, got {iterations!r}")
    if iterations <= 0:
        raise ValidationError(f"iterations must be positive, got {iterations}")
    return int(iterations)


def _validate_finite(name: str, value: float) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"{name} must be a number, got {value!r}") from exc
    if not math.isfinite(number):
        raise ValidationError(f"{name} must be finite, got {value!r}")
    return number


def _validate_teams(teams: Sequence[Team]) -> None:
    if not teams:
        raise ValidationError("At least one team is required")
    seen: set[int] = set()
    for team in teams:
        if team.team_id in seen:
            raise ValidationError(f"Duplicate team id {team.team_id}")
        seen.add(team.team_id)
        _validate_finite(f"elo of team {team.team_id}", team.elo)


def _validate_fixtures(fixtures: Sequence[Fixture], team_ids: Iterable[int]) -> None:
    known = set(team_ids)
    for position, fixture in enumerate(fixtures, start=1):
        for side in (fixture.home_id, fixture.away_id):
            if side not in known:
                raise ValidationError(f"Fixture #{position} references unknown team {side!r}")
        if fixture.home_id == fixture.away_id:
            raise ValidationError(f"Fixture #{position} pits team {fixture.home_id} against itself")
        if (fixture.home_goals is None) != (fixture.away_goals is None):
            raise ValidationError(f"Fixture #{position} has goals for only one side")
        for goals in (fixture.home_goals, fixture.away_goals):
            if goals is None:
                continue
            if isinstance(goals, bool) or not isinstance(goals, int) or goals < 0:
                raise ValidationError(
                    f"Fixture #{position} has invalid goal count {goals!r}"
                )


def _resolve_workers(workers: int | None) -> int:
    if workers is None:
        return max(1, os.cpu_count() or 1)
    if isinstance(workers, bool) or not isinstance(workers, int) or workers < 1:
        raise ValidationError(f"workers must be a positive integer, got {workers!r}")
    return workers


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


class MonteCarloEngine:
    """Simulates the rest of a season many times over.

    All inputs are validated once here, before any trial runs. The engine
    owns its base seed; nothing is read from module-level random state.
    """

    def __init__(
        self,
        teams: Sequence[Team] | Iterable[Any] | pl.DataFrame,
        fixtures: Sequence[Fixture] | Iterable[Any] | pl.DataFrame,
        *,
        mod_factor: float = DEFAULT_MOD_FACTOR,
        home_advantage: float = DEFAULT_HOME_ADVANTAGE,
        adjustments: Adjustments | None = None,
        goal_slope: float = GOAL_SLOPE,
        goal_intercept: float = GOAL_INTERCEPT,
        seed: int | None = None,
        workers: int | None = None,
        chunk_size: int | None = None,
        iterations: int = DEFAULT_ITERATIONS,
    ) -> None:
        settings = get_config()
        self.iterations = _validate_iterations(iterations)
        team_records = tuple(build_teams(teams))
        fixture_records = tuple(build_fixtures(fixtures))
        _validate_teams(team_records)
        _validate_fixtures(fixture_records, (team.team_id for team in team_records))

        mod_factor = _validate_finite("mod_factor", mod_factor)
        if mod_factor < 0:
            raise ValidationError(f"mod_factor cannot be negative, got {mod_factor}")
        home_advantage = _validate_finite("home_advantage", home_advantage)
        goal_slope = _validate_finite("goal_slope", goal_slope)
        goal_intercept = _validate_finite("goal_intercept", goal_intercept)

        adjustments = adjustments or Adjustments()
        adjustments.validate(len(team_records))

        self.workers = _resolve_workers(workers if workers is not None else settings.workers)
        chunk_size = chunk_size if chunk_size is not None else settings.chunk_size
        if isinstance(chunk_size, bool) or not isinstance(chunk_size, int) or chunk_size < 1:
            raise ValidationError(f"chunk_size must be a positive integer, got {chunk_size!r}")
        self.chunk_size = chunk_size

        if seed is None:
            seed = settings.seed
        if seed is None:
            seed = int(np.random.SeedSequence().entropy)
            logger.info("No seed supplied; using base seed %d", seed)
        if isinstance(seed, bool) or not isinstance(seed, (int, np.integer)) or seed < 0:
            raise ValidationError(f"seed must be a non-negative integer, got {seed!r}")

        initial = {team.team_id: team.elo for team in team_records}
        opening, first_unplayed = replay_played_prefix(
            initial, fixture_records, mod_factor, home_advantage
        )
        played, _ = replay_played_prefix(
            initial,
            [fixture for fixture in fixture_records if fixture.is_played],
            mod_factor,
            home_advantage,
        )
        for team_id, rating in played.items():
            if not math.isfinite(rating):
                raise NumericError(
                    f"Replaying played fixtures produced a non-finite rating for team {team_id}"
                )
        self.played_ratings = played

        self.plan = SeasonPlan(
            teams=team_records,
            fixtures=fixture_records,
            opening_ratings=opening,
            first_unplayed=first_unplayed,
            mod_factor=mod_factor,
            home_advantage=home_advantage,
            goal_slope=goal_slope,
            goal_intercept=goal_intercept,
            adjustments=adjustments,
            base_seed=int(seed),
        )

    @property
    def teams(self) -> Tuple[Team, ...]:
        return self.plan.teams

    @property
    def fixtures(self) -> Tuple[Fixture, ...]:
        return self.plan.fixtures

    @property
    def base_seed(self) -> int:
        return self.plan.base_seed

    def trajectory(self, trial_index: int) -> Trajectory:
        """Recreate the season played out by trial ``trial_index``."""

        if trial_index < 0:
            raise ValidationError(f"trial_index must be non-negative, got {trial_index}")
        return run_trial(self.plan, trial_index)

    def current_standings(self) -> List[StandingsRow]:
        """Table over the played fixtures only, adjustments included."""

        return compute_standings(self.plan.fixtures, self.plan.teams, self.plan.adjustments)

    def run(
        self,
        iterations: int | None = None,
        cancel_event: CancelToken | None = None,
    ) -> SimulationResult:
        """Run the trials and aggregate them.

        Without ``iterations`` the count given to the constructor is used.
        """

        iterations = self.iterations if iterations is None else _validate_iterations(iterations)
        plan = self.plan
        tasks = chunk_bounds(iterations, self.chunk_size)
        workers = min(self.workers, len(tasks))
        logger.info(
            "Simulating %d trials over %d fixtures (%d unplayed) with %d worker(s), seed %d",
            iterations,
            len(plan.fixtures),
            plan.unplayed,
            workers,
            plan.base_seed,
        )
        try:
            if workers == 1:
                partials = self._run_inline(tasks, cancel_event)
            else:
                partials = self._run_pool(tasks, workers, cancel_event)
        except SimulationCancelled:
            logger.warning("Simulation cancelled; discarding partial results")
            raise

        size = len(plan.teams)
        merged = merge_partials(partials, size, len(tasks))
        matrix = ProbabilityMatrix.from_counts(
            plan.team_ids,
            [team.name for team in plan.teams],
            merged.counts,
            iterations,
        )
        mean_final = {
            team_id: float(merged.rating_sums[row] / iterations)
            for row, team_id in enumerate(plan.team_ids)
        }
        for team_id, rating in mean_final.items():
            if not math.isfinite(rating):
                raise NumericError(f"Mean final rating of team {team_id} is not finite")
        logger.info("Finished %d trials across %d chunk(s)", iterations, len(tasks))
        return SimulationResult(
            matrix=matrix,
            played_ratings=dict(self.played_ratings),
            mean_final_ratings=mean_final,
            base_seed=plan.base_seed,
        )

    def _run_inline(
        self,
        tasks: Sequence[Tuple[int, int, int]],
        cancel_event: CancelToken | None,
    ) -> List[PartialTally]:
        partials: List[PartialTally] = []
        for chunk_index, start, stop in tasks:
            partials.append(run_chunk(self.plan, chunk_index, start, stop, cancel_event))
            logger.debug("Chunk %d/%d done (trials %d-%d)", chunk_index + 1, len(tasks), start, stop - 1)
        return partials

    def _run_pool(
        self,
        tasks: Sequence[Tuple[int, int, int]],
        workers: int,
        cancel_event: CancelToken | None,
    ) -> List[PartialTally]:
        ctx = mp.get_context("spawn")
        worker_cancel = ctx.Event()
        partials: List[PartialTally] = []
        with ctx.Pool(
            processes=workers,
            initializer=_worker_init,
            initargs=(self.plan, worker_cancel),
        ) as pool:
            results = pool.imap_unordered(_worker_run, tasks)
            while len(partials) < len(tasks):
                if cancel_event is not None and cancel_event.is_set():
                    worker_cancel.set()
                    raise SimulationCancelled(
                        f"Cancelled after {len(partials)} of {len(tasks)} chunks"
                    )
                try:
                    partial = results.next(timeout=_POLL_SECONDS)
                except mp.TimeoutError:
                    continue
                partials.append(partial)
                logger.debug(
                    "Chunk %d done (%d/%d)", partial.chunk_index, len(partials), len(tasks)
                )
        return partials


def run_simulation(
    teams: Sequence[Team] | Iterable[Any] | pl.DataFrame,
    fixtures: Sequence[Fixture] | Iterable[Any] | pl.DataFrame,
    iterations: int = DEFAULT_ITERATIONS,
    mod_factor: float = DEFAULT_MOD_FACTOR,
    home_advantage: float = DEFAULT_HOME_ADVANTAGE,
    adjustments: Adjustments | None = None,
    *,
    seed: int | None = None,
    workers: int | None = None,
    cancel_event: CancelToken | None = None,
) -> ProbabilityMatrix:
    """Probability of every team finishing in every position.

    ``iterations`` is checked before anything else so a bad count never
    costs a replay of the schedule.
    """

    iterations = _validate_iterations(iterations)
    engine = MonteCarloEngine(
        teams,
        fixtures,
        mod_factor=mod_factor,
        home_advantage=home_advantage,
        adjustments=adjustments,
        seed=seed,
        workers=workers,
        iterations=iterations,
    )
    return engine.run(cancel_event=cancel_event).matrix


__all__ = [
    "DEFAULT_ITERATIONS",
    "CancelToken",
    "MonteCarloEngine",
    "SeasonPlan",
    "SimulationResult",
    "Trajectory",
    "chunk_bounds",
    "run_chunk",
    "run_simulation",
    "run_trial",
    "trial_rng",
]
