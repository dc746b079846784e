"""Finishing-position probability matrix and the merge of partial tallies."""

from __future__ import annotations

import dataclasses
from typing import Any, Dict, List, Sequence, Tuple, TypeAlias

import numpy as np
import polars as pl

from .errors import ConcurrencyError, NumericError, ValidationError

NDArrayFloat: TypeAlias = Any
NDArrayInt: TypeAlias = Any

SUM_TOLERANCE = 1e-9


@dataclasses.dataclass(slots=True)
class PartialTally:
    """Finishing-rank counts and rating sums for one contiguous block of trials."""

    chunk_index: int
    trials: int
    counts: NDArrayInt
    rating_sums: NDArrayFloat


def merge_partials(
    partials: Sequence[PartialTally], size: int, expected_chunks: int
) -> PartialTally:
    """Sum partial tallies in chunk order.

    Integer counts make the merge exact; summing the float rating totals in a
    fixed order keeps them identical for any number of workers.
    """

    ordered = sorted(partials, key=lambda partial: partial.chunk_index)
    indices = [partial.chunk_index for partial in ordered]
    if indices != list(range(expected_chunks)):
        raise ConcurrencyError(
            f"Expected chunks 0..{expected_chunks - 1}, received {indices}"
        )
    counts = np.zeros((size, size), dtype=np.int64)
    rating_sums = np.zeros(size, dtype=np.float64)
    trials = 0
    for partial in ordered:
        if np.shape(partial.counts) != (size, size):
            raise ConcurrencyError(
                f"Chunk {partial.chunk_index} returned counts of shape "
                f"{np.shape(partial.counts)}, expected {(size, size)}"
            )
        if np.shape(partial.rating_sums) != (size,):
            raise ConcurrencyError(
                f"Chunk {partial.chunk_index} returned {np.shape(partial.rating_sums)} "
                f"rating sums, expected {(size,)}"
            )
        counts += partial.counts
        rating_sums += partial.rating_sums
        trials += partial.trials
    return PartialTally(chunk_index=0, trials=trials, counts=counts, rating_sums=rating_sums)


@dataclasses.dataclass(frozen=True, eq=False)
class ProbabilityMatrix:
    """Share of trials in which each team finished in each position.

    Row ``i`` belongs to ``team_ids[i]``; column ``k`` is final position
    ``k + 1``. Every row and every column sums to one.
    """

    team_ids: Tuple[int, ...]
    team_names: Tuple[str, ...]
    probabilities: NDArrayFloat
    iterations: int

    @classmethod
    def from_counts(
        cls,
        team_ids: Sequence[int],
        team_names: Sequence[str],
        counts: NDArrayInt,
        iterations: int,
    ) -> "ProbabilityMatrix":
        if iterations <= 0:
            raise ValidationError("iterations must be positive")
        size = len(team_ids)
        counts = np.asarray(counts)
        if counts.shape != (size, size):
            raise ConcurrencyError(
                f"Count matrix has shape {counts.shape}, expected {(size, size)}"
            )
        probabilities = counts.astype(np.float64) / float(iterations)
        if not np.all(np.isfinite(probabilities)):
            raise NumericError("Probability matrix contains non-finite values")
        if size and not (
            np.allclose(probabilities.sum(axis=1), 1.0, atol=SUM_TOLERANCE)
            and np.allclose(probabilities.sum(axis=0), 1.0, atol=SUM_TOLERANCE)
        ):
            raise NumericError(
                "Probability matrix rows and columns must each sum to one; "
                f"counts cover {int(counts.sum())} placements for {iterations} trials"
            )
        probabilities.setflags(write=False)
        return cls(
            team_ids=tuple(team_ids),
            team_names=tuple(team_names),
            probabilities=probabilities,
            iterations=iterations,
        )

    @property
    def size(self) -> int:
        return len(self.team_ids)

    def _row(self, team_id: int) -> int:
        try:
            return self.team_ids.index(team_id)
        except ValueError as exc:
            raise KeyError(team_id) from exc

    def probability(self, team_id: int, position: int) -> float:
        """Probability that ``team_id`` finishes in 1-based ``position``."""

        if not 1 <= position <= self.size:
            raise IndexError(f"Position {position} outside 1..{self.size}")
        return float(self.probabilities[self._row(team_id), position - 1])

    def distribution(self, team_id: int) -> List[float]:
        return [float(value) for value in self.probabilities[self._row(team_id)]]

    def expected_positions(self) -> NDArrayFloat:
        positions = np.arange(1, self.size + 1, dtype=np.float64)
        return self.probabilities @ positions

    def expected_position(self, team_id: int) -> float:
        return float(self.expected_positions()[self._row(team_id)])

    def ranked(self) -> "ProbabilityMatrix":
        """Rows reordered by expected finishing position, best first."""

        order = np.argsort(self.expected_positions(), kind="stable")
        probabilities = self.probabilities[order]
        probabilities.setflags(write=False)
        return ProbabilityMatrix(
            team_ids=tuple(self.team_ids[index] for index in order),
            team_names=tuple(self.team_names[index] for index in order),
            probabilities=probabilities,
            iterations=self.iterations,
        )

    def to_dict(self) -> Dict[int, List[float]]:
        return {team_id: self.distribution(team_id) for team_id in self.team_ids}

    def to_frame(self) -> pl.DataFrame:
        """One row per team with one column per final position."""

        data: Dict[str, Any] = {
            "team_id": list(self.team_ids),
            "team": list(self.team_names),
            "expected_position": [float(value) for value in self.expected_positions()],
        }
        for column in range(self.size):
            data[str(column + 1)] = [float(value) for value in self.probabilities[:, column]]
        return pl.DataFrame(data)


def format_percentage(value: float) -> int | str:
    """Whole-percent display value that never shows a false certainty.

    Probabilities strictly between 0 and 1 that would round to 0 or 100 are
    shown as ``"<1"`` and ``">99"``.
    """

    if 0.01 <= value <= 0.99:
        return int(round(100 * value))
    if value == 1:
        return 100
    if value == 0:
        return 0
    if value > 0.99:
        return ">99"
    return "<1"


__all__ = [
    "PartialTally",
    "ProbabilityMatrix",
    "format_percentage",
    "merge_partials",
]
