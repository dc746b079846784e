"""Exception hierarchy raised by the league simulation engine."""

from __future__ import annotations


class SimulationError(Exception):
    """Base class for every error raised by :mod:`leaguesim`."""


class ValidationError(SimulationError, ValueError):
    """Raised when teams, fixtures, adjustments or parameters are malformed."""


class NumericError(SimulationError, ArithmeticError):
    """Raised when a trial produces non-finite ratings or probabilities."""


class ConcurrencyError(SimulationError, RuntimeError):
    """Raised when partial results from the worker pool cannot be merged."""


class SimulationCancelled(SimulationError):
    """Raised when a run is cancelled between trials."""


__all__ = [
    "ConcurrencyError",
    "NumericError",
    "SimulationCancelled",
    "SimulationError",
    "ValidationError",
]
