"""
leaguesim: Monte Carlo simulation of football league tables.

Completes the unplayed part of a season many times over, using ELO ratings
and a Poisson goal model, and reports how likely each team is to finish in
each position.
"""

from importlib.metadata import PackageNotFoundError, version

try:  # pragma: no cover - exercised in packaging workflows
    __version__ = version("leaguesim")
except PackageNotFoundError:  # pragma: no cover - local editable installs
    __version__ = "0.0.0"

_EXPORTS = {
    # Records and input normalisation
    "Team": ".models",
    "Fixture": ".models",
    "Adjustments": ".models",
    "StandingsRow": ".models",
    "build_teams": ".models",
    "build_fixtures": ".models",
    "promotion_adjustments": ".models",
    # Simulation
    "update_ratings": ".elo",
    "simulate_match": ".match",
    "simulate_season": ".season",
    "compute_standings": ".standings",
    "standings_frame": ".standings",
    "MonteCarloEngine": ".engine",
    "SimulationResult": ".engine",
    "run_simulation": ".engine",
    "ProbabilityMatrix": ".probability",
    "format_percentage": ".probability",
    # Errors
    "SimulationError": ".errors",
    "ValidationError": ".errors",
    "NumericError": ".errors",
    "ConcurrencyError": ".errors",
    "SimulationCancelled": ".errors",
    # Configuration
    "get_config": ".config",
    "load_simulation_config": ".configuration",
    "configure_logging": ".logging",
}

__all__ = sorted(_EXPORTS)


def __getattr__(name: str) -> object:  # pragma: no cover - thin lazy importer
    from importlib import import_module

    target_module = _EXPORTS.get(name)
    if not target_module:
        raise AttributeError(f"module {__name__} has no attribute {name}")
    module = import_module(target_module, __name__)
    attr = getattr(module, name)
    globals()[name] = attr
    return attr


def __dir__() -> list[str]:  # pragma: no cover - trivial
    return sorted(list(globals().keys()) + __all__)
