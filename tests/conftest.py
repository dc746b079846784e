from __future__ import annotations

from itertools import permutations
from typing import Callable, Dict, List, Sequence

import pytest

from leaguesim.config import reset_config
from leaguesim.models import Fixture, Team


@pytest.fixture
def fresh_runtime_config(monkeypatch: pytest.MonkeyPatch):
    for name in (
        "LEAGUESIM_WORKERS",
        "LEAGUESIM_CHUNK_SIZE",
        "LEAGUESIM_SEED",
        "LEAGUESIM_LOG_LEVEL",
    ):
        monkeypatch.delenv(name, raising=False)
    reset_config()
    yield
    reset_config()


class RecordingRng:
    """Uniform source that replays a fixed list and records how many were taken."""

    def __init__(self, values: Sequence[float]) -> None:
        self._values = list(values)
        self.calls = 0

    def random(self) -> float:
        value = self._values[self.calls]
        self.calls += 1
        return value


class FlagEvent:
    def __init__(self, set_after: int = 0) -> None:
        self.checks = 0
        self._set_after = set_after

    def is_set(self) -> bool:
        self.checks += 1
        return self.checks > self._set_after


@pytest.fixture
def four_teams() -> List[Team]:
    return [
        Team(team_id=1, name="Aachen", elo=1600.0),
        Team(team_id=2, name="Bochum", elo=1550.0),
        Team(team_id=3, name="Cottbus", elo=1500.0),
        Team(team_id=4, name="Dresden", elo=1450.0),
    ]


@pytest.fixture
def double_round_robin() -> Callable[[Sequence[Team]], List[Fixture]]:
    def build(teams: Sequence[Team]) -> List[Fixture]:
        return [
            Fixture(home_id=home.team_id, away_id=away.team_id)
            for home, away in permutations(teams, 2)
        ]

    return build


@pytest.fixture
def played_season(four_teams: List[Team]) -> List[Fixture]:
    scores: Dict[tuple[int, int], tuple[int, int]] = {
        (1, 2): (2, 0),
        (1, 3): (1, 1),
        (1, 4): (3, 1),
        (2, 1): (0, 0),
        (2, 3): (2, 1),
        (2, 4): (1, 0),
        (3, 1): (0, 2),
        (3, 2): (1, 1),
        (3, 4): (4, 0),
        (4, 1): (1, 2),
        (4, 2): (2, 2),
        (4, 3): (0, 1),
    }
    return [
        Fixture(home_id=home, away_id=away, home_goals=goals[0], away_goals=goals[1])
        for (home, away), goals in scores.items()
    ]
