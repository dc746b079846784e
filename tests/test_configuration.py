from __future__ import annotations

from pathlib import Path

import pytest

from leaguesim.configuration import (
    ConfigurationError,
    SimulationConfig,
    create_engine,
    load_simulation_config,
    validate_simulation_config,
)
from leaguesim.models import Team

pytestmark = pytest.mark.usefixtures("fresh_runtime_config")

ROOT = Path(__file__).resolve().parents[1]


@pytest.fixture(autouse=True)
def _clear_layer_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("LEAGUESIM_ENV", raising=False)
    monkeypatch.delenv("LEAGUESIM_CONFIG", raising=False)


def test_default_configuration_loads(monkeypatch: pytest.MonkeyPatch, four_teams, double_round_robin) -> None:
    monkeypatch.chdir(ROOT)
    config = load_simulation_config()
    assert isinstance(config, SimulationConfig)
    assert config.mod_factor == pytest.approx(20.0)
    assert config.home_advantage == pytest.approx(65.0)
    assert config.iterations == 10_000
    assert validate_simulation_config(config) == []

    engine = create_engine(config, four_teams, double_round_robin(four_teams), seed=1, workers=1)
    assert engine.plan.mod_factor == pytest.approx(config.mod_factor)
    assert engine.plan.goal_slope == pytest.approx(config.goal_model.slope)


def test_configuration_layers_and_env_overrides(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    base = tmp_path / "league.yaml"
    base.write_text(
        """
mod_factor: 20
home_advantage: 65
iterations: 5000
goal_model:
  slope: 0.0018
  intercept: 1.3
"""
    )
    env_override = tmp_path / "league.production.yaml"
    env_override.write_text(
        """
mod_factor: 30
goal_model:
  intercept: 1.4
"""
    )
    extra_override = tmp_path / "override.yaml"
    extra_override.write_text(
        """
home_advantage: 80
"""
    )

    monkeypatch.setenv("LEAGUESIM_ENV", "production")
    monkeypatch.setenv("LEAGUESIM_CONFIG", str(extra_override))
    monkeypatch.setenv("LEAGUESIM__iterations", "20000")

    config = load_simulation_config(base_path=base)

    assert config.environment == "production"
    assert config.mod_factor == pytest.approx(30.0)
    assert config.home_advantage == pytest.approx(80.0)
    assert config.iterations == 20_000
    assert config.goal_model.intercept == pytest.approx(1.4)
    # Ensure other values still merge correctly
    assert config.goal_model.slope == pytest.approx(0.0018)


def test_environment_token_substitution(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    base = tmp_path / "league.yaml"
    monkeypatch.setenv("RESERVE_SUFFIX", "II")
    base.write_text(
        """
promotion:
  penalty: -40
  reserve_suffix: "${RESERVE_SUFFIX}"
"""
    )

    config = load_simulation_config(base_path=base)
    assert config.promotion.reserve_suffix == "II"
    assert config.promotion.penalty == -40


def test_missing_override_is_skipped(tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
    base = tmp_path / "league.yaml"
    base.write_text("mod_factor: 25\n")
    with caplog.at_level("WARNING", logger="leaguesim.configuration"):
        config = load_simulation_config(base_path=base, extra_paths=[tmp_path / "nope.yaml"])
    assert config.mod_factor == pytest.approx(25.0)
    assert "does not exist" in caplog.text


def test_missing_base_file(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        load_simulation_config(base_path=tmp_path / "absent.yaml")


def test_non_mapping_file(tmp_path: Path) -> None:
    base = tmp_path / "league.yaml"
    base.write_text("- 1\n- 2\n")
    with pytest.raises(TypeError, match="mapping"):
        load_simulation_config(base_path=base)


def test_validation_warnings() -> None:
    config = SimulationConfig(mod_factor=60, iterations=100, home_advantage=500)
    warnings = validate_simulation_config(config)
    assert len(warnings) == 3
    assert any("mod_factor" in message for message in warnings)
    assert any("iterations" in message for message in warnings)


def test_validation_errors() -> None:
    config = SimulationConfig(mod_factor=0, iterations=0)
    config.promotion.penalty = 5
    with pytest.raises(ConfigurationError) as excinfo:
        validate_simulation_config(config)
    message = str(excinfo.value)
    assert message.startswith("Configuration validation failed:")
    assert "- mod_factor must be greater than zero" in message
    assert "- iterations must be greater than zero" in message
    assert "- promotion.penalty must not be positive" in message


def test_promotion_race_engine(double_round_robin) -> None:
    teams = [
        Team(1, "Aachen", 1500.0),
        Team(2, "Bayern 2", 1700.0),
        Team(3, "Cottbus", 1500.0),
    ]
    config = SimulationConfig()
    engine = create_engine(
        config, teams, double_round_robin(teams), promotion_race=True, seed=2, workers=1
    )
    assert engine.plan.adjustments.points == (0, -50, 0)
    matrix = engine.run(50).matrix
    assert matrix.probability(2, 3) == 1.0


def test_promotion_race_rejects_explicit_adjustments(double_round_robin) -> None:
    from leaguesim.models import Adjustments

    teams = [Team(1, "A", 1500.0), Team(2, "B", 1500.0)]
    with pytest.raises(ConfigurationError):
        create_engine(
            SimulationConfig(),
            teams,
            [],
            adjustments=Adjustments(),
            promotion_race=True,
        )


def test_configured_iterations_drive_the_run(double_round_robin) -> None:
    teams = [Team(1, "A", 1500.0), Team(2, "B", 1550.0), Team(3, "C", 1450.0)]
    config = SimulationConfig(iterations=1_500)
    engine = create_engine(config, teams, double_round_robin(teams), seed=5, workers=1)
    assert engine.iterations == config.iterations
    result = engine.run()
    assert result.matrix.iterations == config.iterations


def test_iterations_from_yaml_reach_the_engine(tmp_path: Path, double_round_robin) -> None:
    base = tmp_path / "league.yaml"
    base.write_text("iterations: 120\n")
    teams = [Team(1, "A", 1500.0), Team(2, "B", 1500.0)]
    config = load_simulation_config(base_path=base)
    matrix = create_engine(config, teams, double_round_robin(teams), seed=1, workers=1).run().matrix
    assert matrix.iterations == 120


def test_nested_env_override(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    base = tmp_path / "league.yaml"
    base.write_text("goal_model:\n  slope: 0.001\n")
    monkeypatch.setenv("LEAGUESIM__GOAL_MODEL__INTERCEPT", "1.5")
    config = load_simulation_config(base_path=base)
    assert config.goal_model.intercept == pytest.approx(1.5)
    assert config.goal_model.slope == pytest.approx(0.001)


@pytest.mark.parametrize(
    ("variable", "message"),
    [
        ("LEAGUESIM__itertions", "unknown key 'itertions'"),
        ("LEAGUESIM__goal_model__slop", "unknown key 'goal_model.slop'"),
        ("LEAGUESIM__iterations__value", "unknown key 'iterations.value'"),
        ("LEAGUESIM__promotion", "names the section 'promotion'"),
    ],
)
def test_unknown_env_override_is_rejected(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch, variable: str, message: str
) -> None:
    base = tmp_path / "league.yaml"
    base.write_text("mod_factor: 20\n")
    monkeypatch.setenv(variable, "1")
    with pytest.raises(ConfigurationError, match=message):
        load_simulation_config(base_path=base)
