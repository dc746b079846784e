from __future__ import annotations

import json
import logging
import math
import os
import re
from pathlib import Path
from typing import (
    TYPE_CHECKING,
    Any,
    Dict,
    Iterable,
    Mapping,
    MutableMapping,
    Sequence,
)

import yaml
from pydantic import BaseModel, Field

from .elo import DEFAULT_HOME_ADVANTAGE, DEFAULT_MOD_FACTOR
from .match import GOAL_INTERCEPT, GOAL_SLOPE

if TYPE_CHECKING:  # pragma: no cover - imported for type checking only
    from .engine import MonteCarloEngine
    from .models import Adjustments, Fixture, Team

ENVIRONMENT_VARIABLE = "LEAGUESIM_ENV"
EXTRA_CONFIG_VARIABLE = "LEAGUESIM_CONFIG"
ENV_OVERRIDE_PREFIX = "LEAGUESIM__"
DEFAULT_CONFIG_PATH = Path("config/leaguesim.yaml")

logger = logging.getLogger(__name__)


class GoalModelConfig(BaseModel):
    """Linear link between rating gap and expected goals."""

    slope: float = GOAL_SLOPE
    intercept: float = GOAL_INTERCEPT


class PromotionConfig(BaseModel):
    """Points penalty that keeps reserve sides out of the promotion places."""

    penalty: int = -50
    reserve_suffix: str = "2"


class SimulationConfig(BaseModel):
    """Model parameters for a league simulation run."""

    environment: str = "default"
    mod_factor: float = DEFAULT_MOD_FACTOR
    home_advantage: float = DEFAULT_HOME_ADVANTAGE
    iterations: int = 10_000
    goal_model: GoalModelConfig = Field(default_factory=GoalModelConfig)
    promotion: PromotionConfig = Field(default_factory=PromotionConfig)


class ConfigurationError(ValueError):
    """Raised when simulation configuration validation fails."""


_ENV_PATTERN = re.compile(r"\$\{([^}]+)\}")


def _load_yaml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        raise FileNotFoundError(path)
    with path.open("r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle) or {}
    if not isinstance(data, dict):
        raise TypeError(f"Configuration at {path} must be a mapping")
    return dict(data)


def _merge_layers(base: Dict[str, Any], layer: Mapping[str, Any]) -> Dict[str, Any]:
    merged: Dict[str, Any] = dict(base)
    for key, value in layer.items():
        if (
            key in merged
            and isinstance(merged[key], Mapping)
            and isinstance(value, Mapping)
        ):
            merged[key] = _merge_layers(dict(merged[key]), value)
        else:
            merged[key] = value
    return merged


def _resolve_env_tokens(value: Any) -> Any:
    if isinstance(value, str):
        return _ENV_PATTERN.sub(lambda match: os.getenv(match.group(1), ""), value)
    if isinstance(value, Mapping):
        return {k: _resolve_env_tokens(v) for k, v in value.items()}
    if isinstance(value, Sequence) and not isinstance(value, (str, bytes, bytearray)):
        return [_resolve_env_tokens(item) for item in value]
    return value


def _coerce_env_value(raw: str) -> Any:
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        lowered = raw.lower()
        if lowered in {"true", "false"}:
            return lowered == "true"
        return raw


def _set_nested(mapping: MutableMapping[str, Any], path: Iterable[str], value: Any) -> None:
    segments = list(path)
    if not segments:
        return
    head, *tail = segments
    key = head.lower().replace("-", "_")
    if not tail:
        mapping[key] = value
        return
    child = mapping.get(key)
    if not isinstance(child, MutableMapping):
        child = {}
    else:
        child = dict(child)
    mapping[key] = child
    _set_nested(child, tail, value)


def _override_path(variable: str, segments: Sequence[str]) -> list[str]:
    """Map ``LEAGUESIM__a__b`` segments onto :class:`SimulationConfig` fields."""

    model: type[BaseModel] | None = SimulationConfig
    path: list[str] = []
    for segment in segments:
        key = segment.lower().replace("-", "_")
        if model is None or key not in model.model_fields:
            raise ConfigurationError(
                f"{variable} does not name a simulation setting "
                f"(unknown key {'.'.join([*path, key])!r})"
            )
        path.append(key)
        annotation = model.model_fields[key].annotation
        model = (
            annotation
            if isinstance(annotation, type) and issubclass(annotation, BaseModel)
            else None
        )
    if model is not None:
        raise ConfigurationError(
            f"{variable} names the section {'.'.join(path)!r}; override one of its fields"
        )
    return path


def _apply_env_overrides(data: Dict[str, Any]) -> Dict[str, Any]:
    updated = dict(data)
    for key, raw_value in sorted(os.environ.items()):
        if not key.startswith(ENV_OVERRIDE_PREFIX):
            continue
        segments = [segment for segment in key[len(ENV_OVERRIDE_PREFIX) :].split("__") if segment]
        if not segments:
            continue
        path = _override_path(key, segments)
        logger.debug("Applying environment override %s", key)
        _set_nested(updated, path, _coerce_env_value(raw_value))
    return updated


def load_simulation_config(
    *,
    base_path: str | os.PathLike[str] | None = None,
    environment: str | None = None,
    extra_paths: Sequence[str | os.PathLike[str]] | None = None,
) -> SimulationConfig:
    """Load layered configuration for a simulation run.

    The loader merges ``config/leaguesim.yaml`` with optional
    environment-specific overrides (``config/leaguesim.<env>.yaml``),
    additional override files, and environment variable overrides that use
    ``LEAGUESIM__`` prefixes (``LEAGUESIM__goal_model__slope=0.002``).
    """

    config_path = Path(base_path or DEFAULT_CONFIG_PATH)
    data = _load_yaml(config_path)

    env_name = environment or os.getenv(ENVIRONMENT_VARIABLE) or data.get("environment")
    if isinstance(env_name, str):
        env_path = config_path.with_name(f"{config_path.stem}.{env_name}{config_path.suffix}")
        if env_path.exists():
            logger.debug("Applying %s configuration layer from %s", env_name, env_path)
            data = _merge_layers(data, _load_yaml(env_path))
        data["environment"] = env_name

    merged = dict(data)
    override_sources: list[Path] = []
    if extra_paths:
        override_sources.extend(Path(path) for path in extra_paths)
    env_overrides = os.getenv(EXTRA_CONFIG_VARIABLE)
    if env_overrides:
        override_sources.extend(Path(token) for token in env_overrides.split(os.pathsep) if token)

    for override in override_sources:
        if override.exists():
            merged = _merge_layers(merged, _load_yaml(override))
        else:
            logger.warning("Configuration override %s does not exist; skipping", override)

    merged = _apply_env_overrides(merged)
    merged = _resolve_env_tokens(merged)

    return SimulationConfig.model_validate(merged)


def validate_simulation_config(config: SimulationConfig) -> list[str]:
    """Validate a :class:`SimulationConfig` instance.

    Args:
        config: Parsed configuration object to validate.

    Returns:
        A list of warning messages. The function raises
        :class:`ConfigurationError` if any fatal issues are detected.
    """

    errors: list[str] = []
    warnings: list[str] = []

    for field_name in ("mod_factor", "home_advantage"):
        value = getattr(config, field_name)
        if not math.isfinite(value):
            errors.append(f"{field_name} must be finite")
    if math.isfinite(config.mod_factor):
        if config.mod_factor <= 0:
            errors.append("mod_factor must be greater than zero")
        elif not 20 <= config.mod_factor <= 40:
            warnings.append(
                "mod_factor outside the usual 20-40 range; ratings will react unusually"
            )
    if math.isfinite(config.home_advantage) and abs(config.home_advantage) > 400:
        warnings.append("home_advantage exceeds the 400 point rating gap cap")

    if config.iterations <= 0:
        errors.append("iterations must be greater than zero")
    elif config.iterations < 1_000:
        warnings.append(
            "fewer than 1000 iterations; probabilities will carry visible sampling noise"
        )

    goal_model = config.goal_model
    if not math.isfinite(goal_model.slope) or not math.isfinite(goal_model.intercept):
        errors.append("goal_model slope and intercept must be finite")
    elif goal_model.intercept <= 0:
        errors.append("goal_model.intercept must be greater than zero")
    elif goal_model.slope < 0:
        warnings.append("goal_model.slope is negative; stronger teams will score fewer goals")

    if config.promotion.penalty > 0:
        errors.append("promotion.penalty must not be positive")
    if not config.promotion.reserve_suffix:
        errors.append("promotion.reserve_suffix cannot be empty")

    if errors:
        bullet_list = "\n".join(f"- {message}" for message in errors)
        raise ConfigurationError(f"Configuration validation failed:\n{bullet_list}")

    return warnings


def create_engine(
    config: SimulationConfig,
    teams: Sequence["Team"],
    fixtures: Sequence["Fixture"],
    *,
    adjustments: "Adjustments | None" = None,
    promotion_race: bool = False,
    seed: int | None = None,
    workers: int | None = None,
) -> "MonteCarloEngine":
    """Instantiate a :class:`MonteCarloEngine` from configuration.

    With ``promotion_race`` the configured reserve-side penalty is used as the
    points adjustment, which yields the table where only eligible sides can
    finish in the promotion places.
    """

    from .engine import MonteCarloEngine
    from .models import promotion_adjustments

    if promotion_race:
        if adjustments is not None:
            raise ConfigurationError("promotion_race cannot be combined with explicit adjustments")
        adjustments = promotion_adjustments(
            teams,
            penalty=config.promotion.penalty,
            reserve_suffix=config.promotion.reserve_suffix,
        )
    return MonteCarloEngine(
        teams,
        fixtures,
        mod_factor=config.mod_factor,
        home_advantage=config.home_advantage,
        adjustments=adjustments,
        goal_slope=config.goal_model.slope,
        goal_intercept=config.goal_model.intercept,
        seed=seed,
        workers=workers,
        iterations=config.iterations,
    )


__all__ = [
    "ConfigurationError",
    "GoalModelConfig",
    "PromotionConfig",
    "SimulationConfig",
    "create_engine",
    "load_simulation_config",
    "validate_simulation_config",
]
