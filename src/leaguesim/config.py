"""Runtime configuration management for leaguesim."""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class LeaguesimConfig(BaseSettings):
    """Process-level settings for the simulation engine."""

    # Worker pool
    workers: int | None = Field(
        default=None,
        description="Worker processes for Monte Carlo trials; unset uses every core",
        alias="LEAGUESIM_WORKERS",
    )

    chunk_size: int = Field(
        default=250,
        description="Trials per unit of work handed to a worker",
        alias="LEAGUESIM_CHUNK_SIZE",
    )

    # Reproducibility
    seed: int | None = Field(
        default=None,
        description="Base seed for per-trial random streams; unset draws fresh entropy",
        alias="LEAGUESIM_SEED",
    )

    # Logging
    log_level: str = Field(
        default="INFO",
        description="Level passed to configure_logging",
        alias="LEAGUESIM_LOG_LEVEL",
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )


# Global configuration instance
config = LeaguesimConfig()


def get_config() -> LeaguesimConfig:
    """Get the current configuration."""
    return config


def update_config(**kwargs) -> None:
    """Update configuration settings."""
    global config
    for key, value in kwargs.items():
        if hasattr(config, key):
            setattr(config, key, value)
        else:
            raise ValueError(f"Unknown configuration option: {key}")


def reset_config() -> None:
    """Reset configuration to defaults."""
    global config
    config = LeaguesimConfig()
