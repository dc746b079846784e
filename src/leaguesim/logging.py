"""Logging helpers for the league simulator."""

from __future__ import annotations

import logging
from typing import Iterable


def configure_logging(
    level: int | str | None = None,
    handlers: Iterable[logging.Handler] | None = None,
    *,
    force: bool = False,
) -> None:
    """Configure root logging for batch runs.

    A simulation run can take a while on a full schedule; structured logging
    makes it easier to follow chunk progress or diagnose rejected inputs.
    Without an explicit ``level`` the ``log_level`` runtime setting is used.
    ``force`` replaces handlers already attached to the root logger.
    """

    if level is None:
        from .config import get_config

        level = get_config().log_level.upper()
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=list(handlers) if handlers else None,
        force=force,
    )
