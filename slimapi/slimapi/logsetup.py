"""Outcome logging configuration."""

from __future__ import annotations

import logging
from dataclasses import dataclass

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


@dataclass(slots=True, frozen=True)
class LogSetup:
    """How the dispatcher logs request outcomes.

    ``logger_name`` defaults to the dispatcher module's logger.  Failures
    with a 5xx status always log at ERROR.
    """

    logger_name: str | None = None
    success_level: int = logging.DEBUG
    client_error_level: int = logging.WARNING
    log_success: bool = True

    def logger(self, default: str) -> logging.Logger:
        return logging.getLogger(self.logger_name or default)


def configure(level: int | str = logging.INFO) -> None:
    """Root logging setup used by runnable entry points."""
    if isinstance(level, str):
        level = level.upper()
    logging.basicConfig(level=level, format=LOG_FORMAT)
