"""Host settings, read from the environment.

A ``.env`` file in the working directory is loaded first; variables already
set in the environment win.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping

from dotenv import load_dotenv

ENV_PREFIX = "SLIMAPI_"

_TRUE = {"1", "true", "yes", "on"}


@dataclass(slots=True, frozen=True)
class Settings:
    host: str = "127.0.0.1"
    port: int = 8100
    log_level: str = "info"
    cache_expiration: float = 10.0  # seconds
    log_success: bool = True

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> "Settings":
        """Build settings from ``SLIMAPI_*`` variables.

        Passing *env* skips the ``.env`` file and ``os.environ``.
        """
        if env is None:
            load_dotenv(os.path.join(Path.cwd(), ".env"))
            env = os.environ

        def get(name: str) -> str | None:
            return env.get(ENV_PREFIX + name)

        defaults = cls()
        try:
            return cls(
                host=get("HOST") or defaults.host,
                port=int(get("PORT") or defaults.port),
                log_level=(get("LOG_LEVEL") or defaults.log_level).lower(),
                cache_expiration=float(get("CACHE_EXPIRATION") or defaults.cache_expiration),
                log_success=(get("LOG_SUCCESS") or str(defaults.log_success)).lower() in _TRUE,
            )
        except ValueError as exc:
            raise ValueError(f"invalid {ENV_PREFIX}* setting: {exc}") from exc
