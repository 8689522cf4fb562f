"""
Configuration - Environment-driven settings.

All settings come from environment variables so the same code runs in
development, tests and deployment without config files:

    PHASEFLOW_ENV          development | production (default: development)
    PHASEFLOW_LOG_LEVEL    DEBUG, INFO, ... (default: INFO)
    PHASEFLOW_LOG_JSON     "1" to emit JSON log lines (default: off)
    PHASEFLOW_MAX_STEPS    router/executor iterations per advance (default: 25)
    PHASEFLOW_RANDOM_SEED  base seed for new sessions (default: random per session)
    ALLOWED_ORIGINS        comma separated CORS origins (default: *)
"""

from __future__ import annotations
from dataclasses import dataclass, field
import os


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int | None) -> int | None:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    return int(value)


@dataclass
class Settings:
    """Runtime settings for the engine and API."""
    env: str = "development"
    log_level: str = "INFO"
    log_json: bool = False
    max_steps: int = 25
    random_seed: int | None = None
    allowed_origins: list[str] = field(default_factory=lambda: ["*"])

    @classmethod
    def from_env(cls) -> Settings:
        """Build settings from the process environment."""
        return cls(
            env=os.getenv("PHASEFLOW_ENV", "development"),
            log_level=os.getenv("PHASEFLOW_LOG_LEVEL", "INFO").upper(),
            log_json=_env_bool("PHASEFLOW_LOG_JSON"),
            max_steps=_env_int("PHASEFLOW_MAX_STEPS", 25) or 25,
            random_seed=_env_int("PHASEFLOW_RANDOM_SEED", None),
            allowed_origins=[
                origin.strip()
                for origin in os.getenv("ALLOWED_ORIGINS", "*").split(",")
                if origin.strip()
            ],
        )

    @property
    def is_production(self) -> bool:
        return self.env == "production"
