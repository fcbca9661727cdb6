"""
tokenvest configuration

All settings come from TOKENVEST_* environment variables. Pool parameters
(admin, start, duration) are constructor arguments, not configuration.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Mapping

from .vesting_exceptions import ConfigurationError

logger = logging.getLogger(__name__)

_VALID_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off", ""}


def _get_bool(env: Mapping[str, str], env_var: str, default: str) -> bool:
    raw = env.get(env_var, default).strip().lower()
    if raw in _TRUE_VALUES:
        return True
    if raw in _FALSE_VALUES:
        return False
    raise ConfigurationError(
        f"{env_var} must be a boolean flag (1/0, true/false), got {raw!r}",
        details={"env_var": env_var, "value": raw},
    )


@dataclass(frozen=True)
class Settings:
    """Process-wide settings for logging and monitoring."""

    environment: str = "development"
    log_level: str = "INFO"
    log_file: str | None = None
    metrics_enabled: bool = True
    funding_check: bool = True

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "Settings":
        """
        Build settings from environment variables.

        Args:
            environ: Mapping to read from (defaults to os.environ)

        Returns:
            Settings instance

        Raises:
            ConfigurationError: If a variable holds an invalid value
        """
        env = os.environ if environ is None else environ

        log_level = env.get("TOKENVEST_LOG_LEVEL", "INFO").strip().upper()
        if log_level not in _VALID_LOG_LEVELS:
            raise ConfigurationError(
                f"TOKENVEST_LOG_LEVEL must be one of {sorted(_VALID_LOG_LEVELS)}, got {log_level!r}",
                details={"env_var": "TOKENVEST_LOG_LEVEL", "value": log_level},
            )

        log_file = env.get("TOKENVEST_LOG_FILE", "").strip() or None

        settings = cls(
            environment=env.get("TOKENVEST_ENVIRONMENT", "development").strip() or "development",
            log_level=log_level,
            log_file=log_file,
            metrics_enabled=_get_bool(env, "TOKENVEST_METRICS_ENABLED", "1"),
            funding_check=_get_bool(env, "TOKENVEST_FUNDING_CHECK", "1"),
        )
        logger.debug(
            "Settings loaded",
            extra={
                "event": "config.loaded",
                "environment": settings.environment,
                "metrics_enabled": settings.metrics_enabled,
            },
        )
        return settings


settings = Settings.from_env()
