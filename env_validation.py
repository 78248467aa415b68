"""Environment variable validation and management."""

import os
import logging
from typing import Dict

logger = logging.getLogger(__name__)

_CHALLENGE_POLICIES = {"streak", "random"}


class EnvironmentError(Exception):
    """Raised when required environment variables are missing or invalid."""
    pass


def validate_environment() -> None:
    """Validate the engine's environment variables.

    Raises EnvironmentError if validation fails.
    """
    defaults = {
        "DB_PATH": "data.db",
        "ANALYTICS_CACHE_TTL_SECONDS": "3600",
        "LEARNING_PATH_MAX_AGE_HOURS": "24",
        "DEFAULT_PRACTICE_CATEGORY": "intervals",
        "CHALLENGE_POLICY": "streak",
    }

    # Apply defaults before validation so dependent modules see consistent values.
    for var, value in defaults.items():
        if not os.getenv(var):
            os.environ[var] = value
            logger.info("Environment variable %s not set; using default '%s'", var, value)

    positive_numbers: Dict[str, str] = {
        "ANALYTICS_CACHE_TTL_SECONDS": "Analytics cache lifetime in seconds",
        "LEARNING_PATH_MAX_AGE_HOURS": "Hours before a stored learning path is regenerated",
    }
    for var, description in positive_numbers.items():
        raw = os.environ[var]
        try:
            value = float(raw)
        except ValueError:
            raise EnvironmentError(f"{var} ({description}) must be numeric, got {raw!r}")
        if value <= 0:
            raise EnvironmentError(f"{var} ({description}) must be positive, got {raw!r}")

    policy = os.environ["CHALLENGE_POLICY"].strip().lower()
    if policy not in _CHALLENGE_POLICIES:
        raise EnvironmentError(
            f"Invalid CHALLENGE_POLICY {policy!r}; expected one of {sorted(_CHALLENGE_POLICIES)}"
        )

    optional_vars = {
        "CHALLENGE_POLICY_SEED": "Seed for the random challenge policy",
    }
    for var, description in optional_vars.items():
        if not os.getenv(var):
            logger.debug("Optional environment variable not set: %s (%s)", var, description)


def get_env_bool(name: str, default: bool = False) -> bool:
    """Get boolean value from environment variable."""
    value = os.getenv(name)
    if value is None:
        return default
    return value.lower() in {"1", "true", "yes", "on", "enabled"}


def get_env_float(name: str, default: float) -> float:
    """Get a float from the environment, falling back to ``default`` on bad input."""
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return float(value)
    except ValueError:
        logger.warning("Ignoring non-numeric %s=%r; using %s", name, value, default)
        return default


def get_env_int(name: str, default: int) -> int:
    return int(get_env_float(name, float(default)))


def get_env_str(name: str, default: str) -> str:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    return value.strip()
