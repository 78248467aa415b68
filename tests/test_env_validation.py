import os

import pytest

from env_validation import (
    EnvironmentError,
    get_env_bool,
    get_env_float,
    get_env_int,
    get_env_str,
    validate_environment,
)

_VARS = (
    "DB_PATH",
    "ANALYTICS_CACHE_TTL_SECONDS",
    "LEARNING_PATH_MAX_AGE_HOURS",
    "DEFAULT_PRACTICE_CATEGORY",
    "CHALLENGE_POLICY",
    "CHALLENGE_POLICY_SEED",
)


@pytest.fixture
def clean_env(monkeypatch):
    for var in _VARS:
        monkeypatch.delenv(var, raising=False)
    return monkeypatch


def test_defaults_are_applied(clean_env):
    validate_environment()

    assert os.environ["ANALYTICS_CACHE_TTL_SECONDS"] == "3600"
    assert os.environ["LEARNING_PATH_MAX_AGE_HOURS"] == "24"
    assert os.environ["DEFAULT_PRACTICE_CATEGORY"] == "intervals"
    assert os.environ["CHALLENGE_POLICY"] == "streak"


@pytest.mark.parametrize(
    "var, value",
    [
        ("ANALYTICS_CACHE_TTL_SECONDS", "soon"),
        ("ANALYTICS_CACHE_TTL_SECONDS", "0"),
        ("LEARNING_PATH_MAX_AGE_HOURS", "-2"),
        ("CHALLENGE_POLICY", "coin_flip"),
    ],
)
def test_invalid_values_raise(clean_env, var, value):
    clean_env.setenv(var, value)

    with pytest.raises(EnvironmentError):
        validate_environment()


def test_random_policy_is_accepted(clean_env):
    clean_env.setenv("CHALLENGE_POLICY", "Random")
    clean_env.setenv("CHALLENGE_POLICY_SEED", "42")

    validate_environment()


def test_getters(clean_env):
    clean_env.setenv("FLAG", "yes")
    clean_env.setenv("RATIO", "2.5")
    clean_env.setenv("BROKEN", "many")
    clean_env.setenv("NAME", "  chords ")

    assert get_env_bool("FLAG") is True
    assert get_env_bool("MISSING", default=True) is True
    assert get_env_float("RATIO", 1.0) == 2.5
    assert get_env_float("BROKEN", 1.0) == 1.0
    assert get_env_int("RATIO", 7) == 2
    assert get_env_str("NAME", "intervals") == "chords"
    assert get_env_str("MISSING", "intervals") == "intervals"
