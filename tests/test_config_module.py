"""Tests for :mod:`notationlab.config`."""

from __future__ import annotations

from pathlib import Path

import pytest

from notationlab import config

KEYS = (
    "NOTATIONLAB_MODEL_PATH",
    "NOTATIONLAB_SAVE_RETRIES",
    "NOTATIONLAB_SAVE_TIMEOUT",
    "NOTATIONLAB_UNIQUE_HANDLERS",
)


@pytest.fixture
def clean_env(monkeypatch):
    config._load_environment.cache_clear()
    for key in KEYS:
        monkeypatch.setenv(key, "")
    yield monkeypatch
    config._load_environment.cache_clear()


def test_get_env_prefers_process_environment(clean_env):
    clean_env.setenv("NOTATIONLAB_MODEL_PATH", "in-memory")

    assert config.get_env("NOTATIONLAB_MODEL_PATH") == "in-memory"


def test_get_env_returns_default_when_missing(monkeypatch):
    config._load_environment.cache_clear()
    monkeypatch.delenv("NOTATIONLAB_DOES_NOT_EXIST", raising=False)

    assert config.get_env("NOTATIONLAB_DOES_NOT_EXIST", default="fallback") == "fallback"


def test_get_env_int_parses_and_validates(clean_env):
    assert config.get_env_int("NOTATIONLAB_SAVE_RETRIES", 7) == 7

    clean_env.setenv("NOTATIONLAB_SAVE_RETRIES", "5")
    assert config.get_env_int("NOTATIONLAB_SAVE_RETRIES", 7) == 5

    clean_env.setenv("NOTATIONLAB_SAVE_RETRIES", "many")
    with pytest.raises(ValueError):
        config.get_env_int("NOTATIONLAB_SAVE_RETRIES", 7)


@pytest.mark.parametrize(
    ("raw", "expected"),
    [("1", True), ("yes", True), ("On", True), ("0", False), ("", False)],
)
def test_get_env_bool(clean_env, raw, expected):
    clean_env.setenv("NOTATIONLAB_UNIQUE_HANDLERS", raw)

    assert config.get_env_bool("NOTATIONLAB_UNIQUE_HANDLERS") is expected


def test_settings_defaults(clean_env):
    settings = config.EditorSettings.from_env()

    assert settings == config.EditorSettings()
    assert settings.save_retries == 3
    assert settings.save_timeout == 30.0


def test_settings_from_environment(clean_env, tmp_path):
    clean_env.setenv("NOTATIONLAB_MODEL_PATH", str(tmp_path / "diagram.json"))
    clean_env.setenv("NOTATIONLAB_SAVE_RETRIES", "2")
    clean_env.setenv("NOTATIONLAB_SAVE_TIMEOUT", "5")
    clean_env.setenv("NOTATIONLAB_UNIQUE_HANDLERS", "true")

    settings = config.EditorSettings.from_env()

    assert settings.model_path == Path(tmp_path / "diagram.json")
    assert settings.save_retries == 2
    assert settings.save_timeout == 5.0
    assert settings.unique_handlers is True


def test_settings_reject_non_positive_retries(clean_env):
    clean_env.setenv("NOTATIONLAB_SAVE_RETRIES", "0")

    with pytest.raises(ValueError):
        config.EditorSettings.from_env()


def test_settings_accept_fractional_save_timeout(clean_env):
    clean_env.setenv("NOTATIONLAB_SAVE_TIMEOUT", "2.5")

    assert config.EditorSettings.from_env().save_timeout == 2.5


def test_get_env_float_rejects_garbage(clean_env):
    clean_env.setenv("NOTATIONLAB_SAVE_TIMEOUT", "soon")

    with pytest.raises(ValueError):
        config.get_env_float("NOTATIONLAB_SAVE_TIMEOUT", 30.0)
