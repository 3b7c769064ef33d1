"""Configuration helpers for loading environment variables.

Variables defined in a project-level ``.env`` file are loaded once before
the first lookup.  Consumers should rely on :func:`get_env` (or on
:meth:`EditorSettings.from_env`) instead of :func:`os.getenv` so that the
configuration is loaded in a single, well-defined place.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

_TRUTHY = {"1", "true", "yes", "on"}


@lru_cache(maxsize=1)
def _load_environment() -> None:
    """Load environment variables from the project's ``.env`` file.

    When the repository level file is missing :func:`load_dotenv` still runs
    its default discovery so users may keep the file elsewhere.  Values that
    are already present in the process environment are never overridden.
    """

    project_root = Path(__file__).resolve().parents[1]
    env_path = project_root / ".env"

    if env_path.exists():
        load_dotenv(env_path, override=False)
    else:
        load_dotenv(override=False)


def get_env(key: str, default: Optional[str] = None) -> Optional[str]:
    """Return the value for ``key`` from the environment.

    Parameters
    ----------
    key:
        The name of the environment variable to look up.
    default:
        The value to return when ``key`` is not present.
    """

    _load_environment()
    return os.environ.get(key, default)


def get_env_int(key: str, default: int) -> int:
    """Return ``key`` parsed as an integer, falling back to ``default``."""

    raw = get_env(key)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ValueError(f"{key} must be an integer, got {raw!r}") from exc


def get_env_float(key: str, default: float) -> float:
    raw = get_env(key)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ValueError(f"{key} must be a number, got {raw!r}") from exc


def get_env_bool(key: str, default: bool = False) -> bool:
    raw = get_env(key)
    if raw is None:
        return default
    return raw.strip().lower() in _TRUTHY


@dataclass(frozen=True)
class EditorSettings:
    """Session level settings resolved from the environment."""

    model_path: Optional[Path] = None
    save_retries: int = 3
    save_timeout: float = 30.0
    unique_handlers: bool = False

    @classmethod
    def from_env(cls) -> "EditorSettings":
        path = get_env("NOTATIONLAB_MODEL_PATH")
        retries = get_env_int("NOTATIONLAB_SAVE_RETRIES", 3)
        if retries < 1:
            raise ValueError("NOTATIONLAB_SAVE_RETRIES must be at least 1")
        return cls(
            model_path=Path(path) if path else None,
            save_retries=retries,
            save_timeout=get_env_float("NOTATIONLAB_SAVE_TIMEOUT", 30.0),
            unique_handlers=get_env_bool("NOTATIONLAB_UNIQUE_HANDLERS"),
        )


__all__ = ["EditorSettings", "get_env", "get_env_bool", "get_env_float", "get_env_int"]
