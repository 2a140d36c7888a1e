"""Configuration lookup for tripgate.

Resolution order for every key:
1. process environment
2. `.env` (local override layer, optional)
3. `.env.defaults` (version-controlled catalog of keys and default values)
4. the caller's fallback
"""
from __future__ import annotations

import json
import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict

_TRUE_VALUES = ('true', '1', 'yes', 'on')


@lru_cache(maxsize=1)
def load_defaults() -> Dict[str, str]:
    """Load key/value defaults from `.env.defaults`, then overlay `.env`.

    Both the repository root and the current working directory are searched,
    so a deployment can ship its own `.env` next to the WSGI entry point.
    Returns an empty dict when neither file exists.
    """
    dirs: list[Path] = []
    repo_root = Path(__file__).resolve().parent.parent.parent
    dirs.append(repo_root)

    try:
        cwd = Path.cwd()
        if cwd.resolve() != repo_root.resolve():
            dirs.append(cwd)
    except (OSError, FileNotFoundError):
        pass

    merged: Dict[str, str] = {}

    for directory in dirs:
        defaults_path = directory / ".env.defaults"
        if defaults_path.exists():
            merged.update(_parse_env_file(defaults_path))

    for directory in dirs:
        env_path = directory / ".env"
        if env_path.exists():
            merged.update(_parse_env_file(env_path))

    return merged


def get_default(key: str, fallback: str | None = None) -> str | None:
    """Return the file-configured default for a key (or fallback)."""
    return load_defaults().get(key, fallback)


def require_default(key: str) -> str:
    """Return the configured default or raise if missing."""
    value = load_defaults().get(key)
    if value is None:
        raise RuntimeError(f"Required default '{key}' missing from .env/.env.defaults")
    return value


def get_config(key: str, fallback: str | None = None) -> str | None:
    """Environment first, then the defaults files, then fallback."""
    value = os.environ.get(key)
    if value is not None and value != '':
        return value
    return get_default(key, fallback)


def get_bool(key: str, fallback: bool = False) -> bool:
    value = get_config(key)
    if value is None:
        return fallback
    return value.strip().lower() in _TRUE_VALUES


def get_int(key: str, fallback: int) -> int:
    value = get_config(key)
    if value is None:
        return fallback
    try:
        return int(value)
    except ValueError:
        raise RuntimeError(f"Config '{key}' must be an integer, got {value!r}")


def get_list(key: str, fallback: list[str] | None = None) -> list[str]:
    """Comma-separated list, blanks dropped."""
    value = get_config(key)
    if value is None:
        return list(fallback or [])
    return [item.strip() for item in value.split(',') if item.strip()]


def get_json(key: str, fallback: Any = None) -> Any:
    value = get_config(key)
    if value is None:
        return fallback
    try:
        return json.loads(value)
    except json.JSONDecodeError as e:
        raise RuntimeError(f"Config '{key}' is not valid JSON: {e}")


def _parse_env_file(env_path: Path) -> Dict[str, str]:
    defaults: Dict[str, str] = {}
    with env_path.open("r", encoding="utf-8") as handle:
        for line in handle:
            line = line.strip()
            if not line or line.startswith("#"):
                continue
            if "=" not in line:
                continue
            key, value = line.split("=", 1)
            value = value.strip()
            # Strip surrounding quotes (single or double)
            if len(value) >= 2 and value[0] in ('"', "'") and value[-1] == value[0]:
                value = value[1:-1]
            defaults[key.strip()] = value
    return defaults
