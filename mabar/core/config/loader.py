"""Configuration loader — YAML file + env override."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml

from mabar.core.config.schema import Config

_DEFAULT_NAMES = ("config.yaml", "config.yml")


def load_config(config_path: str | Path | None = None) -> Config:
    """
    Load configuration.

    Resolution order for config file:
        1. Explicit ``config_path`` argument
        2. ``MABAR_CONFIG`` env variable
        3. ``./config.yaml`` (or ``./config.yml``) in cwd

    Values priority (handled by pydantic-settings):
        env vars  >  .env file  >  YAML  >  defaults
    """
    yaml_data = _read_yaml(_find_config_file(config_path))
    return Config(**yaml_data)


def write_default_config(path: str | Path, overwrite: bool = False) -> Path:
    """Dump the default configuration as YAML. Secrets are left empty."""
    target = Path(path).expanduser()
    if target.exists() and not overwrite:
        raise FileExistsError(f"Config already exists: {target}")
    target.parent.mkdir(parents=True, exist_ok=True)
    data = Config().model_dump(mode="json")
    with open(target, "w") as f:
        yaml.safe_dump(data, f, sort_keys=False, allow_unicode=True)
    return target


def _find_config_file(config_path: str | Path | None = None) -> Path | None:
    if config_path:
        return Path(config_path).expanduser()

    env = os.environ.get("MABAR_CONFIG")
    if env:
        return Path(env).expanduser()

    for name in _DEFAULT_NAMES:
        candidate = Path(name)
        if candidate.exists():
            return candidate
    return None


def _read_yaml(path: Path | None) -> dict[str, Any]:
    """Load YAML mapping, empty dict if the file is missing or blank."""
    if not path or not path.exists():
        return {}
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Config root must be a mapping: {path}")
    return data
