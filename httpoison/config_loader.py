"""Config Loader - Loads executor configuration.

Handles loading YAML config files with environment variable substitution
into an ExecutorConfig.
"""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any

import yaml

from httpoison.models import ExecutorConfig


class ConfigError(Exception):
    """Raised when configuration loading fails."""


_ENV_VAR_PATTERN = re.compile(r"\$\{([^}]+)\}")


def load_config(config_path: Path) -> ExecutorConfig:
    """Load executor configuration from YAML with ${ENV_VAR} substitution."""
    if not config_path.exists():
        raise ConfigError(f"Config file not found: {config_path}")

    try:
        with open(config_path, "r", encoding="utf-8") as f:
            raw_config = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in config file: {e}") from e

    # An empty file means all defaults
    if raw_config is None:
        raw_config = {}

    if not isinstance(raw_config, dict):
        raise ConfigError("Config file must be a YAML mapping")

    raw_config = _substitute_env_vars(raw_config)

    try:
        return ExecutorConfig.model_validate(raw_config)
    except Exception as e:
        raise ConfigError(f"Invalid config structure: {e}") from e


def load_config_or_default(config_path: Path | None) -> ExecutorConfig:
    """Load config from config_path, or return defaults when no path is given."""
    if config_path is None:
        return ExecutorConfig()
    return load_config(config_path)


def _substitute_env_vars(data: Any) -> Any:
    """Recursively substitute ${ENV_VAR} patterns in strings within data."""
    if isinstance(data, str):
        return _substitute_string(data)
    elif isinstance(data, dict):
        return {k: _substitute_env_vars(v) for k, v in data.items()}
    elif isinstance(data, list):
        return [_substitute_env_vars(item) for item in data]
    return data


def _substitute_string(s: str) -> str:
    """Substitute ${ENV_VAR} patterns. Raises ConfigError if env var is not set."""

    def replacer(match: re.Match) -> str:
        var_name = match.group(1)
        value = os.environ.get(var_name)
        if value is None:
            raise ConfigError(f"Environment variable not set: {var_name}")
        return value

    return _ENV_VAR_PATTERN.sub(replacer, s)
