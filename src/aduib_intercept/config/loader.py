from __future__ import annotations

import os
import re
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml

from .models import InterceptorEngineConfig


class ConfigError(RuntimeError):
    """Raised when configuration loading fails."""


_ENV_PATTERN = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)(?::-(.*?))?\}")
_ROOT_KEY = "aduib_intercept"


def load_config(path: str | Path) -> InterceptorEngineConfig:
    """Load a YAML config file into InterceptorEngineConfig."""
    data = _load_config_mapping(path)
    return _build(data, f"Failed to build config from {path}")


def load_config_with_overloads(base_path: str | Path, *overload_paths: str | Path) -> InterceptorEngineConfig:
    """Load a base config file and apply one or more override files."""
    merged = _load_config_mapping(base_path)
    for overload in overload_paths:
        merged = _merge_mapping(merged, _load_config_mapping(overload))
    return _build(merged, "Failed to build config with overrides")


def _build(data: Mapping[str, Any], failure: str) -> InterceptorEngineConfig:
    try:
        return InterceptorEngineConfig.from_dict(data)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{failure}: {exc}") from exc


def _load_config_mapping(path: str | Path) -> dict[str, Any]:
    config_path = Path(path).expanduser()
    if config_path.suffix.lower() not in {".yaml", ".yml"}:
        raise ConfigError(f"Unsupported config file type: {config_path.suffix}")
    if not config_path.is_file():
        raise ConfigError(f"Config file not found: {config_path}")
    try:
        content = config_path.read_text(encoding="utf-8")
        parsed = yaml.safe_load(content) or {}
    except (OSError, yaml.YAMLError) as exc:
        raise ConfigError(f"Failed to load config file: {config_path}") from exc
    if not isinstance(parsed, Mapping):
        raise ConfigError("Configuration must be a mapping")
    return _normalize_config_root(_expand_env_in_data(parsed))


def _expand_env_in_data(value: Any) -> Any:
    if isinstance(value, str):
        return _expand_env_value(value)
    if isinstance(value, Mapping):
        return {key: _expand_env_in_data(val) for key, val in value.items()}
    if isinstance(value, list):
        return [_expand_env_in_data(item) for item in value]
    return value


def _expand_env_value(value: str) -> str:
    def replace(match: re.Match[str]) -> str:
        name = match.group(1)
        default = match.group(2)
        env_value = os.getenv(name)
        if env_value is None or env_value == "":
            if default is None:
                raise ConfigError(f"Environment variable '{name}' is not set and no default provided")
            return default
        return env_value

    return _ENV_PATTERN.sub(replace, value)


def _merge_mapping(base: Mapping[str, Any], override: Mapping[str, Any]) -> dict[str, Any]:
    merged = dict(base)
    for key, value in override.items():
        if key in merged and isinstance(merged[key], Mapping) and isinstance(value, Mapping):
            merged[key] = _merge_mapping(merged[key], value)
        else:
            merged[key] = value
    return merged


def _normalize_config_root(data: Mapping[str, Any]) -> dict[str, Any]:
    if _ROOT_KEY not in data:
        return dict(data)
    nested = data[_ROOT_KEY]
    if not isinstance(nested, Mapping):
        raise ConfigError(f"{_ROOT_KEY} section must be a mapping")
    merged = dict(nested)
    for key, value in data.items():
        if key != _ROOT_KEY:
            merged[key] = value
    return merged
