"""
Configuration loader for YAML files.

Loads export settings from YAML, merges command line overrides and
validates the result into an ExportConfig.
"""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import TYPE_CHECKING

import yaml
from pydantic import ValidationError

from scrolldump.core.errors import ConfigError

from .models import ExportConfig

if TYPE_CHECKING:
    from typing import Any


ENV_VAR_PATTERN = re.compile(r"\$\{([^}:]+)(?::-([^}]*))?\}")


def _load_yaml_file(path: Path) -> dict[str, Any]:
    """Load a YAML file and return its contents as a dictionary.

    Raises:
        ConfigError: If file cannot be read or parsed
    """
    if not path.exists():
        raise ConfigError(f"Configuration file not found: {path}", path=path)

    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(
            f"Invalid YAML in {path}",
            path=path,
            details=str(e),
            cause=e,
        ) from e
    except OSError as e:
        raise ConfigError(
            f"Cannot read {path}",
            path=path,
            details=str(e),
            cause=e,
        ) from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Expected a mapping at the top of {path}", path=path)
    return data


def _expand_env_vars(data: dict[str, Any]) -> dict[str, Any]:
    """Recursively expand environment variables in string values.

    Supports ${VAR} and ${VAR:-default} syntax.
    """
    def replacer(match: re.Match[str]) -> str:
        var_name = match.group(1)
        default = match.group(2) or ""
        return os.environ.get(var_name, default)

    def expand_value(value: Any) -> Any:
        if isinstance(value, str):
            return ENV_VAR_PATTERN.sub(replacer, value)
        elif isinstance(value, dict):
            return {k: expand_value(v) for k, v in value.items()}
        elif isinstance(value, list):
            return [expand_value(item) for item in value]
        return value

    return expand_value(data)


def build_export_config(
    data: dict[str, Any],
    path: Path | None = None,
) -> ExportConfig:
    """Validate raw settings into an ExportConfig.

    Raises:
        ConfigError: If any setting is invalid
    """
    try:
        return ExportConfig.model_validate(data)
    except ValidationError as e:
        where = f" in {path}" if path else ""
        raise ConfigError(
            f"Invalid export configuration{where}",
            path=path,
            details=str(e),
            cause=e,
        ) from e


def load_export_config(
    path: Path | str | None = None,
    overrides: dict[str, Any] | None = None,
    expand_env: bool = True,
) -> ExportConfig:
    """Load export configuration from YAML and apply overrides.

    Overrides whose value is None are ignored so unset command line
    options never mask values from the file.

    Args:
        path: Optional YAML file
        overrides: Values that take precedence over the file
        expand_env: Whether to expand environment variables

    Returns:
        Validated ExportConfig instance

    Raises:
        ConfigError: If configuration is invalid
    """
    data: dict[str, Any] = {}
    file_path: Path | None = None

    if path is not None:
        file_path = Path(path)
        data = _load_yaml_file(file_path)
        if expand_env:
            data = _expand_env_vars(data)

    for key, value in (overrides or {}).items():
        if isinstance(value, dict):
            value = {k: v for k, v in value.items() if v is not None}
            if not value:
                continue
            existing = data.get(key)
            data[key] = {**existing, **value} if isinstance(existing, dict) else value
        elif value is not None:
            data[key] = value

    return build_export_config(data, path=file_path)
