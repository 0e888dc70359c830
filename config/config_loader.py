"""Hierarchical configuration loader.

Run configuration is assembled in layers:
1. Packaged defaults (config/defaults.yml)
2. A user YAML file (overrides defaults, nested dicts merged recursively)
3. Programmatic overrides (e.g. CLI flags)
"""

import copy
import re
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from config.schema import RunConfig, load_defaults, validate_run_config


def deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """
    Deep merge override dict into base dict.

    Values in override take precedence. Nested dicts are merged recursively.

    Args:
        base: Base configuration dictionary
        override: Override configuration dictionary

    Returns:
        Merged configuration dictionary
    """
    result = copy.deepcopy(base)

    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = value

    return result


def to_snake_keys(data: Any) -> Any:
    """Recursively convert camelCase mapping keys to snake_case."""
    if isinstance(data, dict):
        return {
            re.sub(r"(?<!^)(?=[A-Z])", "_", str(key)).lower(): to_snake_keys(value)
            for key, value in data.items()
        }
    return data


def load_yaml_config(config_path: Path) -> Dict[str, Any]:
    """Load YAML configuration file."""
    config_path = Path(config_path)
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path, 'r') as f:
        return yaml.safe_load(f) or {}


def load_run_config(
    config_path: Optional[Path] = None,
    overrides: Optional[Dict[str, Any]] = None,
) -> RunConfig:
    """
    Load a validated run configuration.

    Args:
        config_path: Optional user YAML file merged over the packaged defaults
        overrides: Optional nested dict applied last

    Returns:
        Validated RunConfig

    Raises:
        FileNotFoundError: If config_path does not exist
        ConfigError: If the merged configuration is invalid
    """
    merged = load_defaults()
    layers = []
    if config_path is not None:
        layers.append(to_snake_keys(load_yaml_config(Path(config_path))))
    if overrides:
        layers.append(to_snake_keys(overrides))

    for layer in layers:
        merged = deep_merge(merged, layer)
        # param_ranges replaces the default search space instead of extending it
        if "param_ranges" in layer:
            merged["param_ranges"] = copy.deepcopy(layer["param_ranges"])
    return validate_run_config(merged)
