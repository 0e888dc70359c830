"""Configuration management module."""

from .schema import (
    BacktestConfig,
    EnhancementConfig,
    MovingAverageCrossoverConfig,
    ParamRange,
    OptimizerConfig,
    MonteCarloConfig,
    RiskLimitsConfig,
    RunConfig,
    validate_model,
    validate_run_config,
    load_config,
    load_defaults,
)
from .config_loader import deep_merge, load_run_config, load_yaml_config, to_snake_keys

__all__ = [
    "BacktestConfig",
    "EnhancementConfig",
    "MovingAverageCrossoverConfig",
    "ParamRange",
    "OptimizerConfig",
    "MonteCarloConfig",
    "RiskLimitsConfig",
    "RunConfig",
    "validate_model",
    "validate_run_config",
    "load_config",
    "load_defaults",
    "deep_merge",
    "load_run_config",
    "load_yaml_config",
    "to_snake_keys",
]
