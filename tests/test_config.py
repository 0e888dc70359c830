"""Tests for configuration schemas and the layered loader."""

import pytest
import yaml

from config.config_loader import deep_merge, load_run_config, to_snake_keys
from config.schema import (
    BacktestConfig,
    EnhancementConfig,
    MonteCarloConfig,
    MovingAverageCrossoverConfig,
    OptimizerConfig,
    ParamRange,
    RiskLimitsConfig,
    validate_model,
)
from engine.errors import ConfigError


def test_backtest_config_defaults():
    config = BacktestConfig()

    assert config.initial_balance == 10000.0
    assert config.fee_rate == 0.001
    assert config.slippage_rate == 0.001
    assert config.allow_short is False
    assert config.effective_sizing_mode == "balance_scaled"


def test_camel_case_and_snake_case_keys():
    camel = validate_model(BacktestConfig, {"initialBalance": 5000, "feeRate": 0.002})
    snake = validate_model(BacktestConfig, {"initial_balance": 5000, "fee_rate": 0.002})

    assert camel == snake
    assert camel.model_dump(by_alias=True)["initialBalance"] == 5000


@pytest.mark.parametrize("data", [
    {"initial_balance": 0},
    {"fee_rate": 1.5},
    {"stop_loss_percent": 100},
    {"sizing_mode": "martingale"},
    {"unknown_option": True},
])
def test_invalid_backtest_config(data):
    with pytest.raises(ConfigError):
        validate_model(BacktestConfig, data)


def test_balance_scaling_sorted_descending():
    config = BacktestConfig(balance_scaling=[(2.0, 0.9), (10.0, 0.5)])
    assert config.balance_scaling[0][0] == 10.0


def test_crossover_config_constraints():
    with pytest.raises(ConfigError):
        validate_model(MovingAverageCrossoverConfig, {"short_period": 21, "long_period": 9})
    with pytest.raises(ConfigError):
        validate_model(MovingAverageCrossoverConfig, {"rsi_overbought": 30, "rsi_oversold": 70})
    with pytest.raises(ConfigError):
        validate_model(MovingAverageCrossoverConfig, {"filter_strength": "extreme"})


def test_param_range():
    assert ParamRange(min=5, max=20).is_integer
    assert not ParamRange(min=0.5, max=2).is_integer
    assert not ParamRange(min=1, max=3, type="float").is_integer
    with pytest.raises(ConfigError):
        validate_model(ParamRange, {"min": 10, "max": 1})


def test_optimizer_config():
    assert OptimizerConfig(optimization_metric="profit_percent").optimization_metric == "profitPercent"
    with pytest.raises(ConfigError):
        validate_model(OptimizerConfig, {"population_size": 4, "elite_count": 5})
    with pytest.raises(ConfigError):
        validate_model(OptimizerConfig, {"optimization_metric": "sortino"})


def test_monte_carlo_config_bounds():
    with pytest.raises(ConfigError):
        validate_model(MonteCarloConfig, {"confidence_interval": 1.0})
    with pytest.raises(ConfigError):
        validate_model(MonteCarloConfig, {"simulations": 0})


def test_risk_limits_percent_mode():
    with pytest.raises(ConfigError):
        validate_model(RiskLimitsConfig, {"limit_mode": "percent"})
    with pytest.raises(ConfigError):
        validate_model(RiskLimitsConfig, {"limit_mode": "percent", "initial_balance": 1000, "max_daily_loss": 150})

    config = validate_model(RiskLimitsConfig, {"limitMode": "percent", "initialBalance": 1000, "maxDailyLoss": 2})
    assert config.max_daily_loss == 2


def test_enhancement_thresholds():
    with pytest.raises(ConfigError):
        validate_model(EnhancementConfig, {"weak_trend_adx": 30, "strong_trend_adx": 25})


def test_deep_merge():
    base = {"a": 1, "nested": {"x": 1, "y": 2}}
    merged = deep_merge(base, {"nested": {"y": 3}, "b": 2})

    assert merged == {"a": 1, "b": 2, "nested": {"x": 1, "y": 3}}
    assert base["nested"]["y"] == 2


def test_to_snake_keys():
    data = {"initialBalance": 1, "nested": {"shortPeriod": 2, "already_snake": 3}, "list": ["camelValue"]}

    assert to_snake_keys(data) == {
        "initial_balance": 1,
        "nested": {"short_period": 2, "already_snake": 3},
        "list": ["camelValue"],
    }


def test_load_run_config_defaults():
    config = load_run_config()

    assert config.strategy == "moving_average_crossover"
    assert config.strategy_params["short_period"] == 9
    assert config.backtest.initial_balance == 10000.0
    assert set(config.param_ranges) == {"short_period", "long_period"}
    assert config.optimizer.optimization_metric == "profitPercent"


def test_load_run_config_layers(tmp_path):
    path = tmp_path / "run.yml"
    path.write_text(yaml.safe_dump({
        "backtest": {"initialBalance": 5000, "stopLossPercent": 2.5},
        "strategyParams": {"longPeriod": 30},
        "paramRanges": {"short_period": {"min": 2, "max": 4}},
    }))

    config = load_run_config(path, {"optimizer": {"populationSize": 6}})

    assert config.backtest.initial_balance == 5000
    assert config.backtest.stop_loss_percent == 2.5
    assert config.backtest.fee_rate == 0.001
    assert config.strategy_params == {
        "short_period": 9,
        "long_period": 30,
        "ma_type": "sma",
        "filter_strength": "medium",
    }
    assert list(config.param_ranges) == ["short_period"]
    assert config.optimizer.population_size == 6
    assert config.optimizer.generations == 10


def test_load_run_config_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_run_config(tmp_path / "missing.yml")


def test_load_run_config_invalid_values():
    with pytest.raises(ConfigError):
        load_run_config(overrides={"backtest": {"fee_rate": -1}})
