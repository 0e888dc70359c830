"""Tests for the strategy registry."""

import pytest

from engine.errors import ConfigError
from strategies import registry
from strategies.base import StrategyBase
from strategies.ma_crossover import MovingAverageCrossover
from strategies.registry import (
    StrategyId,
    available_strategies,
    create_strategy,
    get_strategy_class,
    register_strategy,
)


def test_available_strategies():
    assert "moving_average_crossover" in available_strategies()


def test_lookup_by_id_enum_and_alias():
    assert get_strategy_class("moving_average_crossover") is MovingAverageCrossover
    assert get_strategy_class(StrategyId.MOVING_AVERAGE_CROSSOVER) is MovingAverageCrossover
    assert get_strategy_class("MovingAverageCrossover") is MovingAverageCrossover


def test_unknown_strategy():
    with pytest.raises(ConfigError, match="Unknown strategy"):
        get_strategy_class("mean_reversion")


def test_create_strategy_drops_unknown_keys():
    strategy = create_strategy(
        "moving_average_crossover",
        {"short_period": 3, "longPeriod": 8, "symbol": "BTCUSDT"},
    )

    assert isinstance(strategy, MovingAverageCrossover)
    assert strategy.config.short_period == 3
    assert strategy.config.long_period == 8


def test_create_strategy_invalid_params():
    with pytest.raises(ConfigError):
        create_strategy("moving_average_crossover", {"short_period": 30, "long_period": 8})


def test_register_strategy(monkeypatch):
    monkeypatch.setattr(registry, "_REGISTRY", dict(registry._REGISTRY))
    monkeypatch.setattr(registry, "_ALIASES", dict(registry._ALIASES))

    @register_strategy("always_flat", "AlwaysFlat")
    class AlwaysFlat(StrategyBase):
        name = "always_flat"
        config_model = MovingAverageCrossover.config_model

        def generate(self, candles):
            return []

    assert "always_flat" in available_strategies()
    assert get_strategy_class("AlwaysFlat") is AlwaysFlat
    assert create_strategy("always_flat").generate([]) == []
