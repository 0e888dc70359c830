"""Trading strategies and their indicator/filter building blocks."""

from strategies.base.strategy_base import StrategyBase
from strategies.ma_crossover import MovingAverageCrossover
from strategies.registry import (
    StrategyId,
    available_strategies,
    create_strategy,
    get_strategy_class,
    register_strategy,
)

__all__ = [
    'StrategyBase',
    'MovingAverageCrossover',
    'StrategyId',
    'available_strategies',
    'create_strategy',
    'get_strategy_class',
    'register_strategy',
]
