"""Strategy registry: strategy identifier -> strategy class."""

from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional, Type, Union

from engine.errors import ConfigError
from strategies.base.strategy_base import StrategyBase
from strategies.ma_crossover import MovingAverageCrossover


class StrategyId(str, Enum):
    MOVING_AVERAGE_CROSSOVER = "moving_average_crossover"


_REGISTRY: Dict[str, Type[StrategyBase]] = {}

# Legacy display names accepted by create_strategy
_ALIASES: Dict[str, str] = {
    "MovingAverageCrossover": StrategyId.MOVING_AVERAGE_CROSSOVER.value,
}


def register_strategy(
    strategy_id: Union[StrategyId, str],
    *aliases: str
) -> Callable[[Type[StrategyBase]], Type[StrategyBase]]:
    """Class decorator registering a strategy under an identifier."""
    key = strategy_id.value if isinstance(strategy_id, StrategyId) else str(strategy_id)

    def decorator(cls: Type[StrategyBase]) -> Type[StrategyBase]:
        _REGISTRY[key] = cls
        for alias in aliases:
            _ALIASES[alias] = key
        return cls

    return decorator


def _resolve(name: Union[StrategyId, str]) -> str:
    key = name.value if isinstance(name, StrategyId) else str(name)
    return _ALIASES.get(key, key)


def get_strategy_class(name: Union[StrategyId, str]) -> Type[StrategyBase]:
    key = _resolve(name)
    if key not in _REGISTRY:
        raise ConfigError(f"Unknown strategy: {name}. Available: {', '.join(available_strategies())}")
    return _REGISTRY[key]


def _filter_params(cls: Type[StrategyBase], params: Mapping[str, Any]) -> Dict[str, Any]:
    """Keep only keys the strategy's config model knows (by name or alias)."""
    allowed = set()
    for field_name, field_info in cls.config_model.model_fields.items():
        allowed.add(field_name)
        if field_info.alias:
            allowed.add(field_info.alias)
    return {k: v for k, v in params.items() if k in allowed}


def create_strategy(
    name: Union[StrategyId, str],
    params: Optional[Mapping[str, Any]] = None
) -> StrategyBase:
    """
    Build a strategy instance from its identifier and parameters.

    Args:
        name: Registry identifier or alias
        params: Strategy parameters; unknown keys are dropped

    Returns:
        Strategy instance

    Raises:
        ConfigError: If the strategy is unknown or the parameters are invalid
    """
    cls = get_strategy_class(name)
    return cls(_filter_params(cls, params or {}))


def available_strategies() -> List[str]:
    return sorted(_REGISTRY)


register_strategy(StrategyId.MOVING_AVERAGE_CROSSOVER)(MovingAverageCrossover)
