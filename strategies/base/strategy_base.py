"""Base strategy interface that all strategies must implement."""

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Mapping, Optional, Type

from pydantic import BaseModel

from config.schema import validate_model
from engine.models import CandleInput, Signal, SignalType, ensure_candles


class StrategyBase(ABC):
    """Abstract base class for all trading strategies.

    Subclasses declare a pydantic `config_model`; parameters are validated at
    construction so an invalid combination fails immediately with ConfigError.
    """

    name: str = "strategy"
    description: str = ""
    config_model: Type[BaseModel]

    def __init__(self, params: Optional[Mapping[str, Any]] = None, **kwargs: Any):
        """
        Initialize strategy with parameters.

        Args:
            params: Parameter mapping (snake_case or camelCase) or a config model instance
            **kwargs: Individual parameter overrides

        Raises:
            ConfigError: If the parameters are invalid
        """
        if isinstance(params, BaseModel) and not kwargs:
            self.config = self.validate_params(params)
        else:
            data: Dict[str, Any] = {}
            if isinstance(params, BaseModel):
                data.update(params.model_dump())
            elif params:
                data.update(params)
            data.update(kwargs)
            self.config = self.validate_params(data)
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    @classmethod
    def validate_params(cls, params: Any) -> BaseModel:
        """Validate parameters against `config_model`, raising ConfigError if invalid."""
        return validate_model(cls.config_model, params)

    @abstractmethod
    def generate(self, candles: CandleInput) -> List[Signal]:
        """
        Generate trading signals from a candle sequence.

        Args:
            candles: Candles in ascending time order, or an OHLCV DataFrame

        Returns:
            Signals ordered by candle index (empty on any computation fault)
        """

    @property
    def warmup_period(self) -> int:
        """Minimum number of candles before the strategy can signal."""
        return 0

    def get_params(self) -> Dict[str, Any]:
        return self.config.model_dump()

    def get_info(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "params": self.get_params(),
            "warmupPeriod": self.warmup_period,
        }

    def with_params(self, **overrides: Any) -> "StrategyBase":
        """New strategy instance with some parameters replaced."""
        params = self.get_params()
        params.update(overrides)
        return self.__class__(params)

    def latest_signal(self, candles: CandleInput) -> Dict[str, Any]:
        """
        Evaluate the most recent candle for a live decision.

        Returns:
            Dict with 'signal' (BUY, SELL or NEUTRAL), 'reason' and 'analysis'
        """
        candle_list = ensure_candles(candles)
        if len(candle_list) < max(self.warmup_period, 1):
            return {
                "signal": "NEUTRAL",
                "reason": f"Insufficient data: need {self.warmup_period} candles, got {len(candle_list)}",
                "analysis": {},
            }

        signals = self.generate(candle_list)
        last_index = len(candle_list) - 1
        analysis = self.analyze(candle_list)

        if signals and signals[-1].candle_index == last_index:
            signal = signals[-1]
            return {
                "signal": signal.type.value,
                "reason": signal.reason or f"{signal.type.value} signal",
                "analysis": analysis,
            }
        return {"signal": "NEUTRAL", "reason": "No signal on the latest candle", "analysis": analysis}

    def analyze(self, candles: CandleInput) -> Dict[str, Any]:
        """Indicator snapshot for the latest candle (empty by default)."""
        return {}

    @staticmethod
    def _signal(signal_type: SignalType, candle, index: int, reason: str, source: str) -> Signal:
        return Signal(
            type=signal_type,
            price=candle.close,
            time=candle.time,
            candle_index=index,
            reason=reason,
            source=source,
        )

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.get_params()})"
