"""Configuration validation schemas using Pydantic.

Every model accepts snake_case field names as well as the camelCase keys
used by external callers (``initialBalance``, ``shortPeriod`` ...).
"""

import math
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional, Tuple, Type, TypeVar

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator
from pydantic.alias_generators import to_camel

from engine.errors import ConfigError

ModelT = TypeVar("ModelT", bound=BaseModel)


class _CamelModel(BaseModel):
    """Base model accepting both snake_case and camelCase keys."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")


class BacktestConfig(_CamelModel):
    """Backtest engine and position sizing configuration."""
    initial_balance: float = Field(default=10000.0, gt=0)
    fee_rate: float = Field(default=0.001, ge=0.0, lt=1.0)
    slippage_rate: float = Field(default=0.001, ge=0.0, lt=1.0)
    position_size_percent: float = Field(default=1.0, gt=0.0, le=100.0)
    stop_loss_percent: Optional[float] = Field(default=None, ge=0.0, lt=100.0)
    take_profit_percent: Optional[float] = Field(default=None, ge=0.0)

    # Sizing policy: fixed_percent | balance_scaled | atr_risk | kelly
    sizing_mode: Literal["fixed_percent", "balance_scaled", "atr_risk", "kelly"] = "balance_scaled"
    use_atr_position_sizing: bool = False
    atr_period: int = Field(default=14, gt=0)
    atr_multiplier: float = Field(default=2.0, gt=0.0)
    max_risk_per_trade_percent: float = Field(default=1.0, gt=0.0, le=100.0)
    max_leverage: float = Field(default=1.0, gt=0.0)
    kelly_lookback: int = Field(default=30, gt=0, le=30)
    kelly_min_trades: int = Field(default=10, ge=0)
    # (balance / initial balance ratio, size multiplier), checked highest ratio first
    balance_scaling: List[Tuple[float, float]] = Field(
        default_factory=lambda: [(10.0, 0.5), (5.0, 0.7), (2.0, 0.9)]
    )

    allow_short: bool = False
    periods_per_year: float = Field(default=365.0, gt=0.0)

    @field_validator("balance_scaling")
    @classmethod
    def validate_balance_scaling(cls, v: List[Tuple[float, float]]) -> List[Tuple[float, float]]:
        for ratio, factor in v:
            if ratio <= 0 or factor < 0:
                raise ValueError("balance_scaling entries must have ratio > 0 and factor >= 0")
        return sorted(v, key=lambda item: item[0], reverse=True)

    @property
    def effective_sizing_mode(self) -> str:
        return "atr_risk" if self.use_atr_position_sizing else self.sizing_mode


class EnhancementConfig(_CamelModel):
    """Optional stages wrapped around the base backtest run."""
    use_market_regime: bool = False
    use_volatility_adjustment: bool = False
    detailed_analytics: bool = False
    run_monte_carlo: bool = False
    regime_period: int = Field(default=14, gt=1)
    strong_trend_adx: float = Field(default=25.0, gt=0.0)
    weak_trend_adx: float = Field(default=20.0, gt=0.0)
    volatility_lookback: int = Field(default=20, gt=1)
    high_volatility_cv: float = Field(default=0.05, gt=0.0)
    low_volatility_cv: float = Field(default=0.02, gt=0.0)
    monte_carlo_simulations: int = Field(default=1000, gt=0)

    @model_validator(mode="after")
    def validate_thresholds(self):
        if self.weak_trend_adx >= self.strong_trend_adx:
            raise ValueError("weak_trend_adx must be lower than strong_trend_adx")
        if self.low_volatility_cv >= self.high_volatility_cv:
            raise ValueError("low_volatility_cv must be lower than high_volatility_cv")
        return self


class MovingAverageCrossoverConfig(_CamelModel):
    """Moving average crossover strategy parameters."""
    short_period: int = Field(default=9, gt=0)
    long_period: int = Field(default=21, gt=0)
    ma_type: Literal["sma", "ema"] = "sma"

    use_rsi_filter: bool = False
    rsi_period: int = Field(default=14, gt=0)
    rsi_overbought: float = Field(default=70.0, gt=0.0, lt=100.0)
    rsi_oversold: float = Field(default=30.0, gt=0.0, lt=100.0)

    use_volume_filter: bool = False
    volume_period: int = Field(default=20, gt=0)
    volume_threshold: float = Field(default=1.0, gt=0.0)

    use_trend_filter: bool = False
    trend_period: int = Field(default=50, gt=0)

    use_macd_filter: bool = False
    macd_fast: int = Field(default=12, gt=0)
    macd_slow: int = Field(default=26, gt=0)
    macd_signal: int = Field(default=9, gt=0)

    use_bollinger_filter: bool = False
    bollinger_period: int = Field(default=20, gt=1)
    bollinger_std: float = Field(default=2.0, gt=0.0)

    use_candle_filter: bool = False
    min_body_ratio: float = Field(default=0.5, gt=0.0, le=1.0)

    filter_strength: Literal["weak", "medium", "strong"] = "medium"

    @model_validator(mode="after")
    def validate_periods(self):
        if self.short_period >= self.long_period:
            raise ValueError(
                f"short_period ({self.short_period}) must be less than long_period ({self.long_period})"
            )
        if self.rsi_overbought <= self.rsi_oversold:
            raise ValueError(
                f"rsi_overbought ({self.rsi_overbought}) must be greater than rsi_oversold ({self.rsi_oversold})"
            )
        if self.macd_fast >= self.macd_slow:
            raise ValueError(f"macd_fast ({self.macd_fast}) must be less than macd_slow ({self.macd_slow})")
        return self


class ParamRange(_CamelModel):
    """Search range for one optimizable parameter."""
    min: float
    max: float
    type: Optional[Literal["int", "float"]] = None

    @model_validator(mode="after")
    def validate_bounds(self):
        if not (math.isfinite(self.min) and math.isfinite(self.max)):
            raise ValueError("Parameter range bounds must be finite")
        if self.min > self.max:
            raise ValueError(f"Range min ({self.min}) must not exceed max ({self.max})")
        return self

    @property
    def is_integer(self) -> bool:
        if self.type is not None:
            return self.type == "int"
        return float(self.min).is_integer() and float(self.max).is_integer()


class OptimizerConfig(_CamelModel):
    """Genetic optimizer settings."""
    population_size: int = Field(default=20, ge=2)
    generations: int = Field(default=10, ge=1)
    mutation_rate: float = Field(default=0.1, ge=0.0, le=1.0)
    optimization_metric: Literal["profit", "profitPercent", "winRate", "profitFactor", "combined"] = "profitPercent"
    elite_count: int = Field(default=2, ge=0)
    seed: Optional[int] = 42
    max_workers: Optional[int] = Field(default=None, ge=1)

    @field_validator("optimization_metric", mode="before")
    @classmethod
    def normalize_metric(cls, v: Any) -> Any:
        aliases = {
            "profit_percent": "profitPercent",
            "win_rate": "winRate",
            "profit_factor": "profitFactor",
        }
        return aliases.get(v, v)

    @model_validator(mode="after")
    def validate_elites(self):
        if self.elite_count > self.population_size:
            raise ValueError("elite_count cannot exceed population_size")
        return self


class MonteCarloConfig(_CamelModel):
    """Monte Carlo resampling settings."""
    simulations: int = Field(default=1000, ge=1)
    confidence_interval: float = Field(default=0.95, gt=0.0, lt=1.0)
    seed: Optional[int] = 42
    max_workers: Optional[int] = Field(default=None, ge=1)
    chunk_size: int = Field(default=250, ge=1)
    sample_curves: int = Field(default=10, ge=0)


class RiskLimitsConfig(_CamelModel):
    """Loss limits for the live trading gate."""
    limit_mode: Literal["absolute", "percent"] = "absolute"
    max_daily_loss: float = Field(default=100.0, gt=0.0)
    max_weekly_loss: float = Field(default=500.0, gt=0.0)
    max_monthly_loss: float = Field(default=1000.0, gt=0.0)
    initial_balance: Optional[float] = Field(default=None, gt=0.0)

    @model_validator(mode="after")
    def validate_mode(self):
        if self.limit_mode == "percent":
            if self.initial_balance is None:
                raise ValueError("initial_balance is required when limit_mode is 'percent'")
            for name in ("max_daily_loss", "max_weekly_loss", "max_monthly_loss"):
                if getattr(self, name) > 100.0:
                    raise ValueError(f"{name} must be <= 100 when limit_mode is 'percent'")
        return self


class RunConfig(_CamelModel):
    """Full run configuration as loaded from YAML."""
    strategy: str = "moving_average_crossover"
    strategy_params: Dict[str, Any] = Field(default_factory=dict)
    backtest: BacktestConfig = Field(default_factory=BacktestConfig)
    enhancements: EnhancementConfig = Field(default_factory=EnhancementConfig)
    optimizer: OptimizerConfig = Field(default_factory=OptimizerConfig)
    param_ranges: Dict[str, ParamRange] = Field(default_factory=dict)
    monte_carlo: MonteCarloConfig = Field(default_factory=MonteCarloConfig)
    risk: RiskLimitsConfig = Field(default_factory=RiskLimitsConfig)


def validate_model(model_cls: Type[ModelT], data: Any) -> ModelT:
    """Validate data into a model, converting validation failures to ConfigError.

    Args:
        model_cls: Pydantic model class
        data: Model instance, mapping, or None for defaults

    Returns:
        Validated model instance

    Raises:
        ConfigError: If validation fails
    """
    if isinstance(data, model_cls):
        return data
    try:
        return model_cls.model_validate(data or {})
    except ValidationError as e:
        raise ConfigError(f"Invalid {model_cls.__name__}: {e}") from e


def load_config(config_path: Path) -> Dict[str, Any]:
    """Load YAML configuration file."""
    with open(config_path, 'r') as f:
        return yaml.safe_load(f) or {}


def validate_run_config(config_dict: Dict[str, Any]) -> RunConfig:
    """Validate and return RunConfig object."""
    return validate_model(RunConfig, config_dict)


def load_defaults() -> Dict[str, Any]:
    """Load default configuration values."""
    defaults_path = Path(__file__).parent / "defaults.yml"
    return load_config(defaults_path)
