"""Enhanced backtest runs built from composable stages.

A BacktestPipeline wraps a plain BacktestEngine run with optional stages:

- MarketRegimeStage:         ADX/ATR market regime classification
- VolatilityAdjustmentStage: adapts stop, target, size and filter strength
                             to the recent coefficient of variation of closes
- DetailedAnalyticsStage:    monthly, drawdown, trade and risk-adjusted analytics
- MonteCarloStage:           trade-order Monte Carlo over the resulting trades

Stages run `prepare` before the backtest (they may replace the config or the
strategy in the context, never mutate them) and `finalize` after it (they add
sections to `result.analytics`).
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Union
import logging

import numpy as np

from config.schema import BacktestConfig, EnhancementConfig, MonteCarloConfig, validate_model
from engine.backtest_engine import BacktestEngine, BacktestResult
from engine.models import Candle, CandleInput, candles_to_frame, ensure_candles
from engine.sizing import Sizer
from metrics.metrics import (
    analyze_drawdown_periods,
    analyze_trade_statistics,
    calculate_monthly_performance,
    calculate_volatility_adjusted_returns,
)
from strategies import indicators
from validation.monte_carlo.resampler import MonteCarloEngine

logger = logging.getLogger(__name__)

STRONG_TREND = "STRONG_TREND"
WEAK_TREND = "WEAK_TREND"
RANGE = "RANGE"


@dataclass
class PipelineContext:
    """State handed from stage to stage.

    Attributes:
        candles: Candles of the run
        strategy: Strategy to run (stages may swap in a re-parameterized copy)
        config: Engine configuration (stages may swap in an adjusted copy)
        analytics: Sections collected for result.analytics
    """
    candles: List[Candle]
    strategy: Any
    config: BacktestConfig
    analytics: Dict[str, Any] = field(default_factory=dict)


class EnhancementStage:
    """Base class for pipeline stages; both hooks are optional."""

    name = "stage"

    def prepare(self, context: PipelineContext) -> None:
        pass

    def finalize(self, context: PipelineContext, result: BacktestResult) -> None:
        pass


# ============================================================================
# Market regime
# ============================================================================

def classify_regime(adx_value: float, strong_threshold: float = 25.0, weak_threshold: float = 20.0) -> str:
    if adx_value > strong_threshold:
        return STRONG_TREND
    if adx_value > weak_threshold:
        return WEAK_TREND
    return RANGE


class MarketRegimeStage(EnhancementStage):
    """Classifies every candle by trend strength (ADX) and volatility (ATR)."""

    name = "marketRegime"

    def __init__(
        self,
        period: int = 14,
        strong_trend_adx: float = 25.0,
        weak_trend_adx: float = 20.0,
        atr_window: int = 10
    ):
        self.period = period
        self.strong_trend_adx = strong_trend_adx
        self.weak_trend_adx = weak_trend_adx
        self.atr_window = atr_window

    def prepare(self, context: PipelineContext) -> None:
        context.analytics[self.name] = self.detect(context.candles)

    def detect(self, candles: Sequence[Candle]) -> Dict[str, Any]:
        """
        Classify the market regime of each candle.

        Returns:
            {currentRegime, currentAdx, atr, volatilityPercent,
             normalizedVolatility, regimeCounts, regimeChanges}
        """
        counts = {STRONG_TREND: 0, WEAK_TREND: 0, RANGE: 0}
        if not candles:
            return {"currentRegime": None, "regimeCounts": counts, "regimeChanges": 0}

        frame = candles_to_frame(candles)
        adx_values = indicators.adx(frame, self.period)
        atr_values = indicators.atr(frame, self.period)
        # ATR relative to the mean of the preceding `atr_window` values
        normalized = atr_values / atr_values.shift(1).rolling(self.atr_window, min_periods=self.atr_window).mean()

        regimes = [
            classify_regime(value, self.strong_trend_adx, self.weak_trend_adx)
            for value in adx_values.dropna()
        ]
        if not regimes:
            logger.warning(f"Not enough candles for ADX({self.period}), regime unknown")
            return {"currentRegime": None, "regimeCounts": counts, "regimeChanges": 0}

        for regime in regimes:
            counts[regime] += 1
        changes = sum(1 for prev, cur in zip(regimes, regimes[1:]) if prev != cur)

        last_atr = float(atr_values.iloc[-1]) if np.isfinite(atr_values.iloc[-1]) else None
        last_close = candles[-1].close
        last_normalized = normalized.iloc[-1]

        return {
            "currentRegime": regimes[-1],
            "currentAdx": float(adx_values.dropna().iloc[-1]),
            "atr": last_atr,
            "volatilityPercent": last_atr / last_close * 100 if last_atr is not None and last_close else None,
            "normalizedVolatility": float(last_normalized) if np.isfinite(last_normalized) else None,
            "regimeCounts": counts,
            "regimeChanges": changes,
        }


# ============================================================================
# Volatility adjustment
# ============================================================================

@dataclass(frozen=True)
class VolatilityAdjustment:
    level: str
    stop_loss_multiplier: float
    take_profit_multiplier: float
    position_size_multiplier: float
    filter_strength: Optional[str]


HIGH_VOLATILITY = VolatilityAdjustment("HIGH", 1.5, 1.2, 0.7, "strong")
LOW_VOLATILITY = VolatilityAdjustment("LOW", 0.8, 0.9, 1.2, "weak")
NORMAL_VOLATILITY = VolatilityAdjustment("NORMAL", 1.0, 1.0, 1.0, None)


class VolatilityAdjustmentStage(EnhancementStage):
    """Widens or tightens risk parameters with recent price variability.

    High volatility (CV > high_threshold) widens the stop and target, shrinks
    the position and demands a strong filter vote; low volatility does the
    opposite.
    """

    name = "volatilityAdjustment"

    def __init__(self, lookback: int = 20, high_threshold: float = 0.05, low_threshold: float = 0.02):
        self.lookback = lookback
        self.high_threshold = high_threshold
        self.low_threshold = low_threshold

    def select(self, cv: float) -> VolatilityAdjustment:
        if cv > self.high_threshold:
            return HIGH_VOLATILITY
        if cv < self.low_threshold:
            return LOW_VOLATILITY
        return NORMAL_VOLATILITY

    def adjust_config(self, config: BacktestConfig, adjustment: VolatilityAdjustment) -> BacktestConfig:
        """Copy of `config` with the adjustment multipliers applied."""
        data = config.model_dump()
        if config.stop_loss_percent:
            data["stop_loss_percent"] = min(config.stop_loss_percent * adjustment.stop_loss_multiplier, 99.0)
        if config.take_profit_percent:
            data["take_profit_percent"] = config.take_profit_percent * adjustment.take_profit_multiplier
        data["position_size_percent"] = min(
            config.position_size_percent * adjustment.position_size_multiplier, 100.0
        )
        return validate_model(BacktestConfig, data)

    def prepare(self, context: PipelineContext) -> None:
        closes = candles_to_frame(context.candles)["close"] if context.candles else None
        cv = indicators.coefficient_of_variation(closes, self.lookback) if closes is not None else 0.0
        adjustment = self.select(cv)

        if adjustment is not NORMAL_VOLATILITY:
            context.config = self.adjust_config(context.config, adjustment)
            strategy = context.strategy
            if adjustment.filter_strength and hasattr(strategy, "with_params") \
                    and "filter_strength" in strategy.get_params():
                context.strategy = strategy.with_params(filter_strength=adjustment.filter_strength)

        logger.info(f"Volatility level {adjustment.level} (CV={cv:.4f})")
        context.analytics[self.name] = {
            "coefficientOfVariation": cv,
            "level": adjustment.level,
            "stopLossMultiplier": adjustment.stop_loss_multiplier,
            "takeProfitMultiplier": adjustment.take_profit_multiplier,
            "positionSizeMultiplier": adjustment.position_size_multiplier,
            "filterStrength": adjustment.filter_strength,
            "stopLossPercent": context.config.stop_loss_percent,
            "takeProfitPercent": context.config.take_profit_percent,
            "positionSizePercent": context.config.position_size_percent,
        }


# ============================================================================
# Analytics and Monte Carlo
# ============================================================================

class DetailedAnalyticsStage(EnhancementStage):
    name = "detailedMetrics"

    def finalize(self, context: PipelineContext, result: BacktestResult) -> None:
        max_dd = result.summary.max_drawdown_percent if result.summary else 0.0
        context.analytics[self.name] = {
            "monthlyPerformance": calculate_monthly_performance(result.equity_curve, result.trades),
            "drawdownPeriods": analyze_drawdown_periods(result.equity_curve),
            "tradeStatistics": analyze_trade_statistics(result.trades),
            "volatilityAdjustedReturns": calculate_volatility_adjusted_returns(
                result.equity_curve,
                periods_per_year=context.config.periods_per_year,
                max_drawdown_pct=max_dd,
            ),
        }


class MonteCarloStage(EnhancementStage):
    """Runs a Monte Carlo trade-order simulation over the backtest trades."""

    name = "monteCarlo"

    def __init__(self, config: Union[MonteCarloConfig, Dict[str, Any], None] = None):
        self.config = validate_model(MonteCarloConfig, config)

    def finalize(self, context: PipelineContext, result: BacktestResult) -> None:
        mc = MonteCarloEngine.from_config(self.config).run(
            result.trades,
            initial_balance=context.config.initial_balance,
            simulations=self.config.simulations,
            confidence_interval=self.config.confidence_interval,
        )
        context.analytics[self.name] = mc.to_dict()


# ============================================================================
# Pipeline
# ============================================================================

class BacktestPipeline:
    """BacktestEngine run wrapped by enhancement stages."""

    def __init__(
        self,
        engine_config: Union[BacktestConfig, Dict[str, Any], None] = None,
        stages: Optional[Sequence[EnhancementStage]] = None,
        sizer: Optional[Sizer] = None
    ):
        self.config = validate_model(BacktestConfig, engine_config)
        self.stages = list(stages or [])
        self.sizer = sizer
        self.logger = logging.getLogger(__name__)

    def run(self, candles: CandleInput, strategy: Any) -> BacktestResult:
        """
        Run the stages around a backtest.

        Returns:
            BacktestResult with analytics; any stage error is reported as a failed result
        """
        strategy_name = getattr(strategy, "name", type(strategy).__name__)
        try:
            context = PipelineContext(candles=ensure_candles(candles), strategy=strategy, config=self.config)
            for stage in self.stages:
                stage.prepare(context)

            # An adjusted config needs a sizer built from it
            sizer = self.sizer if context.config is self.config else None
            result = BacktestEngine(context.config, sizer=sizer).run(context.candles, context.strategy)
            if not result.success:
                return result

            for stage in self.stages:
                stage.finalize(context, result)
        except Exception as e:
            self.logger.exception(f"Enhanced backtest failed for strategy {strategy_name}")
            return BacktestResult.failure(f"Enhanced backtest error: {e}", strategy_name)

        result.analytics = dict(context.analytics)
        return result


def build_pipeline(
    enhancements: Union[EnhancementConfig, Dict[str, Any], None] = None,
    backtest_config: Union[BacktestConfig, Dict[str, Any], None] = None,
    monte_carlo: Union[MonteCarloConfig, Dict[str, Any], None] = None
) -> BacktestPipeline:
    """
    Build a pipeline with the stages enabled in `enhancements`.

    Raises:
        ConfigError: If any configuration is invalid
    """
    cfg = validate_model(EnhancementConfig, enhancements)
    stages: List[EnhancementStage] = []
    if cfg.use_market_regime:
        stages.append(MarketRegimeStage(cfg.regime_period, cfg.strong_trend_adx, cfg.weak_trend_adx))
    if cfg.use_volatility_adjustment:
        stages.append(VolatilityAdjustmentStage(cfg.volatility_lookback, cfg.high_volatility_cv, cfg.low_volatility_cv))
    if cfg.detailed_analytics:
        stages.append(DetailedAnalyticsStage())
    if cfg.run_monte_carlo:
        mc_cfg = validate_model(MonteCarloConfig, monte_carlo)
        stages.append(MonteCarloStage(mc_cfg.model_copy(update={"simulations": cfg.monte_carlo_simulations})))
    return BacktestPipeline(backtest_config, stages)
