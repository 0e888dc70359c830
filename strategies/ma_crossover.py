"""Moving Average Crossover Strategy.

A BUY is emitted when the short moving average crosses above the long one,
a SELL when it crosses below. Each crossover can be gated by a weighted vote
of auxiliary filters (RSI, volume, trend MA, MACD, Bollinger bands, candle body).
"""

from typing import Any, Dict, List

import numpy as np

from config.schema import MovingAverageCrossoverConfig
from engine.errors import ComputationError, DataError
from engine.models import CandleInput, Signal, SignalType, candles_to_frame, ensure_candles
from strategies.base.strategy_base import StrategyBase
from strategies.filters.base import FilterContext
from strategies.filters.manager import FilterManager
from strategies.indicators import first_valid_position, moving_average

# Candles required beyond the long period before signals are generated
WARMUP_MARGIN = 5


class MovingAverageCrossover(StrategyBase):
    name = "moving_average_crossover"
    description = "Short/long moving average crossover with optional filter vote"
    config_model = MovingAverageCrossoverConfig

    def __init__(self, params=None, **kwargs):
        super().__init__(params, **kwargs)
        self.filter_manager = FilterManager.from_strategy_config(self.config)

    @property
    def warmup_period(self) -> int:
        return self.config.long_period + WARMUP_MARGIN

    def generate(self, candles: CandleInput) -> List[Signal]:
        """
        Scan the candles for filtered moving average crossovers.

        Args:
            candles: Candles in ascending time order, or an OHLCV DataFrame

        Returns:
            Signals ordered by candle index. Insufficient data or any
            computation fault yields an empty list.
        """
        try:
            candle_list = ensure_candles(candles)
        except DataError as e:
            self.logger.error(f"Invalid candle data: {e}")
            return []

        if len(candle_list) < self.warmup_period:
            self.logger.warning(
                f"Insufficient data: need {self.warmup_period} candles, got {len(candle_list)}"
            )
            return []

        try:
            return self._scan(candle_list)
        except Exception as e:
            self.logger.error(f"Signal generation failed: {e}")
            return []

    def _scan(self, candle_list) -> List[Signal]:
        cfg = self.config
        df = candles_to_frame(candle_list)

        short_ma = moving_average(df['close'], cfg.short_period, cfg.ma_type)
        long_ma = moving_average(df['close'], cfg.long_period, cfg.ma_type)

        series = {col: df[col] for col in ('open', 'high', 'low', 'close', 'volume')}
        series['short_ma'] = short_ma
        series['long_ma'] = long_ma
        series.update(self.filter_manager.prepare(df))

        # First index at which every series is defined
        start = max(first_valid_position(s) for s in series.values())
        if len(candle_list) < start + 2:
            self.logger.warning(
                f"Insufficient data: indicators defined from index {start}, got {len(candle_list)} candles"
            )
            return []
        arrays = {name: s.to_numpy(dtype=float) for name, s in series.items()}

        above = (short_ma > long_ma).astype(int)
        cross = above.diff().to_numpy()

        signals: List[Signal] = []
        for i in range(start + 1, len(candle_list)):
            if cross[i] == 0 or np.isnan(cross[i]):
                continue

            signal_type = SignalType.BUY if cross[i] > 0 else SignalType.SELL
            candle = candle_list[i]
            context = FilterContext(
                index=i,
                timestamp=candle.time,
                signal_direction=signal_type,
                series=arrays,
            )
            try:
                vote = self.filter_manager.apply_filters(context)
            except ComputationError as e:
                self.logger.debug(f"Skipping crossover at index {i}: {e}")
                continue

            if not vote.passed:
                continue

            direction = "above" if signal_type is SignalType.BUY else "below"
            reason = (
                f"Short MA ({arrays['short_ma'][i]:.2f}) crossed {direction} "
                f"long MA ({arrays['long_ma'][i]:.2f})"
            )
            if vote.total:
                reason = f"{reason}; {vote.summary}"
            signals.append(self._signal(signal_type, candle, i, reason, self.name))

        self.logger.debug(f"Generated {len(signals)} signals from {len(candle_list)} candles")
        return signals

    def analyze(self, candles: CandleInput) -> Dict[str, Any]:
        candle_list = ensure_candles(candles)
        if not candle_list:
            return {}
        df = candles_to_frame(candle_list)
        short_ma = moving_average(df['close'], self.config.short_period, self.config.ma_type).iloc[-1]
        long_ma = moving_average(df['close'], self.config.long_period, self.config.ma_type).iloc[-1]
        if np.isnan(short_ma) or np.isnan(long_ma):
            return {"lastPrice": candle_list[-1].close}
        return {
            "shortMA": float(short_ma),
            "longMA": float(long_ma),
            "lastPrice": candle_list[-1].close,
            "trend": "UP" if short_ma > long_ma else "DOWN",
        }
