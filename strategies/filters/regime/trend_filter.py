"""Trend moving-average filter."""

from typing import Dict

import pandas as pd

from strategies.filters.base import FilterBase, FilterContext, FilterResult
from strategies.indicators import moving_average


class TrendFilter(FilterBase):
    """Trades only with the prevailing trend.

    BUY passes when close is above the trend MA, SELL when below.

    Config:
        - enabled: bool
        - period: int (default 50)
        - ma_type: 'sma' or 'ema' (default 'sma')
    """

    def __init__(self, config=None):
        super().__init__(config)
        self.period = int(self.config.get('period', 50))
        self.ma_type = str(self.config.get('ma_type', 'sma'))

    def prepare(self, df: pd.DataFrame) -> Dict[str, pd.Series]:
        return {'trend_ma': moving_average(df['close'], self.period, self.ma_type)}

    def check(self, context: FilterContext) -> FilterResult:
        close = context.value('close')
        trend = context.value('trend_ma')
        metadata = {'filter': 'trend', 'close': close, 'trend_ma': trend}

        with_trend = close > trend if context.is_buy else close < trend
        if with_trend:
            return self._create_pass_result(metadata)
        return self._create_fail_result("Signal is against the trend MA", metadata)
