"""RSI extremity filter.

Rejects BUY signals when the market is already overbought and SELL signals
when it is already oversold.
"""

from typing import Dict

import pandas as pd

from strategies.filters.base import FilterBase, FilterContext, FilterResult
from strategies.indicators import rsi


class RSIFilter(FilterBase):
    """RSI filter.

    Config:
        - enabled: bool
        - period: int (default 14)
        - overbought: float (default 70)
        - oversold: float (default 30)
    """

    def __init__(self, config=None):
        super().__init__(config)
        self.period = int(self.config.get('period', 14))
        self.overbought = float(self.config.get('overbought', 70.0))
        self.oversold = float(self.config.get('oversold', 30.0))

    def prepare(self, df: pd.DataFrame) -> Dict[str, pd.Series]:
        return {'rsi': rsi(df['close'], self.period)}

    def check(self, context: FilterContext) -> FilterResult:
        value = context.value('rsi')
        metadata = {'filter': 'rsi', 'value': value}

        if context.is_buy:
            if value < self.overbought:
                return self._create_pass_result(metadata)
            return self._create_fail_result(f"RSI {value:.1f} >= overbought {self.overbought}", metadata)

        if value > self.oversold:
            return self._create_pass_result(metadata)
        return self._create_fail_result(f"RSI {value:.1f} <= oversold {self.oversold}", metadata)
