"""MACD confirmation filter."""

from typing import Dict

import pandas as pd

from strategies.filters.base import FilterBase, FilterContext, FilterResult
from strategies.indicators import macd


class MACDFilter(FilterBase):
    """Passes BUY when the MACD line is above its signal line, SELL when below.

    Config:
        - enabled: bool
        - fast: int (default 12)
        - slow: int (default 26)
        - signal: int (default 9)
    """

    def __init__(self, config=None):
        super().__init__(config)
        self.fast = int(self.config.get('fast', 12))
        self.slow = int(self.config.get('slow', 26))
        self.signal = int(self.config.get('signal', 9))

    def prepare(self, df: pd.DataFrame) -> Dict[str, pd.Series]:
        line, signal_line, _ = macd(df['close'], self.fast, self.slow, self.signal)
        return {'macd': line, 'macd_signal': signal_line}

    def check(self, context: FilterContext) -> FilterResult:
        line = context.value('macd')
        signal_line = context.value('macd_signal')
        metadata = {'filter': 'macd', 'macd': line, 'signal': signal_line}

        confirmed = line > signal_line if context.is_buy else line < signal_line
        if confirmed:
            return self._create_pass_result(metadata)
        return self._create_fail_result("MACD does not confirm signal direction", metadata)
