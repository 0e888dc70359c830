"""Bollinger band position filter.

Rejects BUY signals that close above the upper band and SELL signals that
close below the lower band (entries after the move is already stretched).
"""

from typing import Dict

import pandas as pd

from strategies.filters.base import FilterBase, FilterContext, FilterResult
from strategies.indicators import bollinger_bands


class BollingerBandFilter(FilterBase):
    """Band position filter.

    Config:
        - enabled: bool
        - period: int (default 20)
        - num_std: float (default 2.0)
    """

    def __init__(self, config=None):
        super().__init__(config)
        self.period = int(self.config.get('period', 20))
        self.num_std = float(self.config.get('num_std', 2.0))

    def prepare(self, df: pd.DataFrame) -> Dict[str, pd.Series]:
        upper, _, lower = bollinger_bands(df['close'], self.period, self.num_std)
        return {'bb_upper': upper, 'bb_lower': lower}

    def check(self, context: FilterContext) -> FilterResult:
        close = context.value('close')
        if context.is_buy:
            upper = context.value('bb_upper')
            if close < upper:
                return self._create_pass_result({'filter': 'bollinger', 'upper': upper})
            return self._create_fail_result("Close above upper band", {'filter': 'bollinger', 'upper': upper})

        lower = context.value('bb_lower')
        if close > lower:
            return self._create_pass_result({'filter': 'bollinger', 'lower': lower})
        return self._create_fail_result("Close below lower band", {'filter': 'bollinger', 'lower': lower})
