"""Volume-versus-average filter.

Requires the signal bar's volume to reach a multiple of its rolling average,
in either direction.
"""

from typing import Dict

import pandas as pd

from strategies.filters.base import FilterBase, FilterContext, FilterResult
from strategies.indicators import sma


class VolumeFilter(FilterBase):
    """Volume confirmation filter.

    Config:
        - enabled: bool
        - period: int (rolling average length, default 20)
        - threshold: float (required volume / average ratio, default 1.0)
    """

    def __init__(self, config=None):
        super().__init__(config)
        self.period = int(self.config.get('period', 20))
        self.threshold = float(self.config.get('threshold', 1.0))

    def prepare(self, df: pd.DataFrame) -> Dict[str, pd.Series]:
        return {'volume_avg': sma(df['volume'], self.period)}

    def check(self, context: FilterContext) -> FilterResult:
        volume = context.value('volume')
        average = context.value('volume_avg')
        metadata = {'filter': 'volume', 'volume': volume, 'average': average}

        if volume >= average * self.threshold:
            return self._create_pass_result(metadata)
        return self._create_fail_result(
            f"Volume {volume:.2f} below {self.threshold}x average {average:.2f}", metadata
        )
