"""Candle body strength filter."""

from strategies.filters.base import FilterBase, FilterContext, FilterResult


class CandleBodyFilter(FilterBase):
    """Requires a strong candle in the signal direction.

    The body (|close - open|) must be at least `min_body_ratio` of the bar's
    range, and the candle must close in the signal direction.

    Config:
        - enabled: bool
        - min_body_ratio: float in (0, 1] (default 0.5)
    """

    def __init__(self, config=None):
        super().__init__(config)
        self.min_body_ratio = float(self.config.get('min_body_ratio', 0.5))

    def check(self, context: FilterContext) -> FilterResult:
        open_ = context.value('open')
        close = context.value('close')
        bar_range = context.value('high') - context.value('low')
        if bar_range <= 0:
            return self._create_fail_result("Bar has no range", {'filter': 'candle_body'})

        ratio = abs(close - open_) / bar_range
        metadata = {'filter': 'candle_body', 'body_ratio': ratio}
        in_direction = close > open_ if context.is_buy else close < open_

        if in_direction and ratio >= self.min_body_ratio:
            return self._create_pass_result(metadata)
        return self._create_fail_result(f"Weak or opposite candle body (ratio {ratio:.2f})", metadata)
