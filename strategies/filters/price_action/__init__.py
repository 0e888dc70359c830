"""Price action filters."""

from strategies.filters.price_action.candle_body_filter import CandleBodyFilter

__all__ = ['CandleBodyFilter']
