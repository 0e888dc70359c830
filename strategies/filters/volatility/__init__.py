"""Volatility band filters."""

from strategies.filters.volatility.bollinger_filter import BollingerBandFilter

__all__ = ['BollingerBandFilter']
