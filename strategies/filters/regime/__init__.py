"""Regime (trend) filters."""

from strategies.filters.regime.trend_filter import TrendFilter

__all__ = ['TrendFilter']
