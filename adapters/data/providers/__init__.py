"""Market data providers."""

from .base import MarketDataProvider, ProviderError, StaticMarketDataProvider, normalize_ohlcv
from .csv_url import CsvUrlProvider

__all__ = [
    "MarketDataProvider",
    "ProviderError",
    "StaticMarketDataProvider",
    "CsvUrlProvider",
    "normalize_ohlcv",
]
