"""Data adapters."""

from .data_loader import DataLoader, load_candles_csv
from .providers import (
    CsvUrlProvider,
    MarketDataProvider,
    ProviderError,
    StaticMarketDataProvider,
    normalize_ohlcv,
)

__all__ = [
    "DataLoader",
    "load_candles_csv",
    "CsvUrlProvider",
    "MarketDataProvider",
    "ProviderError",
    "StaticMarketDataProvider",
    "normalize_ohlcv",
]
