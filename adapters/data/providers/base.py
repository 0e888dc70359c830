from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Protocol, Sequence, runtime_checkable

import pandas as pd

from engine.models import Candle, candles_from_frame


class ProviderError(RuntimeError):
    pass


@runtime_checkable
class MarketDataProvider(Protocol):
    """Source of candles for scripts and live callers.

    The backtest core never builds a provider; callers fetch candles and pass
    them in.
    """
    name: str

    def fetch_candles(self, symbol: str, interval: str, limit: int = 500) -> List[Candle]:
        raise NotImplementedError

    def current_price(self, symbol: str) -> float:
        raise NotImplementedError


def normalize_ohlcv(df: pd.DataFrame) -> pd.DataFrame:
    """Normalize common provider outputs to the OHLCV schema.

    Result: tz-naive sorted DatetimeIndex named 'timestamp' without duplicates,
    float columns open/high/low/close/volume (volume 0.0 when missing).
    """
    if df is None or len(df) == 0:
        raise ProviderError("Provider returned empty data")

    if not isinstance(df.index, pd.DatetimeIndex):
        raise ProviderError("Expected DatetimeIndex")

    out = df.copy()
    # tz-naive
    if out.index.tz is not None:
        out.index = out.index.tz_convert(None)

    out = out.sort_index()
    out = out[~out.index.duplicated(keep="first")]

    # column normalization
    cols = {c: str(c).lower() for c in out.columns}
    out = out.rename(columns=cols)

    required = ["open", "high", "low", "close"]
    for col in required:
        if col not in out.columns:
            raise ProviderError(f"Missing required OHLC column '{col}'")

    if "volume" not in out.columns:
        out["volume"] = 0.0

    out = out[["open", "high", "low", "close", "volume"]].astype(float)
    out = out.dropna(subset=required)
    if out.empty:
        raise ProviderError("No complete OHLC rows after normalization")
    out.index.name = "timestamp"
    return out


@dataclass
class StaticMarketDataProvider:
    """In-memory provider over fixed candles (offline runs and tests).

    The same candles are served for every symbol and interval.
    """
    candles: Sequence[Candle] = field(default_factory=list)
    name: str = "static"

    @classmethod
    def from_frame(cls, df: pd.DataFrame) -> "StaticMarketDataProvider":
        return cls(candles=candles_from_frame(normalize_ohlcv(df)))

    def fetch_candles(self, symbol: str, interval: str, limit: int = 500) -> List[Candle]:
        if limit <= 0:
            raise ProviderError(f"limit must be positive, got {limit}")
        return list(self.candles[-limit:])

    def current_price(self, symbol: str) -> float:
        if not self.candles:
            raise ProviderError(f"No candles available for {symbol}")
        return self.candles[-1].close
