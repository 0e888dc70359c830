"""Market data provider adapters.

Providers normalize data into the OHLCV schema:
- DatetimeIndex (tz-naive)
- columns: open, high, low, close, volume
"""
from __future__ import annotations

from dataclasses import dataclass
from io import StringIO
from typing import List, Optional

import pandas as pd
import requests

from engine.models import Candle, candles_from_frame

from .base import ProviderError, normalize_ohlcv


@dataclass(frozen=True)
class CsvUrlProvider:
    """Fetch OHLCV candles from a CSV URL.

    The URL is built from `url_template` with `{symbol}` and `{interval}`
    placeholders, e.g. "https://data.example.com/{symbol}/{interval}.csv".

    Optional mappings:
      - datetime_col (default: 'timestamp')
      - open_col/high_col/low_col/close_col/volume_col
      - unit ('s' or 'ms') for epoch timestamps
      - tz (e.g. 'UTC'); if provided, localize then convert to tz-naive
    """

    url_template: str
    name: str = "csv_url"
    datetime_col: str = "timestamp"
    open_col: str = "open"
    high_col: str = "high"
    low_col: str = "low"
    close_col: str = "close"
    volume_col: str = "volume"
    unit: Optional[str] = None
    tz: Optional[str] = None
    timeout: float = 60.0

    def download(self, symbol: str, interval: str) -> pd.DataFrame:
        url = self.url_template.format(symbol=symbol, interval=interval)

        try:
            r = requests.get(url, timeout=self.timeout)
            r.raise_for_status()
        except requests.RequestException as e:
            raise ProviderError(f"Failed to download {url}: {e}") from e

        df = pd.read_csv(StringIO(r.text))
        if df.empty:
            raise ProviderError(f"No rows returned from {url}")

        if self.datetime_col not in df.columns:
            raise ProviderError(
                f"CSV missing datetime column '{self.datetime_col}'. Columns: {list(df.columns)[:20]}"
            )

        if self.unit:
            ts = pd.to_datetime(df[self.datetime_col], unit=self.unit)
        else:
            ts = pd.to_datetime(df[self.datetime_col])

        if self.tz:
            ts = ts.dt.tz_localize(self.tz).dt.tz_convert(None)

        columns = {
            "open": self.open_col,
            "high": self.high_col,
            "low": self.low_col,
            "close": self.close_col,
        }
        missing = [src for src in columns.values() if src not in df.columns]
        if missing:
            raise ProviderError(f"CSV missing OHLC columns {missing}")

        out = pd.DataFrame(
            {name: df[src].to_numpy() for name, src in columns.items()},
            index=pd.DatetimeIndex(ts),
        )
        out["volume"] = df[self.volume_col].to_numpy() if self.volume_col in df.columns else 0.0
        return normalize_ohlcv(out)

    def fetch_candles(self, symbol: str, interval: str, limit: int = 500) -> List[Candle]:
        if limit <= 0:
            raise ProviderError(f"limit must be positive, got {limit}")
        return candles_from_frame(self.download(symbol, interval).iloc[-limit:])

    def current_price(self, symbol: str, interval: str = "1m") -> float:
        return self.fetch_candles(symbol, interval, limit=1)[-1].close
