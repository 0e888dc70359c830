"""Technical indicators on pandas Series.

All functions are pure: they never mutate their inputs and return Series
aligned to the input index. Values inside an indicator's warm-up window are NaN.
"""

from __future__ import annotations

from typing import Tuple

import numpy as np
import pandas as pd


def sma(series: pd.Series, period: int) -> pd.Series:
    """Simple moving average."""
    return series.rolling(window=period, min_periods=period).mean()


def ema(series: pd.Series, period: int) -> pd.Series:
    """Exponential moving average (NaN until `period` values are available)."""
    out = series.ewm(span=period, adjust=False, min_periods=period).mean()
    return out


def moving_average(series: pd.Series, period: int, kind: str = "sma") -> pd.Series:
    if kind == "ema":
        return ema(series, period)
    return sma(series, period)


def rsi(close: pd.Series, period: int = 14) -> pd.Series:
    """Relative Strength Index from rolling average gains and losses.

    A window with no losses reads 100; a flat window reads 50.
    """
    delta = close.diff()
    gain = delta.clip(lower=0)
    loss = (-delta).clip(lower=0)
    avg_gain = gain.rolling(window=period, min_periods=period).mean()
    avg_loss = loss.rolling(window=period, min_periods=period).mean()

    with np.errstate(divide="ignore", invalid="ignore"):
        rs = avg_gain / avg_loss
        values = 100 - (100 / (1 + rs))
    values = values.where(avg_loss != 0, 100.0)
    values = values.where(~((avg_gain == 0) & (avg_loss == 0)), 50.0)
    return values.where(avg_gain.notna() & avg_loss.notna())


def macd(
    close: pd.Series,
    fast: int = 12,
    slow: int = 26,
    signal: int = 9
) -> Tuple[pd.Series, pd.Series, pd.Series]:
    """MACD line, signal line and histogram."""
    macd_line = ema(close, fast) - ema(close, slow)
    signal_line = macd_line.ewm(span=signal, adjust=False, min_periods=signal).mean()
    return macd_line, signal_line, macd_line - signal_line


def bollinger_bands(
    close: pd.Series,
    period: int = 20,
    num_std: float = 2.0
) -> Tuple[pd.Series, pd.Series, pd.Series]:
    """Upper band, middle band (SMA) and lower band."""
    middle = sma(close, period)
    std = close.rolling(window=period, min_periods=period).std(ddof=0)
    return middle + num_std * std, middle, middle - num_std * std


def true_range(df: pd.DataFrame) -> pd.Series:
    high_low = df['high'] - df['low']
    high_close = (df['high'] - df['close'].shift(1)).abs()
    low_close = (df['low'] - df['close'].shift(1)).abs()
    return pd.concat([high_low, high_close, low_close], axis=1).max(axis=1)


def atr(df: pd.DataFrame, period: int = 14) -> pd.Series:
    """Average True Range (rolling mean of true range)."""
    return true_range(df).rolling(window=period, min_periods=period).mean()


def adx(df: pd.DataFrame, period: int = 14) -> pd.Series:
    """Average Directional Index (simple rolling-mean smoothing)."""
    high = df['high']
    low = df['low']

    up_move = high.diff()
    down_move = -low.diff()

    plus_dm = np.where((up_move > down_move) & (up_move > 0), up_move, 0.0)
    minus_dm = np.where((down_move > up_move) & (down_move > 0), down_move, 0.0)

    atr_series = atr(df, period).replace(0.0, np.nan)
    plus_di = 100.0 * pd.Series(plus_dm, index=df.index).rolling(period, min_periods=period).mean() / atr_series
    minus_di = 100.0 * pd.Series(minus_dm, index=df.index).rolling(period, min_periods=period).mean() / atr_series

    denom = (plus_di + minus_di).replace(0.0, np.nan)
    dx = 100.0 * (plus_di - minus_di).abs() / denom
    return dx.rolling(period, min_periods=period).mean()


def coefficient_of_variation(close: pd.Series, lookback: int = 20) -> float:
    """Std / mean of the last `lookback` closes (0.0 when undefined)."""
    window = close.iloc[-lookback:]
    if len(window) < 2:
        return 0.0
    mean = float(window.mean())
    if mean == 0 or not np.isfinite(mean):
        return 0.0
    return float(window.std(ddof=0)) / abs(mean)


def first_valid_position(series: pd.Series) -> int:
    """Positional index of the first non-NaN value (len(series) if none)."""
    valid = np.flatnonzero(series.notna().to_numpy())
    return int(valid[0]) if len(valid) else len(series)
