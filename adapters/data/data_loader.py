"""Loader for OHLCV market data files.

Supports:
- CSV files (comma, tab, semicolon separated)
- Parquet files
- Various column naming conventions (OPEN, open, <OPEN>, o ...)
- DATE + TIME column combinations
- Numeric timestamps (Unix seconds/milliseconds)
"""

from pathlib import Path
from typing import List, Optional, Union
import logging

import pandas as pd

from engine.models import Candle, candles_from_frame

from .providers.base import ProviderError, normalize_ohlcv

logger = logging.getLogger(__name__)


class DataLoader:
    """Loads OHLCV data from CSV or Parquet files."""

    # Column name variations (case-insensitive, with/without angle brackets)
    COLUMN_ALIASES = {
        'open': ['open', 'o', 'open_price', 'openprice'],
        'high': ['high', 'h', 'high_price', 'highprice'],
        'low': ['low', 'l', 'low_price', 'lowprice'],
        'close': ['close', 'c', 'close_price', 'closeprice'],
        'volume': ['volume', 'vol', 'v', 'tickvol'],
    }
    TIMESTAMP_COLUMNS = ['timestamp', 'datetime', 'date', 'time', 'open_time', 'opentime']

    def load(self, file_path: Union[str, Path], **kwargs) -> pd.DataFrame:
        """
        Load OHLCV data from a CSV or Parquet file.

        Args:
            file_path: Path to data file
            **kwargs: Additional arguments for pandas read functions

        Returns:
            DataFrame with datetime index and columns open/high/low/close/volume

        Raises:
            FileNotFoundError: If the file does not exist
            ProviderError: If the file has no usable OHLC data
        """
        file_path = Path(file_path)
        if not file_path.exists():
            raise FileNotFoundError(f"Data file not found: {file_path}")

        if file_path.suffix.lower() == '.parquet':
            df = pd.read_parquet(file_path, **kwargs)
        else:
            if 'sep' not in kwargs and 'delimiter' not in kwargs:
                kwargs['sep'] = self._detect_separator(file_path)
            df = pd.read_csv(file_path, **kwargs)

        logger.debug(f"Loaded {file_path.name}: {df.shape[0]} rows, columns {df.columns.tolist()}")

        df = self._standardize_columns(df)
        df = self._process_timestamp(df, file_path)
        return normalize_ohlcv(df)

    def _detect_separator(self, file_path: Path) -> str:
        """Detect CSV separator (comma, tab, semicolon)."""
        with open(file_path, 'r', encoding='utf-8') as f:
            first_line = f.readline()

        counts = {
            '\t': first_line.count('\t'),
            ';': first_line.count(';'),
            ',': first_line.count(','),
        }
        sep = max(counts, key=counts.get)
        if counts[sep] == 0:
            sep = ','
        logger.debug(f"Detected separator: '{sep}' (counts: {counts})")
        return sep

    def _standardize_columns(self, df: pd.DataFrame) -> pd.DataFrame:
        renames = {}
        for col in df.columns:
            clean = str(col).strip().strip('<>').lower()
            for target, aliases in self.COLUMN_ALIASES.items():
                if clean in aliases and target not in renames.values():
                    renames[col] = target
                    break
            else:
                renames[col] = clean
        return df.rename(columns=renames)

    def _process_timestamp(self, df: pd.DataFrame, file_path: Path) -> pd.DataFrame:
        """Set a DatetimeIndex from DATE+TIME columns or a timestamp column."""
        if isinstance(df.index, pd.DatetimeIndex):
            return df

        if 'date' in df.columns and 'time' in df.columns:
            index = pd.to_datetime(df['date'].astype(str) + ' ' + df['time'].astype(str), errors='coerce')
            return df.drop(columns=['date', 'time']).set_index(pd.DatetimeIndex(index))

        for col in self.TIMESTAMP_COLUMNS:
            if col in df.columns:
                return df.drop(columns=[col]).set_index(self._parse_timestamps(df[col]))

        raise ProviderError(
            f"Could not determine timestamps for {file_path}. "
            f"Expected a datetime index, a timestamp column or DATE+TIME columns; "
            f"columns: {df.columns.tolist()}"
        )

    @staticmethod
    def _parse_timestamps(values: pd.Series) -> pd.DatetimeIndex:
        if pd.api.types.is_numeric_dtype(values):
            # Epoch milliseconds are > 1e12 for any date after 2001
            unit = 'ms' if float(values.iloc[0]) > 1e12 else 's'
            return pd.DatetimeIndex(pd.to_datetime(values, unit=unit))
        return pd.DatetimeIndex(pd.to_datetime(values, errors='coerce'))


def load_candles_csv(file_path: Union[str, Path], limit: Optional[int] = None, **kwargs) -> List[Candle]:
    """
    Load candles from a CSV or Parquet file.

    Args:
        file_path: Path to data file
        limit: Keep only the most recent `limit` candles
        **kwargs: Additional arguments for pandas read functions

    Returns:
        Candles in ascending time order
    """
    df = DataLoader().load(file_path, **kwargs)
    if limit is not None:
        df = df.iloc[-limit:]
    logger.info(f"Loaded {len(df)} candles from {file_path}")
    return candles_from_frame(df)
