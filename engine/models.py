"""Core value types shared by strategies, the engine and validation tools.

All types here are immutable once created. Candles and signals flow one way:
candles -> strategy -> signals -> engine -> trades / equity points.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Sequence, Union

import pandas as pd

from engine.errors import DataError


class SignalType(str, Enum):
    """Direction of a strategy directive (and of the position it opens)."""
    BUY = "BUY"
    SELL = "SELL"

    @property
    def opposite(self) -> "SignalType":
        return SignalType.SELL if self is SignalType.BUY else SignalType.BUY


class ExitReason(str, Enum):
    """Why a position was closed."""
    SIGNAL = "SIGNAL"
    STOP_LOSS = "STOP_LOSS"
    TAKE_PROFIT = "TAKE_PROFIT"
    END_OF_DATA = "END_OF_DATA"


@dataclass(frozen=True)
class Candle:
    """One OHLCV bar.

    Attributes:
        time: Bar open time
        open: Open price
        high: High price
        low: Low price
        close: Close price
        volume: Traded volume (0.0 when the source has none)
    """
    time: datetime
    open: float
    high: float
    low: float
    close: float
    volume: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "time": _iso(self.time),
            "open": self.open,
            "high": self.high,
            "low": self.low,
            "close": self.close,
            "volume": self.volume,
        }


@dataclass(frozen=True)
class Signal:
    """A BUY/SELL directive emitted by a strategy at a candle index.

    Attributes:
        type: SignalType.BUY or SignalType.SELL
        price: Reference price (normally the candle close)
        time: Candle time the signal belongs to
        candle_index: Index of the candle in the input sequence
        reason: Human-readable trigger description
        source: Name of the emitting strategy or engine component
    """
    type: SignalType
    price: float
    time: datetime
    candle_index: int
    reason: Optional[str] = None
    source: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type.value,
            "price": self.price,
            "time": _iso(self.time),
            "candleIndex": self.candle_index,
            "reason": self.reason,
            "source": self.source,
        }


@dataclass(frozen=True)
class Trade:
    """A closed round-trip position.

    Attributes:
        type: Direction of the closed position
        entry_price: Fill price on entry (slippage applied)
        exit_price: Fill price on exit (slippage applied)
        units: Position quantity
        entry_time: Entry candle time
        exit_time: Exit candle time
        entry_index: Entry candle index
        exit_index: Exit candle index
        profit: Realized P&L net of both fees
        profit_percent: profit as a percent of the balance at entry
        fee: Total fees paid on both legs
        exit_reason: Why the position was closed
    """
    type: SignalType
    entry_price: float
    exit_price: float
    units: float
    entry_time: datetime
    exit_time: datetime
    entry_index: int
    exit_index: int
    profit: float
    profit_percent: float
    fee: float
    exit_reason: ExitReason

    @property
    def holding_bars(self) -> int:
        return self.exit_index - self.entry_index

    @property
    def return_fraction(self) -> float:
        return self.profit_percent / 100.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type.value,
            "entryPrice": self.entry_price,
            "exitPrice": self.exit_price,
            "units": self.units,
            "entryTime": _iso(self.entry_time),
            "exitTime": _iso(self.exit_time),
            "entryIndex": self.entry_index,
            "exitIndex": self.exit_index,
            "profit": self.profit,
            "profitPercent": self.profit_percent,
            "fee": self.fee,
            "exitReason": self.exit_reason.value,
        }


@dataclass(frozen=True)
class EquityPoint:
    """Balance and mark-to-market equity after a processed candle."""
    time: datetime
    balance: float
    equity: float

    def to_dict(self) -> Dict[str, Any]:
        return {"time": _iso(self.time), "balance": self.balance, "equity": self.equity}


CandleInput = Union[Sequence[Candle], pd.DataFrame]


def _iso(value: Any) -> Any:
    if isinstance(value, (datetime, pd.Timestamp)):
        return value.isoformat()
    return value


def candles_from_frame(df: pd.DataFrame) -> List[Candle]:
    """Convert an OHLCV DataFrame into a list of Candle objects.

    The frame must have a datetime index (or a ``time``/``timestamp`` column)
    and open/high/low/close columns. A missing volume column becomes 0.0.

    Args:
        df: OHLCV DataFrame

    Returns:
        Candles in ascending time order

    Raises:
        DataError: If required columns are missing
    """
    if df is None or len(df) == 0:
        return []

    frame = df.rename(columns={c: str(c).lower() for c in df.columns})
    if not isinstance(frame.index, pd.DatetimeIndex):
        for col in ("time", "timestamp", "datetime", "date"):
            if col in frame.columns:
                frame = frame.set_index(pd.to_datetime(frame[col]))
                break

    missing = [c for c in ("open", "high", "low", "close") if c not in frame.columns]
    if missing:
        raise DataError(f"Candle frame is missing columns: {missing}")

    frame = frame.sort_index()
    volume = frame["volume"] if "volume" in frame.columns else pd.Series(0.0, index=frame.index)

    return [
        Candle(
            time=ts.to_pydatetime() if isinstance(ts, pd.Timestamp) else ts,
            open=float(o),
            high=float(h),
            low=float(lo),
            close=float(c),
            volume=float(v),
        )
        for ts, o, h, lo, c, v in zip(
            frame.index, frame["open"], frame["high"], frame["low"], frame["close"], volume
        )
    ]


def candles_to_frame(candles: Iterable[Candle]) -> pd.DataFrame:
    """Build an OHLCV DataFrame indexed by candle time."""
    rows = list(candles)
    frame = pd.DataFrame(
        {
            "open": [c.open for c in rows],
            "high": [c.high for c in rows],
            "low": [c.low for c in rows],
            "close": [c.close for c in rows],
            "volume": [c.volume for c in rows],
        },
        index=pd.DatetimeIndex([c.time for c in rows], name="timestamp"),
        dtype=float,
    )
    return frame


def ensure_candles(candles: Optional[CandleInput]) -> List[Candle]:
    """Accept a candle sequence or an OHLCV DataFrame and return a list of candles."""
    if candles is None:
        return []
    if isinstance(candles, pd.DataFrame):
        return candles_from_frame(candles)
    return list(candles)


@dataclass(frozen=True)
class BacktestSummary:
    """Performance statistics of one backtest run.

    Percent fields are on a 0-100 scale. avg_loss is a positive magnitude.
    """
    initial_balance: float
    final_balance: float
    profit: float = 0.0
    profit_percent: float = 0.0
    total_trades: int = 0
    winning_trades: int = 0
    losing_trades: int = 0
    win_rate: float = 0.0
    avg_win: float = 0.0
    avg_loss: float = 0.0
    profit_factor: float = 0.0
    max_drawdown_percent: float = 0.0
    sharpe_ratio: float = 0.0
    avg_holding_period: float = 0.0
    stop_loss_rate: float = 0.0
    take_profit_rate: float = 0.0

    @classmethod
    def empty(cls, initial_balance: float) -> "BacktestSummary":
        """Zero-trade summary for a run with nothing to simulate."""
        return cls(initial_balance=initial_balance, final_balance=initial_balance)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "initialBalance": self.initial_balance,
            "finalBalance": self.final_balance,
            "profit": self.profit,
            "profitPercent": self.profit_percent,
            "totalTrades": self.total_trades,
            "winningTrades": self.winning_trades,
            "losingTrades": self.losing_trades,
            "winRate": self.win_rate,
            "avgWin": self.avg_win,
            "avgLoss": self.avg_loss,
            "profitFactor": self.profit_factor,
            "maxDrawdownPercent": self.max_drawdown_percent,
            "sharpeRatio": self.sharpe_ratio,
            "avgHoldingPeriod": self.avg_holding_period,
            "stopLossRate": self.stop_loss_rate,
            "takeProfitRate": self.take_profit_rate,
        }
