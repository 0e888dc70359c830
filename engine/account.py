"""Account state management for backtesting.

This module defines AccountState, which tracks:
- balance: Realized account balance (initial balance + realized profits)
- unrealized_pnl: Mark-to-market P&L of the open position, net of its entry fee
- equity: Total account value (balance + unrealized_pnl)
- equity_curve: One EquityPoint per processed candle
- peak_equity / max_drawdown_pct: Running drawdown tracking
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Sequence, TYPE_CHECKING

from engine.broker import BrokerModel
from engine.models import EquityPoint, SignalType, Trade

if TYPE_CHECKING:
    from engine.backtest_engine import Position


@dataclass
class AccountState:
    """Account state tracking for backtesting.

    It enforces the fundamental accounting invariants:
        equity == balance + unrealized_pnl
        balance == initial_balance + sum(trade.profit)

    Attributes:
        initial_balance: Starting balance
        balance: Realized balance
        unrealized_pnl: Unrealized P&L of the open position (entry fee included)
        peak_equity: Highest recorded equity so far
        max_drawdown_pct: Largest peak-to-trough decline seen, in percent
        equity_curve: Recorded equity points
    """
    initial_balance: float
    balance: Optional[float] = None
    unrealized_pnl: float = 0.0
    peak_equity: Optional[float] = None
    max_drawdown_pct: float = 0.0
    equity_curve: List[EquityPoint] = field(default_factory=list)

    def __post_init__(self):
        if self.balance is None:
            self.balance = self.initial_balance
        if self.peak_equity is None:
            self.peak_equity = self.initial_balance

    @property
    def equity(self) -> float:
        """Current equity (balance + unrealized P&L)."""
        return self.balance + self.unrealized_pnl

    def update_unrealized_pnl(
        self,
        broker: BrokerModel,
        position: Optional["Position"],
        current_price: float
    ) -> None:
        """Recalculate unrealized P&L of the open position at `current_price`.

        Args:
            broker: Broker model for P&L calculations
            position: Open position or None when flat
            current_price: Mark price
        """
        self.unrealized_pnl = self._mark(broker, position, current_price)

    def _mark(self, broker: BrokerModel, position: Optional["Position"], price: float) -> float:
        if position is None:
            return 0.0
        pnl = broker.calculate_unrealized_pnl(position.entry_price, price, position.units, position.type)
        return pnl - position.fee

    def apply_realized(self, profit: float) -> None:
        """Book a closed trade's profit into the balance."""
        self.balance += profit
        self.unrealized_pnl = 0.0

    def record_equity(self, time: datetime, intrabar_equity: Optional[float] = None) -> EquityPoint:
        """Append an equity point for the current state and update drawdown."""
        point = EquityPoint(time=time, balance=self.balance, equity=self.equity)
        self.equity_curve.append(point)
        self.update_drawdown(point.equity, intrabar_equity)
        return point

    def replace_last_equity(self) -> None:
        """Re-record the last equity point after a close on the same candle."""
        if self.equity_curve:
            last = self.equity_curve[-1]
            self.equity_curve[-1] = EquityPoint(time=last.time, balance=self.balance, equity=self.equity)
            self.update_drawdown(self.equity)

    def update_drawdown(self, equity: float, intrabar_equity: Optional[float] = None) -> None:
        """Update peak equity and max drawdown.

        The drawdown for a bar is the larger of the close-based decline and the
        decline measured at the bar's adverse extreme (`intrabar_equity`).
        """
        self.peak_equity = max(self.peak_equity, equity)
        if self.peak_equity <= 0:
            return
        worst = equity if intrabar_equity is None else min(equity, intrabar_equity)
        drawdown = (self.peak_equity - worst) / self.peak_equity * 100.0
        self.max_drawdown_pct = min(100.0, max(self.max_drawdown_pct, drawdown))

    def intrabar_equity(
        self,
        broker: BrokerModel,
        position: Optional["Position"],
        high: float,
        low: float
    ) -> float:
        """Equity at the bar's worst price for the open position."""
        if position is None:
            return self.balance
        adverse = low if position.type is SignalType.BUY else high
        return self.balance + self._mark(broker, position, adverse)

    def validate_invariant(self, trades: Sequence[Trade], tolerance: float = 1e-6) -> bool:
        """Check balance == initial_balance + sum(trade.profit) within a relative tolerance."""
        expected = self.initial_balance + sum(t.profit for t in trades)
        scale = max(1.0, abs(expected))
        return abs(self.balance - expected) <= tolerance * scale
