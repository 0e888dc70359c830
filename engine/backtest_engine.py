"""Event-driven backtesting engine.

This module replays a strategy's signal stream over historical candles into a
single-position ledger and produces trades, an equity curve and a summary.

Key architectural principles:
1. Strategies only emit intent (BUY/SELL at a candle index); they never size or fill
2. The engine owns sequencing and the FLAT -> OPEN -> FLAT state machine
3. The broker prices fills (slippage, fees) and P&L
4. The sizer decides position size; the account tracks balance, equity and drawdown
5. Runs are deterministic for fixed candles, parameters and configuration
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence
import logging

import numpy as np

from config.schema import BacktestConfig, validate_model
from engine.account import AccountState
from engine.broker import BrokerModel
from engine.models import (
    BacktestSummary,
    Candle,
    CandleInput,
    EquityPoint,
    ExitReason,
    Signal,
    SignalType,
    Trade,
    candles_to_frame,
    ensure_candles,
)
from engine.sizing import Sizer, build_sizer
from metrics.metrics import build_summary
from strategies import indicators


# ============================================================================
# Data Models
# ============================================================================

@dataclass
class Position:
    """The single open position.

    Attributes:
        type: SignalType.BUY (long) or SignalType.SELL (short)
        entry_price: Entry fill price (slippage applied)
        units: Position quantity
        fee: Entry commission
        entry_time: Entry candle time
        entry_index: Entry candle index
        balance_at_entry: Account balance when the position was opened
        stop_loss_price: Stop-loss trigger price (None = no stop)
        take_profit_price: Take-profit trigger price (None = no target)
    """
    type: SignalType
    entry_price: float
    units: float
    fee: float
    entry_time: datetime
    entry_index: int
    balance_at_entry: float
    stop_loss_price: Optional[float] = None
    take_profit_price: Optional[float] = None


@dataclass
class BacktestResult:
    """Result of a backtest run.

    Attributes:
        success: False when the run produced no usable result
        summary: Performance statistics (None on failure)
        trades: Closed trades in order
        equity_curve: One EquityPoint per processed candle
        signals: Signals emitted by the strategy
        error: Failure reason when success is False
        strategy_name: Name of the strategy that was run
        analytics: Extra sections added by enhancement stages
    """
    success: bool
    summary: Optional[BacktestSummary] = None
    trades: List[Trade] = field(default_factory=list)
    equity_curve: List[EquityPoint] = field(default_factory=list)
    signals: List[Signal] = field(default_factory=list)
    error: Optional[str] = None
    strategy_name: Optional[str] = None
    analytics: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def failure(cls, error: str, strategy_name: Optional[str] = None) -> "BacktestResult":
        return cls(success=False, error=error, strategy_name=strategy_name)

    @property
    def initial_balance(self) -> float:
        return self.summary.initial_balance if self.summary else 0.0

    @property
    def trade_returns(self) -> np.ndarray:
        """Per-trade returns as fractions of the balance at entry."""
        return np.array([t.return_fraction for t in self.trades], dtype=float)

    def to_dict(self) -> Dict[str, Any]:
        if not self.success:
            return {"success": False, "error": self.error}

        out = {
            "success": True,
            "summary": self.summary.to_dict() if self.summary else None,
            "trades": [t.to_dict() for t in self.trades],
            "equityCurve": [p.to_dict() for p in self.equity_curve],
            "signals": [s.to_dict() for s in self.signals],
        }
        if self.analytics:
            out["analytics"] = self.analytics
        return out


# ============================================================================
# Engine
# ============================================================================

class BacktestEngine:
    """Single-position backtesting engine.

    Per candle, in order:
    1. Intrabar stop-loss / take-profit check for the open position (stop first)
    2. Signals at this candle index (open when flat, close on an opposite signal)
    3. One EquityPoint, marked to market at the close
    4. Max drawdown update, including the bar's adverse extreme
    """

    def __init__(
        self,
        config: Optional[BacktestConfig] = None,
        sizer: Optional[Sizer] = None
    ):
        """
        Initialize backtest engine.

        Args:
            config: BacktestConfig, a dict of options (snake_case or camelCase), or None for defaults
            sizer: Position sizer (built from config if None)

        Raises:
            ConfigError: If the configuration is invalid
        """
        self.config = validate_model(BacktestConfig, config)
        self.broker = BrokerModel(
            fee_rate=self.config.fee_rate,
            slippage_rate=self.config.slippage_rate,
        )
        self.sizer = sizer or build_sizer(self.config)
        self.logger = logging.getLogger(__name__)

    def run(self, candles: CandleInput, strategy: Any) -> BacktestResult:
        """
        Run a backtest.

        Args:
            candles: Candles in ascending time order, or an OHLCV DataFrame
            strategy: Object exposing generate(candles) -> List[Signal]

        Returns:
            BacktestResult; failures are reported with success=False, never raised
        """
        strategy_name = getattr(strategy, "name", type(strategy).__name__)
        generate = getattr(strategy, "generate", None)
        if not callable(generate):
            self.logger.error(f"Strategy {strategy_name} does not implement generate()")
            return BacktestResult.failure("Strategy does not implement generate()", strategy_name)

        try:
            candle_list = ensure_candles(candles)
            if not candle_list:
                self.logger.warning("No candles supplied, returning zero-trade result")
                return BacktestResult(
                    success=True,
                    summary=BacktestSummary.empty(self.config.initial_balance),
                    strategy_name=strategy_name,
                )

            signals = list(generate(candle_list))
            self.logger.info(
                f"Running backtest: strategy={strategy_name}, candles={len(candle_list)}, signals={len(signals)}"
            )
            return self.simulate(candle_list, signals, strategy_name)
        except Exception as e:
            self.logger.exception(f"Backtest failed for strategy {strategy_name}")
            return BacktestResult.failure(f"Backtest error: {e}", strategy_name)

    def simulate(
        self,
        candles: Sequence[Candle],
        signals: Sequence[Signal],
        strategy_name: Optional[str] = None
    ) -> BacktestResult:
        """Replay precomputed signals over candles."""
        account = AccountState(initial_balance=self.config.initial_balance)
        trades: List[Trade] = []
        position: Optional[Position] = None

        signals_by_index: Dict[int, List[Signal]] = {}
        for signal in signals:
            if 0 <= signal.candle_index < len(candles):
                signals_by_index.setdefault(signal.candle_index, []).append(signal)
            else:
                self.logger.warning(f"Ignoring signal outside candle range: index={signal.candle_index}")

        atr_values = self._atr_values(candles)

        for i, candle in enumerate(candles):
            if position is not None:
                trigger = self._check_exit_triggers(position, candle)
                if trigger is not None:
                    price, reason = trigger
                    exit_signal = Signal(
                        type=position.type.opposite,
                        price=price,
                        time=candle.time,
                        candle_index=i,
                        reason=reason.value,
                        source="engine",
                    )
                    self._close_position(position, exit_signal, reason, account, trades)
                    position = None

            closed_by_signal = False
            for signal in signals_by_index.get(i, ()):
                if position is None:
                    if closed_by_signal:
                        continue
                    if signal.type is SignalType.SELL and not self.config.allow_short:
                        continue
                    atr_value = atr_values[i] if atr_values is not None else None
                    position = self._open_position(signal, i, account, trades, atr_value)
                elif signal.type is position.type.opposite:
                    self._close_position(position, signal, ExitReason.SIGNAL, account, trades)
                    position = None
                    closed_by_signal = True

            account.update_unrealized_pnl(self.broker, position, candle.close)
            intrabar = None
            if position is not None and position.entry_index < i:
                intrabar = account.intrabar_equity(self.broker, position, candle.high, candle.low)
            account.record_equity(candle.time, intrabar)

        if position is not None:
            last = candles[-1]
            final_signal = Signal(
                type=position.type.opposite,
                price=last.close,
                time=last.time,
                candle_index=len(candles) - 1,
                reason=ExitReason.END_OF_DATA.value,
                source="engine",
            )
            self._close_position(position, final_signal, ExitReason.END_OF_DATA, account, trades)
            account.replace_last_equity()

        if not account.validate_invariant(trades):
            self.logger.warning(
                f"Balance invariant violated: balance={account.balance}, "
                f"expected={account.initial_balance + sum(t.profit for t in trades)}"
            )

        summary = build_summary(
            initial_balance=account.initial_balance,
            final_balance=account.balance,
            trades=trades,
            equity_curve=account.equity_curve,
            max_drawdown_pct=account.max_drawdown_pct,
            periods_per_year=self.config.periods_per_year,
        )
        self.logger.info(
            f"Backtest complete: trades={summary.total_trades}, profit={summary.profit:.2f} "
            f"({summary.profit_percent:.2f}%), max_dd={summary.max_drawdown_percent:.2f}%"
        )

        return BacktestResult(
            success=True,
            summary=summary,
            trades=trades,
            equity_curve=list(account.equity_curve),
            signals=list(signals),
            strategy_name=strategy_name,
        )

    def _atr_values(self, candles: Sequence[Candle]) -> Optional[np.ndarray]:
        if self.config.effective_sizing_mode != "atr_risk":
            return None
        frame = candles_to_frame(candles)
        return indicators.atr(frame, self.config.atr_period).to_numpy()

    def _check_exit_triggers(self, position: Position, candle: Candle):
        """Return (trigger_price, reason) if the candle breaches stop or target.

        Stop-loss is evaluated before take-profit when both are inside the bar.
        """
        stop = position.stop_loss_price
        target = position.take_profit_price

        if position.type is SignalType.BUY:
            if stop is not None and candle.low <= stop:
                return stop, ExitReason.STOP_LOSS
            if target is not None and candle.high >= target:
                return target, ExitReason.TAKE_PROFIT
        else:
            if stop is not None and candle.high >= stop:
                return stop, ExitReason.STOP_LOSS
            if target is not None and candle.low <= target:
                return target, ExitReason.TAKE_PROFIT
        return None

    def _open_position(
        self,
        signal: Signal,
        index: int,
        account: AccountState,
        trades: Sequence[Trade],
        atr_value: Optional[float]
    ) -> Optional[Position]:
        entry_price = self.broker.fill_price(signal.price, signal.type)
        if entry_price <= 0 or not np.isfinite(entry_price):
            self.logger.warning(f"Skipping signal with unusable price {signal.price} at index {index}")
            return None

        if atr_value is not None and not np.isfinite(atr_value):
            atr_value = None

        size = self.sizer.size(balance=account.balance, price=entry_price, atr=atr_value, trades=trades)
        if size <= 0:
            self.logger.debug(f"Sizer returned no size at index {index}, signal skipped")
            return None

        units = size / entry_price
        fee = self.broker.calculate_commission(entry_price, units)
        stop_price, target_price = self._exit_levels(signal.type, entry_price, atr_value)

        self.logger.debug(
            f"Open {signal.type.value}: price={entry_price:.6f}, size={size:.2f}, fee={fee:.4f}, "
            f"stop={stop_price}, target={target_price}"
        )
        return Position(
            type=signal.type,
            entry_price=entry_price,
            units=units,
            fee=fee,
            entry_time=signal.time,
            entry_index=index,
            balance_at_entry=account.balance,
            stop_loss_price=stop_price,
            take_profit_price=target_price,
        )

    def _exit_levels(self, side: SignalType, entry_price: float, atr_value: Optional[float]):
        direction = 1.0 if side is SignalType.BUY else -1.0
        cfg = self.config

        stop_price = None
        if cfg.effective_sizing_mode == "atr_risk" and atr_value is not None and atr_value > 0:
            stop_price = entry_price - direction * atr_value * cfg.atr_multiplier
        elif cfg.stop_loss_percent:
            stop_price = entry_price * (1 - direction * cfg.stop_loss_percent / 100.0)

        target_price = None
        if cfg.take_profit_percent:
            target_price = entry_price * (1 + direction * cfg.take_profit_percent / 100.0)
        return stop_price, target_price

    def _close_position(
        self,
        position: Position,
        signal: Signal,
        reason: ExitReason,
        account: AccountState,
        trades: List[Trade]
    ) -> Trade:
        exit_price = self.broker.fill_price(signal.price, position.type.opposite)
        exit_fee = self.broker.calculate_commission(exit_price, position.units)
        total_fee = position.fee + exit_fee
        profit = self.broker.calculate_realized_pnl(
            position.entry_price, exit_price, position.units, position.type, total_fee
        )
        profit_percent = profit / position.balance_at_entry * 100.0 if position.balance_at_entry > 0 else 0.0

        trade = Trade(
            type=position.type,
            entry_price=position.entry_price,
            exit_price=exit_price,
            units=position.units,
            entry_time=position.entry_time,
            exit_time=signal.time,
            entry_index=position.entry_index,
            exit_index=signal.candle_index,
            profit=profit,
            profit_percent=profit_percent,
            fee=total_fee,
            exit_reason=reason,
        )
        trades.append(trade)
        account.apply_realized(profit)

        self.logger.debug(
            f"Close {position.type.value} ({reason.value}): exit={exit_price:.6f}, profit={profit:.4f}"
        )
        return trade
