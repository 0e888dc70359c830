"""Position sizing policies.

Every sizer returns a monetary position size (notional in quote currency)
for a new position. The engine converts it into units at the fill price.

Policies:
- fixed_percent:  balance * position_size_percent / 100
- balance_scaled: fixed_percent dampened as the balance grows past multiples
                  of the initial balance
- atr_risk:       risk a fixed percent of balance over an ATR-based stop distance
- kelly:          balance_scaled multiplied by a clamped half-Kelly fraction
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Optional, Protocol, Sequence, Tuple

from config.schema import BacktestConfig, validate_model
from engine.errors import ConfigError
from engine.models import Trade

logger = logging.getLogger(__name__)

KELLY_MIN_FRACTION = 0.1
KELLY_MAX_FRACTION = 1.0
KELLY_DEFAULT_FRACTION = 0.5


class Sizer(Protocol):
    """Sizer: monetary size for a new position."""

    def size(
        self,
        *,
        balance: float,
        price: float,
        atr: Optional[float] = None,
        trades: Sequence[Trade] = (),
    ) -> float: ...


def _finite_non_negative(value: float) -> float:
    if value is None or not math.isfinite(value) or value < 0:
        return 0.0
    return float(value)


@dataclass(frozen=True)
class FixedPercentSizer:
    position_size_percent: float

    def size(self, *, balance: float, price: float, atr: Optional[float] = None, trades: Sequence[Trade] = ()) -> float:
        return _finite_non_negative(balance * self.position_size_percent / 100.0)


@dataclass(frozen=True)
class BalanceScaledSizer:
    """Fixed-percent sizing dampened as the account compounds.

    `scaling` holds (balance / initial ratio, multiplier) pairs; the first pair
    whose ratio is exceeded, highest ratio first, applies.
    """
    position_size_percent: float
    initial_balance: float
    scaling: Tuple[Tuple[float, float], ...] = ((10.0, 0.5), (5.0, 0.7), (2.0, 0.9))

    def adjustment_factor(self, balance: float) -> float:
        if self.initial_balance <= 0:
            return 1.0
        ratio = balance / self.initial_balance
        for threshold, factor in sorted(self.scaling, key=lambda item: item[0], reverse=True):
            if ratio > threshold:
                return factor
        return 1.0

    def size(self, *, balance: float, price: float, atr: Optional[float] = None, trades: Sequence[Trade] = ()) -> float:
        base = balance * self.position_size_percent / 100.0
        return _finite_non_negative(base * self.adjustment_factor(balance))


@dataclass(frozen=True)
class AtrRiskSizer:
    """Risk a bounded amount per trade over an ATR stop distance.

    units = (balance * max_risk_per_trade_percent / 100) / (ATR * atr_multiplier)
    size  = units * price, capped at balance * max_leverage

    Without a usable ATR the fallback sizer decides.
    """
    max_risk_per_trade_percent: float
    atr_multiplier: float
    max_leverage: float
    fallback: BalanceScaledSizer

    def stop_distance(self, atr: Optional[float]) -> Optional[float]:
        if atr is None or not math.isfinite(atr) or atr <= 0:
            return None
        return atr * self.atr_multiplier

    def size(self, *, balance: float, price: float, atr: Optional[float] = None, trades: Sequence[Trade] = ()) -> float:
        distance = self.stop_distance(atr)
        if distance is None or price <= 0:
            logger.debug("ATR unavailable, using balance-scaled size")
            return self.fallback.size(balance=balance, price=price)

        risk_amount = balance * self.max_risk_per_trade_percent / 100.0
        units = risk_amount / distance
        notional = min(units * price, balance * self.max_leverage)
        return _finite_non_negative(notional)


def kelly_fraction(
    trades: Sequence[Trade],
    lookback: int = 30,
    min_trades: int = 10
) -> float:
    """
    Half-Kelly fraction from recent closed trades.

    Args:
        trades: Closed trades in chronological order
        lookback: Number of most recent trades considered (at most 30)
        min_trades: Below this many trades the default fraction 0.5 is used

    Returns:
        Fraction clamped to [0.1, 1.0]
    """
    recent = list(trades)[-min(lookback, 30):]
    if len(recent) < min_trades or not recent:
        return KELLY_DEFAULT_FRACTION

    wins = [t.profit for t in recent if t.profit > 0]
    losses = [abs(t.profit) for t in recent if t.profit <= 0]
    win_rate = len(wins) / len(recent)

    avg_win = sum(wins) / len(wins) if wins else 0.0
    avg_loss = sum(losses) / len(losses) if losses else 0.0

    if avg_loss == 0:
        kelly = win_rate
    elif avg_win == 0:
        kelly = 0.0
    else:
        payoff = avg_win / avg_loss
        kelly = win_rate - (1 - win_rate) / payoff

    half_kelly = kelly / 2
    if not math.isfinite(half_kelly):
        return KELLY_DEFAULT_FRACTION
    return min(KELLY_MAX_FRACTION, max(KELLY_MIN_FRACTION, half_kelly))


@dataclass(frozen=True)
class KellySizer:
    base: BalanceScaledSizer
    lookback: int = 30
    min_trades: int = 10

    def size(self, *, balance: float, price: float, atr: Optional[float] = None, trades: Sequence[Trade] = ()) -> float:
        fraction = kelly_fraction(trades, self.lookback, self.min_trades)
        return _finite_non_negative(self.base.size(balance=balance, price=price) * fraction)


def build_sizer(config: Optional[BacktestConfig]) -> Sizer:
    """Build the sizer selected by the backtest configuration.

    `use_atr_position_sizing` takes precedence over `sizing_mode`.

    Raises:
        ConfigError: If the configuration is invalid
    """
    cfg = validate_model(BacktestConfig, config)
    balance_scaled = BalanceScaledSizer(
        position_size_percent=cfg.position_size_percent,
        initial_balance=cfg.initial_balance,
        scaling=tuple(tuple(item) for item in cfg.balance_scaling),
    )

    mode = cfg.effective_sizing_mode
    if mode == "fixed_percent":
        return FixedPercentSizer(position_size_percent=cfg.position_size_percent)
    if mode == "balance_scaled":
        return balance_scaled
    if mode == "atr_risk":
        return AtrRiskSizer(
            max_risk_per_trade_percent=cfg.max_risk_per_trade_percent,
            atr_multiplier=cfg.atr_multiplier,
            max_leverage=cfg.max_leverage,
            fallback=balance_scaled,
        )
    if mode == "kelly":
        return KellySizer(base=balance_scaled, lookback=cfg.kelly_lookback, min_trades=cfg.kelly_min_trades)
    raise ConfigError(f"Unknown sizing mode: {mode}")
