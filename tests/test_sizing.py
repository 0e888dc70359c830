"""Tests for position sizing policies."""

from datetime import datetime

import pytest

from engine.errors import ConfigError
from engine.models import ExitReason, SignalType, Trade
from engine.sizing import (
    AtrRiskSizer,
    BalanceScaledSizer,
    FixedPercentSizer,
    KellySizer,
    build_sizer,
    kelly_fraction,
)


def _trade(profit):
    now = datetime(2024, 1, 1)
    return Trade(
        type=SignalType.BUY,
        entry_price=100.0,
        exit_price=100.0,
        units=1.0,
        entry_time=now,
        exit_time=now,
        entry_index=0,
        exit_index=1,
        profit=profit,
        profit_percent=profit / 100.0,
        fee=0.0,
        exit_reason=ExitReason.SIGNAL,
    )


def test_fixed_percent_size():
    sizer = FixedPercentSizer(position_size_percent=10.0)
    assert sizer.size(balance=5000.0, price=1.0) == pytest.approx(500.0)


def test_fixed_percent_never_negative():
    sizer = FixedPercentSizer(position_size_percent=10.0)
    assert sizer.size(balance=-100.0, price=1.0) == 0.0


@pytest.mark.parametrize("balance,factor", [
    (1500.0, 1.0),
    (2500.0, 0.9),
    (6000.0, 0.7),
    (11000.0, 0.5),
])
def test_balance_scaled_factor(balance, factor):
    sizer = BalanceScaledSizer(position_size_percent=10.0, initial_balance=1000.0)
    assert sizer.adjustment_factor(balance) == factor
    assert sizer.size(balance=balance, price=1.0) == pytest.approx(balance * 0.1 * factor)


def test_atr_risk_size():
    fallback = BalanceScaledSizer(position_size_percent=1.0, initial_balance=10000.0)
    sizer = AtrRiskSizer(max_risk_per_trade_percent=1.0, atr_multiplier=2.0, max_leverage=1.0, fallback=fallback)

    # Risk 100 over a stop distance of 4 -> 25 units at price 100
    assert sizer.size(balance=10000.0, price=100.0, atr=2.0) == pytest.approx(2500.0)


def test_atr_risk_size_capped_by_leverage():
    fallback = BalanceScaledSizer(position_size_percent=1.0, initial_balance=10000.0)
    sizer = AtrRiskSizer(max_risk_per_trade_percent=1.0, atr_multiplier=2.0, max_leverage=1.0, fallback=fallback)

    assert sizer.size(balance=10000.0, price=100.0, atr=0.01) == pytest.approx(10000.0)


@pytest.mark.parametrize("atr", [None, 0.0, float("nan")])
def test_atr_risk_falls_back_without_atr(atr):
    fallback = BalanceScaledSizer(position_size_percent=1.0, initial_balance=10000.0)
    sizer = AtrRiskSizer(max_risk_per_trade_percent=1.0, atr_multiplier=2.0, max_leverage=1.0, fallback=fallback)

    assert sizer.size(balance=10000.0, price=100.0, atr=atr) == pytest.approx(100.0)


def test_kelly_default_below_min_trades():
    trades = [_trade(100.0)] * 5
    assert kelly_fraction(trades, lookback=30, min_trades=10) == 0.5


def test_kelly_half_fraction():
    trades = [_trade(100.0)] * 6 + [_trade(-50.0)] * 4
    # win rate 0.6, payoff 2 -> kelly 0.4 -> half 0.2
    assert kelly_fraction(trades, lookback=30, min_trades=10) == pytest.approx(0.2)


def test_kelly_clamped_to_minimum():
    trades = [_trade(-10.0)] * 12
    assert kelly_fraction(trades) == pytest.approx(0.1)


def test_kelly_without_losses():
    trades = [_trade(10.0)] * 12
    assert kelly_fraction(trades) == pytest.approx(0.5)


def test_kelly_uses_recent_trades_only():
    trades = [_trade(-10.0)] * 10 + [_trade(10.0)] * 30
    assert kelly_fraction(trades, lookback=30, min_trades=10) == pytest.approx(0.5)


def test_kelly_sizer_scales_base_size():
    base = BalanceScaledSizer(position_size_percent=10.0, initial_balance=10000.0)
    sizer = KellySizer(base=base, lookback=30, min_trades=10)
    trades = [_trade(100.0)] * 6 + [_trade(-50.0)] * 4

    assert sizer.size(balance=10000.0, price=1.0, trades=trades) == pytest.approx(1000.0 * 0.2)


def test_build_sizer_modes():
    assert isinstance(build_sizer(None), BalanceScaledSizer)
    assert isinstance(build_sizer({"sizing_mode": "fixed_percent"}), FixedPercentSizer)
    assert isinstance(build_sizer({"sizingMode": "kelly"}), KellySizer)
    assert isinstance(build_sizer({"sizing_mode": "atr_risk"}), AtrRiskSizer)


def test_atr_flag_overrides_sizing_mode():
    sizer = build_sizer({"sizing_mode": "kelly", "use_atr_position_sizing": True})
    assert isinstance(sizer, AtrRiskSizer)


def test_build_sizer_rejects_invalid_config():
    with pytest.raises(ConfigError):
        build_sizer({"sizing_mode": "martingale"})
