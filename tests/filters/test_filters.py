"""Tests for signal filters and the filter vote."""

from datetime import datetime

import numpy as np
import pandas as pd
import pytest

from config.schema import MovingAverageCrossoverConfig
from engine.errors import ComputationError
from engine.models import SignalType, candles_to_frame
from strategies.filters import (
    BollingerBandFilter,
    CandleBodyFilter,
    FilterBase,
    FilterContext,
    FilterManager,
    MACDFilter,
    RSIFilter,
    TrendFilter,
    VolumeFilter,
    required_votes,
)


def _context(direction=SignalType.BUY, **values):
    series = {name: np.array([value], dtype=float) for name, value in values.items()}
    return FilterContext(index=0, timestamp=datetime(2024, 1, 1), signal_direction=direction, series=series)


class FixedVoteFilter(FilterBase):
    def __init__(self, name, passed):
        super().__init__()
        self.name = name
        self.passed = passed

    def check(self, context):
        if self.passed:
            return self._create_pass_result()
        return self._create_fail_result(f"{self.name} says no")


@pytest.mark.parametrize("strength,total,expected", [
    ("weak", 3, 1),
    ("medium", 3, 2),
    ("medium", 4, 2),
    ("strong", 3, 3),
    ("strong", 0, 0),
])
def test_required_votes(strength, total, expected):
    assert required_votes(strength, total) == expected


def test_required_votes_unknown_strength():
    with pytest.raises(ValueError):
        required_votes("extreme", 2)


def test_context_value_errors():
    context = FilterContext(
        index=1,
        timestamp=datetime(2024, 1, 1),
        signal_direction=SignalType.BUY,
        series={"close": np.array([1.0, 2.0]), "rsi": np.array([np.nan, np.nan])},
    )

    assert context.value("close") == 2.0
    assert context.value("close", offset=-1) == 1.0
    with pytest.raises(ComputationError):
        context.value("missing")
    with pytest.raises(ComputationError):
        context.value("close", offset=1)
    with pytest.raises(ComputationError):
        context.value("rsi")


def test_rsi_filter():
    rsi_filter = RSIFilter({"overbought": 70, "oversold": 30})

    assert not rsi_filter.check(_context(SignalType.BUY, rsi=75.0)).passed
    assert rsi_filter.check(_context(SignalType.SELL, rsi=75.0)).passed
    assert rsi_filter.check(_context(SignalType.BUY, rsi=25.0)).passed
    assert not rsi_filter.check(_context(SignalType.SELL, rsi=25.0)).passed


def test_volume_filter():
    volume_filter = VolumeFilter({"threshold": 1.5})

    assert volume_filter.check(_context(volume=150.0, volume_avg=100.0)).passed
    result = volume_filter.check(_context(volume=120.0, volume_avg=100.0))
    assert not result.passed
    assert "below" in result.reason


def test_trend_filter():
    trend_filter = TrendFilter({"period": 50})

    assert trend_filter.check(_context(SignalType.BUY, close=110.0, trend_ma=100.0)).passed
    assert not trend_filter.check(_context(SignalType.SELL, close=110.0, trend_ma=100.0)).passed


def test_macd_filter():
    macd_filter = MACDFilter()

    assert macd_filter.check(_context(SignalType.BUY, macd=1.0, macd_signal=0.5)).passed
    assert not macd_filter.check(_context(SignalType.SELL, macd=1.0, macd_signal=0.5)).passed


def test_bollinger_filter():
    bollinger = BollingerBandFilter()

    assert not bollinger.check(_context(SignalType.BUY, close=111.0, bb_upper=110.0)).passed
    assert bollinger.check(_context(SignalType.SELL, close=95.0, bb_lower=90.0)).passed


def test_candle_body_filter():
    body = CandleBodyFilter({"min_body_ratio": 0.5})
    bullish = dict(open=100.0, close=104.0, high=105.0, low=99.0)

    assert body.check(_context(SignalType.BUY, **bullish)).passed
    assert not body.check(_context(SignalType.SELL, **bullish)).passed
    assert not body.check(_context(SignalType.BUY, open=100.0, close=100.0, high=100.0, low=100.0)).passed


def test_filter_missing_series_raises():
    with pytest.raises(ComputationError):
        RSIFilter().check(_context(close=100.0))


def test_manager_without_filters_always_passes():
    vote = FilterManager().apply_filters(_context(close=1.0))

    assert vote.passed
    assert vote.total == 0


@pytest.mark.parametrize("strength,passed", [("weak", True), ("medium", True), ("strong", False)])
def test_manager_vote(strength, passed):
    manager = FilterManager(
        [FixedVoteFilter("a", True), FixedVoteFilter("b", True), FixedVoteFilter("c", False)],
        strength=strength,
    )

    vote = manager.apply_filters(_context(close=1.0))

    assert vote.passed is passed
    assert vote.votes_passed == 2
    assert vote.total == 3
    assert vote.summary.startswith("2/3")


def test_manager_skips_disabled_filters():
    manager = FilterManager([RSIFilter({"enabled": False}), FixedVoteFilter("a", True)])

    assert manager.total == 1


def test_manager_rejects_unknown_strength():
    with pytest.raises(ValueError):
        FilterManager([], strength="extreme")


def test_manager_from_strategy_config(make_candles):
    config = MovingAverageCrossoverConfig(use_rsi_filter=True, use_macd_filter=True, filter_strength="strong")
    manager = FilterManager.from_strategy_config(config)

    assert [f.name for f in manager.filters] == ["RSIFilter", "MACDFilter"]
    assert manager.required == 2

    frame = candles_to_frame(make_candles(list(np.linspace(100.0, 130.0, 60))))
    series = manager.prepare(frame)
    assert set(series) == {"rsi", "macd", "macd_signal"}
    assert all(isinstance(s, pd.Series) and len(s) == 60 for s in series.values())
