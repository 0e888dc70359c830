"""Tests for the moving average crossover strategy."""

import pytest

from engine.errors import ConfigError
from engine.models import SignalType, candles_to_frame
from strategies import MovingAverageCrossover, StrategyBase

# Falls to 106, rises to 126, falls back to 106. With SMA(3)/SMA(5) the short
# average crosses above at index 10 and back below at index 20.
V_THEN_FALL = (
    [120.0 - 2 * i for i in range(8)]
    + [108.0 + 2 * i for i in range(10)]
    + [124.0 - 2 * i for i in range(10)]
)


def _strategy(**params):
    base = {"short_period": 3, "long_period": 5}
    base.update(params)
    return MovingAverageCrossover(base)


def test_crossovers_produce_one_buy_and_one_sell(make_candles):
    candles = make_candles(V_THEN_FALL)

    signals = _strategy().generate(candles)

    assert [(s.candle_index, s.type) for s in signals] == [(10, SignalType.BUY), (20, SignalType.SELL)]
    assert signals[0].price == candles[10].close
    assert signals[0].time == candles[10].time
    assert signals[0].source == "moving_average_crossover"
    assert "crossed above" in signals[0].reason
    assert "crossed below" in signals[1].reason


def test_signal_indices_strictly_increase(wave_candles):
    signals = _strategy(short_period=5, long_period=20).generate(wave_candles)

    indices = [s.candle_index for s in signals]
    assert len(indices) > 2
    assert indices == sorted(set(indices))


def test_crossover_directions_alternate(wave_candles):
    signals = _strategy(short_period=5, long_period=20).generate(wave_candles)

    for previous, current in zip(signals, signals[1:]):
        assert previous.type is not current.type


def test_dataframe_input(make_candles):
    candles = make_candles(V_THEN_FALL)

    from_list = _strategy().generate(candles)
    from_frame = _strategy().generate(candles_to_frame(candles))

    assert [s.to_dict() for s in from_frame] == [s.to_dict() for s in from_list]


def test_insufficient_data_returns_no_signals(make_candles):
    # Warm-up is long_period + 5 = 10 candles
    assert _strategy().generate(make_candles(V_THEN_FALL[:9])) == []
    assert _strategy().generate([]) == []


def test_short_period_must_be_below_long_period():
    with pytest.raises(ConfigError):
        MovingAverageCrossover({"short_period": 10, "long_period": 5})
    with pytest.raises(ConfigError):
        MovingAverageCrossover({"short_period": 5, "long_period": 5})


def test_camel_case_parameters():
    strategy = MovingAverageCrossover({"shortPeriod": 4, "longPeriod": 12, "maType": "ema"})

    assert strategy.config.short_period == 4
    assert strategy.config.long_period == 12
    assert strategy.config.ma_type == "ema"


def test_keyword_overrides():
    strategy = MovingAverageCrossover({"short_period": 4, "long_period": 12}, long_period=30)
    assert strategy.config.long_period == 30


def test_unknown_parameter_rejected():
    with pytest.raises(ConfigError):
        MovingAverageCrossover({"short_period": 3, "long_period": 5, "colour": "red"})


def test_rejecting_filter_blocks_all_signals(make_candles):
    # make_candles pads every body, so no candle reaches a body ratio of 1.0
    strategy = _strategy(use_candle_filter=True, min_body_ratio=1.0)

    assert strategy.generate(make_candles(V_THEN_FALL)) == []


def test_signals_wait_for_filter_warmup(make_candles):
    # RSI(14) is defined from index 14, which hides the BUY at index 10
    strategy = _strategy(use_rsi_filter=True, rsi_period=14)

    signals = strategy.generate(make_candles(V_THEN_FALL))

    assert [(s.candle_index, s.type) for s in signals] == [(20, SignalType.SELL)]
    assert "1/1 filters passed" in signals[0].reason


def test_latest_signal_on_crossover_candle(make_candles):
    result = _strategy().latest_signal(make_candles(V_THEN_FALL[:21]))

    assert result["signal"] == "SELL"
    assert result["analysis"]["trend"] == "DOWN"
    assert result["analysis"]["lastPrice"] == V_THEN_FALL[20]
    assert result["analysis"]["shortMA"] == pytest.approx(122.0)
    assert result["analysis"]["longMA"] == pytest.approx(123.2)


def test_latest_signal_neutral(make_candles):
    result = _strategy().latest_signal(make_candles(V_THEN_FALL))

    assert result["signal"] == "NEUTRAL"
    assert result["analysis"]["trend"] == "DOWN"


def test_latest_signal_insufficient_data(make_candles):
    result = _strategy().latest_signal(make_candles(V_THEN_FALL[:5]))

    assert result["signal"] == "NEUTRAL"
    assert "Insufficient data" in result["reason"]


def test_strategy_info_and_params():
    strategy = _strategy()

    info = strategy.get_info()
    assert info["name"] == "moving_average_crossover"
    assert info["warmupPeriod"] == 10
    assert info["params"]["short_period"] == 3

    changed = strategy.with_params(long_period=8)
    assert isinstance(changed, MovingAverageCrossover)
    assert changed.config.long_period == 8
    assert strategy.config.long_period == 5


def test_strategy_base_is_abstract():
    with pytest.raises(TypeError):
        StrategyBase()
