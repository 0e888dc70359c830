"""Tests for Monte Carlo trade-order resampling."""

import functools
import itertools
import math
from datetime import datetime

import numpy as np
import pytest

from engine.backtest_engine import BacktestEngine
from engine.cancellation import CancellationToken
from engine.models import ExitReason, SignalType, Trade
from strategies.ma_crossover import MovingAverageCrossover
from validation.monte_carlo import MonteCarloEngine, extract_returns, shuffle_in_place, simulate_path

MIXED_RETURNS = [0.05, -0.03, 0.02, -0.01, 0.04, -0.06, 0.03]


def _trade(profit_percent):
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
        profit=profit_percent * 100.0,
        profit_percent=profit_percent,
        fee=0.0,
        exit_reason=ExitReason.SIGNAL,
    )


def test_identical_returns_have_no_spread():
    trades = [_trade(1.0)] * 10

    result = MonteCarloEngine(seed=1).run(trades, initial_balance=10000.0, simulations=200)

    expected = 10000.0 * 1.01 ** 10
    assert result.success
    assert result.worst_case == pytest.approx(expected)
    assert result.best_case == pytest.approx(expected)
    assert result.median_case == pytest.approx(expected)
    assert result.ci_lower == pytest.approx(expected)
    assert result.ci_upper == pytest.approx(expected)
    assert np.ptp(result.terminal_equities) == pytest.approx(0.0, abs=1e-6)
    assert result.probability_of_loss == 0.0
    assert result.worst_max_drawdown == 0.0


def test_no_trades():
    result = MonteCarloEngine().run([], simulations=10)

    assert result.success is False
    assert result.error == "No trades to simulate"
    assert result.to_dict() == {"success": False, "error": "No trades to simulate"}


@pytest.mark.parametrize("kwargs", [
    {"confidence_interval": 1.5},
    {"confidence_interval": 0.0},
    {"simulations": 0},
    {"initial_balance": -5.0},
])
def test_invalid_settings(kwargs):
    result = MonteCarloEngine().run(MIXED_RETURNS, **kwargs)

    assert result.success is False
    assert result.error


def test_order_statistics():
    result = MonteCarloEngine(seed=5, chunk_size=40).run(MIXED_RETURNS, simulations=100, confidence_interval=0.9)

    ordered = np.sort(result.terminal_equities)
    assert result.simulations == 100
    assert result.worst_case == ordered[0]
    assert result.best_case == ordered[-1]
    assert result.median_case == ordered[50]
    assert result.ci_lower == ordered[math.floor((1 - 0.9) / 2 * 100)]
    assert result.ci_upper == ordered[min(math.floor((1 + 0.9) / 2 * 100), 99)]
    assert result.worst_case <= result.ci_lower <= result.median_case <= result.ci_upper <= result.best_case


def test_results_do_not_depend_on_worker_count():
    serial = MonteCarloEngine(seed=3, max_workers=1, chunk_size=10).run(MIXED_RETURNS, simulations=95)
    parallel = MonteCarloEngine(seed=3, max_workers=4, chunk_size=10).run(MIXED_RETURNS, simulations=95)

    np.testing.assert_array_equal(serial.terminal_equities, parallel.terminal_equities)
    np.testing.assert_array_equal(serial.max_drawdowns, parallel.max_drawdowns)
    assert serial.sample_curves == parallel.sample_curves


def test_shuffling_changes_drawdown_not_terminal_equity():
    result = MonteCarloEngine(seed=9).run(MIXED_RETURNS, simulations=300)

    assert np.ptp(result.terminal_equities) == pytest.approx(0.0, abs=1e-6)
    assert np.ptp(result.max_drawdowns) > 0
    assert 0.0 <= result.median_max_drawdown <= result.worst_max_drawdown <= 100.0


def test_different_seeds_give_different_paths():
    a = MonteCarloEngine(seed=1, sample_curves=20).run(MIXED_RETURNS, simulations=20)
    b = MonteCarloEngine(seed=2, sample_curves=20).run(MIXED_RETURNS, simulations=20)

    assert a.sample_curves != b.sample_curves


def test_sample_curves_start_at_initial_balance():
    result = MonteCarloEngine(sample_curves=3).run(MIXED_RETURNS, initial_balance=500.0, simulations=10)

    assert len(result.sample_curves) == 3
    for curve in result.sample_curves:
        assert curve[0] == 500.0
        assert len(curve) == len(MIXED_RETURNS) + 1


def test_shuffle_is_a_permutation():
    values = np.arange(20, dtype=float)
    shuffled = shuffle_in_place(values.copy(), np.random.default_rng(0))

    assert sorted(shuffled.tolist()) == values.tolist()


def test_simulate_path_compounds_returns():
    path = simulate_path(np.array([0.1, 0.1]), 100.0, np.random.default_rng(0))
    assert path.tolist() == pytest.approx([100.0, 110.0, 121.0])


def test_extract_returns_inputs():
    trades = [_trade(2.0), _trade(-1.0)]

    assert extract_returns(trades).tolist() == pytest.approx([0.02, -0.01])
    assert extract_returns([0.5, -0.5]).tolist() == [0.5, -0.5]
    assert len(extract_returns([])) == 0


def test_run_on_backtest_result(wave_candles):
    backtest = BacktestEngine({"initial_balance": 2500.0, "allow_short": True}).run(
        wave_candles, MovingAverageCrossover({"short_period": 5, "long_period": 20})
    )

    result = MonteCarloEngine(seed=4).run(backtest, simulations=50)

    assert result.success
    assert result.initial_balance == 2500.0
    assert result.to_dict()["confidenceInterval"]["percentage"] == pytest.approx(95.0)


def test_cancelled_before_start():
    token = CancellationToken()
    token.cancel()

    result = MonteCarloEngine().run(MIXED_RETURNS, simulations=100, cancel_token=token)

    assert result.success is False
    assert result.cancelled is True


def test_from_config():
    engine = MonteCarloEngine.from_config({"seed": 8, "maxWorkers": 2, "chunkSize": 5, "sampleCurves": 1})

    assert engine.seed == 8
    assert engine.max_workers == 2
    assert engine.chunk_size == 5
    assert engine.sample_curves == 1


def _counting_clock():
    """Clock that advances by one on every read."""
    return functools.partial(next, itertools.count(1))


def test_deadline_after_last_trial_is_not_cancelled():
    # One read per trial, then the deadline is reached
    token = CancellationToken(deadline=41, clock=_counting_clock())

    result = MonteCarloEngine(max_workers=1).run(MIXED_RETURNS, simulations=40, cancel_token=token)

    assert result.success
    assert result.simulations == 40
    assert result.cancelled is False


def test_deadline_mid_run_reports_completed_trials():
    token = CancellationToken(deadline=6, clock=_counting_clock())

    result = MonteCarloEngine(max_workers=1).run(MIXED_RETURNS, simulations=20, cancel_token=token)

    assert result.success
    assert result.cancelled is True
    assert result.simulations == 5


def test_unusable_returns_fail_cleanly():
    result = MonteCarloEngine().run(["up", "down"], simulations=10)

    assert result.success is False
    assert "Invalid trade returns" in result.error
