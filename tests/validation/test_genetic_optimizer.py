"""Tests for the genetic parameter optimizer."""

import math
import threading

import numpy as np
import pandas as pd
import pytest

from engine.backtest_engine import BacktestEngine
from engine.cancellation import CancellationToken
from engine.errors import ConfigError
from engine.models import BacktestSummary
from strategies.ma_crossover import MovingAverageCrossover
from validation.genetic_optimizer import GeneticOptimizer, calculate_fitness

RANGES = {
    "short_period": {"min": 3, "max": 8},
    "long_period": {"min": 12, "max": 24},
}


def _optimizer(**optimizer_config):
    config = {"population_size": 6, "generations": 3, "seed": 7, "max_workers": 1}
    config.update(optimizer_config)
    return GeneticOptimizer(
        "moving_average_crossover",
        RANGES,
        backtest_config={"allow_short": True},
        optimizer_config=config,
    )


def test_calculate_fitness_metrics():
    summary = BacktestSummary(
        initial_balance=1000.0,
        final_balance=1100.0,
        profit=100.0,
        profit_percent=10.0,
        win_rate=50.0,
        profit_factor=2.0,
    )

    assert calculate_fitness(summary, "profit") == 100.0
    assert calculate_fitness(summary, "profitPercent") == 10.0
    assert calculate_fitness(summary, "winRate") == 50.0
    assert calculate_fitness(summary, "profitFactor") == 2.0
    assert calculate_fitness(summary, "combined") == pytest.approx(10.0 * 0.5 * 2.0)
    with pytest.raises(ConfigError):
        calculate_fitness(summary, "sortino")


def test_unknown_parameter_rejected():
    with pytest.raises(ConfigError, match="Unknown parameters"):
        GeneticOptimizer("moving_average_crossover", {"bogus": {"min": 1, "max": 2}})


def test_empty_ranges_rejected():
    with pytest.raises(ConfigError):
        GeneticOptimizer("moving_average_crossover", {})


def test_random_params_respect_ranges():
    optimizer = _optimizer()

    for _ in range(50):
        params = optimizer.random_params()
        assert isinstance(params["short_period"], int)
        assert 3 <= params["short_period"] <= 8
        assert 12 <= params["long_period"] <= 24


def test_float_ranges_draw_floats():
    optimizer = GeneticOptimizer(
        "moving_average_crossover",
        {"volume_threshold": {"min": 0.5, "max": 2.0}},
        optimizer_config={"seed": 1},
    )

    value = optimizer.random_params()["volume_threshold"]
    assert isinstance(value, float)
    assert 0.5 <= value <= 2.0


def test_crossover_takes_genes_from_parents():
    optimizer = _optimizer()
    p1 = {"short_period": 3, "long_period": 12}
    p2 = {"short_period": 8, "long_period": 24}

    for _ in range(20):
        child = optimizer.crossover(p1, p2)
        assert child["short_period"] in (3, 8)
        assert child["long_period"] in (12, 24)


def test_mutation_rate_zero_keeps_params():
    optimizer = _optimizer(mutation_rate=0.0)
    params = {"short_period": 5, "long_period": 20}

    assert optimizer.mutate(params) == params


def test_next_generation_keeps_elites():
    optimizer = _optimizer(elite_count=2)
    ranked = [
        ({"short_period": 5, "long_period": 20}, 9.0),
        ({"short_period": 4, "long_period": 15}, 5.0),
        ({"short_period": 3, "long_period": 12}, 1.0),
    ]

    population = optimizer.next_generation(ranked)

    assert len(population) == 6
    assert population[:2] == [ranked[0][0], ranked[1][0]]


def test_next_generation_without_successes_draws_random_population():
    population = _optimizer().next_generation([])
    assert len(population) == 6


def test_optimize(wave_candles):
    result = _optimizer().optimize(wave_candles)

    assert result.success
    assert result.generations_completed == 3
    assert len(result.fitness_history) == 3
    assert result.fitness_history == sorted(result.fitness_history)
    assert result.best_fitness == result.fitness_history[-1]

    fitnesses = [record.fitness for record in result.all_results]
    assert fitnesses == sorted(fitnesses, reverse=True)
    assert result.best_params == result.all_results[0].params
    assert result.best_result.summary.profit_percent == pytest.approx(result.best_fitness)

    # Each parameter set is evaluated once
    keys = [tuple(sorted(r.params.items())) for r in result.all_results]
    assert len(keys) == len(set(keys))


def test_best_result_matches_direct_backtest(wave_candles):
    result = _optimizer().optimize(wave_candles)

    direct = BacktestEngine({"allow_short": True}).run(wave_candles, MovingAverageCrossover(result.best_params))
    assert direct.summary.profit_percent == pytest.approx(result.best_fitness)


def test_results_do_not_depend_on_worker_count(wave_candles):
    serial = _optimizer(max_workers=1).optimize(wave_candles)
    parallel = _optimizer(max_workers=4).optimize(wave_candles)

    assert [r.params for r in serial.all_results] == [r.params for r in parallel.all_results]
    assert serial.fitness_history == parallel.fitness_history
    assert serial.best_params == parallel.best_params


def test_same_seed_same_result(wave_candles):
    first = _optimizer(seed=11).optimize(wave_candles)
    second = _optimizer(seed=11).optimize(wave_candles)

    assert first.to_dict() == second.to_dict()


def test_invalid_combinations_fail_cleanly(wave_candles):
    optimizer = GeneticOptimizer(
        "moving_average_crossover",
        {"short_period": {"min": 25, "max": 30}, "long_period": {"min": 10, "max": 20}},
        optimizer_config={"population_size": 4, "generations": 2, "seed": 3},
    )

    result = optimizer.optimize(wave_candles)

    assert result.success is False
    assert "No parameter set" in result.error
    assert result.generations_completed == 2


def test_cancelled_before_start(wave_candles):
    token = CancellationToken()
    token.cancel()

    result = _optimizer().optimize(wave_candles, cancel_token=token)

    assert result.success is False
    assert result.cancelled is True
    assert result.generations_completed == 0


class CancelBetweenGenerations(CancellationToken):
    """Reads as cancelled from the first check made on the coordinating thread."""

    def is_cancelled(self):
        if threading.current_thread() is threading.main_thread():
            self.cancel()
        return super().is_cancelled()


def test_cancel_keeps_completed_generations(wave_candles):
    result = _optimizer(max_workers=2).optimize(wave_candles, cancel_token=CancelBetweenGenerations())

    assert result.success is True
    assert result.cancelled is True
    assert result.generations_completed == 1
    assert len(result.fitness_history) == 1
    assert all(record.generation == 1 for record in result.all_results)
    assert result.to_dict()["cancelled"] is True


def test_custom_strategy_factory(wave_candles):
    def factory(params):
        return MovingAverageCrossover({"ma_type": "ema", **params})

    optimizer = GeneticOptimizer(
        factory,
        RANGES,
        optimizer_config={"population_size": 4, "generations": 2, "seed": 5, "max_workers": 2},
    )

    result = optimizer.optimize(wave_candles)

    assert result.success
    assert result.best_result.strategy_name == "moving_average_crossover"
    assert optimizer.strategy_name == "factory"


def test_optimizer_uses_injected_rng():
    a = GeneticOptimizer("moving_average_crossover", RANGES, rng=np.random.default_rng(123))
    b = GeneticOptimizer("moving_average_crossover", RANGES, rng=np.random.default_rng(123))

    assert [a.random_params() for _ in range(5)] == [b.random_params() for _ in range(5)]


def _sine_candles(make_candles):
    return make_candles([100.0 + 8.0 * math.sin(i / 7.0) + 0.05 * i for i in range(200)])


def test_reused_optimizer_matches_fresh_one(wave_candles, make_candles):
    other_candles = _sine_candles(make_candles)
    optimizer = _optimizer()
    optimizer.optimize(wave_candles)

    optimizer.rng = np.random.default_rng(7)
    reused = optimizer.optimize(other_candles)
    fresh = _optimizer().optimize(other_candles)

    assert reused.success
    assert reused.to_dict() == fresh.to_dict()


def test_generation_best_never_drops_with_elites(wave_candles):
    result = _optimizer(mutation_rate=1.0, population_size=8, generations=6, elite_count=1).optimize(wave_candles)

    history = result.fitness_history
    assert len(history) == 6
    assert all(later >= earlier for earlier, later in zip(history, history[1:]))
    assert result.best_fitness == history[-1]
    # Fully mutated children do score below the previous generation's best
    assert any(
        record.fitness < history[record.generation - 2]
        for record in result.all_results
        if record.generation > 1
    )


def test_invalid_candle_frame_returns_failure():
    result = _optimizer().optimize(pd.DataFrame({"close": [100.0, 101.0, 102.0]}))

    assert result.success is False
    assert "Invalid candles" in result.error
    assert result.generations_completed == 0
