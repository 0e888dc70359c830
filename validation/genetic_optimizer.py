"""Genetic parameter optimization for strategies.

A population of parameter sets is evolved over a number of generations:

1. Every parameter set is backtested (concurrently, one thread per evaluation)
   and scored with the configured fitness metric.
2. The top half becomes the parent pool.
3. The next generation keeps the elites unchanged and fills the rest with
   children built by uniform crossover of two random parents, then per-gene
   mutation.

All random draws happen on the coordinating thread from a single generator,
so a fixed seed reproduces the whole run regardless of thread scheduling.

Evaluations run on a thread pool rather than a process pool: strategy
factories may be closures, and the CancellationToken is a threading.Event,
neither of which crosses a process boundary. Set max_workers=1 for serial runs;
CPU-bound backtests gain little from extra threads.
"""

from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple, Union
import logging
import math

import numpy as np
from tqdm import tqdm

from config.schema import BacktestConfig, OptimizerConfig, ParamRange, validate_model
from engine.backtest_engine import BacktestEngine, BacktestResult
from engine.cancellation import CancellationToken
from engine.errors import ConfigError, DataError
from engine.models import BacktestSummary, CandleInput, ensure_candles
from strategies.base.strategy_base import StrategyBase
from strategies.registry import StrategyId, create_strategy, get_strategy_class

logger = logging.getLogger(__name__)

ParameterSet = Dict[str, Union[int, float]]
StrategyFactory = Callable[[ParameterSet], StrategyBase]

# Marker returned by a worker that saw the cancel flag before starting
_SKIPPED = object()


def calculate_fitness(summary: BacktestSummary, metric: str) -> float:
    """
    Score a backtest summary.

    Args:
        summary: Backtest summary
        metric: profit, profitPercent, winRate, profitFactor or combined

    Returns:
        Fitness value (higher is better)
    """
    if metric == "profit":
        return summary.profit
    if metric == "profitPercent":
        return summary.profit_percent
    if metric == "winRate":
        return summary.win_rate
    if metric == "profitFactor":
        return summary.profit_factor
    if metric == "combined":
        return summary.profit_percent * (summary.win_rate / 100.0) * summary.profit_factor
    raise ConfigError(f"Unknown optimization metric: {metric}")


def param_key(params: Mapping[str, Any]) -> Tuple:
    return tuple(sorted(params.items()))


@dataclass
class EvaluationRecord:
    """One evaluated parameter set."""
    params: ParameterSet
    result: BacktestResult
    fitness: float
    generation: int

    def to_dict(self) -> Dict[str, Any]:
        summary = self.result.summary
        return {
            "params": dict(self.params),
            "profit": summary.profit,
            "profitPercent": summary.profit_percent,
            "winRate": summary.win_rate,
            "trades": summary.total_trades,
            "profitFactor": summary.profit_factor,
            "fitness": self.fitness,
            "generation": self.generation,
        }


@dataclass
class OptimizationResult:
    """Outcome of a genetic optimization run.

    Attributes:
        success: False when no parameter set produced a usable backtest
        best_params: Highest-fitness parameter set
        best_result: Backtest result of best_params
        best_fitness: Fitness of best_params
        all_results: Every evaluated parameter set, sorted by fitness descending
        fitness_history: Best fitness within each completed generation's population
            (non-decreasing while elite_count >= 1)
        generations_completed: Number of generations fully evaluated
        cancelled: True when the run stopped early on a cancellation token
        error: Failure reason when success is False
    """
    success: bool
    best_params: Optional[ParameterSet] = None
    best_result: Optional[BacktestResult] = None
    best_fitness: Optional[float] = None
    all_results: List[EvaluationRecord] = field(default_factory=list)
    fitness_history: List[float] = field(default_factory=list)
    generations_completed: int = 0
    cancelled: bool = False
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        if not self.success:
            return {
                "success": False,
                "error": self.error,
                "cancelled": self.cancelled,
                "generationsCompleted": self.generations_completed,
            }
        return {
            "success": True,
            "bestParams": dict(self.best_params),
            "bestResult": self.best_result.to_dict(),
            "bestFitness": self.best_fitness,
            "allResults": [r.to_dict() for r in self.all_results],
            "fitnessHistory": list(self.fitness_history),
            "generationsCompleted": self.generations_completed,
            "cancelled": self.cancelled,
        }


class GeneticOptimizer:
    """Evolves strategy parameters toward a fitness metric.

    Example:
        optimizer = GeneticOptimizer(
            "moving_average_crossover",
            {"short_period": {"min": 5, "max": 20}, "long_period": {"min": 21, "max": 60}},
            backtest_config={"initialBalance": 10000},
            optimizer_config={"populationSize": 20, "generations": 10},
        )
        result = optimizer.optimize(candles)
    """

    def __init__(
        self,
        strategy: Union[str, StrategyId, StrategyFactory],
        param_ranges: Mapping[str, Union[ParamRange, Mapping[str, Any]]],
        backtest_config: Union[BacktestConfig, Dict[str, Any], None] = None,
        optimizer_config: Union[OptimizerConfig, Dict[str, Any], None] = None,
        rng: Optional[np.random.Generator] = None,
        base_params: Optional[Mapping[str, Any]] = None
    ):
        """
        Initialize optimizer.

        Args:
            strategy: Registered strategy id, or a callable params -> strategy
            param_ranges: Parameter name -> {min, max, type?}
            backtest_config: Engine configuration used for every evaluation
            optimizer_config: Population, generations, mutation rate, metric, seed
            rng: Optional generator overriding the configured seed
            base_params: Fixed strategy parameters merged under each parameter set

        Raises:
            ConfigError: If any configuration or parameter range is invalid
        """
        self.config = validate_model(OptimizerConfig, optimizer_config)
        self.backtest_config = validate_model(BacktestConfig, backtest_config)
        self.param_ranges = self._validate_ranges(param_ranges)
        self.base_params = dict(base_params or {})
        self.rng = rng if rng is not None else np.random.default_rng(self.config.seed)
        self.logger = logging.getLogger(__name__)

        if callable(strategy) and not isinstance(strategy, (str, StrategyId)):
            self.strategy_factory: StrategyFactory = strategy
            self.strategy_name = getattr(strategy, "__name__", "custom")
        else:
            cls = get_strategy_class(strategy)
            self._check_known_params(cls)
            self.strategy_name = cls.name
            self.strategy_factory = lambda params: create_strategy(cls.name, {**self.base_params, **params})

    @staticmethod
    def _validate_ranges(param_ranges) -> Dict[str, ParamRange]:
        if not param_ranges:
            raise ConfigError("At least one parameter range is required")
        return {name: validate_model(ParamRange, bounds) for name, bounds in param_ranges.items()}

    def _check_known_params(self, cls) -> None:
        known = set()
        for name, info in cls.config_model.model_fields.items():
            known.add(name)
            if info.alias:
                known.add(info.alias)
        unknown = [name for name in self.param_ranges if name not in known]
        if unknown:
            raise ConfigError(f"Unknown parameters for {cls.name}: {unknown}")

    # ------------------------------------------------------------------
    # Genetic operators (coordinating thread only)
    # ------------------------------------------------------------------

    def _random_value(self, bounds: ParamRange) -> Union[int, float]:
        if bounds.is_integer:
            return int(self.rng.integers(int(bounds.min), int(bounds.max) + 1))
        return float(self.rng.uniform(bounds.min, bounds.max))

    def random_params(self) -> ParameterSet:
        return {name: self._random_value(bounds) for name, bounds in self.param_ranges.items()}

    def crossover(self, parent1: ParameterSet, parent2: ParameterSet) -> ParameterSet:
        """Uniform crossover: each gene comes from either parent with equal probability."""
        return {
            name: parent1[name] if self.rng.random() < 0.5 else parent2[name]
            for name in self.param_ranges
        }

    def mutate(self, params: ParameterSet) -> ParameterSet:
        mutated = dict(params)
        for name, bounds in self.param_ranges.items():
            if self.rng.random() < self.config.mutation_rate:
                mutated[name] = self._random_value(bounds)
        return mutated

    def next_generation(self, ranked: List[Tuple[ParameterSet, float]]) -> List[ParameterSet]:
        """
        Build the next population from parameter sets ranked by fitness.

        Args:
            ranked: (params, fitness) pairs sorted by fitness descending

        Returns:
            New population of population_size parameter sets
        """
        size = self.config.population_size
        if not ranked:
            self.logger.warning("No successful evaluations in generation, drawing a new random population")
            return [self.random_params() for _ in range(size)]

        parents = ranked[:max(2, len(ranked) // 2)]
        population = [dict(params) for params, _ in ranked[:min(self.config.elite_count, len(ranked), size)]]

        while len(population) < size:
            p1 = parents[int(self.rng.integers(len(parents)))][0]
            p2 = parents[int(self.rng.integers(len(parents)))][0]
            population.append(self.mutate(self.crossover(p1, p2)))
        return population

    # ------------------------------------------------------------------
    # Evaluation
    # ------------------------------------------------------------------

    def _evaluate(self, candles, params: ParameterSet, cancel_token: Optional[CancellationToken]):
        """Backtest one parameter set; None when it cannot be ranked."""
        if cancel_token is not None and cancel_token.is_cancelled():
            return _SKIPPED

        try:
            strategy = self.strategy_factory(params)
        except ConfigError as e:
            self.logger.debug(f"Rejected parameters {params}: {e}")
            return None

        result = BacktestEngine(self.backtest_config).run(candles, strategy)
        if not result.success or result.summary is None:
            self.logger.debug(f"Backtest failed for {params}: {result.error}")
            return None

        fitness = calculate_fitness(result.summary, self.config.optimization_metric)
        if not math.isfinite(fitness):
            return None
        return result, fitness

    def _evaluate_generation(
        self,
        executor: ThreadPoolExecutor,
        candles,
        population: List[ParameterSet],
        cache: Dict[Tuple, Optional[Tuple[BacktestResult, float]]],
        cancel_token: Optional[CancellationToken]
    ) -> Tuple[Dict[Tuple, Optional[Tuple[BacktestResult, float]]], bool]:
        """
        Evaluate every parameter set of a generation not already in `cache`.

        Returns:
            (newly evaluated key -> outcome, whether the generation completed)
        """
        pending: Dict[Tuple, ParameterSet] = {}
        for params in population:
            key = param_key(params)
            if key not in cache and key not in pending:
                pending[key] = params

        future_map = {
            executor.submit(self._evaluate, candles, params, cancel_token): key
            for key, params in pending.items()
        }

        outcomes: Dict[Tuple, Optional[Tuple[BacktestResult, float]]] = {}
        complete = True
        for future in as_completed(future_map):
            key = future_map[future]
            try:
                outcome = future.result()
            except Exception:
                self.logger.exception(f"Evaluation failed for {dict(key)}")
                outcome = None
            if outcome is _SKIPPED:
                complete = False
                continue
            outcomes[key] = outcome
        return outcomes, complete

    # ------------------------------------------------------------------
    # Main loop
    # ------------------------------------------------------------------

    def optimize(
        self,
        candles: CandleInput,
        cancel_token: Optional[CancellationToken] = None,
        show_progress: bool = False
    ) -> OptimizationResult:
        """
        Run the genetic optimization.

        Args:
            candles: Candles or OHLCV DataFrame used for every evaluation
            cancel_token: Optional cancellation token / deadline
            show_progress: Show a tqdm progress bar over generations

        Returns:
            OptimizationResult (success=False on unusable candles or when no
            evaluation succeeds)
        """
        try:
            candle_list = ensure_candles(candles)
        except DataError as e:
            self.logger.error(f"Optimization aborted, invalid candles: {e}")
            return OptimizationResult(success=False, error=f"Invalid candles: {e}")

        metric = self.config.optimization_metric
        self.logger.info(
            f"Starting genetic optimization: strategy={self.strategy_name}, "
            f"population={self.config.population_size}, generations={self.config.generations}, metric={metric}"
        )

        population = [self.random_params() for _ in range(self.config.population_size)]
        # Outcomes are only valid for this candle set
        cache: Dict[Tuple, Optional[Tuple[BacktestResult, float]]] = {}
        records: List[EvaluationRecord] = []
        fitness_history: List[float] = []
        generations_completed = 0
        cancelled = False

        generations = range(self.config.generations)
        if show_progress:
            generations = tqdm(generations, desc="Generations")

        with ThreadPoolExecutor(max_workers=self.config.max_workers) as executor:
            for generation in generations:
                outcomes, complete = self._evaluate_generation(executor, candle_list, population, cache, cancel_token)
                if not complete:
                    self.logger.warning(f"Optimization cancelled during generation {generation + 1}, discarding it")
                    cancelled = True
                    break

                # Record new evaluations in population order
                for params in population:
                    key = param_key(params)
                    if key in outcomes and key not in cache:
                        outcome = outcomes[key]
                        cache[key] = outcome
                        if outcome is not None:
                            result, fitness = outcome
                            records.append(EvaluationRecord(dict(params), result, fitness, generation + 1))

                ranked = [
                    (params, cache[param_key(params)][1])
                    for params in population
                    if cache.get(param_key(params)) is not None
                ]
                ranked.sort(key=lambda item: item[1], reverse=True)
                generations_completed += 1

                generation_best = ranked[0][1] if ranked else float("-inf")
                fitness_history.append(generation_best)
                self.logger.info(
                    f"Generation {generation + 1}/{self.config.generations}: "
                    f"evaluated={len(ranked)}/{len(population)}, best {metric}={generation_best:.4f}"
                )

                if cancel_token is not None and cancel_token.is_cancelled():
                    cancelled = True
                    break
                if generation < self.config.generations - 1:
                    population = self.next_generation(ranked)

        if not records:
            error = (
                "Optimization cancelled before any generation completed"
                if cancelled
                else "No parameter set produced a successful backtest"
            )
            self.logger.error(error)
            return OptimizationResult(
                success=False,
                error=error,
                cancelled=cancelled,
                generations_completed=generations_completed,
            )

        ordered = sorted(records, key=lambda r: r.fitness, reverse=True)
        best = ordered[0]
        self.logger.info(f"Optimization complete: best params={best.params}, {metric}={best.fitness:.4f}")

        return OptimizationResult(
            success=True,
            best_params=dict(best.params),
            best_result=best.result,
            best_fitness=best.fitness,
            all_results=ordered,
            fitness_history=fitness_history,
            generations_completed=generations_completed,
            cancelled=cancelled,
        )
