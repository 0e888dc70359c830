# validation/monte_carlo/resampler.py
"""
Monte Carlo trade-order resampling.

Each trial shuffles the per-trade returns (Fisher-Yates) and compounds them
from the initial balance:
    equity_{t+1} = equity_t * (1 + return_perm[t])
Compounding commutes, so the terminal equity only moves with floating point
error between orderings; the per-path max drawdown is what the ordering
changes. Both distributions are reported.

Trials are split into fixed-size chunks. Every chunk owns a generator spawned
from SeedSequence(seed), so results do not depend on how many workers run the
chunks.
"""

from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Union
import logging
import math

import numpy as np
from tqdm import tqdm

from config.schema import MonteCarloConfig, validate_model
from engine.backtest_engine import BacktestResult
from engine.cancellation import CancellationToken
from engine.errors import ConfigError
from engine.models import Trade
from metrics.metrics import calculate_max_drawdown_pct

logger = logging.getLogger(__name__)

DEFAULT_INITIAL_BALANCE = 10000.0

TradeInput = Union[BacktestResult, Sequence[Trade], Sequence[float], np.ndarray]


@dataclass
class MonteCarloResult:
    """Distribution of terminal equities over shuffled trade orders."""
    success: bool
    initial_balance: float = 0.0
    simulations: int = 0
    worst_case: float = 0.0
    best_case: float = 0.0
    median_case: float = 0.0
    mean: float = 0.0
    ci_lower: float = 0.0
    ci_upper: float = 0.0
    confidence_interval: float = 0.95
    probability_of_loss: float = 0.0
    median_max_drawdown: float = 0.0
    worst_max_drawdown: float = 0.0
    cancelled: bool = False
    terminal_equities: np.ndarray = field(default_factory=lambda: np.array([], dtype=float))
    max_drawdowns: np.ndarray = field(default_factory=lambda: np.array([], dtype=float))
    sample_curves: List[List[float]] = field(default_factory=list)
    error: Optional[str] = None

    @classmethod
    def failure(cls, error: str, cancelled: bool = False) -> "MonteCarloResult":
        return cls(success=False, error=error, cancelled=cancelled)

    def to_dict(self) -> Dict[str, Any]:
        if not self.success:
            out = {"success": False, "error": self.error}
            if self.cancelled:
                out["cancelled"] = True
            return out
        return {
            "success": True,
            "initialBalance": self.initial_balance,
            "simulations": self.simulations,
            "worstCase": self.worst_case,
            "bestCase": self.best_case,
            "medianCase": self.median_case,
            "mean": self.mean,
            "confidenceInterval": {
                "lower": self.ci_lower,
                "upper": self.ci_upper,
                "percentage": self.confidence_interval * 100,
            },
            "probabilityOfLoss": self.probability_of_loss,
            "maxDrawdown": {
                "median": self.median_max_drawdown,
                "worst": self.worst_max_drawdown,
            },
            "cancelled": self.cancelled,
            "sampleCurves": self.sample_curves,
        }


def extract_returns(trades: TradeInput) -> np.ndarray:
    """Per-trade return fractions from trades, a backtest result, or raw returns."""
    if isinstance(trades, BacktestResult):
        return trades.trade_returns
    items = list(trades)
    if not items:
        return np.array([], dtype=float)
    if isinstance(items[0], Trade):
        return np.array([t.profit_percent / 100.0 for t in items], dtype=float)
    return np.asarray(items, dtype=float)


def shuffle_in_place(values: np.ndarray, rng: np.random.Generator) -> np.ndarray:
    """Fisher-Yates shuffle driven by `rng`."""
    for i in range(len(values) - 1, 0, -1):
        j = int(rng.integers(0, i + 1))
        values[i], values[j] = values[j], values[i]
    return values


def simulate_path(returns: np.ndarray, initial_balance: float, rng: np.random.Generator) -> np.ndarray:
    """Equity path for one shuffled ordering of `returns` (initial balance first)."""
    shuffled = shuffle_in_place(returns.copy(), rng)
    path = np.empty(len(shuffled) + 1, dtype=float)
    path[0] = initial_balance
    equity = initial_balance
    for t, r in enumerate(shuffled, start=1):
        equity *= (1.0 + r)
        path[t] = equity
    return path


class MonteCarloEngine:
    """Runs Monte Carlo trade-order simulations in parallel chunks.

    Args:
        seed: Root seed; identical seeds give identical results
        max_workers: Thread pool size (None -> executor default, 1 -> serial)
        chunk_size: Trials per chunk (each chunk has its own generator)
        sample_curves: Number of equity paths kept for plotting
    """

    def __init__(
        self,
        seed: Optional[int] = 42,
        max_workers: Optional[int] = None,
        chunk_size: int = 250,
        sample_curves: int = 10
    ):
        self.seed = seed
        self.max_workers = max_workers
        self.chunk_size = max(1, int(chunk_size))
        self.sample_curves = max(0, int(sample_curves))
        self.logger = logging.getLogger(__name__)

    @classmethod
    def from_config(cls, config: Union[MonteCarloConfig, Dict[str, Any], None]) -> "MonteCarloEngine":
        cfg = validate_model(MonteCarloConfig, config)
        return cls(
            seed=cfg.seed,
            max_workers=cfg.max_workers,
            chunk_size=cfg.chunk_size,
            sample_curves=cfg.sample_curves,
        )

    def run(
        self,
        trades: TradeInput,
        initial_balance: Optional[float] = None,
        simulations: int = 1000,
        confidence_interval: float = 0.95,
        cancel_token: Optional[CancellationToken] = None,
        show_progress: bool = False
    ) -> MonteCarloResult:
        """
        Run the simulation.

        Args:
            trades: Trades (profit_percent used), a BacktestResult, or return fractions
            initial_balance: Starting equity (taken from a BacktestResult when omitted)
            simulations: Number of trials
            confidence_interval: Two-sided interval width in (0, 1)
            cancel_token: Optional cancellation token, checked between trials
            show_progress: Show a tqdm progress bar over chunks

        Returns:
            MonteCarloResult (success=False on invalid input or no trades)
        """
        try:
            cfg = validate_model(MonteCarloConfig, {
                "simulations": simulations,
                "confidence_interval": confidence_interval,
                "seed": self.seed,
                "chunk_size": self.chunk_size,
            })
        except ConfigError as e:
            self.logger.error(f"Invalid Monte Carlo settings: {e}")
            return MonteCarloResult.failure(str(e))

        if initial_balance is None:
            if isinstance(trades, BacktestResult) and trades.summary is not None:
                initial_balance = trades.initial_balance
            else:
                initial_balance = DEFAULT_INITIAL_BALANCE
        if not math.isfinite(initial_balance) or initial_balance <= 0:
            return MonteCarloResult.failure(f"Invalid initial balance: {initial_balance}")

        try:
            returns = extract_returns(trades)
        except (TypeError, ValueError, AttributeError) as e:
            self.logger.error(f"Unusable Monte Carlo input: {e}")
            return MonteCarloResult.failure(f"Invalid trade returns: {e}")
        if len(returns) == 0:
            self.logger.warning("Monte Carlo requested without trades")
            return MonteCarloResult.failure("No trades to simulate")
        if not np.all(np.isfinite(returns)):
            return MonteCarloResult.failure("Trade returns contain non-finite values")

        self.logger.info(f"Starting Monte Carlo simulation: {cfg.simulations} trials over {len(returns)} trades")

        chunks = self._plan_chunks(cfg.simulations)
        children = np.random.SeedSequence(cfg.seed).spawn(len(chunks))
        chunk_results: Dict[int, List[np.ndarray]] = {}

        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            future_map = {
                executor.submit(
                    self._run_chunk, returns, initial_balance, count, np.random.default_rng(child), cancel_token
                ): idx
                for idx, (count, child) in enumerate(zip(chunks, children))
            }
            completed = as_completed(future_map)
            if show_progress:
                completed = tqdm(completed, total=len(future_map), desc="Monte Carlo")
            for future in completed:
                idx = future_map[future]
                try:
                    chunk_results[idx] = future.result()
                except Exception:
                    self.logger.exception(f"Monte Carlo chunk {idx} failed")
                    chunk_results[idx] = []

        # Chunk order, not completion order
        paths = [path for idx in range(len(chunks)) for path in chunk_results.get(idx, [])]
        # Only a run that actually stopped short counts as cancelled
        cancelled = (
            len(paths) < cfg.simulations
            and cancel_token is not None
            and cancel_token.is_cancelled()
        )

        if not paths:
            if cancelled:
                return MonteCarloResult.failure("Cancelled before any trial completed", cancelled=True)
            return MonteCarloResult.failure("No simulation completed")

        result = self._summarize(paths, initial_balance, cfg.confidence_interval)
        result.cancelled = cancelled
        self.logger.info(
            f"Monte Carlo complete: median={result.median_case:.2f}, "
            f"CI=[{result.ci_lower:.2f}, {result.ci_upper:.2f}], trials={result.simulations}"
        )
        return result

    def _plan_chunks(self, simulations: int) -> List[int]:
        full, rest = divmod(simulations, self.chunk_size)
        chunks = [self.chunk_size] * full
        if rest:
            chunks.append(rest)
        return chunks

    @staticmethod
    def _run_chunk(
        returns: np.ndarray,
        initial_balance: float,
        count: int,
        rng: np.random.Generator,
        cancel_token: Optional[CancellationToken]
    ) -> List[np.ndarray]:
        paths = []
        for _ in range(count):
            if cancel_token is not None and cancel_token.is_cancelled():
                break
            paths.append(simulate_path(returns, initial_balance, rng))
        return paths

    def _summarize(self, paths: List[np.ndarray], initial_balance: float, ci: float) -> MonteCarloResult:
        terminal = np.array([p[-1] for p in paths], dtype=float)
        drawdowns = np.array([calculate_max_drawdown_pct(p) for p in paths], dtype=float)
        ordered = np.sort(terminal)
        n = len(ordered)

        lower_index = int(math.floor((1 - ci) / 2 * n))
        upper_index = min(int(math.floor((1 + ci) / 2 * n)), n - 1)

        return MonteCarloResult(
            success=True,
            initial_balance=initial_balance,
            simulations=n,
            worst_case=float(ordered[0]),
            best_case=float(ordered[-1]),
            median_case=float(ordered[n // 2]),
            mean=float(ordered.mean()),
            ci_lower=float(ordered[lower_index]),
            ci_upper=float(ordered[upper_index]),
            confidence_interval=ci,
            probability_of_loss=float((terminal < initial_balance).mean() * 100),
            median_max_drawdown=float(np.sort(drawdowns)[n // 2]),
            worst_max_drawdown=float(drawdowns.max()),
            terminal_equities=terminal,
            max_drawdowns=drawdowns,
            sample_curves=[p.tolist() for p in paths[:self.sample_curves]],
        )
