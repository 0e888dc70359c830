#!/usr/bin/env python3
"""Run a backtest and a Monte Carlo trade-order simulation over its trades."""

import argparse
import json
import logging
import sys
from pathlib import Path

from adapters.data import ProviderError, load_candles_csv
from config.config_loader import load_run_config
from engine.backtest_engine import BacktestEngine
from engine.errors import ConfigError
from strategies.registry import create_strategy
from validation.monte_carlo import MonteCarloEngine


def main():
    parser = argparse.ArgumentParser(
        description='Monte Carlo simulation of backtest trade ordering',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python3 scripts/run_monte_carlo.py --data data/BTCUSDT_1h.csv
  python3 scripts/run_monte_carlo.py --data data/BTCUSDT_1h.csv --simulations 5000 --ci 0.99 --workers 4
        """
    )
    parser.add_argument('--data', type=str, required=True, help='Path to data file (CSV or Parquet)')
    parser.add_argument('--config', type=str, help='Run config YAML merged over config/defaults.yml')
    parser.add_argument('--simulations', type=int, help='Number of trials (default from config: 1000)')
    parser.add_argument('--ci', type=float, help='Confidence interval in (0, 1) (default from config: 0.95)')
    parser.add_argument('--seed', type=int, help='Random seed')
    parser.add_argument('--workers', type=int, help='Worker threads (results do not depend on it)')
    parser.add_argument('--output', type=str, help='Write the Monte Carlo result as JSON to this path')
    parser.add_argument('--no-progress', action='store_true', help='Disable the progress bar')
    parser.add_argument(
        '--log-level',
        type=str,
        default='INFO',
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
        help='Logging level (default: INFO)'
    )

    args = parser.parse_args()
    logging.basicConfig(level=getattr(logging, args.log_level), format='%(asctime)s %(levelname)s %(name)s: %(message)s')

    mc_overrides = {
        key: value
        for key, value in (
            ('simulations', args.simulations),
            ('confidence_interval', args.ci),
            ('seed', args.seed),
            ('max_workers', args.workers),
        )
        if value is not None
    }

    try:
        run_config = load_run_config(args.config, {'monte_carlo': mc_overrides})
        strategy = create_strategy(run_config.strategy, run_config.strategy_params)
        candles = load_candles_csv(args.data)
    except (ConfigError, FileNotFoundError, ProviderError) as e:
        print(f"Error: {e}")
        sys.exit(1)

    backtest = BacktestEngine(run_config.backtest).run(candles, strategy)
    if not backtest.success:
        print(f"Backtest failed: {backtest.error}")
        sys.exit(1)
    print(f"Backtest: {backtest.summary.total_trades} trades, profit {backtest.summary.profit_percent:.2f}%")

    mc_config = run_config.monte_carlo
    result = MonteCarloEngine.from_config(mc_config).run(
        backtest,
        simulations=mc_config.simulations,
        confidence_interval=mc_config.confidence_interval,
        show_progress=not args.no_progress,
    )
    if not result.success:
        print(f"Monte Carlo failed: {result.error}")
        sys.exit(1)

    print("\n" + "=" * 60)
    print(f"MONTE CARLO ({result.simulations} simulations)")
    print("=" * 60)
    print(f"Worst case:   {result.worst_case:,.2f}")
    print(f"Median case:  {result.median_case:,.2f}")
    print(f"Best case:    {result.best_case:,.2f}")
    print(f"{result.confidence_interval * 100:.0f}% CI:      {result.ci_lower:,.2f} .. {result.ci_upper:,.2f}")
    print(f"P(loss):      {result.probability_of_loss:.2f}%")
    print(f"Max drawdown: median {result.median_max_drawdown:.2f}%, worst {result.worst_max_drawdown:.2f}%")

    if args.output:
        output_path = Path(args.output)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        with open(output_path, 'w') as f:
            json.dump(result.to_dict(), f, indent=2)
        print(f"\nResult saved to: {output_path}")


if __name__ == '__main__':
    main()
