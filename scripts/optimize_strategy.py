#!/usr/bin/env python3
"""Optimize strategy parameters with a genetic search."""

import argparse
import json
import logging
import sys
from pathlib import Path

from adapters.data import ProviderError, load_candles_csv
from config.config_loader import load_run_config
from engine.cancellation import CancellationToken
from engine.errors import ConfigError
from validation.genetic_optimizer import GeneticOptimizer


def parse_param_range(values):
    """Parse ['name', 'min', 'max'] into (name, {min, max, type})."""
    name, low, high = values
    is_int = all(v.lstrip('-').isdigit() for v in (low, high))
    cast = int if is_int else float
    return name, {'min': cast(low), 'max': cast(high), 'type': 'int' if is_int else 'float'}


def main():
    parser = argparse.ArgumentParser(
        description='Optimize strategy parameters with a genetic algorithm',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Default search space from config/defaults.yml
  python3 scripts/optimize_strategy.py --data data/BTCUSDT_1h.csv

  # Custom ranges and metric
  python3 scripts/optimize_strategy.py \\
    --data data/BTCUSDT_1h.csv \\
    --param short_period 3 15 \\
    --param long_period 20 80 \\
    --metric combined \\
    --population 30 --generations 15 --timeout 600
        """
    )

    parser.add_argument('--data', type=str, required=True, help='Path to data file (CSV or Parquet)')
    parser.add_argument('--config', type=str, help='Run config YAML merged over config/defaults.yml')
    parser.add_argument(
        '--param',
        type=str,
        nargs=3,
        action='append',
        metavar=('NAME', 'MIN', 'MAX'),
        help='Parameter range to search (can specify multiple times); replaces configured ranges'
    )
    parser.add_argument(
        '--metric',
        type=str,
        choices=['profit', 'profitPercent', 'winRate', 'profitFactor', 'combined'],
        help='Fitness metric (default from config: profitPercent)'
    )
    parser.add_argument('--population', type=int, help='Population size')
    parser.add_argument('--generations', type=int, help='Number of generations')
    parser.add_argument('--mutation-rate', type=float, help='Per-gene mutation probability')
    parser.add_argument('--seed', type=int, help='Random seed')
    parser.add_argument('--workers', type=int, help='Parallel evaluations (default: executor default)')
    parser.add_argument('--timeout', type=float, help='Stop after this many seconds (keeps completed generations)')
    parser.add_argument('--top', type=int, default=10, help='Number of top results to print (default: 10)')
    parser.add_argument('--output', type=str, help='Write the optimization result as JSON to this path')
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

    optimizer_overrides = {
        key: value
        for key, value in (
            ('optimization_metric', args.metric),
            ('population_size', args.population),
            ('generations', args.generations),
            ('mutation_rate', args.mutation_rate),
            ('seed', args.seed),
            ('max_workers', args.workers),
        )
        if value is not None
    }
    overrides = {'optimizer': optimizer_overrides}
    if args.param:
        overrides['param_ranges'] = dict(parse_param_range(p) for p in args.param)

    try:
        run_config = load_run_config(args.config, overrides)
        candles = load_candles_csv(args.data)
        optimizer = GeneticOptimizer(
            run_config.strategy,
            run_config.param_ranges,
            backtest_config=run_config.backtest,
            optimizer_config=run_config.optimizer,
            base_params=run_config.strategy_params,
        )
    except (ConfigError, FileNotFoundError, ProviderError, ValueError) as e:
        print(f"Error: {e}")
        sys.exit(1)

    print(f"\nOptimizing {run_config.strategy} over {len(candles)} candles")
    print(f"Parameters: {', '.join(run_config.param_ranges)}")
    print(f"Metric: {run_config.optimizer.optimization_metric}\n")

    token = CancellationToken(timeout=args.timeout) if args.timeout else None
    result = optimizer.optimize(candles, cancel_token=token, show_progress=not args.no_progress)

    if not result.success:
        print(f"Optimization failed: {result.error}")
        sys.exit(1)

    print("\n" + "=" * 80)
    print("OPTIMIZATION RESULTS")
    print("=" * 80)
    print(f"Generations completed: {result.generations_completed}"
          + (" (cancelled)" if result.cancelled else ""))
    print(f"Best parameters: {result.best_params}")
    print(f"Best fitness: {result.best_fitness:.4f}\n")

    print(f"{'Rank':<6}{'Fitness':>12}{'Profit %':>12}{'Win rate':>10}{'Trades':>8}  Params")
    for rank, record in enumerate(result.all_results[:args.top], start=1):
        row = record.to_dict()
        print(f"{rank:<6}{row['fitness']:>12.4f}{row['profitPercent']:>12.2f}"
              f"{row['winRate']:>10.2f}{row['trades']:>8}  {row['params']}")

    if args.output:
        output_path = Path(args.output)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        with open(output_path, 'w') as f:
            json.dump(result.to_dict(), f, indent=2, default=str)
        print(f"\nResults saved to: {output_path}")


if __name__ == '__main__':
    main()
