#!/usr/bin/env python3
"""Script to run backtests from command line."""

import argparse
import json
import logging
import sys
from pathlib import Path

from adapters.data import ProviderError, load_candles_csv
from config.config_loader import load_run_config
from engine.enhancements import build_pipeline
from engine.errors import ConfigError
from strategies.registry import available_strategies, create_strategy


def print_summary(result) -> None:
    summary = result.summary
    print("\n" + "=" * 60)
    print(f"BACKTEST RESULTS: {result.strategy_name}")
    print("=" * 60)
    print(f"Initial balance:   {summary.initial_balance:,.2f}")
    print(f"Final balance:     {summary.final_balance:,.2f}")
    print(f"Profit:            {summary.profit:,.2f} ({summary.profit_percent:.2f}%)")
    print(f"Trades:            {summary.total_trades} "
          f"(won {summary.winning_trades}, lost {summary.losing_trades})")
    print(f"Win rate:          {summary.win_rate:.2f}%")
    print(f"Profit factor:     {summary.profit_factor:.2f}")
    print(f"Max drawdown:      {summary.max_drawdown_percent:.2f}%")
    print(f"Sharpe ratio:      {summary.sharpe_ratio:.2f}")
    print(f"Avg holding (bars): {summary.avg_holding_period:.1f}")
    print("=" * 60)

    regime = result.analytics.get("marketRegime")
    if regime:
        print(f"Market regime:     {regime.get('currentRegime')}")
    mc = result.analytics.get("monteCarlo")
    if mc and mc.get("success"):
        ci = mc["confidenceInterval"]
        print(f"Monte Carlo median: {mc['medianCase']:,.2f} "
              f"({ci['percentage']:.0f}% CI {ci['lower']:,.2f} .. {ci['upper']:,.2f})")


def main():
    parser = argparse.ArgumentParser(
        description='Run a backtest on a strategy',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Default moving average crossover on a CSV file
  python scripts/run_backtest.py --data data/BTCUSDT_1h.csv

  # Custom config, enhancement stages and JSON output
  python scripts/run_backtest.py --data data/BTCUSDT_1h.csv --config my_run.yml \\
      --regime --volatility-adjustment --analytics --monte-carlo --output result.json
        """
    )
    parser.add_argument('--data', type=str, required=True, help='Path to data file (CSV or Parquet)')
    parser.add_argument('--config', type=str, help='Run config YAML merged over config/defaults.yml')
    parser.add_argument(
        '--strategy',
        type=str,
        help=f'Strategy id (available: {", ".join(available_strategies())})'
    )
    parser.add_argument('--capital', type=float, help='Initial balance override')
    parser.add_argument('--limit', type=int, help='Use only the most recent N candles')
    parser.add_argument('--regime', action='store_true', help='Add market regime detection')
    parser.add_argument('--volatility-adjustment', action='store_true', help='Adapt risk settings to volatility')
    parser.add_argument('--analytics', action='store_true', help='Add detailed analytics')
    parser.add_argument('--monte-carlo', action='store_true', help='Run Monte Carlo over the trades')
    parser.add_argument('--output', type=str, help='Write the full result as JSON to this path')
    parser.add_argument(
        '--log-level',
        type=str,
        default='INFO',
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
        help='Logging level (default: INFO)'
    )

    args = parser.parse_args()
    logging.basicConfig(level=getattr(logging, args.log_level), format='%(asctime)s %(levelname)s %(name)s: %(message)s')

    overrides = {
        'enhancements': {
            key: True
            for key, flag in (
                ('use_market_regime', args.regime),
                ('use_volatility_adjustment', args.volatility_adjustment),
                ('detailed_analytics', args.analytics),
                ('run_monte_carlo', args.monte_carlo),
            )
            if flag
        }
    }
    if args.strategy:
        overrides['strategy'] = args.strategy
    if args.capital is not None:
        overrides['backtest'] = {'initial_balance': args.capital}

    try:
        run_config = load_run_config(args.config, overrides)
        strategy = create_strategy(run_config.strategy, run_config.strategy_params)
        candles = load_candles_csv(args.data, limit=args.limit)
    except (ConfigError, FileNotFoundError, ProviderError) as e:
        print(f"Error: {e}")
        sys.exit(1)

    pipeline = build_pipeline(run_config.enhancements, run_config.backtest, run_config.monte_carlo)
    result = pipeline.run(candles, strategy)

    if not result.success:
        print(f"Backtest failed: {result.error}")
        sys.exit(1)

    print_summary(result)

    if args.output:
        output_path = Path(args.output)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        with open(output_path, 'w') as f:
            json.dump(result.to_dict(), f, indent=2, default=str)
        print(f"\nResult saved to: {output_path}")


if __name__ == '__main__':
    main()
