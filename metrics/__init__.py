"""Performance metrics calculation."""

from metrics.metrics import (
    PROFIT_FACTOR_SENTINEL,
    analyze_drawdown_periods,
    analyze_trade_statistics,
    build_summary,
    calculate_avg_holding_period,
    calculate_cagr,
    calculate_calmar_ratio,
    calculate_equity_returns,
    calculate_exit_reason_rates,
    calculate_max_drawdown_pct,
    calculate_monthly_performance,
    calculate_profit_factor,
    calculate_sharpe_ratio,
    calculate_sortino_ratio,
    calculate_volatility_adjusted_returns,
)

__all__ = [
    'PROFIT_FACTOR_SENTINEL',
    'analyze_drawdown_periods',
    'analyze_trade_statistics',
    'build_summary',
    'calculate_avg_holding_period',
    'calculate_cagr',
    'calculate_calmar_ratio',
    'calculate_equity_returns',
    'calculate_exit_reason_rates',
    'calculate_max_drawdown_pct',
    'calculate_monthly_performance',
    'calculate_profit_factor',
    'calculate_sharpe_ratio',
    'calculate_sortino_ratio',
    'calculate_volatility_adjusted_returns',
]
