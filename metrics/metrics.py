"""Performance metrics calculation.

Summary statistics for a backtest run plus the detailed analytics used by the
analytics stage (monthly performance, drawdown periods, trade statistics and
volatility-adjusted returns).
"""

import math
from typing import Any, Dict, List, Sequence, Tuple

import numpy as np
import pandas as pd

from engine.models import BacktestSummary, EquityPoint, ExitReason, Trade

# Profit factor reported when there are winning trades but no losses
PROFIT_FACTOR_SENTINEL = float(2 ** 53 - 1)

WEEKDAY_NAMES = ["Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday"]


def calculate_profit_factor(trades: Sequence[Trade]) -> float:
    """
    Calculate profit factor (gross winnings / gross losses).

    Args:
        trades: Closed trades

    Returns:
        Profit factor; PROFIT_FACTOR_SENTINEL when there are wins and no losses,
        0.0 when there are no trades or no wins
    """
    if not trades:
        return 0.0

    gross_win = sum(t.profit for t in trades if t.profit > 0)
    gross_loss = abs(sum(t.profit for t in trades if t.profit <= 0))

    if gross_loss == 0:
        return PROFIT_FACTOR_SENTINEL if gross_win > 0 else 0.0
    return float(gross_win / gross_loss)


def calculate_equity_returns(equity: Sequence[float]) -> np.ndarray:
    """
    Calculate period returns from a sequence of equity values.

    Periods that start from a non-positive equity are dropped.

    Args:
        equity: Equity values in time order

    Returns:
        Array of fractional returns
    """
    values = np.asarray(list(equity), dtype=float)
    if len(values) < 2:
        return np.array([])

    previous = values[:-1]
    valid = previous > 0
    returns = (values[1:][valid] - previous[valid]) / previous[valid]
    return returns[np.isfinite(returns)]


def calculate_sharpe_ratio(
    returns: np.ndarray,
    risk_free_rate: float = 0.0,
    periods_per_year: float = 365
) -> float:
    """
    Calculate annualized Sharpe ratio.

    Args:
        returns: Array of period returns
        risk_free_rate: Risk-free rate per period (default 0.0)
        periods_per_year: Number of periods per year for annualization

    Returns:
        Sharpe ratio, 0.0 when undefined (fewer than two returns or zero volatility)
    """
    if len(returns) < 2:
        return 0.0

    excess = np.asarray(returns, dtype=float) - risk_free_rate
    std = float(np.std(excess))
    if std == 0 or not math.isfinite(std):
        return 0.0
    return float(np.mean(excess) / std * math.sqrt(periods_per_year))


def calculate_sortino_ratio(
    returns: np.ndarray,
    risk_free_rate: float = 0.0,
    periods_per_year: float = 365
) -> float:
    """
    Calculate Sortino ratio (downside deviation only).

    Args:
        returns: Array of returns
        risk_free_rate: Risk-free rate (default 0.0)
        periods_per_year: Number of periods per year for annualization

    Returns:
        Sortino ratio, 0.0 when there is no downside
    """
    if len(returns) == 0:
        return 0.0

    excess = np.asarray(returns, dtype=float) - risk_free_rate
    downside = excess[excess < 0]
    if len(downside) == 0:
        return 0.0

    downside_std = math.sqrt(float(np.mean(downside ** 2)))
    if downside_std == 0:
        return 0.0
    return float(np.mean(excess) / downside_std * math.sqrt(periods_per_year))


def calculate_max_drawdown_pct(equity: Sequence[float]) -> float:
    """Largest peak-to-trough decline of an equity sequence, in percent [0, 100]."""
    values = np.asarray(list(equity), dtype=float)
    if len(values) == 0:
        return 0.0
    peaks = np.maximum.accumulate(values)
    with np.errstate(divide="ignore", invalid="ignore"):
        drawdowns = np.where(peaks > 0, (peaks - values) / peaks * 100.0, 0.0)
    return float(min(100.0, max(0.0, np.nanmax(drawdowns))))


def calculate_cagr(
    initial_capital: float,
    final_capital: float,
    years: float
) -> float:
    """
    Calculate Compound Annual Growth Rate (CAGR).

    Returns:
        CAGR as a percentage
    """
    if initial_capital <= 0 or years <= 0:
        return 0.0

    if final_capital <= 0:
        return -100.0

    return float(((final_capital / initial_capital) ** (1.0 / years) - 1.0) * 100.0)


def calculate_calmar_ratio(
    cagr: float,
    max_drawdown_pct: float
) -> float:
    """Calmar ratio (CAGR / max drawdown %); 0.0 when there is no drawdown."""
    if max_drawdown_pct == 0:
        return 0.0
    return float(cagr / abs(max_drawdown_pct))


def calculate_avg_holding_period(trades: Sequence[Trade]) -> float:
    """Average number of bars between entry and exit."""
    if not trades:
        return 0.0
    return float(sum(t.holding_bars for t in trades) / len(trades))


def calculate_exit_reason_rates(trades: Sequence[Trade]) -> Tuple[float, float]:
    """Percent of trades closed by stop-loss and by take-profit."""
    if not trades:
        return 0.0, 0.0
    total = len(trades)
    stops = sum(1 for t in trades if t.exit_reason is ExitReason.STOP_LOSS)
    targets = sum(1 for t in trades if t.exit_reason is ExitReason.TAKE_PROFIT)
    return stops / total * 100.0, targets / total * 100.0


def build_summary(
    initial_balance: float,
    final_balance: float,
    trades: Sequence[Trade],
    equity_curve: Sequence[EquityPoint],
    max_drawdown_pct: float,
    periods_per_year: float = 365
) -> BacktestSummary:
    """
    Build the summary statistics of a completed run.

    Args:
        initial_balance: Starting balance
        final_balance: Balance after the last trade
        trades: Closed trades
        equity_curve: Equity points recorded by the engine
        max_drawdown_pct: Running max drawdown tracked by the engine (intrabar aware)
        periods_per_year: Annualization factor for the Sharpe ratio

    Returns:
        BacktestSummary
    """
    if not trades and not equity_curve:
        return BacktestSummary.empty(initial_balance)

    wins = [t.profit for t in trades if t.profit > 0]
    losses = [t.profit for t in trades if t.profit <= 0]
    total = len(trades)
    profit = final_balance - initial_balance

    returns = calculate_equity_returns(p.equity for p in equity_curve)
    stop_rate, target_rate = calculate_exit_reason_rates(trades)
    drawdown = max(max_drawdown_pct, calculate_max_drawdown_pct([initial_balance] + [p.equity for p in equity_curve]))

    return BacktestSummary(
        initial_balance=initial_balance,
        final_balance=final_balance,
        profit=profit,
        profit_percent=profit / initial_balance * 100.0 if initial_balance else 0.0,
        total_trades=total,
        winning_trades=len(wins),
        losing_trades=len(losses),
        win_rate=len(wins) / total * 100.0 if total else 0.0,
        avg_win=sum(wins) / len(wins) if wins else 0.0,
        avg_loss=abs(sum(losses) / len(losses)) if losses else 0.0,
        profit_factor=calculate_profit_factor(trades),
        max_drawdown_percent=min(100.0, max(0.0, drawdown)),
        sharpe_ratio=calculate_sharpe_ratio(returns, periods_per_year=periods_per_year),
        avg_holding_period=calculate_avg_holding_period(trades),
        stop_loss_rate=stop_rate,
        take_profit_rate=target_rate,
    )


# ---------------------------------------------------------------------------
# Detailed analytics
# ---------------------------------------------------------------------------

def _equity_frame(equity_curve: Sequence[EquityPoint]) -> pd.DataFrame:
    return pd.DataFrame(
        {"equity": [p.equity for p in equity_curve]},
        index=pd.DatetimeIndex([p.time for p in equity_curve]),
    )


def calculate_monthly_performance(
    equity_curve: Sequence[EquityPoint],
    trades: Sequence[Trade] = ()
) -> Dict[str, Dict[str, float]]:
    """
    Calculate per-month equity change and trade counts.

    A month's start equity is the last equity of the previous month (or the
    first point for the first month).

    Returns:
        Mapping 'YYYY-MM' -> {startEquity, endEquity, return, profit, trades, winRate}
    """
    if not equity_curve:
        return {}

    frame = _equity_frame(equity_curve)
    month_end = frame["equity"].groupby(frame.index.to_period("M")).last()
    previous_end = month_end.shift(1)
    previous_end.iloc[0] = float(frame["equity"].iloc[0])

    trade_rows = pd.DataFrame(
        {"profit": [t.profit for t in trades]},
        index=pd.DatetimeIndex([t.exit_time for t in trades]),
    )
    by_month = trade_rows.groupby(trade_rows.index.to_period("M"))["profit"] if len(trade_rows) else None

    performance = {}
    for period, end_equity in month_end.items():
        start_equity = float(previous_end.loc[period])
        month_profits = (
            by_month.get_group(period) if by_month is not None and period in by_month.groups else pd.Series(dtype=float)
        )
        count = int(len(month_profits))
        performance[str(period)] = {
            "startEquity": start_equity,
            "endEquity": float(end_equity),
            "return": (float(end_equity) - start_equity) / start_equity * 100.0 if start_equity else 0.0,
            "profit": float(month_profits.sum()),
            "trades": count,
            "winRate": float((month_profits > 0).sum()) / count * 100.0 if count else 0.0,
        }
    return performance


def analyze_drawdown_periods(equity_curve: Sequence[EquityPoint]) -> List[Dict[str, Any]]:
    """
    Identify distinct drawdown periods.

    A period starts at the first point below the running peak and ends at the
    first point making a new peak (recovered) or at the last point.

    Returns:
        List of {start, end, maxDrawdown, durationDays, durationBars, recovered}
    """
    periods: List[Dict[str, Any]] = []
    if not equity_curve:
        return periods

    peak = equity_curve[0].equity
    current = None

    for i, point in enumerate(equity_curve[1:], start=1):
        if point.equity > peak:
            peak = point.equity
            if current is not None:
                current.update(_close_period(current, point, i, recovered=True))
                periods.append(current)
                current = None
        elif point.equity < peak and peak > 0:
            depth = (peak - point.equity) / peak * 100.0
            if current is None:
                current = {"start": point.time, "startIndex": i, "maxDrawdown": depth}
            else:
                current["maxDrawdown"] = max(current["maxDrawdown"], depth)

    if current is not None:
        last = equity_curve[-1]
        current.update(_close_period(current, last, len(equity_curve) - 1, recovered=False))
        periods.append(current)

    for period in periods:
        period.pop("startIndex")
        period["start"] = pd.Timestamp(period["start"]).isoformat()
        period["end"] = pd.Timestamp(period["end"]).isoformat()
    return periods


def _close_period(current: Dict[str, Any], point: EquityPoint, index: int, recovered: bool) -> Dict[str, Any]:
    duration = pd.Timestamp(point.time) - pd.Timestamp(current["start"])
    return {
        "end": point.time,
        "durationDays": duration.total_seconds() / 86400.0,
        "durationBars": index - current["startIndex"],
        "recovered": recovered,
    }


def analyze_trade_statistics(trades: Sequence[Trade]) -> Dict[str, Any]:
    """
    Trade statistics by entry hour and weekday, plus win/loss streaks.

    Returns:
        {hourlyPerformance, dailyPerformance, maxWinStreak, maxLossStreak,
         avgWinHoldingBars, avgLossHoldingBars}
    """
    hourly = {hour: {"count": 0, "wins": 0, "profit": 0.0} for hour in range(24)}
    daily = {name: {"count": 0, "wins": 0, "profit": 0.0} for name in WEEKDAY_NAMES}

    streak = 0
    max_win_streak = 0
    max_loss_streak = 0

    for trade in trades:
        entry = pd.Timestamp(trade.entry_time)
        for bucket in (hourly[entry.hour], daily[WEEKDAY_NAMES[entry.weekday()]]):
            bucket["count"] += 1
            bucket["profit"] += trade.profit
            if trade.profit > 0:
                bucket["wins"] += 1

        if trade.profit > 0:
            streak = streak + 1 if streak >= 0 else 1
            max_win_streak = max(max_win_streak, streak)
        else:
            streak = streak - 1 if streak <= 0 else -1
            max_loss_streak = max(max_loss_streak, -streak)

    win_bars = [t.holding_bars for t in trades if t.profit > 0]
    loss_bars = [t.holding_bars for t in trades if t.profit <= 0]

    return {
        "hourlyPerformance": hourly,
        "dailyPerformance": daily,
        "maxWinStreak": max_win_streak,
        "maxLossStreak": max_loss_streak,
        "avgWinHoldingBars": float(np.mean(win_bars)) if win_bars else 0.0,
        "avgLossHoldingBars": float(np.mean(loss_bars)) if loss_bars else 0.0,
    }


def calculate_volatility_adjusted_returns(
    equity_curve: Sequence[EquityPoint],
    periods_per_year: float = 365,
    max_drawdown_pct: float = 0.0
) -> Dict[str, float]:
    """
    Return and volatility statistics of the equity curve.

    Returns:
        {avgReturn, volatility, annualizedReturn, annualizedVolatility,
         sharpeRatio, sortinoRatio, calmarRatio}
    """
    returns = calculate_equity_returns(p.equity for p in equity_curve)
    if len(returns) < 2:
        return {
            "avgReturn": 0.0,
            "volatility": 0.0,
            "annualizedReturn": 0.0,
            "annualizedVolatility": 0.0,
            "sharpeRatio": 0.0,
            "sortinoRatio": 0.0,
            "calmarRatio": 0.0,
        }

    avg_return = float(np.mean(returns))
    volatility = float(np.std(returns))
    annualized_return = avg_return * periods_per_year * 100.0

    return {
        "avgReturn": avg_return,
        "volatility": volatility,
        "annualizedReturn": annualized_return,
        "annualizedVolatility": volatility * math.sqrt(periods_per_year),
        "sharpeRatio": calculate_sharpe_ratio(returns, periods_per_year=periods_per_year),
        "sortinoRatio": calculate_sortino_ratio(returns, periods_per_year=periods_per_year),
        "calmarRatio": calculate_calmar_ratio(annualized_return, max_drawdown_pct),
    }
