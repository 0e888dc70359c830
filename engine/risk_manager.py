"""Loss-limit gate for live trading.

RiskManager keeps a history of realized trade profits and reports whether the
losses booked in the current calendar day, ISO week (Monday start) or month
have reached their configured limits. The backtest and optimization code paths
do not use it.
"""

import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from config.schema import RiskLimitsConfig, validate_model

PERIODS = ("daily", "weekly", "monthly")
_LIMIT_FIELDS = {
    "daily": "max_daily_loss",
    "weekly": "max_weekly_loss",
    "monthly": "max_monthly_loss",
}


@dataclass(frozen=True)
class RiskViolation:
    """A loss limit that has been reached.

    Attributes:
        period: 'daily', 'weekly' or 'monthly'
        loss: Gross loss booked in the current period
        limit: Loss limit in currency units
        message: Human-readable description
    """
    period: str
    loss: float
    limit: float
    message: str

    def to_dict(self) -> Dict[str, Any]:
        return {"period": self.period, "loss": self.loss, "limit": self.limit, "message": self.message}


@dataclass(frozen=True)
class _TradeRecord:
    profit: float
    timestamp: datetime


def period_start(period: str, now: datetime) -> datetime:
    """Start of the calendar period containing `now`."""
    day = now.replace(hour=0, minute=0, second=0, microsecond=0)
    if period == "daily":
        return day
    if period == "weekly":
        return day - timedelta(days=day.weekday())
    if period == "monthly":
        return day.replace(day=1)
    raise ValueError(f"Unknown period: {period}")


class RiskManager:
    """Tracks realized losses against daily, weekly and monthly limits.

    Args:
        limits: Loss limits (absolute currency amounts or percent of initial balance)
        clock: Returns the current time; defaults to datetime.now
    """

    def __init__(
        self,
        limits: Union[RiskLimitsConfig, Dict[str, Any], None] = None,
        clock: Optional[Callable[[], datetime]] = None
    ):
        self.settings = validate_model(RiskLimitsConfig, limits)
        self.clock = clock or datetime.now
        self.logger = logging.getLogger(__name__)
        self._lock = threading.Lock()
        self._trades: List[_TradeRecord] = []
        self._warned: set = set()

    # ------------------------------------------------------------------
    # Recording
    # ------------------------------------------------------------------

    def record_trade(self, profit: float, timestamp: Optional[datetime] = None) -> None:
        """Record a realized trade profit (negative for a loss)."""
        record = _TradeRecord(profit=float(profit), timestamp=timestamp or self.clock())
        with self._lock:
            self._trades.append(record)
        self.logger.info(f"Trade recorded: profit={record.profit:.2f} at {record.timestamp.isoformat()}")

    def reset(self) -> None:
        with self._lock:
            self._trades.clear()
            self._warned.clear()

    # ------------------------------------------------------------------
    # Loss accounting
    # ------------------------------------------------------------------

    def _loss_since(self, start: datetime) -> float:
        with self._lock:
            return sum(abs(t.profit) for t in self._trades if t.profit < 0 and t.timestamp >= start)

    def period_loss(self, period: str) -> float:
        return self._loss_since(period_start(period, self.clock()))

    def daily_loss(self) -> float:
        return self.period_loss("daily")

    def weekly_loss(self) -> float:
        return self.period_loss("weekly")

    def monthly_loss(self) -> float:
        return self.period_loss("monthly")

    def limit_for(self, period: str) -> float:
        """Loss limit for a period in currency units."""
        raw = getattr(self.settings, _LIMIT_FIELDS[period])
        if self.settings.limit_mode == "percent":
            return self.settings.initial_balance * raw / 100.0
        return raw

    # ------------------------------------------------------------------
    # Checks
    # ------------------------------------------------------------------

    def check_risk_violation(self) -> Optional[RiskViolation]:
        """
        First period (daily, weekly, monthly) whose loss reached its limit.

        Returns:
            RiskViolation, or None when all limits are respected
        """
        now = self.clock()
        for period in PERIODS:
            start = period_start(period, now)
            loss = self._loss_since(start)
            limit = self.limit_for(period)
            if loss >= limit:
                violation = RiskViolation(
                    period=period,
                    loss=loss,
                    limit=limit,
                    message=f"{period.capitalize()} loss limit ({limit:.2f}) exceeded: {loss:.2f}",
                )
                self._warn_once((period, start), violation.message)
                return violation
        return None

    def is_limit_exceeded(self) -> bool:
        return self.check_risk_violation() is not None

    def _warn_once(self, key: Tuple[str, datetime], message: str) -> None:
        with self._lock:
            if key in self._warned:
                return
            self._warned.add(key)
        self.logger.warning(message)

    # ------------------------------------------------------------------
    # Settings and reporting
    # ------------------------------------------------------------------

    def update_settings(self, **changes: Any) -> RiskLimitsConfig:
        """
        Replace some limit settings.

        Raises:
            ConfigError: If the resulting settings are invalid
        """
        aliases = {info.alias: name for name, info in RiskLimitsConfig.model_fields.items() if info.alias}
        data = self.settings.model_dump()
        data.update({aliases.get(key, key): value for key, value in changes.items()})
        self.settings = validate_model(RiskLimitsConfig, data)
        with self._lock:
            self._warned.clear()
        self.logger.info(f"Risk settings updated: {changes}")
        return self.settings

    def get_settings(self) -> Dict[str, Any]:
        return self.settings.model_dump(by_alias=True)

    def get_risk_stats(self) -> Dict[str, Any]:
        now = self.clock()
        stats: Dict[str, Any] = {}
        for period in PERIODS:
            loss = self._loss_since(period_start(period, now))
            limit = self.limit_for(period)
            stats[period] = {
                "loss": loss,
                "limit": limit,
                "remaining": max(0.0, limit - loss),
                "utilizationPercent": loss / limit * 100 if limit > 0 else 0.0,
            }
        with self._lock:
            stats["totalTrades"] = len(self._trades)
        stats["isLimitExceeded"] = self.is_limit_exceeded()
        return stats
