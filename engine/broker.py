"""Broker model for fills, fees and P&L.

The BrokerModel handles:
- Slippage application (BUY fills above, SELL fills below the reference price)
- Commission as a fraction of notional, charged on every fill
- Realized / unrealized P&L for long and (synthetic margin) short positions

Key principle: The broker prices fills, the strategy doesn't know about them.
"""

from dataclasses import dataclass

from engine.models import SignalType


@dataclass(frozen=True)
class BrokerModel:
    """Fill pricing and P&L calculations.

    Attributes:
        fee_rate: Commission as a fraction of notional (0.001 = 0.1%)
        slippage_rate: Adverse price adjustment as a fraction of price
    """
    fee_rate: float = 0.001
    slippage_rate: float = 0.001

    def fill_price(self, price: float, side: SignalType) -> float:
        """Apply slippage to a reference price.

        Args:
            price: Reference price (signal or trigger price)
            side: BUY fills at price * (1 + slippage), SELL at price * (1 - slippage)

        Returns:
            Adjusted fill price
        """
        if side is SignalType.BUY:
            return price * (1 + self.slippage_rate)
        return price * (1 - self.slippage_rate)

    def calculate_commission(self, price: float, units: float) -> float:
        """Commission for a fill of `units` at `price`."""
        return abs(price * units) * self.fee_rate

    def calculate_unrealized_pnl(
        self,
        entry_price: float,
        current_price: float,
        units: float,
        direction: SignalType
    ) -> float:
        """Calculate unrealized P&L before fees.

        Args:
            entry_price: Entry fill price
            current_price: Mark price
            units: Position quantity
            direction: SignalType.BUY for long, SignalType.SELL for short

        Returns:
            Unrealized P&L
        """
        if direction is SignalType.BUY:
            return units * (current_price - entry_price)
        return units * (entry_price - current_price)

    def calculate_realized_pnl(
        self,
        entry_price: float,
        exit_price: float,
        units: float,
        direction: SignalType,
        total_fees: float
    ) -> float:
        """Realized P&L net of entry and exit fees."""
        return self.calculate_unrealized_pnl(entry_price, exit_price, units, direction) - total_fees
