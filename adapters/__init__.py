"""Adapters between the backtest core and external data sources."""
