"""Monte Carlo validation of trade-order dependence."""

from .resampler import (
    MonteCarloEngine,
    MonteCarloResult,
    extract_returns,
    shuffle_in_place,
    simulate_path,
)

__all__ = [
    'MonteCarloEngine',
    'MonteCarloResult',
    'extract_returns',
    'shuffle_in_place',
    'simulate_path',
]
