"""Validation and optimization modules."""

from validation.genetic_optimizer import (
    EvaluationRecord,
    GeneticOptimizer,
    OptimizationResult,
    calculate_fitness,
)

from validation.monte_carlo import (
    MonteCarloEngine,
    MonteCarloResult,
)

__all__ = [
    'EvaluationRecord',
    'GeneticOptimizer',
    'OptimizationResult',
    'calculate_fitness',
    'MonteCarloEngine',
    'MonteCarloResult',
]
