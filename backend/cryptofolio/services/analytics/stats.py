# backend/cryptofolio/services/analytics/stats.py
"""
Decimal statistics helpers shared by the metric calculators.

Pure Decimal arithmetic: daily returns in percent are small numbers and
float conversion loses precision in the squared deviations.
"""

from decimal import Decimal

from cryptofolio.services.constants import ZERO


def decimal_mean(values: list[Decimal]) -> Decimal | None:
    """
    Mean of Decimal values.

    Returns:
        Mean as Decimal, or None if empty list
    """
    if not values:
        return None
    return sum(values, ZERO) / Decimal(len(values))


def decimal_population_stdev(values: list[Decimal]) -> Decimal | None:
    """
    Population standard deviation.

    Formula: σ = sqrt(Σ(x - μ)² / n)

    Returns:
        Standard deviation, or None if empty list
    """
    mean_val = decimal_mean(values)
    if mean_val is None:
        return None

    squared_diffs = sum(((x - mean_val) ** 2 for x in values), ZERO)
    variance = squared_diffs / Decimal(len(values))
    return variance.sqrt()


def root_mean_square(values: list[Decimal]) -> Decimal | None:
    """sqrt(Σx² / n), or None if empty list."""
    if not values:
        return None
    return (sum((x * x for x in values), ZERO) / Decimal(len(values))).sqrt()
