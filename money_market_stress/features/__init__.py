"""
Spread and distribution features computed from rate snapshots and histories.
"""

from .spreads import (
    SPREAD_CATALOG,
    SpreadCalculator,
    SpreadDefinition,
)
from .transforms import percentile_bands, return_volatility

__all__ = [
    'SPREAD_CATALOG',
    'SpreadCalculator',
    'SpreadDefinition',
    'percentile_bands',
    'return_volatility',
]
