"""
Composite stress scoring.
"""

from .stress_scorer import StressComponents, StressResult, StressScorer

__all__ = ['StressComponents', 'StressResult', 'StressScorer']
