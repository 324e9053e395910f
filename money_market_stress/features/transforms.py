"""
transforms.py
Distribution and volatility estimators for rate histories:
- Nearest-rank percentile bands
- Short-window return volatility
"""

import math
from typing import Dict, Iterable, Mapping, Optional, Sequence

import numpy as np

DEFAULT_PERCENTILES = (25, 50, 75, 99)


def values_of(entries: Iterable[Mapping], name: str) -> list:
    """Non-null values of one field from history entries, in order."""
    out = []
    for entry in entries:
        value = entry.get(name)
        if value is None:
            continue
        value = float(value)
        if not math.isnan(value):
            out.append(value)
    return out


def percentile_bands(
    series: Sequence[float],
    percentiles: Sequence[int] = DEFAULT_PERCENTILES,
) -> Optional[Dict[str, float]]:
    """
    Nearest-rank percentiles of a series.

    For percentile p of n sorted values the index is ceil(p/100 * n) - 1,
    clamped to [0, n-1]. No interpolation: every band is an observed value.

    Parameters
    ----------
    series : sequence of float
        Observations in any order
    percentiles : sequence of int
        Percentiles to report (default 25, 50, 75, 99)

    Returns
    -------
    Optional[Dict[str, float]]
        {"p25": ..., "p50": ..., ...}, or None for an empty series

    Example:
        percentile_bands(range(1, 11))["p50"] -> 5
    """
    if series is None or len(series) == 0:
        return None

    ordered = np.sort(np.asarray(series, dtype=float))
    n = len(ordered)
    bands = {}
    for p in percentiles:
        index = math.ceil(p / 100 * n) - 1
        index = min(max(index, 0), n - 1)
        bands[f"p{p}"] = float(ordered[index])
    return bands


def return_volatility(series: Sequence[float], window: int = 7) -> float:
    """
    Volatility of period-over-period relative returns, in percent.

    Takes the last ``window`` points, computes (x[i] - x[i-1]) / x[i-1]
    (skipping steps where x[i-1] == 0) and returns the sample standard
    deviation of those returns x 100.

    Parameters
    ----------
    series : sequence of float
        Observations, oldest first
    window : int
        Number of trailing points to use

    Returns
    -------
    float
        Volatility >= 0; 0 when fewer than ``window`` points or fewer than
        two usable returns
    """
    if series is None or len(series) < window or window < 2:
        return 0.0

    recent = np.asarray(series[-window:], dtype=float)
    prev = recent[:-1]
    curr = recent[1:]
    usable = prev != 0
    returns = (curr[usable] - prev[usable]) / prev[usable]

    if len(returns) < 2:
        return 0.0
    return float(np.std(returns, ddof=1) * 100)
