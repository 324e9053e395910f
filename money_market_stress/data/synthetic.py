"""
Synthetic baseline rates.

Last-resort source when no provider can supply a field. Every rate is an
offset from a common IORB anchor, so the spreads computed from synthetic
values keep their usual sign and rough size:

    EFFR ~ IORB - 7bp, SOFR ~ IORB + 1bp, TGCR ~ IORB - 1bp, O/N RRP ~ IORB - 15bp

Each draw applies one shared shock to the anchor plus sub-basis-point noise
per field, small enough that no spread crosses a status threshold.
"""

from datetime import date, timedelta
from typing import Dict, Optional

import numpy as np
import pandas as pd

IORB_ANCHOR = 4.40

# Percentage points relative to IORB
RATE_OFFSETS = {
    "IORB": 0.00,
    "EFFR": -0.07,
    "OBFR": -0.08,
    "SOFR": 0.01,
    "TGCR": -0.01,
    "BGCR": -0.01,
    "GCF": 0.02,
    "O/N-RRP": -0.15,
    "SOFR-90D": 0.03,
    "TBILL-3M": -0.05,
    "CP-3M": 0.12,
}

# Independent levels (not tied to the US anchor)
LEVELS = {
    "EURIBOR": 2.05,
    "SONIA": 4.00,
    "O/N-RRP-Volume": 150.0,
    "EUR/USD": 1.08,
    "GBP/USD": 1.26,
    "USD/JPY": 149.50,
    "USD/CHF": 0.88,
}

ANCHOR_SHOCK_SD = 0.02   # pp, shared by all anchored rates
FIELD_NOISE = 0.004      # pp, uniform half-width per field (0.4bp)
LEVEL_NOISE_PCT = 0.003  # relative noise on independent levels
DAILY_DRIFT_SD = 0.005   # pp, anchor random-walk step for history


class SyntheticBaseline:
    """
    Generate internally consistent baseline values.

    Parameters
    ----------
    anchor : float
        IORB level the anchored rates are built around
    seed : int, optional
        Seed for reproducible output
    """

    def __init__(self, anchor: float = IORB_ANCHOR, seed: Optional[int] = None):
        self.anchor = anchor
        self.rng = np.random.default_rng(seed)

    def _draw(self, anchor: float, levels: Dict[str, float]) -> Dict[str, float]:
        values = {}
        for name, offset in RATE_OFFSETS.items():
            noise = self.rng.uniform(-FIELD_NOISE, FIELD_NOISE)
            values[name] = round(anchor + offset + noise, 4)
        for name, level in levels.items():
            noise = self.rng.normal(0, LEVEL_NOISE_PCT)
            values[name] = round(level * (1 + noise), 4 if level < 10 else 2)
        return values

    def generate(self) -> Dict[str, float]:
        """One snapshot worth of baseline values."""
        anchor = self.anchor + self.rng.normal(0, ANCHOR_SHOCK_SD)
        return self._draw(anchor, LEVELS)

    def history(self, days: int, end: Optional[date] = None) -> pd.DataFrame:
        """
        Daily baseline history ending at ``end`` (default: yesterday).

        Returns
        -------
        pd.DataFrame
            Index of dates (oldest first), one column per field
        """
        if days <= 0:
            return pd.DataFrame(columns=list(RATE_OFFSETS) + list(LEVELS))
        end = end or (date.today() - timedelta(days=1))
        dates = pd.date_range(end=pd.Timestamp(end), periods=days, freq="D")

        anchors = self.anchor + np.cumsum(self.rng.normal(0, DAILY_DRIFT_SD, days))
        anchors -= anchors[-1] - self.anchor
        level_paths = {
            name: level * np.cumprod(1 + self.rng.normal(0, LEVEL_NOISE_PCT, days))
            for name, level in LEVELS.items()
        }

        rows = []
        for i in range(days):
            rows.append(self._draw(anchors[i], {name: float(path[i]) for name, path in level_paths.items()}))

        df = pd.DataFrame(rows, index=dates.date)
        df.index.name = "date"
        return df
