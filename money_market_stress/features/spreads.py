"""
spreads.py
Fixed catalog of money-market spreads (basis points) and their status rules.

Thresholds are domain constants, not runtime settings:

EFFR-IORB   reserve scarcity        SCARCITY > 0 bp, ABUNDANCE < -5 bp, else AMPLE
SOFR-IORB   bank reserve deployment BANKS-DEPLOYING-RESERVES > 0 bp, else NORMAL
SOFR-EFFR   secured vs unsecured    (no status)
TGCR-RRP    private repo vs RRP     EXCESS-COLLATERAL > 0 bp, else EXCESS-CASH
GCF-TGCR    dealer capacity         INFLEXIBLE > 5 bp, CONSTRAINED > 2 bp, else FLEXIBLE
CP-OIS      term funding vs OIS     CRITICAL > 50, HIGH > 30, MEDIUM > 15, else LOW
CP-TBILL    TED-style credit        CRITICAL > 100, HIGH > 50, MEDIUM > 25, else LOW
"""

from dataclasses import dataclass
from typing import Callable, Dict, Optional, Tuple

import pandas as pd

from ..data.snapshot import RateSnapshot


def _reserve_scarcity(bps: float) -> str:
    if bps > 0:
        return "SCARCITY"
    if bps < -5:
        return "ABUNDANCE"
    return "AMPLE"


def _reserve_deployment(bps: float) -> str:
    return "BANKS-DEPLOYING-RESERVES" if bps > 0 else "NORMAL"


def _collateral_balance(bps: float) -> str:
    return "EXCESS-COLLATERAL" if bps > 0 else "EXCESS-CASH"


def _dealer_capacity(bps: float) -> str:
    if bps > 5:
        return "INFLEXIBLE"
    if bps > 2:
        return "CONSTRAINED"
    return "FLEXIBLE"


def _tiered(critical: float, high: float, medium: float) -> Callable[[float], str]:
    def classify(bps: float) -> str:
        if bps > critical:
            return "CRITICAL"
        if bps > high:
            return "HIGH"
        if bps > medium:
            return "MEDIUM"
        return "LOW"
    return classify


@dataclass(frozen=True)
class SpreadDefinition:
    name: str
    minuend: str
    subtrahend: str
    classify: Optional[Callable[[float], str]] = None
    description: str = ""

    def value(self, minuend: Optional[float], subtrahend: Optional[float]) -> Optional[float]:
        """(minuend - subtrahend) x 100 in bps, None if either leg is missing."""
        if minuend is None or subtrahend is None:
            return None
        return round((minuend - subtrahend) * 100, 4)


SPREAD_CATALOG: Tuple[SpreadDefinition, ...] = (
    SpreadDefinition("EFFR-IORB", "EFFR", "IORB", _reserve_scarcity, "Reserve scarcity"),
    SpreadDefinition("SOFR-IORB", "SOFR", "IORB", _reserve_deployment, "Bank activity in repo"),
    SpreadDefinition("SOFR-EFFR", "SOFR", "EFFR", None, "Secured vs unsecured overnight"),
    SpreadDefinition("TGCR-RRP", "TGCR", "O/N-RRP", _collateral_balance, "Private repo demand vs Fed RRP"),
    SpreadDefinition("GCF-TGCR", "GCF", "TGCR", _dealer_capacity, "Dealer balance-sheet capacity"),
    SpreadDefinition("CP-OIS", "CP-3M", "SOFR-90D", _tiered(50, 30, 15), "Term funding vs overnight index"),
    SpreadDefinition("CP-TBILL", "CP-3M", "TBILL-3M", _tiered(100, 50, 25), "Short-term credit (TED-style)"),
)

SPREADS_BY_NAME = {spread.name: spread for spread in SPREAD_CATALOG}
RESERVE_SCARCITY_SPREADS = ("EFFR-IORB", "SOFR-IORB", "TGCR-RRP", "GCF-TGCR")
CREDIT_SPREADS = ("CP-OIS", "CP-TBILL")


class SpreadCalculator:
    """Compute the catalog spreads from a snapshot or a history frame."""

    def __init__(self, catalog: Tuple[SpreadDefinition, ...] = SPREAD_CATALOG):
        self.catalog = catalog

    def compute(self, snapshot: RateSnapshot) -> Tuple[Dict[str, Optional[float]], Dict[str, str]]:
        """
        Spread values and status labels for one snapshot.

        Returns
        -------
        (dict, dict)
            name -> bps (None when a leg is missing), and name -> status for
            every spread that has a value and a status rule
        """
        values = {}
        statuses = {}
        for spread in self.catalog:
            value = spread.value(snapshot.get(spread.minuend), snapshot.get(spread.subtrahend))
            values[spread.name] = value
            if value is not None and spread.classify is not None:
                statuses[spread.name] = spread.classify(value)
        return values, statuses

    def compute_frame(self, df: pd.DataFrame) -> pd.DataFrame:
        """
        Add spread columns (bps) to a history frame. Rows with a missing leg get NaN.

        Parameters
        ----------
        df : pd.DataFrame
            Rates, one column per field

        Returns
        -------
        pd.DataFrame
            Copy of df with one column per catalog spread
        """
        df = df.copy()
        for spread in self.catalog:
            if spread.minuend in df.columns and spread.subtrahend in df.columns:
                df[spread.name] = ((df[spread.minuend] - df[spread.subtrahend]) * 100).round(4)
            else:
                df[spread.name] = float("nan")
        return df
