"""
snapshot.py
Normalized rate snapshot produced by the aggregator once per fetch cycle.
"""

import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Dict, Iterable, Mapping, Optional

# Recognized fields. Anything else a provider sends is dropped.
MONEY_MARKET_RATES = ("SOFR", "EFFR", "OBFR", "IORB", "TGCR", "BGCR", "GCF", "O/N-RRP")
TERM_RATES = ("SOFR-90D", "CP-3M", "TBILL-3M")
INTERNATIONAL_RATES = ("EURIBOR", "SONIA")
FACILITY_FIELDS = ("O/N-RRP-Volume",)
FX_PAIRS = ("EUR/USD", "GBP/USD", "USD/JPY", "USD/CHF")

SNAPSHOT_FIELDS = MONEY_MARKET_RATES + TERM_RATES + INTERNATIONAL_RATES + FACILITY_FIELDS + FX_PAIRS

PROVENANCE_REAL = "real"
PROVENANCE_HYBRID = "hybrid"
PROVENANCE_MOCK = "mock"
SYNTHETIC_SOURCE = "synthetic"


def _as_optional_float(value) -> Optional[float]:
    if value is None:
        return None
    value = float(value)
    if math.isnan(value):
        return None
    return value


def provenance_of(sources: Iterable[str]) -> str:
    """real if no field was synthesized, mock if every field was, else hybrid."""
    sources = list(sources)
    synthetic = sum(1 for s in sources if s == SYNTHETIC_SOURCE)
    if synthetic == 0 and sources:
        return PROVENANCE_REAL
    if synthetic == len(sources):
        return PROVENANCE_MOCK
    return PROVENANCE_HYBRID


@dataclass(frozen=True)
class RateSnapshot:
    """
    Immutable view of every recognized rate at one point in time.

    ``values`` maps field name ("SOFR", "O/N-RRP", "EUR/USD"...) to a float
    or None; ``sources`` records which provider supplied each field.
    """

    values: Mapping[str, Optional[float]]
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    sources: Mapping[str, str] = field(default_factory=dict)
    provenance: str = PROVENANCE_REAL

    def __post_init__(self):
        values = {name: _as_optional_float(self.values.get(name)) for name in SNAPSHOT_FIELDS}
        sources = {name: src for name, src in self.sources.items() if name in SNAPSHOT_FIELDS}
        object.__setattr__(self, "values", MappingProxyType(values))
        object.__setattr__(self, "sources", MappingProxyType(sources))

    def get(self, name: str) -> Optional[float]:
        return self.values.get(name)

    def __getitem__(self, name: str) -> Optional[float]:
        if name not in self.values:
            raise KeyError(name)
        return self.values[name]

    def select(self, names: Iterable[str]) -> Dict[str, Optional[float]]:
        return {name: self.values.get(name) for name in names}

    def to_dict(self) -> Dict:
        return {
            "rates": self.select(MONEY_MARKET_RATES + TERM_RATES + INTERNATIONAL_RATES),
            "fx": self.select(FX_PAIRS),
            "timestamp": self.timestamp.isoformat(),
            "sources": dict(self.sources),
            "dataSource": self.provenance,
        }
