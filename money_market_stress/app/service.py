"""
service.py
MarketMonitor: owns the process-lifetime state (provider caches, history
window) and runs one fetch -> spreads -> history -> score cycle per request.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence

import pandas as pd

from ..config import Settings, load_series_map
from ..data.fred_client import FREDClient
from ..data.frbny_scrapers import NYFedClient
from ..data.fx_client import FXRateClient
from ..data.history_store import HistoryStore
from ..data.master_scraper import RateAggregator
from ..data.scraping_infrastructure import TTLCache
from ..data.snapshot import (
    FX_PAIRS,
    INTERNATIONAL_RATES,
    MONEY_MARKET_RATES,
    PROVENANCE_MOCK,
    SNAPSHOT_FIELDS,
    TERM_RATES,
    RateSnapshot,
)
from ..features.spreads import RESERVE_SCARCITY_SPREADS, SpreadCalculator
from ..features.transforms import percentile_bands
from ..models.stress_scorer import StressResult, StressScorer

logger = logging.getLogger(__name__)

PERCENTILE_SERIES = ("SOFR", "EFFR")
PERCENTILE_LOOKBACK = 30
REPO_FIELDS = ("SOFR", "BGCR", "TGCR", "GCF", "O/N-RRP")
RESERVE_FIELDS = ("EFFR", "SOFR", "IORB", "TGCR", "O/N-RRP", "GCF")
ALL_RATE_FIELDS = MONEY_MARKET_RATES + TERM_RATES + INTERNATIONAL_RATES
REGION_ALL = "ALL"


def pool_sizes(catalog: Dict[str, Dict], minimum: int = 4) -> Dict[str, int]:
    """
    Worker threads per provider: one per catalog series it serves, doubled so
    a snapshot and a history fetch can be in flight together.
    """
    counts: Dict[str, int] = {}
    for info in catalog.values():
        for source in info.get("sources", []):
            counts[source] = counts.get(source, 0) + 1
    return {
        source: max(minimum, 2 * counts.get(source, 0))
        for source in ("nyfed", "fred", "fx")
    }


def frame_to_rows(df: pd.DataFrame) -> List[Dict]:
    """History frame -> list of {"date": "YYYY-MM-DD", field: value|None}."""
    rows = []
    for idx, row in df.iterrows():
        entry = {"date": pd.Timestamp(idx).date().isoformat()}
        for column, value in row.items():
            entry[column] = None if pd.isna(value) else float(value)
        rows.append(entry)
    return rows


@dataclass(frozen=True)
class MarketState:
    snapshot: RateSnapshot
    spreads: Dict[str, Optional[float]]
    statuses: Dict[str, str]
    percentiles: Dict[str, Dict[str, float]]
    stress: StressResult

    @property
    def facilities(self) -> Dict[str, Optional[float]]:
        return {
            "O/N-RRP-Volume": self.snapshot.get("O/N-RRP-Volume"),
            # No free source publishes these
            "Foreign-Repo-Pool": None,
            "SRF-Volume": None,
        }


class MarketMonitor:
    """
    Orchestrates the analytical pipeline.

    Usage:
        monitor = MarketMonitor.from_settings(Settings.from_env())
        await monitor.start()
        payload = await monitor.market_data("US")
        await monitor.close()
    """

    def __init__(
        self,
        aggregator: RateAggregator,
        history: HistoryStore,
        regions: Optional[Dict[str, Sequence[str]]] = None,
        scorer: Optional[StressScorer] = None,
        spread_calculator: Optional[SpreadCalculator] = None,
    ):
        self.aggregator = aggregator
        self.history = history
        self.regions = {name.upper(): tuple(fields) for name, fields in (regions or {}).items()}
        self.spreads = spread_calculator or SpreadCalculator()
        self.scorer = scorer or StressScorer(self.spreads)
        self._backfill_lock = asyncio.Lock()
        self._backfilled = False

    @classmethod
    def from_settings(cls, settings: Settings) -> "MarketMonitor":
        """Build adapters, caches and history from settings and the series map."""
        series_map = load_series_map(settings.series_map_path)
        ttl = series_map["ttl"]
        workers = pool_sizes(series_map["rates"])

        adapters = {
            "nyfed": NYFedClient(
                TTLCache(default_ttl=ttl["nyfed"]),
                base_url=settings.nyfed_api_base,
                ttl=ttl["nyfed"],
                timeout=settings.request_timeout,
                max_workers=workers["nyfed"],
            ),
            "fred": FREDClient(
                settings.fred_api_key,
                TTLCache(default_ttl=ttl["fred"]),
                ttl=ttl["fred"],
                timeout=settings.request_timeout,
                max_workers=workers["fred"],
            ),
            "fx": FXRateClient(
                TTLCache(default_ttl=ttl["fx"]),
                base_url=settings.fx_api_base,
                ttl=ttl["fx"],
                timeout=settings.request_timeout,
                max_workers=workers["fx"],
            ),
        }
        return cls(
            RateAggregator(adapters, series_map["rates"]),
            HistoryStore(settings.history_max_days),
            regions=series_map["regions"],
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self):
        for adapter in self.aggregator.adapters.values():
            adapter.cache.start()

    async def close(self):
        for adapter in self.aggregator.adapters.values():
            await adapter.cache.stop()
            adapter.close()

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    def region_fields(self, region: str) -> Sequence[str]:
        region = region.upper()
        if region == REGION_ALL:
            return ALL_RATE_FIELDS
        return self.regions[region]

    def valid_regions(self) -> List[str]:
        return [REGION_ALL] + sorted(self.regions)

    def _history_entry(self, snapshot: RateSnapshot, spreads: Dict[str, Optional[float]]) -> Dict:
        entry = {"date": snapshot.timestamp.date().isoformat()}
        entry.update(snapshot.select(ALL_RATE_FIELDS + FX_PAIRS))
        entry.update(spreads)
        return entry

    async def _backfill(self):
        """Seed an empty history window from provider history (or the baseline)."""
        async with self._backfill_lock:
            if self._backfilled or len(self.history) > 0:
                self._backfilled = True
                return
            df, provenance = await self.aggregator.fetch_history(self.history.max_length)
            today = datetime.now(timezone.utc).date().isoformat()
            rows = [row for row in frame_to_rows(self.spreads.compute_frame(df)) if row["date"] < today]
            kept = self.history.seed(rows[-(self.history.max_length - 1):] if self.history.max_length > 1 else [])
            self._backfilled = True
            logger.info(f"History back-filled with {kept} days ({provenance})")

    async def _percentiles(self) -> Dict[str, Dict[str, float]]:
        df, provenance = await self.aggregator.fetch_history(PERCENTILE_LOOKBACK, PERCENTILE_SERIES)
        percentiles = {}
        for name in PERCENTILE_SERIES:
            series = []
            # A synthetic frame is a fresh draw; the history window is the stable fallback
            if provenance != PROVENANCE_MOCK and name in df.columns:
                series = df[name].dropna().tolist()
            if not series:
                series = self.history.series(name, last=PERCENTILE_LOOKBACK)
            bands = percentile_bands(series)
            if bands is not None:
                percentiles[name] = bands
        return percentiles

    async def refresh(self) -> MarketState:
        """Run one full cycle and record today's entry in the history window."""
        if not self._backfilled:
            await self._backfill()

        snapshot, percentiles = await asyncio.gather(self.aggregator.fetch_snapshot(), self._percentiles())
        spreads, statuses = self.spreads.compute(snapshot)

        self.history.append(self._history_entry(snapshot, spreads))
        stress = self.scorer.compute(snapshot, self.history.window())

        return MarketState(
            snapshot=snapshot,
            spreads=spreads,
            statuses=statuses,
            percentiles=percentiles,
            stress=stress,
        )

    # ------------------------------------------------------------------
    # Response payloads
    # ------------------------------------------------------------------

    async def market_data(self, region: str = REGION_ALL) -> Dict:
        state = await self.refresh()
        snapshot = state.snapshot
        return {
            "current": {
                "rates": snapshot.select(self.region_fields(region)),
                "fx": snapshot.select(FX_PAIRS),
                "spreads": state.spreads,
                "statuses": state.statuses,
                "facilities": state.facilities,
                "percentiles": state.percentiles,
                "timestamp": snapshot.timestamp.isoformat(),
            },
            "historical": self.history.window(),
            "stress": state.stress.to_dict(),
            "dataSource": snapshot.provenance,
        }

    async def historical_data(self, days: int) -> Dict:
        df, provenance = await self.aggregator.fetch_history(days)
        # Series without a history source (FX) still appear, as null
        df = df.reindex(columns=[name for name in SNAPSHOT_FIELDS if name in self.aggregator.catalog])
        rows = frame_to_rows(self.spreads.compute_frame(df))
        return {
            "historical": rows,
            "count": len(rows),
            "requestedDays": days,
            "dataSource": provenance,
        }

    async def repo_rates(self) -> Dict:
        state = await self.refresh()
        return {
            "rates": state.snapshot.select(REPO_FIELDS),
            "timestamp": state.snapshot.timestamp.isoformat(),
            "dataSource": state.snapshot.provenance,
        }

    async def reserve_scarcity(self) -> Dict:
        state = await self.refresh()
        return {
            "spreads": {name: state.spreads.get(name) for name in RESERVE_SCARCITY_SPREADS},
            "statuses": {name: s for name, s in state.statuses.items() if name in RESERVE_SCARCITY_SPREADS},
            "rates": state.snapshot.select(RESERVE_FIELDS),
            "timestamp": state.snapshot.timestamp.isoformat(),
            "dataSource": state.snapshot.provenance,
        }

    async def fed_facilities(self) -> Dict:
        state = await self.refresh()
        return {
            "facilities": state.facilities,
            "timestamp": state.snapshot.timestamp.isoformat(),
            "dataSource": state.snapshot.provenance,
        }

    async def money_market_spreads(self) -> Dict:
        state = await self.refresh()
        return {
            "spreads": state.spreads,
            "statuses": state.statuses,
            "percentiles": state.percentiles,
            "timestamp": state.snapshot.timestamp.isoformat(),
            "dataSource": state.snapshot.provenance,
        }

    async def stress_indicators(self) -> Dict:
        state = await self.refresh()
        return state.stress.to_dict()

    def health(self) -> Dict:
        services = {}
        for name, adapter in self.aggregator.adapters.items():
            services[name] = {
                "status": "configured" if adapter.configured else "unconfigured",
                "cached": len(adapter.cache),
            }
        services["history"] = {"status": "ok", "days": len(self.history)}
        return {
            "status": "ok",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "services": services,
        }
