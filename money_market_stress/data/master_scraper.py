"""
Master Rate Aggregator
======================

Central coordinator for all rate providers:
- NY Fed Markets API (reference rates)
- FRED (administered rates, GC repo, CP, T-bills, international)
- ExchangeRate-API (FX)
- Synthetic baseline (last resort)

Every provider call is issued concurrently and joined; a provider that times
out or fails yields None and never stops the others. Each field is resolved
by walking its priority list and taking the first non-null value.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Awaitable, Dict, List, Optional, Sequence, Tuple

import pandas as pd

from .scraping_infrastructure import Observation, ProviderAdapter
from .snapshot import (
    PROVENANCE_HYBRID,
    PROVENANCE_MOCK,
    PROVENANCE_REAL,
    SNAPSHOT_FIELDS,
    SYNTHETIC_SOURCE,
    RateSnapshot,
    provenance_of,
)
from .synthetic import SyntheticBaseline

logger = logging.getLogger(__name__)


async def gather_tolerant(coros: Sequence[Awaitable]) -> List:
    """Await all coroutines concurrently; an exception becomes None in its slot."""
    results = await asyncio.gather(*coros, return_exceptions=True)
    cleaned = []
    for result in results:
        if isinstance(result, BaseException):
            if isinstance(result, asyncio.CancelledError):
                raise result
            logger.warning(f"Provider call raised {type(result).__name__}: {result}")
            cleaned.append(None)
        else:
            cleaned.append(result)
    return cleaned


class RateAggregator:
    """
    Merge provider outputs into one normalized snapshot.

    Usage:
        aggregator = RateAggregator(adapters, series_map["rates"])
        snapshot = await aggregator.fetch_snapshot()
        snapshot.provenance  # 'real' | 'hybrid' | 'mock'
    """

    def __init__(
        self,
        adapters: Dict[str, ProviderAdapter],
        catalog: Dict[str, Dict],
        baseline: Optional[SyntheticBaseline] = None,
    ):
        """
        Parameters
        ----------
        adapters : dict
            Provider name -> adapter ("nyfed", "fred", "fx")
        catalog : dict
            ``rates`` section of the series map: field -> {sources, <provider>: id}
        baseline : SyntheticBaseline, optional
            Last-resort generator
        """
        self.adapters = adapters
        self.catalog = {name: info for name, info in catalog.items() if name in SNAPSHOT_FIELDS}
        self.baseline = baseline or SyntheticBaseline()

        unknown = set(catalog) - set(self.catalog)
        if unknown:
            logger.warning(f"Ignoring unrecognized catalog entries: {sorted(unknown)}")

    def _plan(self, name: str, history: bool = False) -> List[Tuple[str, ProviderAdapter, str]]:
        """(source, adapter, series_id) in priority order for one field."""
        plan = []
        info = self.catalog.get(name, {})
        for source in info.get("sources", []):
            adapter = self.adapters.get(source)
            series_id = info.get(source)
            if adapter is None or series_id is None:
                continue
            if history and not adapter.supports_history:
                continue
            plan.append((source, adapter, str(series_id)))
        return plan

    def history_fields(self) -> List[str]:
        """Fields at least one configured provider can serve history for."""
        return [name for name in self.catalog if self._plan(name, history=True)]

    async def fetch_snapshot(self) -> RateSnapshot:
        """
        Fetch every field once, applying the source-priority fallback.

        Returns
        -------
        RateSnapshot
            Tagged 'real' when every field came from a provider, 'mock' when
            all came from the synthetic baseline, 'hybrid' otherwise
        """
        keys = []
        coros = []
        for name in SNAPSHOT_FIELDS:
            for source, adapter, series_id in self._plan(name):
                keys.append((name, source))
                coros.append(adapter.fetch_latest(series_id))

        fetched = dict(zip(keys, await gather_tolerant(coros)))

        values: Dict[str, Optional[float]] = {}
        sources: Dict[str, str] = {}
        for name in SNAPSHOT_FIELDS:
            for source, _, _ in self._plan(name):
                value = fetched.get((name, source))
                if value is not None:
                    values[name] = value
                    sources[name] = source
                    break

        missing = [name for name in SNAPSHOT_FIELDS if name not in values]
        if missing:
            baseline = self.baseline.generate()
            for name in missing:
                if name in baseline:
                    values[name] = baseline[name]
                    sources[name] = SYNTHETIC_SOURCE

        provenance = provenance_of(sources.values())
        if provenance == PROVENANCE_MOCK:
            logger.warning("⚠️  No provider returned data; serving synthetic baseline")
        elif provenance == PROVENANCE_HYBRID:
            logger.info(f"Synthetic fallback used for: {', '.join(missing)}")
        else:
            logger.info("✅ All rates fetched from providers")

        return RateSnapshot(
            values=values,
            timestamp=datetime.now(timezone.utc),
            sources=sources,
            provenance=provenance,
        )

    async def _fetch_field_history(self, name: str, count: int) -> Optional[List[Observation]]:
        plan = self._plan(name, history=True)
        results = await gather_tolerant([adapter.fetch_series(series_id, count) for _, adapter, series_id in plan])
        for observations in results:
            if observations:
                return observations
        return None

    async def fetch_history(
        self,
        count: int,
        names: Optional[Sequence[str]] = None,
    ) -> Tuple[pd.DataFrame, str]:
        """
        Fetch the last ``count`` observations for several fields, merged by date.

        Parameters
        ----------
        count : int
            Observations per series
        names : sequence of str, optional
            Fields to fetch (default: every field with a history source)

        Returns
        -------
        (pd.DataFrame, str)
            Frame indexed by date (oldest first), one column per field with
            NaN where a series has no observation; and the provenance. When
            nothing is available the frame is synthetic and tagged 'mock'.
        """
        names = list(names) if names is not None else self.history_fields()
        results = await gather_tolerant([self._fetch_field_history(name, count) for name in names])

        columns = {}
        for name, observations in zip(names, results):
            if observations:
                columns[name] = pd.Series({obs.date: obs.value for obs in observations}, dtype=float)

        if not columns:
            logger.warning(f"⚠️  No history available for {len(names)} series; using synthetic baseline")
            synthetic = self.baseline.history(count)
            return synthetic.reindex(columns=names), PROVENANCE_MOCK

        df = pd.DataFrame(columns).sort_index()
        df = df.reindex(columns=names).tail(count)
        df.index.name = "date"

        provenance = PROVENANCE_REAL if len(columns) == len(names) else PROVENANCE_HYBRID
        if provenance == PROVENANCE_HYBRID:
            logger.info(f"History unavailable for: {sorted(set(names) - set(columns))}")
        return df, provenance
