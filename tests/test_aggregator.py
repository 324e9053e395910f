"""Source-priority resolution, provenance tagging and history merge."""

import time
from datetime import date, timedelta

import pandas as pd
import pytest

from money_market_stress.data.master_scraper import RateAggregator, gather_tolerant
from money_market_stress.data.snapshot import (
    FX_PAIRS,
    PROVENANCE_HYBRID,
    PROVENANCE_MOCK,
    PROVENANCE_REAL,
    SNAPSHOT_FIELDS,
    SYNTHETIC_SOURCE,
    RateSnapshot,
    provenance_of,
)
from money_market_stress.data.synthetic import SyntheticBaseline
from money_market_stress.features.spreads import SPREAD_CATALOG, SpreadCalculator

from .conftest import FRED_LEVELS, FakeAdapter, daily


@pytest.mark.asyncio
async def test_all_providers_real(aggregator):
    snapshot = await aggregator.fetch_snapshot()
    assert snapshot.provenance == PROVENANCE_REAL
    assert snapshot["IORB"] == 4.40
    assert snapshot["EUR/USD"] == 1.04
    assert SYNTHETIC_SOURCE not in snapshot.sources.values()


@pytest.mark.asyncio
async def test_primary_source_wins(aggregator, nyfed_adapter):
    nyfed_adapter.series["secured/sofr"] = 4.29
    snapshot = await aggregator.fetch_snapshot()
    assert snapshot["SOFR"] == 4.29
    assert snapshot.sources["SOFR"] == "nyfed"
    # NY Fed has nothing for EFFR: secondary source fills it
    assert snapshot.sources["EFFR"] == "fred"
    assert snapshot["EFFR"] == 4.33


@pytest.mark.asyncio
async def test_missing_fields_are_synthesized(aggregator, fred_adapter):
    del fred_adapter.series["IORB"]
    snapshot = await aggregator.fetch_snapshot()
    assert snapshot.provenance == PROVENANCE_HYBRID
    assert snapshot.sources["IORB"] == SYNTHETIC_SOURCE
    assert snapshot["IORB"] is not None


@pytest.mark.asyncio
async def test_all_providers_down_is_mock_with_consistent_spreads(series_map):
    adapters = {name: FakeAdapter(name) for name in ("nyfed", "fred", "fx")}
    aggregator = RateAggregator(adapters, series_map["rates"], SyntheticBaseline(seed=11))

    snapshot = await aggregator.fetch_snapshot()
    assert snapshot.provenance == PROVENANCE_MOCK
    assert all(snapshot.get(name) is not None for name in SNAPSHOT_FIELDS)

    values, statuses = SpreadCalculator().compute(snapshot)
    for spread in SPREAD_CATALOG:
        legs_present = snapshot.get(spread.minuend) is not None and snapshot.get(spread.subtrahend) is not None
        assert (values[spread.name] is not None) == legs_present
    assert values["EFFR-IORB"] < 0
    assert values["SOFR-IORB"] > 0
    assert statuses["SOFR-IORB"] == "BANKS-DEPLOYING-RESERVES"


@pytest.mark.asyncio
async def test_one_provider_raising_does_not_block_others(series_map, fred_adapter, fx_adapter):
    broken = FakeAdapter("nyfed", {"secured/sofr": RuntimeError("socket closed")})
    aggregator = RateAggregator(
        {"nyfed": broken, "fred": fred_adapter, "fx": fx_adapter},
        series_map["rates"],
    )
    snapshot = await aggregator.fetch_snapshot()
    assert snapshot.sources["SOFR"] == "fred"
    assert snapshot.provenance == PROVENANCE_REAL


@pytest.mark.asyncio
async def test_series_are_fetched_in_parallel(series_map, fx_adapter):
    fred = FakeAdapter("fred", {sid: daily([level]) for sid, level in FRED_LEVELS.items()}, delay=0.2, timeout=0.5)
    aggregator = RateAggregator({"nyfed": FakeAdapter("nyfed"), "fred": fred, "fx": fx_adapter}, series_map["rates"])

    started = time.perf_counter()
    snapshot = await aggregator.fetch_snapshot()
    elapsed = time.perf_counter() - started

    assert snapshot.provenance == PROVENANCE_REAL
    assert len(fred.calls) == len(FRED_LEVELS)
    # One call's latency, not several batches of it
    assert elapsed < 0.45


@pytest.mark.asyncio
async def test_slow_primary_does_not_hold_back_fallback(series_map, fred_adapter, fx_adapter):
    nyfed = FakeAdapter("nyfed", {"secured/sofr": 4.29}, delay=1.0, timeout=0.1)
    aggregator = RateAggregator({"nyfed": nyfed, "fred": fred_adapter, "fx": fx_adapter}, series_map["rates"])

    started = time.perf_counter()
    snapshot = await aggregator.fetch_snapshot()
    elapsed = time.perf_counter() - started

    assert snapshot.sources["SOFR"] == "fred"
    assert snapshot.provenance == PROVENANCE_REAL
    assert elapsed < 0.6


def test_unknown_catalog_entries_are_dropped(adapters):
    catalog = {"SOFR": {"sources": ["fred"], "fred": "SOFR"}, "LIBOR": {"sources": ["fred"], "fred": "USD3MTD156N"}}
    aggregator = RateAggregator(adapters, catalog)
    assert list(aggregator.catalog) == ["SOFR"]


def test_history_fields_skip_latest_only_providers(aggregator):
    fields = aggregator.history_fields()
    assert "SOFR" in fields
    assert not set(FX_PAIRS) & set(fields)


@pytest.mark.asyncio
async def test_gather_tolerant_maps_exceptions_to_none():
    async def ok():
        return 1

    async def boom():
        raise ValueError("bad payload")

    assert await gather_tolerant([ok(), boom(), ok()]) == [1, None, 1]


def test_provenance_of():
    assert provenance_of(["nyfed", "fred"]) == PROVENANCE_REAL
    assert provenance_of(["nyfed", SYNTHETIC_SOURCE]) == PROVENANCE_HYBRID
    assert provenance_of([SYNTHETIC_SOURCE, SYNTHETIC_SOURCE]) == PROVENANCE_MOCK
    assert provenance_of([]) == PROVENANCE_MOCK


def test_snapshot_drops_unknown_fields_and_nan():
    snapshot = RateSnapshot({"SOFR": float("nan"), "LIBOR": 5.0, "IORB": 4.4})
    assert snapshot.get("SOFR") is None
    assert "LIBOR" not in snapshot.values
    with pytest.raises(KeyError):
        snapshot["LIBOR"]
    with pytest.raises(TypeError):
        snapshot.values["IORB"] = 1.0


# ============================================================================
# HISTORY
# ============================================================================

@pytest.mark.asyncio
async def test_history_merges_by_date(series_map):
    fred = FakeAdapter("fred", {
        "SOFR": daily([4.30, 4.31, 4.32]),
        "EFFR": daily([4.33, 4.33], end=date(2025, 2, 1)),
    })
    aggregator = RateAggregator({"fred": fred}, series_map["rates"])

    df, provenance = await aggregator.fetch_history(5, ["SOFR", "EFFR"])

    assert provenance == PROVENANCE_REAL
    assert list(df.columns) == ["SOFR", "EFFR"]
    assert list(df.index) == [date(2025, 1, 29) + timedelta(days=i) for i in range(4)]
    assert pd.isna(df.loc[date(2025, 1, 29), "EFFR"])
    assert pd.isna(df.loc[date(2025, 2, 1), "SOFR"])
    assert df.loc[date(2025, 1, 31), "SOFR"] == 4.32


@pytest.mark.asyncio
async def test_history_partial_is_hybrid(series_map):
    fred = FakeAdapter("fred", {"SOFR": daily([4.30, 4.31])})
    aggregator = RateAggregator({"fred": fred}, series_map["rates"])

    df, provenance = await aggregator.fetch_history(2, ["SOFR", "IORB"])
    assert provenance == PROVENANCE_HYBRID
    assert df["IORB"].isna().all()
    assert len(df) == 2


@pytest.mark.asyncio
async def test_history_unavailable_is_synthetic(series_map):
    aggregator = RateAggregator({"fred": FakeAdapter("fred")}, series_map["rates"], SyntheticBaseline(seed=5))

    df, provenance = await aggregator.fetch_history(15, ["SOFR", "IORB"])
    assert provenance == PROVENANCE_MOCK
    assert len(df) == 15
    assert list(df.columns) == ["SOFR", "IORB"]
    assert df.notna().all().all()


@pytest.mark.asyncio
async def test_history_truncates_to_count(series_map):
    fred = FakeAdapter("fred", {"SOFR": daily([4.3] * 10)})
    aggregator = RateAggregator({"fred": fred}, series_map["rates"])
    df, _ = await aggregator.fetch_history(3, ["SOFR"])
    assert len(df) == 3
    assert df.index[-1] == date(2025, 1, 31)


# ============================================================================
# SYNTHETIC BASELINE
# ============================================================================

def test_synthetic_baseline_is_internally_consistent():
    for seed in range(20):
        values = SyntheticBaseline(seed=seed).generate()
        assert values["EFFR"] < values["IORB"] < values["SOFR"]
        assert values["O/N-RRP"] < values["TGCR"]


def test_synthetic_baseline_is_reproducible():
    assert SyntheticBaseline(seed=42).generate() == SyntheticBaseline(seed=42).generate()


def test_synthetic_history_shape():
    df = SyntheticBaseline(seed=1).history(10, end=date(2025, 1, 31))
    assert len(df) == 10
    assert df.index[-1] == date(2025, 1, 31)
    assert df.index[0] == date(2025, 1, 22)
    assert {"SOFR", "IORB", "EUR/USD"} <= set(df.columns)
