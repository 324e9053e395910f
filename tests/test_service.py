"""MarketMonitor pipeline with in-memory providers."""

from datetime import datetime, timezone

import pytest

from money_market_stress.app.service import MarketMonitor, frame_to_rows, pool_sizes
from money_market_stress.data.history_store import HistoryStore
from money_market_stress.data.master_scraper import RateAggregator
from money_market_stress.data.synthetic import SyntheticBaseline

from .conftest import FakeAdapter


@pytest.mark.asyncio
async def test_market_data_for_region(monitor, series_map):
    payload = await monitor.market_data("us")

    current = payload["current"]
    assert list(current["rates"]) == series_map["regions"]["US"]
    assert current["rates"]["IORB"] == 4.40
    assert current["spreads"]["EFFR-IORB"] == -7.0
    assert current["statuses"]["EFFR-IORB"] == "ABUNDANCE"
    assert current["percentiles"]["SOFR"]["p50"] == 4.31
    assert current["facilities"] == {"O/N-RRP-Volume": 120.0, "Foreign-Repo-Pool": None, "SRF-Volume": None}
    assert payload["dataSource"] == "real"
    assert 0 <= payload["stress"]["score"] <= 100


@pytest.mark.asyncio
async def test_first_cycle_backfills_history(monitor):
    payload = await monitor.market_data()

    # 40 provider days plus today's entry
    assert len(payload["historical"]) == 41
    today = datetime.now(timezone.utc).date().isoformat()
    assert payload["historical"][-1]["date"] == today
    assert payload["historical"][0]["EFFR-IORB"] == -7.0

    await monitor.market_data()
    assert len(monitor.history) == 41


@pytest.mark.asyncio
async def test_unknown_region_raises(monitor):
    with pytest.raises(KeyError):
        await monitor.market_data("APAC")
    assert monitor.valid_regions() == ["ALL", "EMEA", "US"]


@pytest.mark.asyncio
async def test_backfill_without_providers_uses_baseline(series_map):
    adapters = {name: FakeAdapter(name) for name in ("nyfed", "fred", "fx")}
    monitor = MarketMonitor(
        RateAggregator(adapters, series_map["rates"], SyntheticBaseline(seed=3)),
        HistoryStore(10),
        regions=series_map["regions"],
    )
    payload = await monitor.market_data()
    assert payload["dataSource"] == "mock"
    assert len(payload["historical"]) == 10
    assert payload["current"]["spreads"]["EFFR-IORB"] < 0


@pytest.mark.asyncio
async def test_percentiles_fall_back_to_history_window(series_map):
    adapters = {name: FakeAdapter(name) for name in ("nyfed", "fred", "fx")}
    history = HistoryStore(90)
    history.seed({"date": f"2025-01-{day:02d}", "SOFR": float(day), "EFFR": float(day) + 0.5} for day in range(1, 31))
    monitor = MarketMonitor(
        RateAggregator(adapters, series_map["rates"], SyntheticBaseline(seed=9)),
        history,
        regions=series_map["regions"],
    )

    first = await monitor._percentiles()
    second = await monitor._percentiles()
    assert first == second
    assert first["SOFR"]["p50"] == 15.0
    assert first["EFFR"]["p99"] == 30.5

    payload = await monitor.money_market_spreads()
    assert payload["dataSource"] == "mock"
    assert payload["percentiles"]["SOFR"]["p50"] == 15.0


@pytest.mark.asyncio
async def test_historical_rows_carry_every_catalog_series(monitor):
    payload = await monitor.historical_data(3)
    for row in payload["historical"]:
        assert row["EUR/USD"] is None
        assert "USD/JPY" in row
        assert row["IORB"] == 4.40


@pytest.mark.asyncio
async def test_historical_data(monitor):
    payload = await monitor.historical_data(5)
    assert payload["count"] == 5
    assert payload["requestedDays"] == 5
    assert payload["dataSource"] == "real"
    row = payload["historical"][-1]
    assert row["date"] == "2025-01-31"
    assert row["SOFR"] == 4.31
    assert row["GCF-TGCR"] == pytest.approx(4.0)


@pytest.mark.asyncio
async def test_endpoint_payloads(monitor):
    repo = await monitor.repo_rates()
    assert set(repo["rates"]) == {"SOFR", "BGCR", "TGCR", "GCF", "O/N-RRP"}

    reserves = await monitor.reserve_scarcity()
    assert set(reserves["spreads"]) == {"EFFR-IORB", "SOFR-IORB", "TGCR-RRP", "GCF-TGCR"}
    assert reserves["statuses"]["GCF-TGCR"] == "CONSTRAINED"

    spreads = await monitor.money_market_spreads()
    assert spreads["statuses"]["CP-OIS"] == "LOW"

    stress = await monitor.stress_indicators()
    assert set(stress) == {"score", "level", "components", "details"}


def test_health_reports_services(monitor):
    health = monitor.health()
    assert health["status"] == "ok"
    assert health["services"]["fred"]["status"] == "configured"
    assert health["services"]["history"]["days"] == 0


@pytest.mark.asyncio
async def test_lifecycle(monitor):
    await monitor.start()
    assert all(adapter.cache._sweeper is not None for adapter in monitor.aggregator.adapters.values())
    await monitor.close()
    assert all(adapter.cache._sweeper is None for adapter in monitor.aggregator.adapters.values())


def test_pool_sizes_cover_catalog_fan_out(series_map):
    sizes = pool_sizes(series_map["rates"])
    fred_series = sum(1 for info in series_map["rates"].values() if "fred" in info["sources"])
    assert sizes["fred"] >= fred_series
    assert sizes["fx"] >= 4


def test_frame_to_rows_nulls(monitor):
    df = SyntheticBaseline(seed=1).history(2)
    df.iloc[0, 0] = float("nan")
    rows = frame_to_rows(df)
    assert rows[0][df.columns[0]] is None
    assert isinstance(rows[1]["date"], str)
