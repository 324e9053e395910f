import time
from datetime import date, timedelta

import pytest

from money_market_stress.config import load_series_map
from money_market_stress.data.history_store import HistoryStore
from money_market_stress.data.master_scraper import RateAggregator
from money_market_stress.data.scraping_infrastructure import Observation, ProviderAdapter, TTLCache
from money_market_stress.data.synthetic import SyntheticBaseline
from money_market_stress.errors import ProviderUnavailable
from money_market_stress.app.service import MarketMonitor

END_DATE = date(2025, 1, 31)

# Economic-data ids from the packaged series map -> plausible levels
FRED_LEVELS = {
    "SOFR": 4.31,
    "EFFR": 4.33,
    "OBFR": 4.32,
    "BGCR": 4.30,
    "TGCR": 4.30,
    "IORB": 4.40,
    "GCFREPO": 4.34,
    "RRPONTSYAWARD": 4.25,
    "SOFR90DAYAVG": 4.35,
    "DCPF3M": 4.45,
    "DTB3": 4.28,
    "IR3TIB01EZM156N": 2.70,
    "IUDSOIA": 4.70,
    "RRPONTSYD": 120.0,
}

FX_LEVELS = {"EUR/USD": 1.04, "GBP/USD": 1.24, "USD/JPY": 154.2, "USD/CHF": 0.91}


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


def daily(values, end: date = END_DATE):
    """Observations for consecutive days ending at ``end``."""
    values = list(values)
    start = end - timedelta(days=len(values) - 1)
    return [Observation(start + timedelta(days=i), float(v)) for i, v in enumerate(values)]


class FakeAdapter(ProviderAdapter):
    """
    In-memory provider. ``series`` maps id -> float, list of Observation or
    an exception instance to raise. Unknown ids are unavailable.
    """

    def __init__(self, name, series=None, clock=None, supports_history=True, timeout=1.0, delay=0.0, max_workers=32):
        cache = TTLCache(default_ttl=300, clock=clock) if clock else TTLCache(default_ttl=300)
        super().__init__(cache, ttl=300, timeout=timeout, max_workers=max_workers)
        self.name = name
        self.series = dict(series or {})
        self.supports_history = supports_history
        self.delay = delay
        self.calls = []

    def _fetch_observations(self, series_id, count):
        self.calls.append((series_id, count))
        if self.delay:
            time.sleep(self.delay)
        data = self.series.get(series_id)
        if data is None:
            raise ProviderUnavailable(self.name, series_id, "no data")
        if isinstance(data, Exception):
            raise data
        if isinstance(data, (int, float)):
            return [Observation(END_DATE, float(data))]
        return list(data)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def series_map():
    return load_series_map()


@pytest.fixture
def fred_adapter():
    return FakeAdapter("fred", {sid: daily([level] * 40) for sid, level in FRED_LEVELS.items()})


@pytest.fixture
def nyfed_adapter():
    return FakeAdapter("nyfed")


@pytest.fixture
def fx_adapter():
    return FakeAdapter("fx", FX_LEVELS, supports_history=False)


@pytest.fixture
def adapters(nyfed_adapter, fred_adapter, fx_adapter):
    return {"nyfed": nyfed_adapter, "fred": fred_adapter, "fx": fx_adapter}


@pytest.fixture
def aggregator(adapters, series_map):
    return RateAggregator(adapters, series_map["rates"], SyntheticBaseline(seed=7))


@pytest.fixture
def monitor(aggregator, series_map):
    return MarketMonitor(aggregator, HistoryStore(90), regions=series_map["regions"])
