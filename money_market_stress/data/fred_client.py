"""
fred_client.py
FRED adapter: latest observations of economic-data series (IORB, EFFR, GC repo,
O/N RRP, commercial paper, T-bills, EURIBOR, SONIA...).
"""

import logging
from typing import List, Optional

import pandas as pd
from fredapi import Fred

from ..errors import ProviderUnavailable
from .scraping_infrastructure import Observation, ProviderAdapter, TTLCache

logger = logging.getLogger(__name__)


class FREDClient(ProviderAdapter):
    """
    FRED series client.

    FRED marks missing observations with a "." sentinel; fredapi turns it into
    NaN, which is dropped here so callers only ever see real values.
    """

    name = "fred"

    def __init__(
        self,
        api_key: Optional[str],
        cache: TTLCache,
        ttl: float = 300.0,
        timeout: float = 10.0,
        max_workers: int = 32,
    ):
        """
        Initialize FRED client.

        Parameters
        ----------
        api_key : str, optional
            FRED API key. Without one the client is unconfigured and every
            fetch returns None.
        cache : TTLCache
            Cache shared by this adapter's calls
        ttl : float
            Seconds a fetched series stays fresh
        timeout : float
            Per-call timeout in seconds
        max_workers : int
            Worker threads, at least the number of series fetched at once
        """
        super().__init__(cache, ttl, timeout, max_workers)
        self.fred = Fred(api_key=api_key) if api_key else None
        if self.fred is None:
            logger.warning(
                "FRED_API_KEY not set; FRED series unavailable. "
                "Get a free key at https://fred.stlouisfed.org/docs/api/api_key.html"
            )

    @property
    def configured(self) -> bool:
        return self.fred is not None

    def _fetch_observations(self, series_id: str, count: int) -> List[Observation]:
        if self.fred is None:
            raise ProviderUnavailable(self.name, series_id, "no API key configured")

        # Newest first so `limit` keeps the latest observations; a few extra
        # rows absorb "." placeholders on holidays.
        data = self.fred.get_series(series_id, sort_order="desc", limit=count + max(5, count // 4))
        if not isinstance(data, pd.Series):
            raise ProviderUnavailable(self.name, series_id, "unexpected payload type")

        data = data.dropna().sort_index()
        return [
            Observation(date=pd.Timestamp(idx).date(), value=float(value))
            for idx, value in data.tail(count).items()
        ]
