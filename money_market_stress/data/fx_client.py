"""
FX Rates
========

Adapter for the free ExchangeRate-API (no key required):
{base}/USD -> {"base": "USD", "date": "2025-01-31", "rates": {"EUR": 0.92, ...}}

Series ids are currency pairs ("EUR/USD", "USD/JPY"). Pairs quoted against
USD are inverted from the USD-based table. The free tier only exposes the
latest table, so a series never holds more than one observation.
"""

import logging
from datetime import date, datetime
from typing import Dict, List, Optional

import requests

from ..errors import ProviderUnavailable
from .scraping_infrastructure import (
    Observation,
    ProviderAdapter,
    TTLCache,
    clean_numeric_value,
    create_session,
)

logger = logging.getLogger(__name__)

TABLE_BASE = "USD"


class RateTable(dict):
    """Currency -> units per one base-currency unit, stamped with its publication date."""

    def __init__(self, rates: Dict[str, float], as_of: date):
        super().__init__(rates)
        self.as_of = as_of


def pair_from_table(pair: str, table: Dict[str, float]) -> Optional[float]:
    """
    Derive a pair quote from a USD-based table.

    Parameters
    ----------
    pair : str
        "BASE/QUOTE", one side being USD
    table : dict
        Units of each currency per 1 USD

    Returns
    -------
    Optional[float]
        Price of one BASE in QUOTE, None if the currency is missing
    """
    base, _, quote = pair.upper().partition("/")
    if base == TABLE_BASE:
        return clean_numeric_value(table.get(quote))
    if quote == TABLE_BASE:
        units = clean_numeric_value(table.get(base))
        if not units:
            return None
        return 1.0 / units
    raise ValueError(f"Pair {pair} is not quoted against {TABLE_BASE}")


class FXRateClient(ProviderAdapter):
    """USD-based FX table client."""

    name = "fx"
    supports_history = False

    def __init__(
        self,
        cache: TTLCache,
        base_url: str = "https://api.exchangerate-api.com/v4/latest",
        ttl: float = 60.0,
        timeout: float = 10.0,
        max_workers: int = 32,
        session: Optional[requests.Session] = None,
    ):
        super().__init__(cache, ttl, timeout, max_workers)
        self.base_url = base_url.rstrip("/")
        self.session = session or create_session()

    def _fetch_table(self, base: str) -> RateTable:
        url = f"{self.base_url}/{base}"
        try:
            response = self.session.get(url, timeout=self.timeout)
            response.raise_for_status()
            payload = response.json()
        except requests.RequestException as e:
            raise ProviderUnavailable(self.name, base, str(e)) from e
        except ValueError as e:
            raise ProviderUnavailable(self.name, base, "response is not JSON") from e

        rates = payload.get("rates") if isinstance(payload, dict) else None
        if not isinstance(rates, dict) or not rates:
            raise ProviderUnavailable(self.name, base, "missing rates table")

        try:
            as_of = datetime.strptime(str(payload.get("date")), "%Y-%m-%d").date()
        except ValueError:
            as_of = date.today()

        cleaned = {}
        for currency, raw in rates.items():
            value = clean_numeric_value(raw)
            if value is not None:
                cleaned[str(currency).upper()] = value
        return RateTable(cleaned, as_of)

    async def fetch_table(self, base: str = TABLE_BASE) -> Optional[RateTable]:
        """Latest rate table for a base currency, cached for ``ttl`` seconds."""
        return await self.cache.get_or_fetch(
            f"{self.name}:table:{base}",
            self.ttl,
            lambda: self._guarded(base, self._fetch_table, base),
        )

    async def fetch_series(self, series_id: str, count: int) -> Optional[List[Observation]]:
        table = await self.fetch_table(TABLE_BASE)
        if table is None:
            return None
        try:
            value = pair_from_table(series_id, table)
        except ValueError as e:
            logger.warning(f"fx: {e}")
            return None
        if value is None:
            logger.warning(f"fx: {series_id} missing from {TABLE_BASE} table")
            return None
        return [Observation(date=table.as_of, value=value)]

    def close(self):
        self.session.close()
        super().close()
