"""
FRBNY Reference Rates
=====================

Adapter for the Federal Reserve Bank of New York Markets Data API:
SOFR, BGCR, TGCR (secured) and EFFR, OBFR (unsecured).

Endpoint: {base}/rates/{secured|unsecured}/{rate}/last/{n}.json
No API key required. Rates are published once a day (~8am ET) for the
prior business day.
"""

import logging
from datetime import datetime
from typing import List, Optional

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


class NYFedClient(ProviderAdapter):
    """
    NY Fed reference-rate client.

    Series ids are API paths such as ``secured/sofr`` or ``unsecured/effr``.
    """

    name = "nyfed"

    def __init__(
        self,
        cache: TTLCache,
        base_url: str = "https://markets.newyorkfed.org/api",
        ttl: float = 300.0,
        timeout: float = 10.0,
        max_workers: int = 32,
        session: Optional[requests.Session] = None,
    ):
        super().__init__(cache, ttl, timeout, max_workers)
        self.base_url = base_url.rstrip("/")
        self.session = session or create_session()

    def _fetch_observations(self, series_id: str, count: int) -> List[Observation]:
        url = f"{self.base_url}/rates/{series_id}/last/{count}.json"
        try:
            response = self.session.get(url, timeout=self.timeout)
            response.raise_for_status()
            payload = response.json()
        except requests.RequestException as e:
            raise ProviderUnavailable(self.name, series_id, str(e)) from e
        except ValueError as e:
            raise ProviderUnavailable(self.name, series_id, "response is not JSON") from e

        ref_rates = payload.get("refRates") if isinstance(payload, dict) else None
        if not isinstance(ref_rates, list):
            raise ProviderUnavailable(self.name, series_id, "missing refRates")

        observations = []
        for rate in ref_rates:
            if not isinstance(rate, dict):
                continue
            value = clean_numeric_value(rate.get("percentRate"))
            effective = rate.get("effectiveDate")
            if value is None or not effective:
                continue
            try:
                observed = datetime.strptime(effective, "%Y-%m-%d").date()
            except (TypeError, ValueError):
                logger.debug(f"nyfed: skipping {series_id} row with bad date {effective!r}")
                continue
            observations.append(Observation(date=observed, value=value))

        return observations

    def close(self):
        self.session.close()
        super().close()
