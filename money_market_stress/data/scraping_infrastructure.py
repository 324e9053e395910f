"""
Provider Infrastructure
=======================

Shared plumbing for every external data client:
- TTL cache with lazy expiry and a periodic eviction sweep
- Sliding-window rate limiter keyed by client identity
- HTTP session with sensible defaults
- Base adapter: cache + bounded timeout + failure-to-None conversion
- Logging setup with API-key masking
"""

import asyncio
import logging
import math
import re
import time
from collections import deque
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from functools import partial
from datetime import date
from typing import Any, Awaitable, Callable, Deque, Dict, List, NamedTuple, Optional

import requests

from ..errors import ProviderUnavailable

logger = logging.getLogger(__name__)

Clock = Callable[[], float]


# ============================================================================
# LOGGING
# ============================================================================

class SensitiveDataFilter(logging.Filter):
    """Mask api_key query parameters before a record is emitted."""

    PATTERN = re.compile(r"(api_?key=)[^&\s'\"]+", re.IGNORECASE)

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        masked = self.PATTERN.sub(r"\1***MASKED***", message)
        if masked != message:
            record.msg = masked
            record.args = ()
        return True


def setup_logging(level: str = "INFO") -> None:
    """Configure root logging once for the process."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    for handler in logging.getLogger().handlers:
        if not any(isinstance(f, SensitiveDataFilter) for f in handler.filters):
            handler.addFilter(SensitiveDataFilter())


# ============================================================================
# CACHING SYSTEM
# ============================================================================

@dataclass(frozen=True)
class CacheEntry:
    key: str
    value: Any
    written_at: float
    ttl: float

    def is_live(self, now: float) -> bool:
        return now - self.written_at < self.ttl


class TTLCache:
    """
    In-memory key/value cache with per-entry TTL.

    Reads evict expired entries lazily. A background sweep, started with
    ``start()``, drops entries older than twice their TTL so memory stays
    bounded even for keys that are never read again. The sweep builds a new
    map and swaps it in, so an in-flight read never sees a half-pruned dict.

    Example:
        cache = TTLCache(default_ttl=300)
        value = await cache.get_or_fetch("sofr:1", 300, fetch_sofr)
    """

    def __init__(
        self,
        default_ttl: float = 60.0,
        sweep_interval: Optional[float] = None,
        clock: Clock = time.monotonic,
    ):
        self.default_ttl = default_ttl
        self.sweep_interval = sweep_interval if sweep_interval is not None else default_ttl * 5
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}
        self._sweeper: Optional[asyncio.Task] = None

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, key: str) -> Optional[Any]:
        """Return the live value for key, or None."""
        entry = self._entries.get(key)
        if entry is None:
            logger.debug(f"Cache miss: {key}")
            return None
        if not entry.is_live(self._clock()):
            logger.debug(f"Cache expired: {key}")
            self._entries.pop(key, None)
            return None
        logger.debug(f"Cache hit: {key}")
        return entry.value

    def set(self, key: str, value: Any, ttl: Optional[float] = None):
        """Write or overwrite an entry."""
        self._entries[key] = CacheEntry(
            key=key,
            value=value,
            written_at=self._clock(),
            ttl=self.default_ttl if ttl is None else ttl,
        )

    async def get_or_fetch(
        self,
        key: str,
        ttl: Optional[float],
        fetch_fn: Callable[[], Awaitable[Any]],
    ) -> Optional[Any]:
        """
        Return the cached value, fetching it when missing or expired.

        Parameters
        ----------
        key : str
            Cache key
        ttl : float, optional
            Lifetime in seconds for a fresh value (default_ttl when None)
        fetch_fn : callable
            Coroutine function producing the value; None means failure

        Returns
        -------
        Optional[Any]
            Cached or fetched value. Failures are not cached, so the next
            call retries immediately.
        """
        cached = self.get(key)
        if cached is not None:
            return cached

        value = await fetch_fn()
        if value is not None:
            self.set(key, value, ttl)
        return value

    def sweep(self) -> int:
        """Drop entries stale beyond 2x their TTL. Returns the number removed."""
        now = self._clock()
        kept = {
            key: entry
            for key, entry in self._entries.items()
            if now - entry.written_at <= 2 * entry.ttl
        }
        removed = len(self._entries) - len(kept)
        self._entries = kept
        if removed:
            logger.debug(f"Cache sweep evicted {removed} entries")
        return removed

    def clear(self):
        self._entries = {}

    def start(self):
        if self._sweeper is None:
            self._sweeper = asyncio.create_task(run_periodically(self.sweep_interval, self.sweep))

    async def stop(self):
        await _cancel(self._sweeper)
        self._sweeper = None


# ============================================================================
# RATE LIMITER
# ============================================================================

class RateLimiter:
    """
    Sliding-window admission control keyed by client id.

    Example:
        limiter = RateLimiter(window=60, capacity=60)
        if not limiter.admit(client_ip):
            return too_many_requests()
    """

    def __init__(self, window: float = 60.0, capacity: int = 60, clock: Clock = time.monotonic):
        self.window = window
        self.capacity = capacity
        self._clock = clock
        self._records: Dict[str, Deque[float]] = {}
        self._sweeper: Optional[asyncio.Task] = None

    def __len__(self) -> int:
        return len(self._records)

    def _prune(self, timestamps: Deque[float], now: float):
        cutoff = now - self.window
        while timestamps and timestamps[0] <= cutoff:
            timestamps.popleft()

    def admit(self, client_id: str) -> bool:
        """Record and allow the request iff the client is under capacity."""
        now = self._clock()
        timestamps = self._records.setdefault(client_id, deque())
        self._prune(timestamps, now)

        if len(timestamps) >= self.capacity:
            logger.info(f"Rate limit reached for {client_id} ({self.capacity}/{self.window:.0f}s)")
            return False

        timestamps.append(now)
        return True

    def sweep(self) -> int:
        """Forget clients with no request left inside the window."""
        now = self._clock()
        kept = {}
        for client_id, timestamps in self._records.items():
            self._prune(timestamps, now)
            if timestamps:
                kept[client_id] = timestamps
        removed = len(self._records) - len(kept)
        self._records = kept
        return removed

    def start(self):
        if self._sweeper is None:
            self._sweeper = asyncio.create_task(run_periodically(self.window, self.sweep))

    async def stop(self):
        await _cancel(self._sweeper)
        self._sweeper = None


async def run_periodically(interval: float, fn: Callable[[], Any]):
    """Call fn every interval seconds until cancelled."""
    while True:
        await asyncio.sleep(interval)
        try:
            fn()
        except Exception:
            logger.exception(f"Periodic task {getattr(fn, '__qualname__', fn)} failed")


async def _cancel(task: Optional[asyncio.Task]):
    if task is None:
        return
    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        pass


# ============================================================================
# HTTP SESSION
# ============================================================================

def create_session() -> requests.Session:
    """
    Create an HTTP session with JSON defaults.

    No transport-level retry: a failed call returns None and the next fetch
    cycle (driven by cache expiry) tries again.
    """
    session = requests.Session()
    session.headers.update({
        "User-Agent": "money-market-stress/0.1 (+https://markets.newyorkfed.org)",
        "Accept": "application/json",
        "Accept-Encoding": "gzip, deflate",
    })
    return session


# ============================================================================
# PROVIDER ADAPTER BASE
# ============================================================================

class Observation(NamedTuple):
    date: date
    value: float


def clean_numeric_value(raw: Any) -> Optional[float]:
    """
    Parse a provider value into a float.

    Example: "1,234.56" -> 1234.56, "." -> None, "" -> None
    """
    if raw is None:
        return None
    if isinstance(raw, (int, float)):
        value = float(raw)
    else:
        text = str(raw).replace(",", "").replace("$", "").strip()
        if text in ("", ".", "NaN", "nan"):
            return None
        try:
            value = float(text)
        except ValueError:
            return None
    if math.isnan(value) or math.isinf(value):
        return None
    return value


class ProviderAdapter:
    """
    Uniform "latest N observations of series X" access to one provider.

    Subclasses implement ``_fetch_observations`` as a blocking call; it runs
    on the adapter's own thread pool under ``asyncio.wait_for`` so the event
    loop is never blocked beyond ``timeout``. The pool must be at least as
    wide as the number of series fetched at once, otherwise queued calls
    spend their timeout waiting for a worker. Any failure is logged and
    surfaces as None.
    """

    name = "provider"
    supports_history = True

    def __init__(self, cache: TTLCache, ttl: float, timeout: float = 10.0, max_workers: int = 32):
        self.cache = cache
        self.ttl = ttl
        self.timeout = timeout
        self.max_workers = max_workers
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix=self.name)

    @property
    def configured(self) -> bool:
        return True

    def _fetch_observations(self, series_id: str, count: int) -> List[Observation]:
        raise NotImplementedError

    async def _guarded(self, series_id: str, fn: Callable[..., Any], *args) -> Optional[Any]:
        """Run a blocking provider call on the adapter pool, bounded by the timeout; failures become None."""
        loop = asyncio.get_running_loop()
        try:
            return await asyncio.wait_for(loop.run_in_executor(self._executor, partial(fn, *args)), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.warning(f"{self.name}: {series_id} timed out after {self.timeout:.0f}s")
        except ProviderUnavailable as e:
            logger.warning(str(e))
        except Exception as e:
            logger.warning(f"{self.name}: {series_id} failed: {type(e).__name__}: {e}")
        return None

    async def _fetch_uncached(self, series_id: str, count: int) -> Optional[List[Observation]]:
        observations = await self._guarded(series_id, self._fetch_observations, series_id, count)
        if not observations:
            logger.warning(f"{self.name}: {series_id} returned no observations")
            return None
        return sorted(observations, key=lambda obs: obs.date)[-count:]

    async def fetch_series(self, series_id: str, count: int) -> Optional[List[Observation]]:
        """
        Fetch the latest observations of a series, oldest first.

        Parameters
        ----------
        series_id : str
            Provider-specific series identifier
        count : int
            Number of observations wanted

        Returns
        -------
        Optional[List[Observation]]
            Up to ``count`` observations, or None when unavailable
        """
        return await self.cache.get_or_fetch(
            f"{self.name}:{series_id}:{count}",
            self.ttl,
            lambda: self._fetch_uncached(series_id, count),
        )

    async def fetch_latest(self, series_id: str) -> Optional[float]:
        observations = await self.fetch_series(series_id, 1)
        if not observations:
            return None
        return observations[-1].value

    def close(self):
        self._executor.shutdown(wait=False, cancel_futures=True)
