"""
history_store.py
Bounded rolling window of daily snapshots feeding the percentile and
volatility estimators.
"""

import logging
from collections import deque
from datetime import date
from typing import Dict, Iterable, List, Mapping, Optional

logger = logging.getLogger(__name__)


class HistoryStore:
    """
    One entry per calendar day, oldest first, at most ``max_length`` entries.

    Entries are flat dicts: ``{"date": "YYYY-MM-DD", "SOFR": 4.31, ...}``.
    Appending an entry for the day already at the tail replaces it; a new day
    evicts the oldest entry once the bound is reached.
    """

    def __init__(self, max_length: int = 90):
        if max_length < 1:
            raise ValueError("max_length must be >= 1")
        self.max_length = max_length
        self._entries = deque(maxlen=max_length)

    def __len__(self) -> int:
        return len(self._entries)

    @staticmethod
    def _date_key(entry: Mapping) -> str:
        raw = entry.get("date")
        if isinstance(raw, date):
            return raw.isoformat()
        if not raw:
            raise ValueError("history entry needs a 'date'")
        return str(raw)

    def append(self, entry: Mapping) -> None:
        """Add the entry for its day, replacing the tail entry if it is the same day."""
        row = dict(entry)
        row["date"] = self._date_key(entry)

        if self._entries and self._entries[-1]["date"] == row["date"]:
            self._entries[-1] = row
            return
        if self._entries and row["date"] < self._entries[-1]["date"]:
            logger.debug(f"Ignoring out-of-order history entry for {row['date']}")
            return
        self._entries.append(row)

    def seed(self, entries: Iterable[Mapping]) -> int:
        """Back-fill from older entries (oldest first). Returns the number kept."""
        before = len(self._entries)
        for entry in entries:
            self.append(entry)
        return len(self._entries) - before

    def window(self) -> List[Dict]:
        """Copy of the entries, oldest first."""
        return [dict(entry) for entry in self._entries]

    def series(self, name: str, last: Optional[int] = None) -> List[float]:
        """Non-null values of one field, oldest first, optionally the last N entries only."""
        entries = list(self._entries)
        if last is not None:
            entries = entries[-last:]
        return [float(e[name]) for e in entries if e.get(name) is not None]

    def latest_date(self) -> Optional[str]:
        return self._entries[-1]["date"] if self._entries else None
