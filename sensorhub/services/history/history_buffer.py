"""
Reading History Buffer
Bounded in-memory store of recent reading sets, queried newest-first
"""
import logging
from typing import Any, Dict, List, Mapping, Optional

from sensorhub.models.sensor import HistoryEntry, Reading, SensorType, format_timestamp

logger = logging.getLogger(__name__)


class HistoryBuffer:
    """
    Bounded history of per-tick reading sets.

    Features:
    - Newest-first queries with an optional per-type projection
    - Sampling: only every `sample_every`-th append is stored
    - Batched eviction: the buffer may grow to capacity + overflow_margin
      before being trimmed back to capacity in one step
    - Hard ceiling on query size regardless of the requested limit

    Entries are kept oldest-first internally so appends and batch
    trims never shift the whole list.
    """

    def __init__(
        self,
        capacity: int = 100,
        overflow_margin: int = 20,
        sample_every: int = 1,
        max_query_limit: int = 100
    ):
        """
        Args:
            capacity: Entries retained after a trim
            overflow_margin: Extra entries tolerated before trimming
            sample_every: Store one entry per this many appends
            max_query_limit: Upper bound on entries returned by query()
        """
        if capacity < 1:
            raise ValueError("capacity must be >= 1")
        if overflow_margin < 0:
            raise ValueError("overflow_margin must be >= 0")
        if sample_every < 1:
            raise ValueError("sample_every must be >= 1")
        if max_query_limit < 1:
            raise ValueError("max_query_limit must be >= 1")

        self.capacity = capacity
        self.overflow_margin = overflow_margin
        self.sample_every = sample_every
        self.max_query_limit = max_query_limit

        self._entries: List[HistoryEntry] = []
        self._latest: Dict[SensorType, Reading] = {}
        self._append_count = 0
        self._stored_count = 0
        self._trim_count = 0

    def append(self, readings: Mapping[SensorType, Reading], timestamp: Optional[str] = None) -> bool:
        """
        Record a reading set.

        `latest()` is updated on every call; the history entry is only
        stored on sampled calls.

        Returns:
            True if a history entry was stored
        """
        self._latest = dict(readings)
        self._append_count += 1

        if (self._append_count - 1) % self.sample_every != 0:
            return False

        self._entries.append(HistoryEntry(
            timestamp=timestamp or format_timestamp(),
            readings=dict(readings),
        ))
        self._stored_count += 1

        if len(self._entries) > self.capacity + self.overflow_margin:
            excess = len(self._entries) - self.capacity
            del self._entries[:excess]
            self._trim_count += 1
            logger.debug(f"History trimmed by {excess} entries to {len(self._entries)}")

        return True

    def query(
        self,
        sensor_type: Optional[SensorType] = None,
        limit: Optional[int] = None
    ) -> List[HistoryEntry]:
        """
        Recent entries, newest first.

        Args:
            sensor_type: Project each entry to this type, dropping entries without it
            limit: Requested number of entries (capped at max_query_limit)

        Returns:
            At most min(limit, max_query_limit) entries
        """
        cap = self.max_query_limit if limit is None else min(limit, self.max_query_limit)
        if cap <= 0:
            return []

        results: List[HistoryEntry] = []
        for entry in reversed(self._entries):
            if sensor_type is not None:
                entry = entry.project(sensor_type)
                if entry is None:
                    continue
            results.append(entry)
            if len(results) >= cap:
                break

        return results

    def latest(self) -> Dict[SensorType, Reading]:
        """Most recent reading set (empty before the first append)"""
        return dict(self._latest)

    def clear(self) -> None:
        self._entries.clear()
        self._latest = {}

    def stats(self) -> Dict[str, Any]:
        return {
            'size': len(self._entries),
            'capacity': self.capacity,
            'overflow_margin': self.overflow_margin,
            'sample_every': self.sample_every,
            'appended': self._append_count,
            'stored': self._stored_count,
            'trims': self._trim_count,
        }

    def __len__(self) -> int:
        return len(self._entries)
