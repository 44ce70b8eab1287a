"""
Bounded in-process log of recent safety alerts (newest first)
"""
import logging
from collections import deque
from typing import Deque, Iterable, List, Optional

from sensorhub.models.alert import Alert
from sensorhub.models.sensor import SensorType

logger = logging.getLogger(__name__)


class AlertLog:
    """Newest-first alert history; the oldest alert is dropped once full"""

    def __init__(self, capacity: int = 100):
        if capacity < 1:
            raise ValueError("capacity must be >= 1")
        self.capacity = capacity
        self._alerts: Deque[Alert] = deque(maxlen=capacity)
        self.total_recorded = 0

    def add(self, alert: Alert) -> None:
        self._alerts.appendleft(alert)
        self.total_recorded += 1

    def extend(self, alerts: Iterable[Alert]) -> None:
        for alert in alerts:
            self.add(alert)

    def query(
        self,
        sensor_type: Optional[SensorType] = None,
        limit: Optional[int] = None
    ) -> List[Alert]:
        """Alerts newest-first, optionally filtered by type and truncated to `limit`"""
        alerts = [a for a in self._alerts if sensor_type is None or a.type == sensor_type]
        if limit is not None:
            alerts = alerts[:max(limit, 0)]
        return alerts

    def clear(self) -> None:
        self._alerts.clear()

    def __len__(self) -> int:
        return len(self._alerts)
