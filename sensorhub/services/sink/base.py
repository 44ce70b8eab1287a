"""
Alert sink interface
"""
from abc import ABC, abstractmethod
from typing import Any, Dict

from sensorhub.models.alert import Alert


class AlertSink(ABC):
    """Best-effort destination for safety alerts"""

    name = "sink"

    def __init__(self):
        self.written = 0
        self.failed = 0

    @property
    @abstractmethod
    def enabled(self) -> bool:
        """Whether the sink is configured to accept writes"""

    @abstractmethod
    async def write_alert(self, alert: Alert) -> bool:
        """Persist one alert; returns False on failure instead of raising"""

    async def close(self) -> None:
        """Release network resources"""

    def get_stats(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'enabled': self.enabled,
            'written': self.written,
            'failed': self.failed,
        }
