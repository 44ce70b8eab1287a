"""
Safety Alert Models
Threshold table entries and the alerts raised against them
"""
from dataclasses import dataclass
from typing import Any, Dict

from sensorhub.models.sensor import SensorType


@dataclass(frozen=True)
class ThresholdEntry:
    """
    Safe operating band for one sensor type.

    Entries are immutable; an update swaps in a new entry so evaluation
    never observes a half-applied change.
    """
    min: float
    max: float
    unit: str

    def contains(self, value: float) -> bool:
        return self.min <= value <= self.max

    def to_dict(self) -> Dict[str, Any]:
        return {'min': self.min, 'max': self.max, 'unit': self.unit}


@dataclass(frozen=True)
class Alert:
    """Unsafe reading detected by the threshold evaluator"""
    type: SensorType
    value: float
    unit: str
    threshold: float
    timestamp: str
    message: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            'type': self.type.value,
            'value': self.value,
            'unit': self.unit,
            'threshold': self.threshold,
            'timestamp': self.timestamp,
            'message': self.message,
        }
