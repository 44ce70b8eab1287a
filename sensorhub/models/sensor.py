"""
Sensor Reading Models
Value objects produced by the waveform model and consumed by the
history buffer, threshold evaluator and realtime broadcast
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from sensorhub.core.error_handling import InvalidSensorTypeError


class SensorType(str, Enum):
    """Simulated sensor channels"""
    VIBRATION = "VIBRATION"
    TEMPERATURE = "TEMPERATURE"
    CURRENT = "CURRENT"

    @classmethod
    def parse(cls, value: Any) -> "SensorType":
        """
        Resolve a sensor type from user input (case-insensitive name).

        Raises:
            InvalidSensorTypeError: If the value names no known sensor type
        """
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls[value.strip().upper()]
            except KeyError:
                pass
        raise InvalidSensorTypeError(
            f"Invalid sensor type: {value}",
            details={'valid_types': [t.value for t in cls]}
        )


def format_timestamp(moment: Optional[datetime] = None) -> str:
    """ISO-8601 UTC timestamp with millisecond precision, e.g. 2024-01-01T00:00:00.000Z"""
    if moment is None:
        moment = datetime.now(timezone.utc)
    elif moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    moment = moment.astimezone(timezone.utc)
    return moment.strftime('%Y-%m-%dT%H:%M:%S.') + f"{moment.microsecond // 1000:03d}Z"


@dataclass(frozen=True)
class Reading:
    """Single sensor sample"""
    value: float
    unit: str
    timestamp: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            'value': self.value,
            'unit': self.unit,
            'timestamp': self.timestamp,
        }


@dataclass(frozen=True)
class HistoryEntry:
    """
    Readings recorded for one tick.

    `readings` may hold a subset of sensor types when the entry is a
    projection produced by a type-filtered history query.
    """
    timestamp: str
    readings: Dict[SensorType, Reading] = field(default_factory=dict)

    def project(self, sensor_type: SensorType) -> Optional["HistoryEntry"]:
        """Entry restricted to one sensor type, or None if it has no reading for it"""
        reading = self.readings.get(sensor_type)
        if reading is None:
            return None
        return HistoryEntry(timestamp=self.timestamp, readings={sensor_type: reading})

    def to_dict(self) -> Dict[str, Any]:
        """Flattened wire shape: {"timestamp": ..., "VIBRATION": {...}, ...}"""
        data: Dict[str, Any] = {'timestamp': self.timestamp}
        for sensor_type, reading in self.readings.items():
            data[sensor_type.value] = reading.to_dict()
        return data


def readings_to_dict(readings: Dict[SensorType, Reading]) -> Dict[str, Dict[str, Any]]:
    """Serialize a per-type reading set for the API and realtime channel"""
    return {sensor_type.value: reading.to_dict() for sensor_type, reading in readings.items()}
