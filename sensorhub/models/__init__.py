"""
Data models for SensorHub
"""
from sensorhub.models.sensor import SensorType, Reading, HistoryEntry, format_timestamp, readings_to_dict
from sensorhub.models.alert import Alert, ThresholdEntry

__all__ = [
    "SensorType",
    "Reading",
    "HistoryEntry",
    "format_timestamp",
    "readings_to_dict",
    "Alert",
    "ThresholdEntry",
]
