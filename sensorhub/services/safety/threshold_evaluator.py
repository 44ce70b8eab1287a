"""
Threshold-Based Safety Evaluator
Evaluates sensor readings against a runtime-mutable threshold table
"""
import logging
import os
import threading
from typing import Dict, List, Mapping, Optional, Union

from sensorhub.config.telemetry_config import SensorTypeConfig
from sensorhub.core.error_handling import InvalidArgumentError, InvalidSensorTypeError
from sensorhub.models.alert import Alert, ThresholdEntry
from sensorhub.models.sensor import Reading, SensorType, format_timestamp

logger = logging.getLogger(__name__)


def _env_bound(env: Mapping[str, str], name: str, default: float) -> float:
    """Numeric threshold override from the environment; unparsable values keep the default"""
    raw = env.get(name)
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning(f"Ignoring {name}={raw!r}: not a number, keeping {default}")
        return default


class ThresholdEvaluator:
    """
    Checks if sensor readings leave their configured safe band

    - value < min or value > max -> one Alert for that reading
    - sensor types without a configured threshold are treated as safe
    - thresholds can be patched at runtime; updates apply to the next evaluation
    """

    def __init__(self, thresholds: Mapping[SensorType, ThresholdEntry]):
        """
        Args:
            thresholds: Dict mapping sensor type -> ThresholdEntry
        """
        self._thresholds: Dict[SensorType, ThresholdEntry] = dict(thresholds)
        self._lock = threading.Lock()
        logger.info(f"ThresholdEvaluator initialized with {len(self._thresholds)} threshold configs")

    @classmethod
    def from_sensor_configs(
        cls,
        sensor_types: Mapping[SensorType, SensorTypeConfig],
        environ: Optional[Mapping[str, str]] = None
    ) -> "ThresholdEvaluator":
        """
        Seed thresholds from the simulation config, then apply
        <TYPE>_MIN_THRESHOLD / <TYPE>_MAX_THRESHOLD environment overrides.
        """
        env = os.environ if environ is None else environ
        thresholds = {}

        for sensor_type, config in sensor_types.items():
            low, high = config.min, config.safe_max

            low = _env_bound(env, f"{sensor_type.value}_MIN_THRESHOLD", low)
            high = _env_bound(env, f"{sensor_type.value}_MAX_THRESHOLD", high)

            thresholds[sensor_type] = ThresholdEntry(min=low, max=high, unit=config.unit)

        evaluator = cls(thresholds)
        logger.info(
            "Safety thresholds initialized: "
            + ", ".join(f"{t.value}=[{e.min}, {e.max}] {e.unit}" for t, e in thresholds.items())
        )
        return evaluator

    def is_reading_safe(self, sensor_type: SensorType, value: float) -> bool:
        """True if the value lies within the threshold band (or no threshold exists)"""
        entry = self._thresholds.get(sensor_type)
        if entry is None:
            return True
        return entry.contains(value)

    def evaluate(self, readings: Mapping[SensorType, Reading]) -> List[Alert]:
        """
        Check a reading set for threshold violations

        Args:
            readings: Dict mapping sensor type -> Reading

        Returns:
            List of Alert objects, empty if every reading is safe
        """
        alerts = []

        for sensor_type, reading in readings.items():
            entry = self._thresholds.get(sensor_type)
            if entry is None:
                logger.debug(f"No threshold configured for {sensor_type}, treating as safe")
                continue

            if entry.contains(reading.value):
                continue

            unit = reading.unit or entry.unit
            alert = Alert(
                type=sensor_type,
                value=reading.value,
                unit=unit,
                threshold=entry.max,
                timestamp=reading.timestamp or format_timestamp(),
                message=f"{sensor_type.value} exceeded safe level: {reading.value} {unit}",
            )
            alerts.append(alert)

            logger.warning(f"SAFETY ALERT: {alert.message}")

        return alerts

    def get_thresholds(
        self,
        sensor_type: Optional[SensorType] = None
    ) -> Union[Dict[SensorType, ThresholdEntry], Optional[ThresholdEntry]]:
        """
        Current thresholds for all sensor types, or for one.

        Returns:
            Copy of the full table, or a single entry (None if not configured)
        """
        if sensor_type is not None:
            return self._thresholds.get(sensor_type)
        return dict(self._thresholds)

    def update_threshold(
        self,
        sensor_type: Union[SensorType, str],
        min: Optional[float] = None,
        max: Optional[float] = None
    ) -> ThresholdEntry:
        """
        Merge-patch the threshold of one sensor type

        Args:
            sensor_type: Sensor type to update
            min: New lower bound (unchanged if None)
            max: New upper bound (unchanged if None)

        Returns:
            Updated ThresholdEntry

        Raises:
            InvalidSensorTypeError: Unknown or unconfigured sensor type
            InvalidArgumentError: Neither bound supplied, or min > max after the patch
        """
        sensor_type = SensorType.parse(sensor_type)

        if min is None and max is None:
            raise InvalidArgumentError("At least one threshold value (min or max) is required")

        with self._lock:
            current = self._thresholds.get(sensor_type)
            if current is None:
                raise InvalidSensorTypeError(f"Invalid sensor type: {sensor_type.value}")

            updated = ThresholdEntry(
                min=float(min) if min is not None else current.min,
                max=float(max) if max is not None else current.max,
                unit=current.unit,
            )
            if updated.min > updated.max:
                raise InvalidArgumentError(
                    f"Threshold min ({updated.min}) must not exceed max ({updated.max})",
                    details={'sensor_type': sensor_type.value}
                )

            self._thresholds[sensor_type] = updated

        logger.info(
            f"Updated safety thresholds for {sensor_type.value}: "
            f"min={updated.min}, max={updated.max} {updated.unit}"
        )
        return updated
