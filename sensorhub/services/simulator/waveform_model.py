"""
Synthetic Waveform Model
Generates realistic sensor readings for the demo dashboard

Each sensor type follows a diurnal sine cycle around its operating point,
with bounded random noise and periodic anomaly bursts that smoothly push
the value above its safety ceiling and back.
"""
import logging
import math
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Iterable, Optional, Tuple

import numpy as np

from sensorhub.config.telemetry_config import AnomalyConfig, SensorTypeConfig
from sensorhub.models.sensor import Reading, SensorType, format_timestamp

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class AnomalyState:
    """
    Anomaly lifecycle for one sensor type.

    While scheduled, `next_anomaly_time` is set and `end_time` is None.
    While active, `end_time` is set and `next_anomaly_time` is None.
    `duration` is drawn when the anomaly is scheduled.

    With anomaly scheduling disabled the state is idle: neither scheduled
    nor active. A forced anomaly returns to idle when it ends instead of
    scheduling the next one.
    """
    active: bool = False
    next_anomaly_time: Optional[datetime] = None
    duration: timedelta = timedelta(0)
    end_time: Optional[datetime] = None

    @property
    def start_time(self) -> Optional[datetime]:
        if not self.active or self.end_time is None:
            return None
        return self.end_time - self.duration

    def to_dict(self) -> Dict[str, object]:
        return {
            'active': self.active,
            'next_anomaly_time': format_timestamp(self.next_anomaly_time) if self.next_anomaly_time else None,
            'duration_seconds': self.duration.total_seconds(),
            'end_time': format_timestamp(self.end_time) if self.end_time else None,
        }


class WaveformModel:
    """
    Stateful per-sensor-type value generator.

    Features:
    - Diurnal cycle: full sine period over 24 hours
    - Uniform noise proportional to the type's normal variation
    - Scheduled anomaly envelope shaped as a half sine
    - Output clamped to the physical range and rounded to 2 decimals

    Randomness and time are injectable so tests are deterministic.
    """

    def __init__(
        self,
        sensor_types: Dict[SensorType, SensorTypeConfig],
        anomaly: Optional[AnomalyConfig] = None,
        rng: Optional[np.random.Generator] = None,
        clock: Optional[Clock] = None
    ):
        """
        Args:
            sensor_types: Static parameters per sensor type
            anomaly: Anomaly scheduling configuration
            rng: Random generator (seed it for reproducible output)
            clock: Callable returning the current timezone-aware datetime
        """
        self.sensor_types = dict(sensor_types)
        self.anomaly = anomaly or AnomalyConfig()
        self.rng = rng if rng is not None else np.random.default_rng()
        self.clock = clock or utc_now

        now = self.clock()
        self._states: Dict[SensorType, AnomalyState] = {}
        for sensor_type in self.sensor_types:
            state = AnomalyState()
            if self.anomaly.enabled:
                first_gap = self.anomaly.initial_delay_seconds or self.anomaly.interval_seconds
                self._schedule(state, now, first_gap)
            self._states[sensor_type] = state

        logger.info(
            f"WaveformModel initialized for {len(self.sensor_types)} sensor types "
            f"(anomalies {'enabled' if self.anomaly.enabled else 'disabled'})"
        )

    @property
    def types(self) -> Iterable[SensorType]:
        return self.sensor_types.keys()

    def get_state(self, sensor_type: SensorType) -> AnomalyState:
        return self._states[sensor_type]

    def generate(self, sensor_type: SensorType, now: Optional[datetime] = None) -> Reading:
        """
        Produce the next reading for a sensor type.

        Args:
            sensor_type: Sensor type to sample
            now: Override for the current time

        Returns:
            Reading clamped to the type's [min, max] range
        """
        config = self.sensor_types[sensor_type]
        state = self._states[sensor_type]
        now = now or self.clock()

        self._advance(sensor_type, state, now)

        time_based_variation = (
            math.sin(2 * math.pi * self._hour_of_day(now) / 24) * 0.5 * config.normal_variation
        )
        noise = self.rng.uniform(-1.0, 1.0) * 0.3 * config.normal_variation

        value = config.base_value + time_based_variation + noise
        value += self.anomaly_contribution(sensor_type, now)

        value = min(max(value, config.min), config.max)

        return Reading(
            value=round(float(value), 2),
            unit=config.unit,
            timestamp=format_timestamp(now),
        )

    def generate_all(self, now: Optional[datetime] = None) -> Dict[SensorType, Reading]:
        """One reading per configured sensor type, all stamped with the same time"""
        now = now or self.clock()
        return {sensor_type: self.generate(sensor_type, now) for sensor_type in self.sensor_types}

    def anomaly_contribution(self, sensor_type: SensorType, now: Optional[datetime] = None) -> float:
        """
        Current anomaly term for a sensor type.

        Rises from 0 to (safe_max - base_value) * excess_factor at the
        midpoint of the anomaly and falls back to 0 at its end.
        """
        state = self._states[sensor_type]
        if not state.active or state.end_time is None:
            return 0.0

        now = now or self.clock()
        duration = state.duration.total_seconds()
        if duration <= 0:
            return 0.0

        elapsed = (now - state.start_time).total_seconds()
        progress = min(max(elapsed / duration, 0.0), 1.0)

        config = self.sensor_types[sensor_type]
        excess = (config.safe_max - config.base_value) * self.anomaly.excess_factor
        return math.sin(math.pi * progress) * excess

    def force_anomaly(
        self,
        sensor_type: SensorType,
        duration_seconds: Optional[float] = None,
        now: Optional[datetime] = None
    ) -> AnomalyState:
        """
        Start an anomaly immediately, replacing any scheduled one.

        Args:
            sensor_type: Sensor type to disturb
            duration_seconds: Anomaly length (defaults to the already drawn duration)
            now: Override for the current time
        """
        state = self._states[sensor_type]
        now = now or self.clock()

        if duration_seconds is not None:
            state.duration = timedelta(seconds=duration_seconds)
        elif state.duration <= timedelta(0):
            state.duration = timedelta(seconds=self._draw(self.anomaly.duration_seconds))

        state.active = True
        state.end_time = now + state.duration
        state.next_anomaly_time = None

        logger.warning(
            f"Anomaly forced for {sensor_type.value}: "
            f"{state.duration.total_seconds():.0f}s until {format_timestamp(state.end_time)}"
        )
        return state

    def get_anomaly_status(self) -> Dict[str, Dict[str, object]]:
        return {sensor_type.value: state.to_dict() for sensor_type, state in self._states.items()}

    def _advance(self, sensor_type: SensorType, state: AnomalyState, now: datetime) -> None:
        """Apply anomaly state transitions due at `now`"""
        if (
            not state.active
            and state.next_anomaly_time is not None
            and now >= state.next_anomaly_time
        ):
            state.active = True
            state.end_time = now + state.duration
            state.next_anomaly_time = None
            logger.info(
                f"Anomaly started for {sensor_type.value} "
                f"(duration {state.duration.total_seconds():.0f}s)"
            )

        if state.active and state.end_time is not None and now >= state.end_time:
            state.active = False
            state.end_time = None
            if self.anomaly.enabled:
                self._schedule(state, now, self.anomaly.interval_seconds)
            logger.info(
                f"Anomaly ended for {sensor_type.value}, next at "
                f"{format_timestamp(state.next_anomaly_time) if state.next_anomaly_time else 'never'}"
            )

    def _schedule(self, state: AnomalyState, now: datetime, gap_range: Tuple[float, float]) -> None:
        state.next_anomaly_time = now + timedelta(seconds=self._draw(gap_range))
        state.duration = timedelta(seconds=self._draw(self.anomaly.duration_seconds))

    def _draw(self, value_range: Tuple[float, float]) -> float:
        low, high = value_range
        return float(self.rng.uniform(low, high))

    @staticmethod
    def _hour_of_day(moment: datetime) -> float:
        return moment.hour + moment.minute / 60 + moment.second / 3600
