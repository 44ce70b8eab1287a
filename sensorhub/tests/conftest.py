"""
Shared test fixtures
"""
from datetime import datetime, timedelta, timezone

import numpy as np
import pytest

from sensorhub.config.telemetry_config import AnomalyConfig, TelemetryConfig


class FixedClock:
    """Manually advanced clock for deterministic waveform tests"""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> datetime:
        self.now = self.now + timedelta(seconds=seconds)
        return self.now


@pytest.fixture
def clock():
    return FixedClock(datetime(2024, 3, 1, 6, 0, 0, tzinfo=timezone.utc))


@pytest.fixture
def rng():
    return np.random.default_rng(42)


@pytest.fixture
def quiet_config():
    """Default sensor types with anomalies disabled and no autostart"""
    config = TelemetryConfig()
    config.anomaly = AnomalyConfig(enabled=False)
    config.scheduler.autostart = False
    config.logging.file = None
    return config
