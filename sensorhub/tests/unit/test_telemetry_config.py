"""
Unit tests for telemetry configuration loading, overrides and validation
"""
import pytest
import yaml

from sensorhub.config.telemetry_config import (
    DEFAULT_CONFIG_PATH,
    SensorTypeConfig,
    TelemetryConfig,
    TelemetryConfigLoader,
    default_sensor_types,
)
from sensorhub.core.error_handling import InvalidSensorTypeError
from sensorhub.models.sensor import SensorType


@pytest.fixture
def config_file(tmp_path):
    """Minimal YAML config overriding a few keys"""
    path = tmp_path / "telemetry.yaml"
    path.write_text(
        """
sensor_types:
  temperature:
    safe_max: 75
    base_value: 50
anomaly:
  enabled: false
history:
  capacity: 10
  overflow_margin: 2
scheduler:
  tick_interval_ms: 250
  autostart: false
mqtt:
  enabled: true
  broker_port: 1884
""",
        encoding="utf-8",
    )
    return path


class TestLoading:

    @pytest.mark.unit
    def test_shipped_config_matches_defaults(self):
        config = TelemetryConfigLoader.load(DEFAULT_CONFIG_PATH)

        assert config.sensor_types == default_sensor_types()
        assert config.scheduler.tick_interval_ms == 1000
        assert config.history.capacity == 100
        assert config.anomaly.duration_seconds == (120.0, 300.0)
        assert TelemetryConfigLoader.validate(config) == (True, [])

    @pytest.mark.unit
    def test_missing_file_gives_defaults(self, tmp_path):
        config = TelemetryConfigLoader.load(str(tmp_path / "absent.yaml"))

        assert config == TelemetryConfig()

    @pytest.mark.unit
    def test_empty_file_gives_defaults(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("", encoding="utf-8")

        assert TelemetryConfigLoader.load(str(path)) == TelemetryConfig()

    @pytest.mark.unit
    def test_partial_file(self, config_file):
        config = TelemetryConfigLoader.load(str(config_file))

        assert list(config.sensor_types) == [SensorType.TEMPERATURE]
        temperature = config.sensor_types[SensorType.TEMPERATURE]
        assert temperature == SensorTypeConfig(
            min=20.0, max=100.0, safe_max=75.0, base_value=50.0, normal_variation=8.0, unit="°C"
        )
        assert config.anomaly.enabled is False
        assert config.anomaly.interval_seconds == (7200.0, 10800.0)
        assert config.history.capacity == 10
        assert config.history.max_query_limit == 100
        assert config.scheduler.tick_interval_ms == 250
        assert config.scheduler.autostart is False
        assert config.mqtt.enabled is True
        assert config.mqtt.broker_port == 1884

    @pytest.mark.unit
    def test_invalid_yaml_raises(self, tmp_path):
        path = tmp_path / "broken.yaml"
        path.write_text("sensor_types: [unclosed", encoding="utf-8")

        with pytest.raises(yaml.YAMLError):
            TelemetryConfigLoader.load(str(path))

    @pytest.mark.unit
    def test_unknown_sensor_type_rejected(self):
        with pytest.raises(InvalidSensorTypeError):
            TelemetryConfigLoader.from_dict({"sensor_types": {"PRESSURE": {"max": 10}}})


class TestEnvironmentOverrides:

    @pytest.mark.unit
    def test_overrides(self):
        config = TelemetryConfigLoader.apply_env_overrides(TelemetryConfig(), environ={
            "SENSORHUB_TICK_INTERVAL_MS": "500",
            "INFLUXDB_URL": "http://influx:8086",
            "INFLUXDB_TOKEN": "secret",
            "INFLUXDB_ORG": "plant",
            "INFLUXDB_BUCKET": "alerts",
            "LOG_LEVEL": "DEBUG",
        })

        assert config.scheduler.tick_interval_ms == 500
        assert config.influxdb.url == "http://influx:8086"
        assert config.influxdb.org == "plant"
        assert config.influxdb.bucket == "alerts"
        assert config.influxdb.enabled is True
        assert config.logging.level == "DEBUG"

    @pytest.mark.unit
    def test_influx_disabled_without_token(self):
        config = TelemetryConfigLoader.apply_env_overrides(
            TelemetryConfig(), environ={"INFLUXDB_URL": "http://influx:8086"}
        )

        assert config.influxdb.enabled is False


class TestValidation:

    @pytest.mark.unit
    def test_inconsistent_sensor_rejected(self):
        config = TelemetryConfig()
        config.sensor_types[SensorType.CURRENT] = SensorTypeConfig(
            min=50, max=0, safe_max=40, base_value=25, normal_variation=-1, unit="A"
        )

        is_valid, errors = TelemetryConfigLoader.validate(config)

        assert is_valid is False
        assert "CURRENT: min must be lower than max" in errors
        assert "CURRENT: normal_variation must be >= 0" in errors

    @pytest.mark.unit
    def test_scheduler_and_history_rules(self):
        config = TelemetryConfig()
        config.scheduler.tick_interval_ms = 0
        config.history.sample_every = 0
        config.anomaly.duration_seconds = (300.0, 120.0)

        is_valid, errors = TelemetryConfigLoader.validate(config)

        assert is_valid is False
        assert "Scheduler tick_interval_ms must be > 0" in errors
        assert "History sample_every must be >= 1" in errors
        assert "Anomaly duration_seconds must be a positive [low, high] range" in errors

    @pytest.mark.unit
    def test_no_sensor_types(self):
        config = TelemetryConfig(sensor_types={})

        is_valid, errors = TelemetryConfigLoader.validate(config)

        assert is_valid is False
        assert "At least one sensor type must be configured" in errors
