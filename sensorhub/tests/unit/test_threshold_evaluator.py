"""
Unit tests for threshold-based safety evaluation
Tests ThresholdEvaluator against the default band table and runtime updates
"""
import pytest

from sensorhub.config.telemetry_config import default_sensor_types
from sensorhub.core.error_handling import InvalidArgumentError, InvalidSensorTypeError
from sensorhub.models.alert import ThresholdEntry
from sensorhub.models.sensor import Reading, SensorType
from sensorhub.services.safety.threshold_evaluator import ThresholdEvaluator

TIMESTAMP = "2024-03-01T06:00:00.000Z"


def reading(value, unit="°C"):
    return Reading(value=value, unit=unit, timestamp=TIMESTAMP)


@pytest.fixture
def evaluator():
    """Evaluator seeded from the default sensor configs, no env overrides"""
    return ThresholdEvaluator.from_sensor_configs(default_sensor_types(), environ={})


class TestEvaluation:

    @pytest.mark.unit
    def test_safe_readings_produce_no_alerts(self, evaluator):
        readings = {
            SensorType.VIBRATION: reading(5.0, "mm/s"),
            SensorType.TEMPERATURE: reading(55.0),
            SensorType.CURRENT: reading(25.0, "A"),
        }

        assert evaluator.evaluate(readings) == []

    @pytest.mark.unit
    def test_value_above_max(self, evaluator):
        evaluator.update_threshold(SensorType.TEMPERATURE, min=20, max=80)

        alerts = evaluator.evaluate({SensorType.TEMPERATURE: reading(95.0)})

        assert len(alerts) == 1
        alert = alerts[0]
        assert alert.type == SensorType.TEMPERATURE
        assert alert.value == 95.0
        assert alert.threshold == 80.0
        assert alert.unit == "°C"
        assert alert.timestamp == TIMESTAMP
        assert alert.message == "TEMPERATURE exceeded safe level: 95.0 °C"

    @pytest.mark.unit
    def test_value_below_min(self, evaluator):
        alerts = evaluator.evaluate({SensorType.TEMPERATURE: reading(10.0)})

        assert len(alerts) == 1
        assert alerts[0].threshold == 80.0

    @pytest.mark.unit
    def test_band_edges_are_safe(self, evaluator):
        assert evaluator.is_reading_safe(SensorType.TEMPERATURE, 20.0)
        assert evaluator.is_reading_safe(SensorType.TEMPERATURE, 80.0)
        assert not evaluator.is_reading_safe(SensorType.TEMPERATURE, 80.01)

    @pytest.mark.unit
    def test_one_alert_per_unsafe_reading(self, evaluator):
        readings = {
            SensorType.VIBRATION: reading(12.0, "mm/s"),
            SensorType.TEMPERATURE: reading(55.0),
            SensorType.CURRENT: reading(45.0, "A"),
        }

        alerts = evaluator.evaluate(readings)

        assert {a.type for a in alerts} == {SensorType.VIBRATION, SensorType.CURRENT}

    @pytest.mark.unit
    def test_unconfigured_type_is_safe(self):
        evaluator = ThresholdEvaluator({
            SensorType.CURRENT: ThresholdEntry(min=0, max=40, unit="A")
        })

        assert evaluator.is_reading_safe(SensorType.VIBRATION, 1e9)
        assert evaluator.evaluate({SensorType.VIBRATION: reading(1e9, "mm/s")}) == []


class TestThresholdUpdates:

    @pytest.mark.unit
    def test_defaults_from_sensor_configs(self, evaluator):
        thresholds = evaluator.get_thresholds()

        assert thresholds[SensorType.VIBRATION] == ThresholdEntry(min=0.0, max=10.0, unit="mm/s")
        assert thresholds[SensorType.TEMPERATURE] == ThresholdEntry(min=20.0, max=80.0, unit="°C")
        assert thresholds[SensorType.CURRENT] == ThresholdEntry(min=0.0, max=40.0, unit="A")

    @pytest.mark.unit
    def test_update_round_trip(self, evaluator):
        updated = evaluator.update_threshold(SensorType.CURRENT, min=5, max=30)

        assert updated == ThresholdEntry(min=5.0, max=30.0, unit="A")
        assert evaluator.get_thresholds(SensorType.CURRENT) == updated

    @pytest.mark.unit
    def test_partial_update_keeps_other_bound(self, evaluator):
        evaluator.update_threshold("temperature", max=90)

        entry = evaluator.get_thresholds(SensorType.TEMPERATURE)
        assert entry.min == 20.0
        assert entry.max == 90.0

    @pytest.mark.unit
    def test_update_applies_to_next_evaluation(self, evaluator):
        readings = {SensorType.TEMPERATURE: reading(85.0)}
        assert len(evaluator.evaluate(readings)) == 1

        evaluator.update_threshold(SensorType.TEMPERATURE, max=90)

        assert evaluator.evaluate(readings) == []

    @pytest.mark.unit
    def test_get_thresholds_returns_copy(self, evaluator):
        thresholds = evaluator.get_thresholds()
        thresholds.pop(SensorType.CURRENT)

        assert SensorType.CURRENT in evaluator.get_thresholds()

    @pytest.mark.unit
    def test_unknown_type_rejected(self, evaluator):
        with pytest.raises(InvalidSensorTypeError):
            evaluator.update_threshold("PRESSURE", max=10)

    @pytest.mark.unit
    def test_unconfigured_type_rejected(self):
        evaluator = ThresholdEvaluator({
            SensorType.CURRENT: ThresholdEntry(min=0, max=40, unit="A")
        })

        with pytest.raises(InvalidSensorTypeError):
            evaluator.update_threshold(SensorType.VIBRATION, max=10)

    @pytest.mark.unit
    def test_missing_bounds_rejected(self, evaluator):
        with pytest.raises(InvalidArgumentError):
            evaluator.update_threshold(SensorType.TEMPERATURE)

        assert evaluator.get_thresholds(SensorType.TEMPERATURE).max == 80.0

    @pytest.mark.unit
    def test_inverted_band_rejected(self, evaluator):
        with pytest.raises(InvalidArgumentError):
            evaluator.update_threshold(SensorType.TEMPERATURE, min=90)

        assert evaluator.get_thresholds(SensorType.TEMPERATURE).min == 20.0


class TestEnvironmentOverrides:

    @pytest.mark.unit
    def test_overrides_applied(self):
        environ = {
            "TEMPERATURE_MAX_THRESHOLD": "70",
            "VIBRATION_MIN_THRESHOLD": "1.5",
        }

        evaluator = ThresholdEvaluator.from_sensor_configs(default_sensor_types(), environ=environ)

        assert evaluator.get_thresholds(SensorType.TEMPERATURE).max == 70.0
        assert evaluator.get_thresholds(SensorType.TEMPERATURE).min == 20.0
        assert evaluator.get_thresholds(SensorType.VIBRATION).min == 1.5
        assert evaluator.get_thresholds(SensorType.CURRENT).max == 40.0

    @pytest.mark.unit
    def test_non_numeric_override_keeps_config_bound(self):
        environ = {
            "TEMPERATURE_MAX_THRESHOLD": "hot",
            "TEMPERATURE_MIN_THRESHOLD": "25",
            "CURRENT_MIN_THRESHOLD": "n/a",
        }

        evaluator = ThresholdEvaluator.from_sensor_configs(default_sensor_types(), environ=environ)

        assert evaluator.get_thresholds(SensorType.TEMPERATURE) == ThresholdEntry(
            min=25.0, max=80.0, unit="°C"
        )
        assert evaluator.get_thresholds(SensorType.CURRENT).min == 0.0

    @pytest.mark.unit
    def test_empty_override_ignored(self):
        evaluator = ThresholdEvaluator.from_sensor_configs(
            default_sensor_types(), environ={"CURRENT_MAX_THRESHOLD": ""}
        )

        assert evaluator.get_thresholds(SensorType.CURRENT).max == 40.0
