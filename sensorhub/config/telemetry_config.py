"""
Telemetry Configuration Loader
Loads and parses telemetry.yaml configuration file
Covers sensor simulation, history, realtime fan-out and alert sinks
"""
import logging
import os
import yaml
from pathlib import Path
from typing import Dict, Any, List, Mapping, Optional, Tuple
from dataclasses import dataclass, field

from sensorhub.models.sensor import SensorType

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = str(Path(__file__).with_name("telemetry.yaml"))


@dataclass(frozen=True)
class SensorTypeConfig:
    """Static simulation parameters for one sensor type"""
    min: float
    max: float
    safe_max: float
    base_value: float
    normal_variation: float
    unit: str


def default_sensor_types() -> Dict[SensorType, SensorTypeConfig]:
    return {
        SensorType.VIBRATION: SensorTypeConfig(
            min=0.0, max=15.0, safe_max=10.0, base_value=5.0, normal_variation=1.5, unit="mm/s"
        ),
        SensorType.TEMPERATURE: SensorTypeConfig(
            min=20.0, max=100.0, safe_max=80.0, base_value=55.0, normal_variation=8.0, unit="°C"
        ),
        SensorType.CURRENT: SensorTypeConfig(
            min=0.0, max=50.0, safe_max=40.0, base_value=25.0, normal_variation=4.0, unit="A"
        ),
    }


@dataclass
class AnomalyConfig:
    """Anomaly scheduling ranges, in seconds"""
    enabled: bool = True
    duration_seconds: Tuple[float, float] = (120.0, 300.0)
    interval_seconds: Tuple[float, float] = (7200.0, 10800.0)
    initial_delay_seconds: Optional[Tuple[float, float]] = (60.0, 600.0)
    excess_factor: float = 1.2


@dataclass
class HistoryConfig:
    """In-memory history buffer sizing"""
    capacity: int = 100
    overflow_margin: int = 20
    sample_every: int = 1
    max_query_limit: int = 100
    alert_log_capacity: int = 100


@dataclass
class SchedulerConfig:
    """Telemetry tick configuration"""
    tick_interval_ms: int = 1000
    autostart: bool = True
    sink_timeout_seconds: float = 5.0


@dataclass
class RealtimeConfig:
    """WebSocket fan-out configuration"""
    default_subscriptions: List[str] = field(
        default_factory=lambda: ["sensorReadings", "safetyAlerts"]
    )
    emit_single_alerts: bool = False
    send_queue_size: int = 0  # 0 = unbounded


@dataclass
class InfluxConfig:
    """InfluxDB v2 alert sink configuration"""
    url: str = ""
    token: str = ""
    org: str = ""
    bucket: str = "smart_maintenance"
    measurement: str = "safety_alerts"
    timeout: float = 5.0

    @property
    def enabled(self) -> bool:
        return bool(self.url and self.token)


@dataclass
class MQTTConfig:
    """MQTT alert mirror configuration"""
    enabled: bool = False
    broker_host: str = "localhost"
    broker_port: int = 1883
    client_id: str = "sensorhub-alert-publisher"
    topic_prefix: str = "sensorhub/alerts"
    qos: int = 1
    retain: bool = False


@dataclass
class LoggingConfig:
    """Logging configuration"""
    level: str = "INFO"
    file: Optional[str] = "logs/sensorhub.log"
    json_format: bool = False
    console: bool = True


@dataclass
class TelemetryConfig:
    """Complete telemetry service configuration"""
    sensor_types: Dict[SensorType, SensorTypeConfig] = field(default_factory=default_sensor_types)
    anomaly: AnomalyConfig = field(default_factory=AnomalyConfig)
    history: HistoryConfig = field(default_factory=HistoryConfig)
    scheduler: SchedulerConfig = field(default_factory=SchedulerConfig)
    realtime: RealtimeConfig = field(default_factory=RealtimeConfig)
    influxdb: InfluxConfig = field(default_factory=InfluxConfig)
    mqtt: MQTTConfig = field(default_factory=MQTTConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def _range(value: Any, default: Optional[Tuple[float, float]]) -> Optional[Tuple[float, float]]:
    if value is None:
        return default
    low, high = value
    return (float(low), float(high))


class TelemetryConfigLoader:
    """
    Load telemetry configuration from YAML file

    Usage:
        config = TelemetryConfigLoader.load("sensorhub/config/telemetry.yaml")
        config = TelemetryConfigLoader.apply_env_overrides(config)

        print(config.scheduler.tick_interval_ms)
        print(config.sensor_types[SensorType.TEMPERATURE].safe_max)
    """

    @staticmethod
    def load(config_path: str = DEFAULT_CONFIG_PATH) -> TelemetryConfig:
        """
        Load configuration from YAML file

        Args:
            config_path: Path to telemetry.yaml file

        Returns:
            TelemetryConfig object (defaults if the file is missing or empty)

        Raises:
            yaml.YAMLError: If YAML parsing fails
        """
        path = Path(config_path)

        if not path.exists():
            logger.warning(
                f"Telemetry config file not found: {config_path}, "
                f"using default configuration"
            )
            return TelemetryConfig()

        try:
            with open(path, 'r', encoding='utf-8') as f:
                raw_config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            logger.error(f"Failed to parse config file {config_path}: {e}")
            raise

        if not raw_config:
            logger.warning("Empty config file, using defaults")
            return TelemetryConfig()

        config = TelemetryConfigLoader.from_dict(raw_config)
        logger.info(f"Telemetry configuration loaded from {config_path}")
        return config

    @staticmethod
    def from_dict(raw_config: Mapping[str, Any]) -> TelemetryConfig:
        """Build a TelemetryConfig from parsed YAML, keeping defaults for absent keys"""
        config = TelemetryConfig()

        # Sensor types
        if "sensor_types" in raw_config:
            sensor_types = {}
            defaults = default_sensor_types()
            for name, data in raw_config["sensor_types"].items():
                sensor_type = SensorType.parse(name)
                base = defaults.get(sensor_type)
                sensor_types[sensor_type] = SensorTypeConfig(
                    min=float(data.get("min", base.min if base else 0.0)),
                    max=float(data.get("max", base.max if base else 100.0)),
                    safe_max=float(data.get("safe_max", base.safe_max if base else 80.0)),
                    base_value=float(data.get("base_value", base.base_value if base else 50.0)),
                    normal_variation=float(
                        data.get("normal_variation", base.normal_variation if base else 1.0)
                    ),
                    unit=str(data.get("unit", base.unit if base else "")),
                )
            config.sensor_types = sensor_types

        # Anomaly scheduling
        if "anomaly" in raw_config:
            anomaly_data = raw_config["anomaly"]
            defaults = AnomalyConfig()
            config.anomaly = AnomalyConfig(
                enabled=anomaly_data.get("enabled", True),
                duration_seconds=_range(anomaly_data.get("duration_seconds"), defaults.duration_seconds),
                interval_seconds=_range(anomaly_data.get("interval_seconds"), defaults.interval_seconds),
                initial_delay_seconds=_range(
                    anomaly_data.get("initial_delay_seconds"), defaults.initial_delay_seconds
                ),
                excess_factor=float(anomaly_data.get("excess_factor", defaults.excess_factor)),
            )

        # History buffer
        if "history" in raw_config:
            history_data = raw_config["history"]
            config.history = HistoryConfig(
                capacity=history_data.get("capacity", 100),
                overflow_margin=history_data.get("overflow_margin", 20),
                sample_every=history_data.get("sample_every", 1),
                max_query_limit=history_data.get("max_query_limit", 100),
                alert_log_capacity=history_data.get("alert_log_capacity", 100),
            )

        # Scheduler
        if "scheduler" in raw_config:
            scheduler_data = raw_config["scheduler"]
            config.scheduler = SchedulerConfig(
                tick_interval_ms=scheduler_data.get("tick_interval_ms", 1000),
                autostart=scheduler_data.get("autostart", True),
                sink_timeout_seconds=scheduler_data.get("sink_timeout_seconds", 5.0),
            )

        # Realtime fan-out
        if "realtime" in raw_config:
            realtime_data = raw_config["realtime"]
            config.realtime = RealtimeConfig(
                default_subscriptions=list(
                    realtime_data.get("default_subscriptions", ["sensorReadings", "safetyAlerts"])
                ),
                emit_single_alerts=realtime_data.get("emit_single_alerts", False),
                send_queue_size=realtime_data.get("send_queue_size", 0),
            )

        # InfluxDB sink
        if "influxdb" in raw_config:
            influx_data = raw_config["influxdb"]
            config.influxdb = InfluxConfig(
                url=influx_data.get("url") or "",
                token=influx_data.get("token") or "",
                org=influx_data.get("org") or "",
                bucket=influx_data.get("bucket", "smart_maintenance"),
                measurement=influx_data.get("measurement", "safety_alerts"),
                timeout=influx_data.get("timeout", 5.0),
            )

        # MQTT mirror
        if "mqtt" in raw_config:
            mqtt_data = raw_config["mqtt"]
            config.mqtt = MQTTConfig(
                enabled=mqtt_data.get("enabled", False),
                broker_host=mqtt_data.get("broker_host", "localhost"),
                broker_port=mqtt_data.get("broker_port", 1883),
                client_id=mqtt_data.get("client_id", "sensorhub-alert-publisher"),
                topic_prefix=mqtt_data.get("topic_prefix", "sensorhub/alerts"),
                qos=mqtt_data.get("qos", 1),
                retain=mqtt_data.get("retain", False),
            )

        # Logging
        if "logging" in raw_config:
            logging_data = raw_config["logging"]
            config.logging = LoggingConfig(
                level=logging_data.get("level", "INFO"),
                file=logging_data.get("file", "logs/sensorhub.log"),
                json_format=logging_data.get("json_format", False),
                console=logging_data.get("console", True),
            )

        return config

    @staticmethod
    def apply_env_overrides(
        config: TelemetryConfig,
        environ: Optional[Mapping[str, str]] = None
    ) -> TelemetryConfig:
        """
        Apply environment variable overrides in place.

        Recognised variables: SENSORHUB_TICK_INTERVAL_MS, INFLUXDB_URL,
        INFLUXDB_TOKEN, INFLUXDB_ORG, INFLUXDB_BUCKET, LOG_LEVEL.
        Threshold overrides (<TYPE>_MIN_THRESHOLD / <TYPE>_MAX_THRESHOLD)
        are applied by the threshold evaluator.
        """
        env = os.environ if environ is None else environ

        if env.get("SENSORHUB_TICK_INTERVAL_MS"):
            config.scheduler.tick_interval_ms = int(env["SENSORHUB_TICK_INTERVAL_MS"])
        if env.get("INFLUXDB_URL"):
            config.influxdb.url = env["INFLUXDB_URL"]
        if env.get("INFLUXDB_TOKEN"):
            config.influxdb.token = env["INFLUXDB_TOKEN"]
        if env.get("INFLUXDB_ORG"):
            config.influxdb.org = env["INFLUXDB_ORG"]
        if env.get("INFLUXDB_BUCKET"):
            config.influxdb.bucket = env["INFLUXDB_BUCKET"]
        if env.get("LOG_LEVEL"):
            config.logging.level = env["LOG_LEVEL"]

        return config

    @staticmethod
    def validate(config: TelemetryConfig) -> Tuple[bool, List[str]]:
        """
        Validate configuration

        Args:
            config: TelemetryConfig to validate

        Returns:
            Tuple of (is_valid, list_of_errors)
        """
        errors = []

        if not config.sensor_types:
            errors.append("At least one sensor type must be configured")

        for sensor_type, sensor in config.sensor_types.items():
            name = sensor_type.value
            if sensor.min >= sensor.max:
                errors.append(f"{name}: min must be lower than max")
            if not (sensor.min <= sensor.safe_max <= sensor.max):
                errors.append(f"{name}: safe_max must lie within [min, max]")
            if not (sensor.min <= sensor.base_value <= sensor.max):
                errors.append(f"{name}: base_value must lie within [min, max]")
            if sensor.normal_variation < 0:
                errors.append(f"{name}: normal_variation must be >= 0")

        ranges = {
            "duration_seconds": config.anomaly.duration_seconds,
            "interval_seconds": config.anomaly.interval_seconds,
        }
        if config.anomaly.initial_delay_seconds is not None:
            ranges["initial_delay_seconds"] = config.anomaly.initial_delay_seconds
        for name, (low, high) in ranges.items():
            if low <= 0 or high < low:
                errors.append(f"Anomaly {name} must be a positive [low, high] range")

        if config.scheduler.tick_interval_ms <= 0:
            errors.append("Scheduler tick_interval_ms must be > 0")
        if config.scheduler.sink_timeout_seconds <= 0:
            errors.append("Scheduler sink_timeout_seconds must be > 0")

        if config.history.capacity < 1:
            errors.append("History capacity must be >= 1")
        if config.history.overflow_margin < 0:
            errors.append("History overflow_margin must be >= 0")
        if config.history.sample_every < 1:
            errors.append("History sample_every must be >= 1")
        if config.history.max_query_limit < 1:
            errors.append("History max_query_limit must be >= 1")
        if config.history.alert_log_capacity < 1:
            errors.append("History alert_log_capacity must be >= 1")

        if config.mqtt.enabled and not (1 <= config.mqtt.broker_port <= 65535):
            errors.append(f"Invalid MQTT port: {config.mqtt.broker_port}")

        is_valid = len(errors) == 0
        return is_valid, errors
