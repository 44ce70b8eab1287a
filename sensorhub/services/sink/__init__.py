"""
Best-effort alert sinks
"""
from sensorhub.services.sink.base import AlertSink
from sensorhub.services.sink.influx_sink import InfluxAlertSink
from sensorhub.services.sink.mqtt_sink import MQTTAlertSink

__all__ = ["AlertSink", "InfluxAlertSink", "MQTTAlertSink"]
