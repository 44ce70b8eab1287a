"""
MQTT Alert Sink
Mirrors safety alerts to an MQTT broker for external dashboards

Topic structure:
- sensorhub/alerts/all - every alert
- sensorhub/alerts/{TYPE} - alerts for one sensor type
"""
import asyncio
import json
import logging
from typing import Optional

from asyncio_mqtt import Client, MqttError

from sensorhub.config.telemetry_config import MQTTConfig
from sensorhub.models.alert import Alert
from sensorhub.services.sink.base import AlertSink

logger = logging.getLogger(__name__)


class MQTTAlertSink(AlertSink):
    """
    Publishes alert JSON to an MQTT broker

    Connects lazily on the first alert and reconnects after broker errors.
    """

    name = "mqtt"

    def __init__(self, config: MQTTConfig):
        super().__init__()
        self.config = config

        self._client: Optional[Client] = None
        self._connected = False
        self._lock = asyncio.Lock()

        logger.info(
            f"MQTTAlertSink initialized: {config.broker_host}:{config.broker_port}, "
            f"topic_prefix={config.topic_prefix}, enabled={config.enabled}"
        )

    @property
    def enabled(self) -> bool:
        return self.config.enabled

    async def connect(self) -> None:
        if self._connected:
            return

        async with self._lock:
            # Another writer may have connected while this one waited
            if self._connected:
                return
            try:
                self._client = Client(
                    hostname=self.config.broker_host,
                    port=self.config.broker_port,
                    client_id=self.config.client_id,
                )
                await self._client.__aenter__()
                self._connected = True
                logger.info(
                    f"Connected to MQTT broker at {self.config.broker_host}:{self.config.broker_port}"
                )
            except MqttError as e:
                logger.error(f"Failed to connect to MQTT broker: {e}")
                self._connected = False
                raise

    async def close(self) -> None:
        if not self._connected or not self._client:
            return

        async with self._lock:
            try:
                await self._client.__aexit__(None, None, None)
                logger.info("Disconnected from MQTT broker")
            except MqttError as e:
                logger.error(f"Error during MQTT disconnect: {e}")
            finally:
                self._connected = False
                self._client = None

    async def write_alert(self, alert: Alert) -> bool:
        if not self.enabled:
            return False

        if not self._connected:
            try:
                await self.connect()
            except MqttError:
                self.failed += 1
                return False

        payload = json.dumps(alert.to_dict()).encode()
        topics = [
            f"{self.config.topic_prefix}/all",
            f"{self.config.topic_prefix}/{alert.type.value}",
        ]

        try:
            async with self._lock:
                for topic in topics:
                    await self._client.publish(
                        topic,
                        payload=payload,
                        qos=self.config.qos,
                        retain=self.config.retain,
                    )
            self.written += 1
            return True

        except MqttError as e:
            logger.error(f"MQTT error publishing {alert.type.value} alert: {e}", exc_info=True)
            self._connected = False
            self.failed += 1
            return False
