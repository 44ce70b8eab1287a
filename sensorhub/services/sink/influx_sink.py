"""
InfluxDB Alert Sink
Writes safety alerts to an InfluxDB v2 bucket through the HTTP write API

Each unsafe reading becomes one point:
    safety_alerts,type=TEMPERATURE value=95.0,threshold=80.0,message="..."
The server assigns the timestamp.
"""
import asyncio
import logging
from typing import Any, Dict, Mapping, Optional

import aiohttp

from sensorhub.config.telemetry_config import InfluxConfig
from sensorhub.core.error_handling import SinkWriteError
from sensorhub.models.alert import Alert
from sensorhub.services.sink.base import AlertSink

logger = logging.getLogger(__name__)


def _escape_key(value: str) -> str:
    return value.replace("\\", "\\\\").replace(",", "\\,").replace("=", "\\=").replace(" ", "\\ ")


def _format_field(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return f"{value}i"
    if isinstance(value, float):
        return repr(value)
    text = str(value).replace("\\", "\\\\").replace('"', '\\"')
    return f'"{text}"'


def to_line_protocol(
    measurement: str,
    tags: Mapping[str, Any],
    fields: Mapping[str, Any]
) -> str:
    """
    Encode one point in InfluxDB line protocol (no timestamp).

    Raises:
        ValueError: If no fields are given
    """
    if not fields:
        raise ValueError("A point needs at least one field")

    head = measurement.replace(",", "\\,").replace(" ", "\\ ")
    for key in sorted(tags):
        head += f",{_escape_key(key)}={_escape_key(str(tags[key]))}"

    body = ",".join(f"{_escape_key(key)}={_format_field(value)}" for key, value in fields.items())
    return f"{head} {body}"


class InfluxAlertSink(AlertSink):
    """
    Async InfluxDB v2 writer for safety alerts.

    Disabled when no URL or token is configured; writes then return False
    without touching the network.
    """

    name = "influxdb"

    def __init__(self, config: InfluxConfig, session: Optional[aiohttp.ClientSession] = None):
        """
        Args:
            config: InfluxDB connection settings
            session: Shared aiohttp session (created lazily when omitted)
        """
        super().__init__()
        self.config = config
        self._session = session
        self._owns_session = session is None

        if self.enabled:
            logger.info(
                f"InfluxAlertSink initialized: {config.url}, org={config.org}, bucket={config.bucket}"
            )
        else:
            logger.info("InfluxAlertSink disabled (INFLUXDB_URL / INFLUXDB_TOKEN not configured)")

    @property
    def enabled(self) -> bool:
        return self.config.enabled

    @property
    def write_url(self) -> str:
        return f"{self.config.url.rstrip('/')}/api/v2/write"

    def build_point(self, alert: Alert) -> str:
        return to_line_protocol(
            self.config.measurement,
            {"type": alert.type.value},
            {
                "value": float(alert.value),
                "threshold": float(alert.threshold),
                "message": alert.message,
            },
        )

    async def write_alert(self, alert: Alert) -> bool:
        if not self.enabled:
            return False

        try:
            await self._write(self.build_point(alert))
            self.written += 1
            return True
        except (aiohttp.ClientError, asyncio.TimeoutError, SinkWriteError) as e:
            self.failed += 1
            logger.error(
                f"Error storing safety alert in InfluxDB: {e}",
                extra={'sensor_type': alert.type.value, 'sink': self.name}
            )
            return False

    async def _write(self, body: str) -> None:
        session = self._get_session()
        params = {"org": self.config.org, "bucket": self.config.bucket, "precision": "ms"}

        async with session.post(self.write_url, params=params, data=body.encode("utf-8")) as response:
            if response.status >= 300:
                detail = await response.text()
                raise SinkWriteError(
                    f"InfluxDB write failed with HTTP {response.status}",
                    details={'status': response.status, 'body': detail[:500]}
                )

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                headers={
                    "Authorization": f"Token {self.config.token}",
                    "Content-Type": "text/plain; charset=utf-8",
                },
                timeout=aiohttp.ClientTimeout(total=self.config.timeout),
            )
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()
        self._session = None

    def get_stats(self) -> Dict[str, Any]:
        stats = super().get_stats()
        stats['bucket'] = self.config.bucket
        return stats
