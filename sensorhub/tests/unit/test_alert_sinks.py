"""
Unit tests for the best-effort alert sinks
Tests line protocol encoding, disabled sinks and failure accounting
"""
import asyncio
from unittest.mock import AsyncMock, patch

import aiohttp
import pytest

from sensorhub.config.telemetry_config import InfluxConfig, MQTTConfig
from sensorhub.models.alert import Alert
from sensorhub.models.sensor import SensorType
from sensorhub.services.sink.influx_sink import InfluxAlertSink, to_line_protocol
from sensorhub.services.sink.mqtt_sink import MQTTAlertSink


class FakeResponse:
    def __init__(self, status, body=""):
        self.status = status
        self._body = body

    async def text(self):
        return self._body

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False


class FakeSession:
    """Records POSTs and answers with a fixed status"""

    def __init__(self, status=204, body=""):
        self.status = status
        self.body = body
        self.closed = False
        self.requests = []

    def post(self, url, params=None, data=None):
        self.requests.append({"url": url, "params": params, "data": data})
        return FakeResponse(self.status, self.body)

    async def close(self):
        self.closed = True


@pytest.fixture
def alert():
    return Alert(
        type=SensorType.TEMPERATURE,
        value=95.0,
        unit="°C",
        threshold=80.0,
        timestamp="2024-03-01T06:00:00.000Z",
        message="TEMPERATURE exceeded safe level: 95.0 °C",
    )


@pytest.fixture
def influx_config():
    return InfluxConfig(url="http://influx:8086/", token="secret", org="plant", bucket="smart_maintenance")


class TestLineProtocol:

    @pytest.mark.unit
    def test_point_shape(self, influx_config, alert):
        sink = InfluxAlertSink(influx_config, session=FakeSession())

        assert sink.build_point(alert) == (
            'safety_alerts,type=TEMPERATURE '
            'value=95.0,threshold=80.0,message="TEMPERATURE exceeded safe level: 95.0 °C"'
        )

    @pytest.mark.unit
    def test_escaping(self):
        line = to_line_protocol(
            "my measurement",
            {"zone b": "north,east", "area": "a=1"},
            {"count": 3, "ok": True, "note": 'say "hi"'},
        )

        assert line == (
            'my\\ measurement,area=a\\=1,zone\\ b=north\\,east '
            'count=3i,ok=true,note="say \\"hi\\""'
        )

    @pytest.mark.unit
    def test_fields_required(self):
        with pytest.raises(ValueError):
            to_line_protocol("m", {"type": "CURRENT"}, {})


class TestInfluxAlertSink:

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_disabled_without_credentials(self, alert):
        session = FakeSession()
        sink = InfluxAlertSink(InfluxConfig(url="http://influx:8086"), session=session)

        assert sink.enabled is False
        assert await sink.write_alert(alert) is False
        assert session.requests == []
        assert sink.get_stats()['failed'] == 0

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_successful_write(self, influx_config, alert):
        session = FakeSession(status=204)
        sink = InfluxAlertSink(influx_config, session=session)

        assert await sink.write_alert(alert) is True

        request = session.requests[0]
        assert request["url"] == "http://influx:8086/api/v2/write"
        assert request["params"] == {"org": "plant", "bucket": "smart_maintenance", "precision": "ms"}
        assert request["data"].decode("utf-8").startswith("safety_alerts,type=TEMPERATURE ")
        assert sink.written == 1

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_http_error_counted(self, influx_config, alert):
        sink = InfluxAlertSink(influx_config, session=FakeSession(status=401, body="unauthorized"))

        assert await sink.write_alert(alert) is False
        assert sink.failed == 1
        assert sink.written == 0

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_connection_error_counted(self, influx_config, alert):
        sink = InfluxAlertSink(influx_config, session=FakeSession())
        sink._write = AsyncMock(side_effect=aiohttp.ClientConnectionError("refused"))

        assert await sink.write_alert(alert) is False
        assert sink.failed == 1

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_injected_session_not_closed(self, influx_config):
        session = FakeSession()
        sink = InfluxAlertSink(influx_config, session=session)

        await sink.close()

        assert session.closed is False


class TestMQTTAlertSink:

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_disabled_by_default(self, alert):
        sink = MQTTAlertSink(MQTTConfig())

        assert sink.enabled is False
        assert await sink.write_alert(alert) is False
        assert sink.get_stats() == {'name': 'mqtt', 'enabled': False, 'written': 0, 'failed': 0}

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_publishes_to_all_and_type_topics(self, alert):
        sink = MQTTAlertSink(MQTTConfig(enabled=True))
        sink._client = AsyncMock()
        sink._connected = True

        assert await sink.write_alert(alert) is True

        topics = [call.args[0] for call in sink._client.publish.await_args_list]
        assert topics == ["sensorhub/alerts/all", "sensorhub/alerts/TEMPERATURE"]
        assert sink.written == 1

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_concurrent_writes_share_one_client(self, alert):
        """Writers racing the first connect must not each open a broker client"""
        clients = []

        class SlowClient:
            def __init__(self, **kwargs):
                self.entered = False
                self.exited = False
                self.publish = AsyncMock()
                clients.append(self)

            async def __aenter__(self):
                await asyncio.sleep(0.01)
                self.entered = True
                return self

            async def __aexit__(self, exc_type, exc, tb):
                self.exited = True

        sink = MQTTAlertSink(MQTTConfig(enabled=True))

        with patch("sensorhub.services.sink.mqtt_sink.Client", SlowClient):
            results = await asyncio.gather(*(sink.write_alert(alert) for _ in range(3)))
            await sink.close()

        assert results == [True, True, True]
        assert len(clients) == 1
        assert clients[0].entered and clients[0].exited
        assert clients[0].publish.await_count == 6
