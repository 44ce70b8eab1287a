"""
Telemetry Service
Owns the simulator, safety evaluation, history, realtime registry,
alert sinks and scheduler for one process.

Constructed once at application startup and injected into the API
routes; tests build fresh instances.
"""
import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence

import numpy as np

from sensorhub.config.telemetry_config import TelemetryConfig
from sensorhub.models.alert import Alert
from sensorhub.models.sensor import HistoryEntry, Reading, SensorType
from sensorhub.services.history.history_buffer import HistoryBuffer
from sensorhub.services.realtime.connection_registry import ConnectionRegistry
from sensorhub.services.safety.alert_log import AlertLog
from sensorhub.services.safety.threshold_evaluator import ThresholdEvaluator
from sensorhub.services.scheduler.telemetry_scheduler import SchedulerHandle, TelemetryScheduler
from sensorhub.services.simulator.waveform_model import Clock, WaveformModel
from sensorhub.services.sink.base import AlertSink
from sensorhub.services.sink.influx_sink import InfluxAlertSink
from sensorhub.services.sink.mqtt_sink import MQTTAlertSink

logger = logging.getLogger(__name__)


class TelemetryService:
    """Composition root for the telemetry pipeline"""

    def __init__(
        self,
        config: Optional[TelemetryConfig] = None,
        rng: Optional[np.random.Generator] = None,
        clock: Optional[Clock] = None,
        sinks: Optional[Sequence[AlertSink]] = None,
        environ: Optional[Mapping[str, str]] = None
    ):
        """
        Args:
            config: Service configuration (defaults if omitted)
            rng: Random generator for the waveform model
            clock: Time source for the waveform model
            sinks: Alert sinks (built from config when omitted)
            environ: Environment used for threshold overrides
        """
        self.config = config or TelemetryConfig()

        self.waveform = WaveformModel(
            self.config.sensor_types,
            anomaly=self.config.anomaly,
            rng=rng,
            clock=clock,
        )
        self.evaluator = ThresholdEvaluator.from_sensor_configs(self.config.sensor_types, environ=environ)
        self.alert_log = AlertLog(capacity=self.config.history.alert_log_capacity)
        self.history = HistoryBuffer(
            capacity=self.config.history.capacity,
            overflow_margin=self.config.history.overflow_margin,
            sample_every=self.config.history.sample_every,
            max_query_limit=self.config.history.max_query_limit,
        )
        self.registry = ConnectionRegistry(
            default_subscriptions=self.config.realtime.default_subscriptions,
            send_queue_size=self.config.realtime.send_queue_size,
        )

        if sinks is None:
            sinks = [InfluxAlertSink(self.config.influxdb), MQTTAlertSink(self.config.mqtt)]
        self.sinks = list(sinks)

        self.scheduler = TelemetryScheduler(
            waveform=self.waveform,
            history=self.history,
            evaluator=self.evaluator,
            registry=self.registry,
            alert_log=self.alert_log,
            sinks=self.sinks,
            emit_single_alerts=self.config.realtime.emit_single_alerts,
            sink_timeout_seconds=self.config.scheduler.sink_timeout_seconds,
        )

    async def start(self, tick_interval_ms: Optional[int] = None) -> SchedulerHandle:
        interval = tick_interval_ms or self.config.scheduler.tick_interval_ms
        return await self.scheduler.start(interval)

    async def stop(self) -> None:
        await self.scheduler.stop()

    async def close(self) -> None:
        """Stop ticking, let pending sink writes finish and release sink connections"""
        await self.scheduler.stop()
        await self.scheduler.flush_sinks()
        for sink in self.sinks:
            try:
                await sink.close()
            except Exception as e:
                logger.error(f"Error closing {sink.name} sink: {e}", exc_info=True)

    def latest_readings(self) -> Dict[SensorType, Reading]:
        """
        Most recent reading set.

        Before the first tick a placeholder set is generated on the fly
        (not recorded in history).
        """
        latest = self.history.latest()
        if latest:
            return latest
        return self.waveform.generate_all()

    def history_entries(
        self,
        sensor_type: Optional[SensorType] = None,
        limit: Optional[int] = None
    ) -> List[HistoryEntry]:
        return self.history.query(sensor_type=sensor_type, limit=limit)

    def alerts(
        self,
        sensor_type: Optional[SensorType] = None,
        limit: Optional[int] = None
    ) -> List[Alert]:
        return self.alert_log.query(sensor_type=sensor_type, limit=limit)

    def get_status(self) -> Dict[str, Any]:
        return {
            'scheduler': self.scheduler.get_status(),
            'history': self.history.stats(),
            'alerts_logged': len(self.alert_log),
            'connections': len(self.registry),
            'anomalies': self.waveform.get_anomaly_status(),
            'sinks': [sink.get_stats() for sink in self.sinks],
        }
