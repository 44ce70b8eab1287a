"""
Telemetry Scheduler
Drives the fixed-interval telemetry cycle:
- generate one reading per sensor type
- record history
- evaluate safety thresholds
- fan readings and alerts out to realtime subscribers
- hand alerts to durable sinks without waiting for them
"""
import asyncio
import logging
import traceback
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Set

from sensorhub.core.error_handling import TickError, handle_errors_async
from sensorhub.models.alert import Alert
from sensorhub.models.sensor import Reading, SensorType, format_timestamp, readings_to_dict
from sensorhub.services.history.history_buffer import HistoryBuffer
from sensorhub.services.realtime.connection_registry import (
    SAFETY_ALERT,
    SAFETY_ALERTS,
    SENSOR_READINGS,
    ConnectionRegistry,
)
from sensorhub.services.safety.alert_log import AlertLog
from sensorhub.services.safety.threshold_evaluator import ThresholdEvaluator
from sensorhub.services.simulator.waveform_model import WaveformModel
from sensorhub.services.sink.base import AlertSink

logger = logging.getLogger(__name__)


class SchedulerState(str, Enum):
    STOPPED = "stopped"
    RUNNING = "running"


@dataclass
class TickResult:
    """Outcome of one telemetry tick"""
    readings: Dict[SensorType, Reading]
    alerts: List[Alert] = field(default_factory=list)
    reading_recipients: int = 0
    alert_recipients: int = 0
    history_stored: bool = False


class SchedulerHandle:
    """Returned by start(); stopping it stops the scheduler"""

    def __init__(self, scheduler: "TelemetryScheduler"):
        self._scheduler = scheduler

    @property
    def running(self) -> bool:
        return self._scheduler.state == SchedulerState.RUNNING

    async def stop(self) -> None:
        await self._scheduler.stop()


class TelemetryScheduler:
    """
    Periodic telemetry loop on the asyncio event loop.

    Features:
    - Fixed tick interval with drift correction
    - Fault isolation: a failing tick is logged and counted, the loop continues
    - Fire-and-forget, time-boxed sink writes
    - Tick statistics for the status API
    """

    def __init__(
        self,
        waveform: WaveformModel,
        history: HistoryBuffer,
        evaluator: ThresholdEvaluator,
        registry: ConnectionRegistry,
        alert_log: AlertLog,
        sinks: Iterable[AlertSink] = (),
        emit_single_alerts: bool = False,
        sink_timeout_seconds: float = 5.0
    ):
        self.waveform = waveform
        self.history = history
        self.evaluator = evaluator
        self.registry = registry
        self.alert_log = alert_log
        self.sinks = list(sinks)
        self.emit_single_alerts = emit_single_alerts
        self.sink_timeout_seconds = sink_timeout_seconds

        self.state = SchedulerState.STOPPED
        self.tick_interval_ms: Optional[int] = None
        self._task: Optional[asyncio.Task] = None
        self._handle: Optional[SchedulerHandle] = None
        self._sink_tasks: Set[asyncio.Task] = set()

        self.tick_count = 0
        self.error_count = 0
        self.alert_count = 0
        self.last_tick: Optional[str] = None
        self.last_error: Optional[str] = None

    def run_tick(self, now: Optional[datetime] = None) -> TickResult:
        """
        Execute one telemetry cycle synchronously.

        Args:
            now: Override for the tick time

        Returns:
            TickResult with the readings, alerts and fan-out counts
        """
        now = now or self.waveform.clock()

        readings = self.waveform.generate_all(now)
        stored = self.history.append(readings, timestamp=format_timestamp(now))
        alerts = self.evaluator.evaluate(readings)

        result = TickResult(readings=readings, alerts=alerts, history_stored=stored)
        result.reading_recipients = self.registry.broadcast(SENSOR_READINGS, readings_to_dict(readings))

        if alerts:
            payload = [alert.to_dict() for alert in alerts]
            result.alert_recipients = self.registry.broadcast(SAFETY_ALERTS, payload)
            if self.emit_single_alerts:
                for alert_data in payload:
                    self.registry.broadcast(SAFETY_ALERTS, alert_data, event=SAFETY_ALERT)

            self.alert_log.extend(alerts)
            self.alert_count += len(alerts)
            self._dispatch_to_sinks(alerts)

        self.tick_count += 1
        self.last_tick = format_timestamp(now)
        return result

    async def start(self, tick_interval_ms: int = 1000) -> SchedulerHandle:
        """
        Start the periodic loop.

        Calling start() while already running keeps the current loop and
        returns its handle.
        """
        if tick_interval_ms <= 0:
            raise ValueError("tick_interval_ms must be > 0")

        if self.state == SchedulerState.RUNNING and self._handle is not None:
            logger.warning("Telemetry scheduler already running")
            return self._handle

        self.tick_interval_ms = tick_interval_ms
        self.state = SchedulerState.RUNNING
        self._task = asyncio.create_task(self._loop(tick_interval_ms / 1000.0))
        self._handle = SchedulerHandle(self)

        logger.info(f"Starting telemetry scheduler with interval: {tick_interval_ms}ms")
        return self._handle

    async def stop(self) -> None:
        """Cancel the loop; no further ticks fire. Safe to call repeatedly."""
        if self.state == SchedulerState.STOPPED:
            return

        self.state = SchedulerState.STOPPED

        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        self._handle = None
        logger.info(f"Telemetry scheduler stopped after {self.tick_count} ticks")

    async def flush_sinks(self, timeout: Optional[float] = None) -> None:
        """Wait for in-flight sink writes (used on shutdown)"""
        if not self._sink_tasks:
            return
        pending = list(self._sink_tasks)
        _, not_done = await asyncio.wait(pending, timeout=timeout or self.sink_timeout_seconds)
        for task in not_done:
            task.cancel()

    async def _loop(self, interval: float) -> None:
        loop = asyncio.get_running_loop()
        next_tick = loop.time() + interval

        logger.info("Telemetry loop started")
        while self.state == SchedulerState.RUNNING:
            await asyncio.sleep(max(next_tick - loop.time(), 0.0))
            if self.state != SchedulerState.RUNNING:
                break

            self._safe_tick()

            next_tick += interval
            if next_tick < loop.time():
                # Ticks overran; resume the cadence from now instead of bursting
                next_tick = loop.time() + interval

        logger.info("Telemetry loop stopped")

    def _safe_tick(self) -> None:
        try:
            self.run_tick()
        except Exception as e:
            self.error_count += 1
            self.last_error = str(e)
            error = TickError(
                f"Error in telemetry tick: {e}",
                details={'exception': type(e).__name__, 'tick_count': self.tick_count}
            )
            logger.error(
                error.message,
                exc_info=True,
                extra={
                    'error_code': error.error_code.name,
                    'details': error.details,
                    'error_count': self.error_count,
                    'traceback': traceback.format_exc()
                }
            )

    def _dispatch_to_sinks(self, alerts: List[Alert]) -> None:
        sinks = [sink for sink in self.sinks if sink.enabled]
        if not sinks:
            return

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning(f"No running event loop, {len(alerts)} alerts not written to sinks")
            return

        for alert in alerts:
            for sink in sinks:
                task = loop.create_task(self._write_to_sink(sink, alert))
                self._sink_tasks.add(task)
                task.add_done_callback(self._sink_tasks.discard)

    @handle_errors_async(default_return=False)
    async def _write_to_sink(self, sink: AlertSink, alert: Alert) -> bool:
        return await asyncio.wait_for(sink.write_alert(alert), timeout=self.sink_timeout_seconds)

    def get_status(self) -> Dict[str, Any]:
        return {
            'state': self.state.value,
            'running': self.state == SchedulerState.RUNNING,
            'tick_interval_ms': self.tick_interval_ms,
            'tick_count': self.tick_count,
            'error_count': self.error_count,
            'alert_count': self.alert_count,
            'last_tick': self.last_tick,
            'last_error': self.last_error,
            'pending_sink_writes': len(self._sink_tasks),
            'checked_at': format_timestamp(datetime.now(timezone.utc)),
        }
