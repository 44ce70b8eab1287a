"""
Health Check Endpoint
GET /health - Service health status
"""
from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field
from typing import Dict, Any, Optional
from datetime import datetime, timezone
import asyncio
import logging
import os

import psutil

from sensorhub.api.dependencies import get_telemetry_service
from sensorhub.services.telemetry_service import TelemetryService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


class SystemHealth(BaseModel):
    """System resource health"""
    cpu_percent: float
    memory_percent: float
    disk_percent: float
    uptime_seconds: float


class ComponentHealth(BaseModel):
    """Component health status"""
    status: str = Field(..., description="Status: healthy, degraded, unhealthy")
    message: Optional[str] = None
    last_check: float


class HealthResponse(BaseModel):
    """Overall health response"""
    status: str = Field(..., description="Overall status: healthy, degraded, unhealthy")
    message: str = "Server is running"
    timestamp: float
    version: str = "1.0.0"

    system: SystemHealth
    components: Dict[str, ComponentHealth] = Field(default_factory=dict)
    telemetry: Dict[str, Any] = Field(default_factory=dict)


@router.get(
    "/health",
    response_model=HealthResponse,
    status_code=status.HTTP_200_OK,
    summary="Health check",
    description="Get service health status"
)
async def health_check(
    service: TelemetryService = Depends(get_telemetry_service)
) -> HealthResponse:
    """
    Get service health status.

    Checks:
    - Telemetry scheduler running and tick errors
    - Realtime connections
    - Alert sink write failures
    - System resources (CPU, memory, disk)

    **Status Levels**:
    - `healthy`: Scheduler running, sinks writing
    - `degraded`: Scheduler stopped, failing ticks or sink write failures
    - `unhealthy`: Scheduler erroring on every tick
    """
    timestamp = datetime.now(timezone.utc).timestamp()
    issues = []
    components = {}

    scheduler_status = service.scheduler.get_status()
    if not scheduler_status['running']:
        components["scheduler"] = ComponentHealth(
            status="degraded", message="Telemetry scheduler stopped", last_check=timestamp
        )
        issues.append("scheduler_stopped")
    elif scheduler_status['tick_count'] == 0 and scheduler_status['error_count'] > 0:
        components["scheduler"] = ComponentHealth(
            status="unhealthy",
            message=f"Every tick failing: {scheduler_status['last_error']}",
            last_check=timestamp
        )
        issues.append("scheduler_failing")
    else:
        components["scheduler"] = ComponentHealth(
            status="degraded" if scheduler_status['error_count'] else "healthy",
            message=(
                f"{scheduler_status['tick_count']} ticks, "
                f"{scheduler_status['error_count']} errors"
            ),
            last_check=timestamp
        )
        if scheduler_status['error_count']:
            issues.append("tick_errors")

    components["realtime"] = ComponentHealth(
        status="healthy",
        message=f"{len(service.registry)} clients connected",
        last_check=timestamp
    )

    for sink in service.sinks:
        stats = sink.get_stats()
        if not stats['enabled']:
            sink_status, message = "healthy", "disabled"
        elif stats['failed']:
            sink_status = "degraded"
            message = f"{stats['failed']} failed writes, {stats['written']} succeeded"
            issues.append(f"{sink.name}_failures")
        else:
            sink_status, message = "healthy", f"{stats['written']} alerts written"
        components[f"sink_{sink.name}"] = ComponentHealth(
            status=sink_status, message=message, last_check=timestamp
        )

    if "scheduler_failing" in issues:
        overall_status = "unhealthy"
    elif issues:
        overall_status = "degraded"
    else:
        overall_status = "healthy"

    return HealthResponse(
        status=overall_status,
        timestamp=timestamp,
        system=await _check_system_health_async(),
        components=components,
        telemetry=service.get_status(),
    )


def _check_system_health_sync() -> SystemHealth:
    """Check system resource health"""
    try:
        cpu_percent = psutil.cpu_percent(interval=None)
        memory_percent = psutil.virtual_memory().percent
        disk_percent = psutil.disk_usage(os.path.abspath(os.sep)).percent
        uptime_seconds = datetime.now(timezone.utc).timestamp() - psutil.boot_time()

        return SystemHealth(
            cpu_percent=round(cpu_percent, 2),
            memory_percent=round(memory_percent, 2),
            disk_percent=round(disk_percent, 2),
            uptime_seconds=round(uptime_seconds, 2)
        )

    except Exception as e:
        logger.error(f"System health check failed: {e}")
        return SystemHealth(cpu_percent=0.0, memory_percent=0.0, disk_percent=0.0, uptime_seconds=0.0)


async def _check_system_health_async(timeout: float = 1.0) -> SystemHealth:
    """Run system health in a thread with timeout; never block main loop."""
    task = asyncio.create_task(asyncio.to_thread(_check_system_health_sync))
    done, _ = await asyncio.wait({task}, timeout=timeout)

    if task in done:
        return task.result()

    logger.error("System health check exceeded %.2fs timeout", timeout)
    return SystemHealth(cpu_percent=0.0, memory_percent=0.0, disk_percent=0.0, uptime_seconds=0.0)
