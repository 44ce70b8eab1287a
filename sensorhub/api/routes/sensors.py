"""
Sensor Reading API Endpoints
GET /api/sensors - Latest reading for every sensor type
GET /api/sensors/history - Recent reading history
POST /api/sensors/{sensor_type}/anomaly - Start a simulated anomaly now
"""
from fastapi import APIRouter, Depends, Query
from typing import Optional
import logging

from sensorhub.api.dependencies import get_telemetry_service, parse_sensor_type
from sensorhub.api.schemas import ApiResponse, ForceAnomalyRequest
from sensorhub.core.error_handling import InvalidSensorTypeError
from sensorhub.models.sensor import SensorType, readings_to_dict
from sensorhub.services.telemetry_service import TelemetryService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["sensors"])


@router.get(
    "/sensors",
    response_model=ApiResponse,
    summary="Latest sensor readings"
)
async def get_latest_readings(
    service: TelemetryService = Depends(get_telemetry_service)
) -> ApiResponse:
    """
    Get the most recent reading for every sensor type.

    Before the first telemetry tick a placeholder reading set is generated.
    """
    return ApiResponse(data=readings_to_dict(service.latest_readings()))


@router.get(
    "/sensors/history",
    response_model=ApiResponse,
    summary="Sensor reading history"
)
async def get_readings_history(
    sensor_type: Optional[str] = Query(None, alias="sensorType", description="Filter by sensor type"),
    limit: Optional[int] = Query(None, ge=1, description="Maximum entries (capped server-side)"),
    service: TelemetryService = Depends(get_telemetry_service)
) -> ApiResponse:
    """
    Get recent reading history, newest first.

    **Query Parameters**:
    - `sensorType`: Only return this sensor type (entries without it are skipped)
    - `limit`: Number of entries; never more than the configured ceiling

    **Example**:
    ```
    GET /api/sensors/history?sensorType=TEMPERATURE&limit=20
    ```
    """
    entries = service.history_entries(sensor_type=parse_sensor_type(sensor_type), limit=limit)
    return ApiResponse(data=[entry.to_dict() for entry in entries])


@router.post(
    "/sensors/{sensor_type}/anomaly",
    response_model=ApiResponse,
    summary="Force an anomaly"
)
async def force_anomaly(
    sensor_type: str,
    request: Optional[ForceAnomalyRequest] = None,
    service: TelemetryService = Depends(get_telemetry_service)
) -> ApiResponse:
    """
    Start an anomaly for one sensor type immediately.

    Useful for demonstrating the alert path without waiting for the
    next scheduled anomaly.
    """
    parsed = SensorType.parse(sensor_type)
    if parsed not in service.waveform.sensor_types:
        raise InvalidSensorTypeError(f"Sensor type not simulated: {parsed.value}")

    duration = request.duration_seconds if request else None
    state = service.waveform.force_anomaly(parsed, duration_seconds=duration)
    logger.info(f"Anomaly forced via API for {parsed.value}")
    return ApiResponse(data={"type": parsed.value, **state.to_dict()})
