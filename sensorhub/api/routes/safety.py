"""
Safety API Endpoints
GET /api/safety/thresholds - Thresholds for all sensor types, or one
PUT /api/safety/thresholds/{sensor_type} - Patch min and/or max
GET /api/safety/alerts - Recent safety alerts
"""
from fastapi import APIRouter, Depends, Query
from typing import Optional
import logging

from sensorhub.api.dependencies import get_telemetry_service, parse_sensor_type
from sensorhub.api.schemas import ApiResponse, ThresholdUpdateRequest
from sensorhub.services.telemetry_service import TelemetryService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/safety", tags=["safety"])


@router.get(
    "/thresholds",
    response_model=ApiResponse,
    summary="Get safety thresholds"
)
async def get_thresholds(
    sensor_type: Optional[str] = Query(None, alias="sensorType", description="Only this sensor type"),
    service: TelemetryService = Depends(get_telemetry_service)
) -> ApiResponse:
    """
    Get current safety thresholds.

    Returns the whole table keyed by sensor type, or a single
    `{min, max, unit}` entry when `sensorType` is given.
    """
    parsed = parse_sensor_type(sensor_type)
    if parsed is not None:
        entry = service.evaluator.get_thresholds(parsed)
        return ApiResponse(data=entry.to_dict() if entry else None)

    table = service.evaluator.get_thresholds()
    return ApiResponse(data={t.value: entry.to_dict() for t, entry in table.items()})


@router.put(
    "/thresholds/{sensor_type}",
    response_model=ApiResponse,
    summary="Update a safety threshold"
)
async def update_threshold(
    sensor_type: str,
    request: ThresholdUpdateRequest,
    service: TelemetryService = Depends(get_telemetry_service)
) -> ApiResponse:
    """
    Patch the threshold of one sensor type.

    Only the supplied bounds change. The new values apply from the next
    telemetry tick.

    **Errors**:
    - 400 if the sensor type is unknown
    - 400 if neither `min` nor `max` is supplied, or min > max
    """
    updated = service.evaluator.update_threshold(sensor_type, min=request.min, max=request.max)
    return ApiResponse(data=updated.to_dict())


@router.get(
    "/alerts",
    response_model=ApiResponse,
    summary="Get safety alert history"
)
async def get_alerts(
    sensor_type: Optional[str] = Query(None, alias="sensorType", description="Filter by sensor type"),
    limit: Optional[int] = Query(None, ge=1, le=1000, description="Maximum alerts to return"),
    service: TelemetryService = Depends(get_telemetry_service)
) -> ApiResponse:
    """Get recent safety alerts, newest first"""
    alerts = service.alerts(sensor_type=parse_sensor_type(sensor_type), limit=limit)
    return ApiResponse(data=[alert.to_dict() for alert in alerts])
