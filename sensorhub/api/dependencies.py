"""
FastAPI dependencies shared by the route modules
"""
from typing import Optional

from fastapi import HTTPException, status

from sensorhub.models.sensor import SensorType
from sensorhub.services.telemetry_service import TelemetryService

_service: Optional[TelemetryService] = None


def set_telemetry_service(service: Optional[TelemetryService]) -> None:
    """Install the process-wide service (called from the application lifespan)"""
    global _service
    _service = service


def get_telemetry_service() -> TelemetryService:
    if _service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Telemetry service not initialized"
        )
    return _service


def parse_sensor_type(value: Optional[str]) -> Optional[SensorType]:
    """Optional sensor type query parameter; raises InvalidSensorTypeError for unknown names"""
    if value is None or value == "":
        return None
    return SensorType.parse(value)
