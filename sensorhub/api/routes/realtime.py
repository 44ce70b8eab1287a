"""
Realtime WebSocket Endpoint
WS /ws - live sensor readings and safety alerts

Frames are JSON objects `{"event": <name>, "data": <payload>}` in both
directions.

Client -> server events:
- subscribe: data = channel name
- unsubscribe: data = channel name
- authenticate: data = {"id", "email", "name"}

Server -> client events:
- sensorReadings, safetyAlerts, safetyAlert, authenticated, error
"""
import asyncio
import json
import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect

from sensorhub.api.dependencies import get_telemetry_service
from sensorhub.services.realtime.connection_registry import Connection, ConnectionRegistry, Principal
from sensorhub.services.telemetry_service import TelemetryService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["realtime"])

ERROR_EVENT = "error"


def dispatch_command(registry: ConnectionRegistry, connection_id: str, message: Any) -> Optional[str]:
    """
    Apply one client command to the registry.

    Returns:
        Error description for malformed commands, None on success
    """
    if not isinstance(message, dict) or not isinstance(message.get("event"), str):
        return "Messages must be objects with an 'event' field"

    event = message["event"]
    data = message.get("data")

    if event in ("subscribe", "unsubscribe"):
        if not isinstance(data, str) or not data:
            return f"'{event}' requires a channel name"
        if event == "subscribe":
            registry.subscribe(connection_id, data)
        else:
            registry.unsubscribe(connection_id, data)
        return None

    if event == "authenticate":
        if not isinstance(data, dict):
            return "'authenticate' requires a principal object"
        registry.authenticate(connection_id, Principal.from_payload(data))
        return None

    return f"Unknown event: {event}"


async def _pump_outbound(websocket: WebSocket, connection: Connection) -> None:
    """Forward queued messages to the socket until it closes"""
    while True:
        message = await connection.queue.get()
        try:
            await websocket.send_json(message)
        except (WebSocketDisconnect, RuntimeError) as e:
            logger.debug(f"Stopped sending to client {connection.id}: {e}")
            return


async def _stop_writer(writer: asyncio.Task, connection_id: str) -> None:
    """Cancel the outbound writer and reap it, whether it was cancelled or had already failed"""
    writer.cancel()
    try:
        await writer
    except asyncio.CancelledError:
        pass
    except Exception as e:
        logger.debug(f"Writer for client {connection_id} had failed: {e}")


@router.websocket("/ws")
async def realtime_socket(
    websocket: WebSocket,
    service: TelemetryService = Depends(get_telemetry_service)
):
    """Realtime telemetry channel"""
    await websocket.accept()
    registry = service.registry
    connection = registry.connect()
    writer = asyncio.create_task(_pump_outbound(websocket, connection))

    try:
        while True:
            raw = await websocket.receive_text()
            try:
                message = json.loads(raw)
            except json.JSONDecodeError:
                logger.warning(f"Malformed frame from client {connection.id}")
                registry.send(connection.id, ERROR_EVENT, {"message": "Invalid JSON"})
                continue

            error = dispatch_command(registry, connection.id, message)
            if error:
                logger.warning(f"Rejected command from client {connection.id}: {error}")
                registry.send(connection.id, ERROR_EVENT, {"message": error})

    except WebSocketDisconnect:
        pass
    finally:
        registry.disconnect(connection.id)
        await _stop_writer(writer, connection.id)
