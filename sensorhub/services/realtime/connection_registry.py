"""
Realtime Connection Registry
Tracks WebSocket clients, their channel subscriptions and principals,
and fans out telemetry payloads to subscribers

Channels:
- sensorReadings - readings of every tick
- safetyAlerts - alert batches (event `safetyAlerts`, or `safetyAlert` per alert)

The registry is confined to the event loop thread: commands from
sockets and broadcasts from the scheduler never run concurrently.
"""
import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional, Set

logger = logging.getLogger(__name__)

SENSOR_READINGS = "sensorReadings"
SAFETY_ALERTS = "safetyAlerts"
SAFETY_ALERT = "safetyAlert"
AUTHENTICATED = "authenticated"

DEFAULT_SUBSCRIPTIONS = (SENSOR_READINGS, SAFETY_ALERTS)


class ConnectionState(str, Enum):
    CONNECTED = "connected"
    AUTHENTICATED = "authenticated"
    CLOSED = "closed"


@dataclass(frozen=True)
class Principal:
    """Identity label attached by the `authenticate` command"""
    id: Optional[str] = None
    email: Optional[str] = None
    name: Optional[str] = None

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "Principal":
        """Keep only the known identity fields of a client-supplied object"""
        def text(key: str) -> Optional[str]:
            value = payload.get(key)
            return str(value) if value is not None else None

        return cls(id=text("id"), email=text("email"), name=text("name"))

    @property
    def display_name(self) -> str:
        return self.name or self.email or self.id or "anonymous"

    def to_dict(self) -> Dict[str, Optional[str]]:
        return {'id': self.id, 'email': self.email, 'name': self.name}


@dataclass
class Connection:
    """One realtime client and its outbound message queue"""
    id: str
    subscriptions: Set[str] = field(default_factory=lambda: set(DEFAULT_SUBSCRIPTIONS))
    principal: Optional[Principal] = None
    state: ConnectionState = ConnectionState.CONNECTED
    queue: asyncio.Queue = field(default_factory=asyncio.Queue)
    dropped_messages: int = 0

    def enqueue(self, event: str, data: Any) -> None:
        """
        Queue a message for the socket writer without blocking.

        On a bounded queue the oldest pending message is discarded when full.
        """
        message = {"event": event, "data": data}
        try:
            self.queue.put_nowait(message)
        except asyncio.QueueFull:
            self.queue.get_nowait()
            self.dropped_messages += 1
            self.queue.put_nowait(message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'state': self.state.value,
            'subscriptions': sorted(self.subscriptions),
            'principal': self.principal.to_dict() if self.principal else None,
            'pending_messages': self.queue.qsize(),
            'dropped_messages': self.dropped_messages,
        }


class ConnectionRegistry:
    """
    Registry of active realtime connections.

    Commands that reference an unknown connection id (typically one that
    raced a disconnect) are ignored rather than treated as errors.
    """

    def __init__(
        self,
        default_subscriptions: Iterable[str] = DEFAULT_SUBSCRIPTIONS,
        send_queue_size: int = 0
    ):
        """
        Args:
            default_subscriptions: Channels a new connection is subscribed to
            send_queue_size: Per-connection outbound queue bound (0 = unbounded)
        """
        self.default_subscriptions = tuple(default_subscriptions)
        self.send_queue_size = send_queue_size
        self._connections: Dict[str, Connection] = {}

    def connect(self, connection_id: Optional[str] = None) -> Connection:
        """Register a new connection with the default subscriptions"""
        connection = Connection(
            id=connection_id or uuid.uuid4().hex,
            subscriptions=set(self.default_subscriptions),
            queue=asyncio.Queue(maxsize=self.send_queue_size),
        )
        self._connections[connection.id] = connection
        logger.info(f"Client connected: {connection.id} ({len(self._connections)} active)")
        return connection

    def disconnect(self, connection_id: str) -> None:
        """Remove a connection and its state; safe to call more than once"""
        connection = self._connections.pop(connection_id, None)
        if connection is None:
            return
        connection.state = ConnectionState.CLOSED
        logger.info(f"Client disconnected: {connection_id} ({len(self._connections)} active)")

    def subscribe(self, connection_id: str, channel: str) -> bool:
        connection = self._connections.get(connection_id)
        if connection is None:
            logger.debug(f"subscribe for unknown connection {connection_id} ignored")
            return False
        connection.subscriptions.add(channel)
        logger.info(f"Client {connection_id} subscribed to {channel}")
        return True

    def unsubscribe(self, connection_id: str, channel: str) -> bool:
        connection = self._connections.get(connection_id)
        if connection is None:
            logger.debug(f"unsubscribe for unknown connection {connection_id} ignored")
            return False
        connection.subscriptions.discard(channel)
        logger.info(f"Client {connection_id} unsubscribed from {channel}")
        return True

    def authenticate(self, connection_id: str, principal: Principal) -> Dict[str, bool]:
        """
        Attach a principal to a connection.

        No credentials are verified here; the principal is a label.
        Always acknowledges, and queues the `authenticated` reply when
        the connection exists.
        """
        ack = {"success": True}
        connection = self._connections.get(connection_id)
        if connection is None:
            logger.debug(f"authenticate for unknown connection {connection_id} ignored")
            return ack

        connection.principal = principal
        connection.state = ConnectionState.AUTHENTICATED
        connection.enqueue(AUTHENTICATED, ack)
        logger.info(f"Client {connection_id} authenticated as {principal.display_name}")
        return ack

    def broadcast(self, channel: str, payload: Any, event: Optional[str] = None) -> int:
        """
        Deliver a payload to every connection subscribed to `channel`.

        Args:
            channel: Subscription channel to match
            payload: JSON-serialisable message data
            event: Event name sent to clients (defaults to the channel name)

        Returns:
            Number of connections the payload was queued for
        """
        event = event or channel
        delivered = 0

        for connection in list(self._connections.values()):
            if channel not in connection.subscriptions:
                continue
            try:
                connection.enqueue(event, payload)
                delivered += 1
            except Exception as e:
                logger.error(f"Failed to queue {event} for client {connection.id}: {e}", exc_info=True)

        return delivered

    def send(self, connection_id: str, event: str, data: Any) -> bool:
        """Queue a message for a single connection"""
        connection = self._connections.get(connection_id)
        if connection is None:
            return False
        connection.enqueue(event, data)
        return True

    def get(self, connection_id: str) -> Optional[Connection]:
        return self._connections.get(connection_id)

    def list_connections(self) -> List[Dict[str, Any]]:
        return [connection.to_dict() for connection in self._connections.values()]

    def __len__(self) -> int:
        return len(self._connections)

    def __contains__(self, connection_id: object) -> bool:
        return connection_id in self._connections
