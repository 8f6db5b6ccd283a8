"""Real-time scan notifications for the admin dashboard.

Every successful resolution publishes a ``ScanEvent`` to connected admin
WebSocket clients (``student:scanned`` / ``artist:scanned``). Publishing is
fire-and-forget: the broadcast runs as a background task and delivery
failures, slow clients or an empty room never reach the profile request.
"""

import asyncio
import logging
from dataclasses import asdict, dataclass
from datetime import datetime

from fastapi import WebSocket

from app.core.metrics import realtime_connections, scan_events_published_total
from app.models.entity import EntityType

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScanEvent:
    """Payload pushed to admin listeners after a successful scan."""

    entity_type: EntityType
    entity_id: str
    display_name: str
    subtitle: str | None
    scan_count: int | None
    session_id: str | None
    device_type: str | None
    timestamp: datetime

    @property
    def event(self) -> str:
        return f"{self.entity_type.value}:scanned"

    def to_message(self) -> dict:
        payload = asdict(self)
        payload["entity_type"] = self.entity_type.value
        payload["timestamp"] = self.timestamp.isoformat()
        return {"event": self.event, "data": payload}


class ScanBroadcaster:
    """WebSocket connection manager for the admin scan feed."""

    def __init__(self):
        self._connections: set[WebSocket] = set()
        self._lock = asyncio.Lock()
        self._tasks: set[asyncio.Task] = set()

    @property
    def connection_count(self) -> int:
        return len(self._connections)

    async def connect(self, websocket: WebSocket, admin: str | None = None) -> None:
        await websocket.accept()
        async with self._lock:
            self._connections.add(websocket)
            realtime_connections.set(len(self._connections))
        logger.info(f"Admin scan feed connected: {admin or 'unknown'}")

    async def disconnect(self, websocket: WebSocket) -> None:
        async with self._lock:
            self._connections.discard(websocket)
            realtime_connections.set(len(self._connections))
        logger.info("Admin scan feed disconnected")

    async def broadcast(self, message: dict) -> None:
        """Send a message to every connected admin. Failing sockets are dropped."""
        async with self._lock:
            connections = self._connections.copy()

        stale = []
        for websocket in connections:
            try:
                await websocket.send_json(message)
            except Exception as e:
                logger.warning(f"Scan feed send failed: {e}")
                stale.append(websocket)

        for websocket in stale:
            await self.disconnect(websocket)

    def publish(self, event: ScanEvent) -> None:
        """Schedule a broadcast of ``event`` and return immediately."""
        scan_events_published_total.labels(event=event.event).inc()
        try:
            task = asyncio.get_running_loop().create_task(self.broadcast(event.to_message()))
        except RuntimeError:
            logger.warning(f"No running event loop, dropping {event.event} notification")
            return

        # The loop only keeps weak references to tasks
        self._tasks.add(task)
        task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.warning(f"Scan broadcast failed: {task.exception()}")

    async def drain(self) -> None:
        """Wait for in-flight broadcasts (shutdown and tests)."""
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)


# Global broadcaster shared by the WebSocket endpoint and the profile route
scan_broadcaster = ScanBroadcaster()


def get_notifier() -> ScanBroadcaster:
    """Dependency returning the process-wide scan broadcaster."""
    return scan_broadcaster
