"""WebSocket fan-out of extraction progress published on Redis."""
import asyncio
import json
import logging
from typing import Any, Dict, Optional, Set
from fastapi import WebSocket, WebSocketDisconnect
import redis.asyncio as redis
from shared.config import settings

logger = logging.getLogger(__name__)


class ConnectionManager:
    """Tracks observers: everyone on /ws, plus per-extraction watchers."""

    def __init__(self):
        # extraction id -> sockets watching it
        self.watchers: Dict[str, Set[WebSocket]] = {}
        self.all_connections: Set[WebSocket] = set()

    async def connect(self, websocket: WebSocket, job_id: Optional[str] = None):
        """Accept a connection and register it."""
        await websocket.accept()
        if job_id:
            self.watchers.setdefault(job_id, set()).add(websocket)
        else:
            self.all_connections.add(websocket)

    def disconnect(self, websocket: WebSocket, job_id: Optional[str] = None):
        """Forget a connection."""
        self.all_connections.discard(websocket)

        if job_id and job_id in self.watchers:
            self.watchers[job_id].discard(websocket)
            if not self.watchers[job_id]:
                del self.watchers[job_id]

    async def _send_all(self, connections: Set[WebSocket], message: Dict[str, Any]) -> Set[WebSocket]:
        dead = set()
        for connection in list(connections):
            try:
                await connection.send_json(message)
            except Exception as e:
                logger.debug(f"Dropping websocket after send failure: {e}")
                dead.add(connection)
        return dead

    async def send_to_job(self, job_id: str, message: Dict[str, Any]):
        """Send to every connection watching one extraction."""
        for connection in await self._send_all(self.watchers.get(job_id, set()), message):
            self.disconnect(connection, job_id)

    async def broadcast(self, message: Dict[str, Any]):
        """Send to every /ws connection."""
        for connection in await self._send_all(self.all_connections, message):
            self.disconnect(connection)

    async def dispatch(self, message: Dict[str, Any]):
        """Route one published update to its observers."""
        job_id = message.get("job_id")
        if job_id:
            await self.send_to_job(job_id, message)
        await self.broadcast(message)


# Global connection manager
manager = ConnectionManager()


async def redis_subscriber(
    redis_client: redis.Redis,
    channel: str = None,
    connections: ConnectionManager = None
):
    """Subscribe to the result channel and forward updates to WebSocket clients."""
    channel = channel or settings.redis_result_channel
    connections = connections or manager
    pubsub = redis_client.pubsub()
    await pubsub.subscribe(channel)
    logger.info(f"Subscribed to {channel}")

    try:
        async for message in pubsub.listen():
            if message["type"] != "message":
                continue
            try:
                data = json.loads(message["data"])
            except json.JSONDecodeError:
                logger.warning(f"Ignoring malformed update on {channel}")
                continue
            await connections.dispatch(data)
    except asyncio.CancelledError:
        pass
    finally:
        await pubsub.unsubscribe(channel)
        await pubsub.aclose()


async def websocket_endpoint(websocket: WebSocket, job_id: Optional[str] = None):
    """Keep an observer connected, answering pings and sending heartbeats."""
    await manager.connect(websocket, job_id)

    try:
        while True:
            try:
                data = await asyncio.wait_for(
                    websocket.receive_text(),
                    timeout=settings.ws_heartbeat_interval
                )
                if data == "ping":
                    await websocket.send_text("pong")
            except asyncio.TimeoutError:
                await websocket.send_json({"type": "heartbeat"})
    except WebSocketDisconnect:
        manager.disconnect(websocket, job_id)
