"""
WebSocket fan-out of ShelfSeeker events to UI clients.

Manager events are reshaped into typed frames before they go out:
session events on the "session" channel keyed by their kind, DCC
offers, progress and terminal transfer states on the "transfer" channel.
A client that connects gets a "status" snapshot first so it never has
to poll /api/status to catch up.
"""

import asyncio
import logging
from typing import Callable

from fastapi import WebSocket, WebSocketDisconnect
from pydantic import BaseModel

logger = logging.getLogger(__name__)

StatusProvider = Callable[[], dict]


class EventFrame(BaseModel):
    channel: str  # "session" | "transfer" | "status"
    event: str
    data: dict


def frame_for(event_type: str, data: dict) -> EventFrame:
    """Map a TransferManager event onto the frame clients receive."""
    if event_type == "session_event":
        return EventFrame(channel="session", event=data.get("kind", "unknown"), data=data)
    if event_type == "dcc_incoming":
        return EventFrame(channel="transfer", event="offered", data=data)
    if event_type == "transfer_progress":
        return EventFrame(channel="transfer", event="progress", data=data)
    if event_type == "transfer_state":
        return EventFrame(channel="transfer", event=data.get("state", "unknown"), data=data)
    logger.warning(f"Unknown event type {event_type!r}, forwarding as-is")
    return EventFrame(channel="system", event=event_type, data=data)


class ConnectionManager:
    """Tracks open sockets and pushes EventFrames to each."""

    def __init__(self, status_provider: StatusProvider | None = None) -> None:
        self._connections: list[WebSocket] = []
        self._lock = asyncio.Lock()
        self._status_provider = status_provider

    async def connect(self, websocket: WebSocket) -> None:
        await websocket.accept()
        if self._status_provider is not None:
            snapshot = EventFrame(channel="status", event="snapshot", data=self._status_provider())
            await websocket.send_text(snapshot.model_dump_json())
        async with self._lock:
            self._connections.append(websocket)
        logger.info(f"WebSocket client connected. Total: {len(self._connections)}")

    async def disconnect(self, websocket: WebSocket) -> None:
        async with self._lock:
            if websocket in self._connections:
                self._connections.remove(websocket)
        logger.info(f"WebSocket client disconnected. Total: {len(self._connections)}")

    async def broadcast(self, frame: EventFrame) -> None:
        """Send to every client; sockets that fail are dropped."""
        message = frame.model_dump_json()
        async with self._lock:
            dead: list[WebSocket] = []
            for ws in self._connections:
                try:
                    await ws.send_text(message)
                except (WebSocketDisconnect, RuntimeError, OSError) as e:
                    logger.debug(f"Dropping WebSocket client after {frame.channel}/{frame.event}: {e}")
                    dead.append(ws)
            for ws in dead:
                self._connections.remove(ws)

    async def handle_event(self, event_type: str, data: dict) -> None:
        """Compatible with TransferManager.on_event()."""
        await self.broadcast(frame_for(event_type, data))
