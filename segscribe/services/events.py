"""Lifecycle events and the WebSocket broadcast hub.

Events are published after the corresponding state change is committed. The
notifier is a plain collaborator: a delivery failure is logged and never
affects segment state.
"""

import asyncio
from typing import Any, ClassVar, Dict, Protocol, Union

from fastapi import WebSocket
from pydantic import BaseModel, ConfigDict, Field
from starlette.websockets import WebSocketState

from segscribe.logging_config import get_logger

logger = get_logger(__name__)

BROADCAST_CHANNEL = "public"


class LifecycleEvent(BaseModel):
    """Base for events carrying a segment id."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    name: ClassVar[str] = "LifecycleEvent"

    segment_id: int = Field(serialization_alias="segmentId")

    def to_message(self) -> Dict[str, Any]:
        return {
            "event": self.name,
            "channel": BROADCAST_CHANNEL,
            "data": self.model_dump(by_alias=True),
        }


class TranscriptionInProgress(LifecycleEvent):
    name: ClassVar[str] = "TranscriptionInProgress"


class TranscriptionCompleted(LifecycleEvent):
    name: ClassVar[str] = "TranscriptionCompleted"

    transcription: str


class TranscriptionFailed(LifecycleEvent):
    name: ClassVar[str] = "TranscriptionFailed"


SegmentEvent = Union[TranscriptionInProgress, TranscriptionCompleted, TranscriptionFailed]


class EventNotifier(Protocol):
    async def publish(self, event: LifecycleEvent) -> None: ...


class BroadcastHub:
    """Fan lifecycle events out to every connected WebSocket client."""

    def __init__(self) -> None:
        self._connections: set[WebSocket] = set()
        self._lock = asyncio.Lock()

    @property
    def connection_count(self) -> int:
        return len(self._connections)

    async def connect(self, websocket: WebSocket) -> None:
        await websocket.accept()
        async with self._lock:
            self._connections.add(websocket)
        logger.debug("WebSocket subscriber connected (%s total)", len(self._connections))

    async def disconnect(self, websocket: WebSocket) -> None:
        async with self._lock:
            self._connections.discard(websocket)
        logger.debug("WebSocket subscriber disconnected (%s total)", len(self._connections))

    async def publish(self, event: LifecycleEvent) -> None:
        message = event.to_message()
        async with self._lock:
            targets = list(self._connections)

        stale: list[WebSocket] = []
        for websocket in targets:
            if websocket.client_state != WebSocketState.CONNECTED:
                stale.append(websocket)
                continue
            try:
                await websocket.send_json(message)
            except Exception as exc:
                logger.warning("Failed to deliver %s to subscriber: %s", event.name, exc)
                stale.append(websocket)

        if stale:
            async with self._lock:
                self._connections.difference_update(stale)
        logger.debug(
            "Published %s for segment %s to %s subscriber(s)",
            event.name,
            event.segment_id,
            len(targets) - len(stale),
        )
