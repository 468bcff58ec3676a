"""WebSocket endpoint delivering transcription lifecycle events."""

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

router = APIRouter()


@router.websocket("/ws")
async def subscribe(websocket: WebSocket) -> None:
    """Keep a subscriber registered until it disconnects.

    Messages sent by the client are ignored; the channel is push-only.
    """
    hub = websocket.app.state.hub
    await hub.connect(websocket)
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        pass
    finally:
        await hub.disconnect(websocket)
