# src/athlinked/api/v1/endpoints/realtime.py
"""WebSocket gateway for realtime messaging.

Each accepted socket becomes one connection in the messaging hub. Frames are
JSON envelopes ``{"event", "data", "ack"}``; everything else about the
protocol lives in the hub and delivery engine.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from starlette.websockets import WebSocketState

from athlinked.core.settings import settings
from athlinked.schemas.events import Event
from athlinked.services.hub import MessagingHub

logger = logging.getLogger(__name__)

router = APIRouter(tags=["realtime"])


class WebSocketTransport:
    """Adapts a FastAPI WebSocket to the emitter's transport interface."""

    def __init__(self, websocket: WebSocket) -> None:
        self.websocket = websocket

    async def send(self, frame: dict[str, Any]) -> None:
        if self.websocket.application_state != WebSocketState.CONNECTED:
            raise RuntimeError("WebSocket is closing")
        await self.websocket.send_json(frame)


def _decode(message: dict[str, Any]) -> Any:
    text = message.get("text")
    if text is None:
        raise ValueError("Binary frames are not supported")
    return json.loads(text)


@router.websocket(settings.ws_path)
async def realtime(websocket: WebSocket) -> None:
    """Serve one client connection until it disconnects."""
    hub: MessagingHub | None = getattr(websocket.app.state, "hub", None)
    if hub is None:
        await websocket.close(code=1013)
        return

    await websocket.accept()
    connection_id = hub.connect(WebSocketTransport(websocket))
    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                break
            try:
                frame = _decode(message)
            except ValueError:
                await hub.emitter.emit(connection_id, Event.ERROR, {"message": "Malformed frame"})
                continue
            await hub.dispatch(connection_id, frame)
    except WebSocketDisconnect:
        pass
    finally:
        hub.disconnect(connection_id)
