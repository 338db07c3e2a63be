from __future__ import annotations

from fastapi import APIRouter, Depends, WebSocket

from lobby.core.config import Settings
from lobby.core.logging_config import get_logger
from lobby.services.session import SessionController
from lobby.ws.manager import WebSocketChannel


router = APIRouter()
logger = get_logger(__name__)


def get_controller(websocket: WebSocket) -> SessionController:
    # Access the controller created in main.create_app
    return websocket.app.state.session  # type: ignore[attr-defined]


def get_app_settings(websocket: WebSocket) -> Settings:
    return websocket.app.state.settings  # type: ignore[attr-defined]


@router.websocket("/")
@router.websocket("/ws")
async def lobby_endpoint(
    websocket: WebSocket,
    controller: SessionController = Depends(get_controller),
    settings: Settings = Depends(get_app_settings),
) -> None:
    await websocket.accept()
    channel = WebSocketChannel(websocket, outbox_limit=settings.outbox_limit)
    channel.start()
    logger.info(f"WebSocket accepted from {websocket.client}")
    controller.connect(channel)
    try:
        while True:
            frame = await websocket.receive()
            if frame["type"] == "websocket.disconnect":
                break
            raw = frame.get("text")
            if raw is None:
                raw = frame.get("bytes")
            if raw is None:
                continue
            try:
                controller.handle_text(channel, raw)
            except Exception as e:
                # A bug in one handler must not take the connection down
                logger.error(f"Error handling frame from {websocket.client}: {e}", exc_info=True)
    finally:
        # Disconnects are permanent departures
        controller.disconnect(channel)
        channel.close()
        logger.info(f"WebSocket closed for {websocket.client}")
