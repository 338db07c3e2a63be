from __future__ import annotations

import asyncio
from typing import Hashable, Optional, Protocol

from fastapi import WebSocket
from fastapi.websockets import WebSocketState

from lobby.core.logging_config import get_logger
from lobby.schemas.messages import OutboundMessage
from lobby.state.connections import ConnectionRegistry

logger = get_logger(__name__)


class Channel(Protocol):
    """Server-side handle of one live connection."""

    @property
    def is_open(self) -> bool: ...

    def send(self, message: dict) -> None: ...


class WebSocketChannel:
    """Wraps a WebSocket with a bounded outbox drained by its own writer task.

    ``send`` never waits on the network, so a slow client only ever delays
    its own messages. Order within the outbox is preserved.
    """

    def __init__(self, websocket: WebSocket, outbox_limit: int = 256) -> None:
        self.websocket = websocket
        self._outbox: asyncio.Queue[dict] = asyncio.Queue(maxsize=max(1, outbox_limit))
        self._writer: Optional[asyncio.Task] = None
        self._closed = False

    @property
    def is_open(self) -> bool:
        return not self._closed and self.websocket.client_state == WebSocketState.CONNECTED

    def start(self) -> None:
        if self._writer is None:
            self._writer = asyncio.create_task(self._drain())

    def send(self, message: dict) -> None:
        if not self.is_open:
            return
        try:
            self._outbox.put_nowait(message)
        except asyncio.QueueFull:
            logger.warning(f"Outbox full, dropping '{message.get('t')}' for {self.websocket.client}")

    def close(self) -> None:
        self._closed = True
        if self._writer is not None:
            self._writer.cancel()
            self._writer = None

    async def _drain(self) -> None:
        while True:
            message = await self._outbox.get()
            try:
                await self.websocket.send_json(message)
            except Exception as e:
                # The receive loop sees the disconnect and cleans up identity state
                logger.debug(f"Send failed for {self.websocket.client}: {e}")
                self._closed = True
                return


class ConnectionManager:
    """Delivers outbound messages to one connection, a room, or everyone.

    Targets are resolved through the registry at call time, so a departure
    applied before the call is always respected. Delivery is best-effort:
    closed channels are skipped silently.
    """

    def __init__(self, registry: ConnectionRegistry) -> None:
        self._registry = registry

    def unicast(self, connection: Hashable, message: OutboundMessage) -> None:
        self._deliver(connection, message.encode())

    def roomcast(
        self,
        room_id: str,
        message: OutboundMessage,
        exclude: Optional[Hashable] = None,
    ) -> int:
        payload = message.encode()
        sent = 0
        for connection, _ in self._registry.in_room(room_id):
            if connection is exclude:
                continue
            sent += self._deliver(connection, payload)
        return sent

    def broadcast_directory(self, message: OutboundMessage) -> int:
        payload = message.encode()
        sent = 0
        for connection, _ in self._registry.all():
            sent += self._deliver(connection, payload)
        return sent

    @staticmethod
    def _deliver(connection: Channel, payload: dict) -> int:
        if not connection.is_open:
            return 0
        connection.send(payload)
        return 1
