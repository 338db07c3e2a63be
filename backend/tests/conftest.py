from __future__ import annotations

from typing import List, Optional

import pytest

from lobby.services.session import SessionController
from lobby.state.connections import ConnectionRegistry
from lobby.state.room_manager import RoomManager
from lobby.ws.manager import ConnectionManager


class RecordingChannel:
    """In-memory stand-in for a WebSocket channel: records what it is sent."""

    def __init__(self) -> None:
        self.messages: List[dict] = []
        self.open = True

    @property
    def is_open(self) -> bool:
        return self.open

    def send(self, message: dict) -> None:
        self.messages.append(message)

    def of_type(self, kind: str) -> List[dict]:
        return [m for m in self.messages if m.get("t") == kind]

    def last(self, kind: Optional[str] = None) -> dict:
        found = self.of_type(kind) if kind else self.messages
        assert found, f"no {kind or 'message'} received"
        return found[-1]

    def kinds(self) -> List[str]:
        return [m.get("t") for m in self.messages]

    def clear(self) -> None:
        self.messages.clear()


@pytest.fixture
def registry() -> ConnectionRegistry:
    return ConnectionRegistry()


@pytest.fixture
def rooms(registry: ConnectionRegistry) -> RoomManager:
    return RoomManager(registry)


@pytest.fixture
def manager(registry: ConnectionRegistry) -> ConnectionManager:
    return ConnectionManager(registry)


@pytest.fixture
def controller(registry, rooms, manager) -> SessionController:
    return SessionController(registry, rooms, manager)


@pytest.fixture
def connect(controller: SessionController):
    """Open a recorded connection through the controller, inbox cleared."""

    def _connect() -> RecordingChannel:
        channel = RecordingChannel()
        controller.connect(channel)
        channel.clear()
        return channel

    return _connect


@pytest.fixture
def member(registry: ConnectionRegistry):
    """Register a bare channel with the registry (no controller side effects)."""

    def _member() -> RecordingChannel:
        channel = RecordingChannel()
        registry.register(channel)
        return channel

    return _member
