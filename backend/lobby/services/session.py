from __future__ import annotations

from typing import Hashable

from lobby.core.errors import InvalidConnection, LobbyError, NotInRoom, UnknownMessageKind
from lobby.core.logging_config import get_logger
from lobby.schemas.messages import (
    Chat,
    ChatEvent,
    CreateRoom,
    Created,
    ErrorNotice,
    InboundMessage,
    JoinRoom,
    Joined,
    LeaveRoom,
    ListRooms,
    PeerJoined,
    PeerLeft,
    RoomList,
    Roster,
    Signal,
    SignalRelay,
    StateUpdate,
    Welcome,
    World,
    parse_inbound,
)
from lobby.state.connections import ConnectionRegistry, Identity
from lobby.state.room_manager import RoomManager, now_ms
from lobby.ws.manager import ConnectionManager

logger = get_logger(__name__)

CHAT_MAX_LENGTH = 220


class SessionController:
    """Protocol state machine for one lobby process.

    A connection is either in the lobby (no room) or in exactly one room.
    Every handler runs to completion without awaiting, so each transition is
    atomic with respect to other connections; outbound messages are only
    queued.
    """

    def __init__(
        self,
        registry: ConnectionRegistry,
        rooms: RoomManager,
        manager: ConnectionManager,
    ) -> None:
        self.registry = registry
        self.rooms = rooms
        self.manager = manager

    def connect(self, connection: Hashable) -> Identity:
        identity = self.registry.register(connection)
        logger.info(f"Player {identity.player_id} connected ({len(self.registry)} online)")
        self.manager.unicast(connection, Welcome(playerId=identity.player_id))
        self.manager.unicast(connection, self._room_list())
        return identity

    def disconnect(self, connection: Hashable) -> None:
        identity = self.registry.lookup(connection)
        if identity is None:
            return
        self.leave(connection)
        self.registry.unregister(connection)
        logger.info(f"Player {identity.player_id} disconnected ({len(self.registry)} online)")
        self.manager.broadcast_directory(self._room_list())

    def leave(self, connection: Hashable) -> None:
        """Shared by explicit leave_room and transport teardown."""
        departure = self.rooms.leave(connection)
        if departure is None:
            return
        logger.info(
            f"Player {departure.player_id} left room {departure.room_id}"
            + (" (room removed)" if departure.room_removed else "")
        )
        if not departure.room_removed:
            self.manager.roomcast(departure.room_id, PeerLeft(id=departure.player_id))
        self.manager.broadcast_directory(self._room_list())

    def handle_text(self, connection: Hashable, raw: str | bytes) -> None:
        """Parse one inbound frame and run it; malformed frames are dropped."""
        try:
            message = parse_inbound(raw)
        except UnknownMessageKind as e:
            self._report(connection, e)
            return
        if message is None:
            logger.debug("Dropped malformed frame")
            return
        self.dispatch(connection, message)

    def dispatch(self, connection: Hashable, message: InboundMessage) -> None:
        try:
            if isinstance(message, ListRooms):
                self.manager.unicast(connection, self._room_list())
            elif isinstance(message, CreateRoom):
                self._create_room(connection, message)
            elif isinstance(message, JoinRoom):
                self._join_room(connection, message)
            elif isinstance(message, LeaveRoom):
                self.leave(connection)
            elif isinstance(message, StateUpdate):
                self._update_state(connection, message)
            elif isinstance(message, Chat):
                self._chat(connection, message)
            elif isinstance(message, Signal):
                self._relay(connection, message)
            else:
                raise UnknownMessageKind()
        except NotInRoom:
            return
        except LobbyError as e:
            self._report(connection, e)

    def _create_room(self, connection: Hashable, message: CreateRoom) -> None:
        room, code = self.rooms.create(
            connection,
            name=message.name,
            visibility=message.visibility,
            lock=message.lock,
            password=message.password,
            capacity=message.maxPlayers,
            nickname=message.nickname,
        )
        logger.info(
            f"Room {room.id} created: name={room.name!r}, visibility={room.visibility}, "
            f"lock={room.lock}, max_players={room.capacity}"
        )
        self.manager.unicast(connection, Created(room=self.rooms.summary(room), code=code))
        self.manager.broadcast_directory(self._room_list())

    def _join_room(self, connection: Hashable, message: JoinRoom) -> None:
        room = self.rooms.join(
            connection,
            message.roomId,
            nickname=message.nickname,
            code=message.code,
            password=message.password,
        )
        identity = self._identity(connection)
        logger.info(f"Player {identity.player_id} ({identity.nickname}) joined room {room.id}")
        self.manager.unicast(connection, Joined(room=self.rooms.summary(room), playerId=identity.player_id))
        self.manager.unicast(connection, Roster(roster=self.rooms.roster(room)))
        self.manager.roomcast(
            room.id,
            PeerJoined(id=identity.player_id, nickname=identity.nickname),
            exclude=connection,
        )
        self.manager.broadcast_directory(self._room_list())

    def _update_state(self, connection: Hashable, message: StateUpdate) -> None:
        room = self.rooms.update_state(connection, message.state)
        if room is None:
            raise NotInRoom()
        self.manager.roomcast(room.id, World(players=self.rooms.world(room)))

    def _chat(self, connection: Hashable, message: Chat) -> None:
        identity = self._identity(connection)
        if identity.room_id is None:
            raise NotInRoom()
        text = message.text.strip()[:CHAT_MAX_LENGTH]
        if not text:
            return
        self.manager.roomcast(
            identity.room_id,
            ChatEvent(sender=identity.nickname, id=identity.player_id, text=text, at=now_ms()),
        )

    def _relay(self, connection: Hashable, message: Signal) -> None:
        identity = self._identity(connection)
        if identity.room_id is None:
            raise NotInRoom()
        if not message.to:
            return
        target = self.registry.find(message.to)
        # Only peers of the same room may be reached; anything else is dropped
        if target is None or target[1].room_id != identity.room_id:
            logger.debug(f"Dropped {message.t} from {identity.player_id} to {message.to}")
            return
        self.manager.unicast(
            target[0],
            SignalRelay(t=message.t, sender=identity.player_id, payload=message.payload),
        )

    def _identity(self, connection: Hashable) -> Identity:
        identity = self.registry.lookup(connection)
        if identity is None:
            raise InvalidConnection()
        return identity

    def _room_list(self) -> RoomList:
        return RoomList(rooms=self.rooms.list_for_directory())

    def _report(self, connection: Hashable, error: LobbyError) -> None:
        logger.debug(f"Rejected request: {type(error).__name__}: {error.message}")
        self.manager.unicast(connection, ErrorNotice(message=error.message))
