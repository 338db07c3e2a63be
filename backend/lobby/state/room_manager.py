from __future__ import annotations

import math
import secrets
import threading
import time
from dataclasses import dataclass, field
from typing import Dict, Hashable, List, Optional, Tuple

from lobby.core.errors import (
    AlreadyInRoom,
    BadCode,
    BadPassword,
    InvalidConnection,
    NoSuchRoom,
    RoomFull,
    WeakPassword,
)
from lobby.schemas.messages import Pose
from lobby.schemas.room import RoomSummary, RosterEntry, WorldEntry
from lobby.state.connections import DEFAULT_NICKNAME, ConnectionRegistry, Identity

MIN_PLAYERS = 2
MAX_PLAYERS = 16
ROOM_NAME_MAX = 24
NICKNAME_MAX = 18
MIN_PASSWORD_LENGTH = 3
CODE_LENGTH = 6
# No 0/O, 1/I/L: codes are read aloud and typed by hand
CODE_ALPHABET = "ABCDEFGHJKMNPQRSTUVWXYZ23456789"
DEFAULT_ROOM_NAME = "Sala"


def now_ms() -> int:
    return int(time.time() * 1000)


def make_code(length: int = CODE_LENGTH) -> str:
    return "".join(secrets.choice(CODE_ALPHABET) for _ in range(length))


def clamp_capacity(value: Optional[float]) -> int:
    if value is None or math.isnan(value):
        return MIN_PLAYERS
    if math.isinf(value):
        return MAX_PLAYERS if value > 0 else MIN_PLAYERS
    return max(MIN_PLAYERS, min(MAX_PLAYERS, int(value)))


def _clip(value: Optional[str], limit: int, default: str) -> str:
    return (value or default)[:limit]


@dataclass
class Room:
    id: str
    name: str
    visibility: str = "public"
    lock: str = "none"
    capacity: int = MIN_PLAYERS
    code: Optional[str] = field(default=None, repr=False)
    password: Optional[str] = field(default=None, repr=False)
    created_at: int = field(default_factory=now_ms)
    # player_id -> nickname, in join order
    members: Dict[str, str] = field(default_factory=dict)
    states: Dict[str, WorldEntry] = field(default_factory=dict)

    @property
    def is_full(self) -> bool:
        return len(self.members) >= self.capacity

    @property
    def is_private(self) -> bool:
        return self.visibility == "private"


@dataclass(frozen=True)
class Departure:
    """Outcome of a leave: who left which room, and whether the room is gone."""

    player_id: str
    room_id: str
    room_removed: bool


class RoomManager:
    """Owns every live room, its membership and per-player world state.

    Each public method is one atomic transition: the directory lock is held
    from the first lookup to the last mutation, so two racing joins can never
    both observe a free slot.
    """

    def __init__(self, registry: ConnectionRegistry) -> None:
        self._registry = registry
        self._rooms: Dict[str, Room] = {}
        self._lock = threading.RLock()

    def __len__(self) -> int:
        return len(self._rooms)

    def __contains__(self, room_id: str) -> bool:
        return room_id in self._rooms

    def get(self, room_id: str) -> Optional[Room]:
        return self._rooms.get(room_id)

    def is_member(self, room_id: str, player_id: str) -> bool:
        room = self._rooms.get(room_id)
        return room is not None and player_id in room.members

    def create(
        self,
        connection: Hashable,
        name: Optional[str] = None,
        visibility: str = "public",
        lock: Optional[str] = None,
        password: Optional[str] = None,
        capacity: Optional[float] = None,
        nickname: Optional[str] = None,
    ) -> Tuple[Room, Optional[str]]:
        """Create a room with the caller as its first member.

        Returns the room and, for code-locked rooms, the generated code. The
        code is meant for the creator only.
        """
        with self._lock:
            identity = self._require_identity(connection)
            if identity.in_room:
                raise AlreadyInRoom("Ya estás en una sala. Salí primero.")

            visibility = "private" if visibility == "private" else "public"
            lock_mode = "none"
            code: Optional[str] = None
            secret: Optional[str] = None
            if visibility == "private":
                lock_mode = "password" if lock == "password" else "code"
                if lock_mode == "password":
                    secret = password or ""
                    if len(secret) < MIN_PASSWORD_LENGTH:
                        raise WeakPassword()
                else:
                    code = make_code()

            room = Room(
                id=self._fresh_room_id(),
                name=_clip(name, ROOM_NAME_MAX, DEFAULT_ROOM_NAME),
                visibility=visibility,
                lock=lock_mode,
                capacity=clamp_capacity(capacity),
                code=code,
                password=secret,
            )
            if nickname:
                self._registry.rename(connection, _clip(nickname, NICKNAME_MAX, DEFAULT_NICKNAME))
            self._rooms[room.id] = room
            self._admit(connection, identity, room)
            return room, code

    def join(
        self,
        connection: Hashable,
        room_id: str,
        nickname: Optional[str] = None,
        code: Optional[str] = None,
        password: Optional[str] = None,
    ) -> Room:
        with self._lock:
            identity = self._require_identity(connection)
            if identity.in_room:
                raise AlreadyInRoom()
            room = self._rooms.get(room_id)
            if room is None:
                raise NoSuchRoom()
            if room.is_full:
                raise RoomFull()
            if room.is_private:
                if room.lock == "code" and code != room.code:
                    raise BadCode()
                if room.lock == "password" and password != room.password:
                    raise BadPassword()

            self._registry.rename(connection, _clip(nickname, NICKNAME_MAX, DEFAULT_NICKNAME))
            self._admit(connection, identity, room)
            return room

    def leave(self, connection: Hashable) -> Optional[Departure]:
        """Take the connection out of its room; ``None`` if it had none.

        Removes the member and its world state, deletes the room when the
        last member leaves, and always clears the identity's room pointer.
        """
        with self._lock:
            identity = self._registry.lookup(connection)
            if identity is None or identity.room_id is None:
                return None
            room_id = identity.room_id
            removed = False
            room = self._rooms.get(room_id)
            if room is not None:
                room.members.pop(identity.player_id, None)
                room.states.pop(identity.player_id, None)
                if not room.members:
                    del self._rooms[room_id]
                    removed = True
            self._registry.set_room(connection, None)
            return Departure(player_id=identity.player_id, room_id=room_id, room_removed=removed)

    def update_state(self, connection: Hashable, pose: Pose) -> Optional[Room]:
        with self._lock:
            identity = self._registry.lookup(connection)
            if identity is None or identity.room_id is None:
                return None
            room = self._rooms.get(identity.room_id)
            if room is None or identity.player_id not in room.members:
                return None
            # Replaced wholesale, never merged
            room.states[identity.player_id] = WorldEntry(
                id=identity.player_id,
                nickname=identity.nickname,
                **pose.model_dump(),
            )
            return room

    def list_for_directory(self) -> List[RoomSummary]:
        with self._lock:
            return [self.summary(room) for room in self._rooms.values()]

    @staticmethod
    def summary(room: Room) -> RoomSummary:
        return RoomSummary(
            id=room.id,
            name=room.name,
            visibility=room.visibility,
            lock=room.lock,
            codeRequired=room.is_private and room.lock == "code",
            passwordRequired=room.is_private and room.lock == "password",
            maxPlayers=room.capacity,
            players=len(room.members),
            status="full" if room.is_full else "open",
            createdAt=room.created_at,
        )

    @staticmethod
    def roster(room: Room) -> List[RosterEntry]:
        return [RosterEntry(id=pid, nickname=nick) for pid, nick in room.members.items()]

    @staticmethod
    def world(room: Room) -> List[WorldEntry]:
        return [room.states[pid] for pid in room.members if pid in room.states]

    def _require_identity(self, connection: Hashable) -> Identity:
        identity = self._registry.lookup(connection)
        if identity is None:
            raise InvalidConnection()
        return identity

    def _admit(self, connection: Hashable, identity: Identity, room: Room) -> None:
        room.members[identity.player_id] = identity.nickname
        room.states[identity.player_id] = WorldEntry(id=identity.player_id, nickname=identity.nickname)
        self._registry.set_room(connection, room.id)

    def _fresh_room_id(self) -> str:
        while True:
            room_id = secrets.token_hex(4)
            if room_id not in self._rooms:
                return room_id
