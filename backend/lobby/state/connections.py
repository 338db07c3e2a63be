from __future__ import annotations

import secrets
from dataclasses import dataclass
from typing import Dict, Hashable, Iterator, List, Optional, Tuple

DEFAULT_NICKNAME = "Player"


@dataclass
class Identity:
    player_id: str
    room_id: Optional[str] = None
    nickname: str = DEFAULT_NICKNAME

    @property
    def in_room(self) -> bool:
        return self.room_id is not None


class ConnectionRegistry:
    """Maps each live connection to its identity.

    The single source of truth for who is connected and which room each
    connection is in. Connections are opaque hashable handles.
    """

    def __init__(self) -> None:
        self._identities: Dict[Hashable, Identity] = {}

    def __len__(self) -> int:
        return len(self._identities)

    def __contains__(self, connection: Hashable) -> bool:
        return connection in self._identities

    def register(self, connection: Hashable) -> Identity:
        identity = Identity(player_id=self._fresh_player_id())
        self._identities[connection] = identity
        return identity

    def lookup(self, connection: Hashable) -> Optional[Identity]:
        return self._identities.get(connection)

    def set_room(self, connection: Hashable, room_id: Optional[str]) -> None:
        identity = self._identities.get(connection)
        if identity is not None:
            identity.room_id = room_id

    def rename(self, connection: Hashable, nickname: str) -> None:
        identity = self._identities.get(connection)
        if identity is not None:
            identity.nickname = nickname

    def unregister(self, connection: Hashable) -> Optional[Identity]:
        return self._identities.pop(connection, None)

    def all(self) -> List[Tuple[Hashable, Identity]]:
        # Snapshot so callers may mutate the registry while iterating
        return list(self._identities.items())

    def find(self, player_id: str) -> Optional[Tuple[Hashable, Identity]]:
        for connection, identity in self._identities.items():
            if identity.player_id == player_id:
                return connection, identity
        return None

    def in_room(self, room_id: str) -> Iterator[Tuple[Hashable, Identity]]:
        for connection, identity in self.all():
            if identity.room_id == room_id:
                yield connection, identity

    def _fresh_player_id(self) -> str:
        taken = {identity.player_id for identity in self._identities.values()}
        while True:
            player_id = secrets.token_hex(6)
            if player_id not in taken:
                return player_id
