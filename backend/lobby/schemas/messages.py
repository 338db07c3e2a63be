"""Wire messages exchanged over the lobby WebSocket.

Every frame is a JSON object with a ``t`` discriminator. Inbound frames are
parsed into a closed union of models; outbound models know how to encode
themselves into the dict that goes on the wire.

Clients are sloppy about types (numbers as strings, empty strings for
"missing"), so inbound fields are coerced leniently instead of rejected.
"""
from __future__ import annotations

import json
import math
from typing import Annotated, Any, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, field_validator

from lobby.core.errors import UnknownMessageKind
from lobby.schemas.room import RoomSummary, RosterEntry, WorldEntry


SIGNAL_KINDS = ("rtc_offer", "rtc_answer", "rtc_ice")
SignalKind = Literal["rtc_offer", "rtc_answer", "rtc_ice"]


def _loose_text(value: Any) -> Optional[str]:
    # Falsy values count as "not provided"
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        return value or None
    if isinstance(value, (int, float)):
        return str(value) if value else None
    return None


def _loose_number(value: Any) -> Optional[float]:
    # Overflowing numbers become +/-inf; only NaN and non-numbers are "missing"
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        try:
            return float(value)
        except OverflowError:
            return math.inf if value > 0 else -math.inf
    if isinstance(value, float):
        number = value
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    return None if math.isnan(number) else number


def _finite_or_zero(value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0.0
    try:
        number = float(value)
    except OverflowError:
        return 0.0
    return number if math.isfinite(number) else 0.0


# client -> server


class InboundMessage(BaseModel):
    model_config = ConfigDict(extra="ignore")


class ListRooms(InboundMessage):
    t: Literal["list"]


class CreateRoom(InboundMessage):
    t: Literal["create_room"]
    name: Optional[str] = None
    visibility: Literal["public", "private"] = "public"
    maxPlayers: Optional[float] = None
    lock: Optional[str] = None
    password: Optional[str] = None
    nickname: Optional[str] = None

    @field_validator("name", "lock", "password", "nickname", mode="before")
    @classmethod
    def _text(cls, value: Any) -> Optional[str]:
        return _loose_text(value)

    @field_validator("visibility", mode="before")
    @classmethod
    def _visibility(cls, value: Any) -> str:
        return "private" if value == "private" else "public"

    @field_validator("maxPlayers", mode="before")
    @classmethod
    def _capacity(cls, value: Any) -> Optional[float]:
        return _loose_number(value)


class JoinRoom(InboundMessage):
    t: Literal["join_room"]
    roomId: str = ""
    nickname: Optional[str] = None
    code: Optional[str] = None
    password: Optional[str] = None

    @field_validator("roomId", mode="before")
    @classmethod
    def _room_id(cls, value: Any) -> str:
        return _loose_text(value) or ""

    @field_validator("nickname", "code", "password", mode="before")
    @classmethod
    def _text(cls, value: Any) -> Optional[str]:
        return _loose_text(value)


class LeaveRoom(InboundMessage):
    t: Literal["leave_room"]


class Pose(BaseModel):
    """Position and heading of one player; anything non-numeric becomes 0."""

    x: float = 0.0
    y: float = 0.0
    z: float = 0.0
    a: float = 0.0

    @field_validator("x", "y", "z", "a", mode="before")
    @classmethod
    def _finite(cls, value: Any) -> float:
        return _finite_or_zero(value)


class StateUpdate(InboundMessage):
    t: Literal["state"]
    state: Pose = Field(default_factory=Pose)

    @field_validator("state", mode="before")
    @classmethod
    def _state(cls, value: Any) -> Any:
        return value if isinstance(value, dict) else {}


class Chat(InboundMessage):
    t: Literal["chat"]
    text: str = ""

    @field_validator("text", mode="before")
    @classmethod
    def _text(cls, value: Any) -> str:
        return _loose_text(value) or ""


class Signal(InboundMessage):
    t: SignalKind
    to: str = ""
    payload: Any = None

    @field_validator("to", mode="before")
    @classmethod
    def _to(cls, value: Any) -> str:
        return _loose_text(value) or ""


Inbound = Annotated[
    Union[ListRooms, CreateRoom, JoinRoom, LeaveRoom, StateUpdate, Chat, Signal],
    Field(discriminator="t"),
]

INBOUND_KINDS = frozenset(
    {"list", "create_room", "join_room", "leave_room", "state", "chat", *SIGNAL_KINDS}
)

_inbound_adapter: TypeAdapter[Inbound] = TypeAdapter(Inbound)


def parse_inbound(raw: str | bytes) -> Optional[InboundMessage]:
    """Decode one inbound frame.

    Returns ``None`` for noise: frames that are not JSON objects, or known
    kinds whose fields cannot be validated. Raises ``UnknownMessageKind`` when
    ``t`` is missing or not part of the protocol.
    """
    try:
        data = json.loads(raw)
    except (TypeError, ValueError):
        return None
    if not isinstance(data, dict):
        return None
    kind = data.get("t")
    if not isinstance(kind, str) or kind not in INBOUND_KINDS:
        raise UnknownMessageKind()
    try:
        return _inbound_adapter.validate_python(data)
    except ValidationError:
        return None


# server -> client


class OutboundMessage(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    def encode(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


class Welcome(OutboundMessage):
    t: Literal["welcome"] = "welcome"
    playerId: str


class RoomList(OutboundMessage):
    t: Literal["rooms"] = "rooms"
    rooms: List[RoomSummary]


class Created(OutboundMessage):
    t: Literal["created"] = "created"
    room: RoomSummary
    code: Optional[str] = None


class Joined(OutboundMessage):
    t: Literal["joined"] = "joined"
    room: RoomSummary
    playerId: str


class Roster(OutboundMessage):
    t: Literal["roster"] = "roster"
    roster: List[RosterEntry]


class PeerJoined(OutboundMessage):
    t: Literal["peer_joined"] = "peer_joined"
    id: str
    nickname: str


class PeerLeft(OutboundMessage):
    t: Literal["peer_left"] = "peer_left"
    id: str


class World(OutboundMessage):
    t: Literal["world"] = "world"
    players: List[WorldEntry]


class ChatEvent(OutboundMessage):
    t: Literal["chat"] = "chat"
    sender: str = Field(alias="from")
    id: str
    text: str
    at: int


class SignalRelay(OutboundMessage):
    t: SignalKind
    sender: str = Field(alias="from")
    payload: Any = None


class ErrorNotice(OutboundMessage):
    t: Literal["error"] = "error"
    message: str
