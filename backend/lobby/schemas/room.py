from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field


class RoomSummary(BaseModel):
    """Directory entry for one room. Never carries the code or password."""

    id: str
    name: str
    visibility: Literal["public", "private"]
    lock: Literal["none", "code", "password"]
    codeRequired: bool
    passwordRequired: bool
    maxPlayers: int = Field(ge=2, le=16)
    players: int
    status: Literal["open", "full"]
    createdAt: int = Field(description="Creation time in epoch milliseconds")


class RosterEntry(BaseModel):
    id: str
    nickname: str


class WorldEntry(BaseModel):
    id: str
    nickname: str
    x: float = 0.0
    y: float = 0.0
    z: float = 0.0
    a: float = 0.0
