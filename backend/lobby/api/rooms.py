from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, Request

from lobby.schemas.room import RoomSummary
from lobby.state.room_manager import RoomManager


router = APIRouter(prefix="/rooms", tags=["rooms"])


def get_rooms(request: Request) -> RoomManager:
    return request.app.state.room_manager  # type: ignore[attr-defined]


@router.get("", response_model=List[RoomSummary])
async def list_rooms(rooms: RoomManager = Depends(get_rooms)) -> List[RoomSummary]:
    """Same redacted listing the WebSocket ``rooms`` message carries."""
    return rooms.list_for_directory()
