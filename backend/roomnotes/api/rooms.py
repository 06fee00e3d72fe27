from __future__ import annotations

from typing import Any, Dict, Optional, Union

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, ConfigDict, Field

from roomnotes.deps import get_room_manager
from roomnotes.services.room_lifecycle import RoomLifecycleManager
import logging
logger = logging.getLogger("roomnotes.api")


router = APIRouter(prefix="/rooms", tags=["rooms"])


class CreateRoomRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    room_id: Union[str, int] = Field(alias="roomId")
    name: str


class AddContentRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    # Empty strings are accepted as-is
    selection: str = ""
    xpath: str = ""
    page_url: str = ""
    created_by: Optional[str] = Field(default=None, alias="createdBy")


@router.post("", status_code=201)
def create_room(body: CreateRoomRequest, rooms: RoomLifecycleManager = Depends(get_room_manager)) -> Dict[str, Any]:
    room = rooms.create_room(body.room_id, body.name)
    return {"message": "Room created successfully!", "room": room.to_public()}


@router.get("")
def list_rooms(
    limit: int = Query(default=50, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    rooms: RoomLifecycleManager = Depends(get_room_manager),
) -> Dict[str, Any]:
    items = rooms.list_rooms(limit=limit, offset=offset)
    return {"message": f"{len(items)} room(s) found", "rooms": [r.to_public() for r in items]}


@router.get("/{room_id}")
def get_room(room_id: str, rooms: RoomLifecycleManager = Depends(get_room_manager)) -> Dict[str, Any]:
    room = rooms.get_room(room_id)
    return {"message": "Room found", "room": room.to_public()}


@router.post("/{room_id}/content")
def add_content(
    room_id: str,
    body: AddContentRequest,
    rooms: RoomLifecycleManager = Depends(get_room_manager),
) -> Dict[str, Any]:
    logger.debug("Adding content to room %s", room_id)
    content = rooms.add_content(
        room_id,
        selection=body.selection,
        xpath=body.xpath,
        page_url=body.page_url,
        created_by=body.created_by,
    )
    return {"message": "Content added successfully!", "content": content}


@router.delete("/{room_id}")
def delete_room(room_id: str, rooms: RoomLifecycleManager = Depends(get_room_manager)) -> Dict[str, str]:
    rooms.delete_room(room_id)
    return {"message": f"Room with ID {room_id} deleted successfully!"}


@router.post("/{room_id}/llm")
def generate_summary(room_id: str, rooms: RoomLifecycleManager = Depends(get_room_manager)) -> Dict[str, str]:
    summary = rooms.generate_summary(room_id)
    return {"message": "Summary generated and saved successfully!", "summary": summary}
