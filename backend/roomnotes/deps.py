from __future__ import annotations

from fastapi import Request

from roomnotes.services.room_lifecycle import RoomLifecycleManager


def get_room_manager(request: Request) -> RoomLifecycleManager:
    return request.app.state.rooms
