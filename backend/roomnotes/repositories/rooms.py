from __future__ import annotations

from typing import Any, Dict, List, Optional
from sqlalchemy import update
from sqlmodel import Session, select

from roomnotes.models.room import Room, utcnow


class RoomsRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def create(self, room: Room) -> Room:
        self.session.add(room)
        self.session.commit()
        self.session.refresh(room)
        return room

    def get_by_room_id(self, room_id: str) -> Optional[Room]:
        statement = select(Room).where(Room.room_id == room_id).execution_options(populate_existing=True)
        return self.session.exec(statement).first()

    def list(self, limit: int = 50, offset: int = 0) -> list[Room]:
        statement = select(Room).order_by(Room.created_at.desc(), Room.id.desc()).limit(limit).offset(offset)
        return list(self.session.exec(statement))

    def delete(self, room: Room) -> None:
        self.session.delete(room)
        self.session.commit()

    def append_content(self, room: Room, content: List[Dict[str, Any]], expected_revision: int) -> bool:
        """Write ``content`` only if nobody else wrote the room since ``expected_revision``.

        Returns False when the conditional update matched no row.
        """
        statement = (
            update(Room)
            .where(
                Room.id == room.id,
                Room.revision == expected_revision,
                Room.summary_generated == False,  # noqa: E712
            )
            .values(content=content, revision=expected_revision + 1, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        result = self.session.exec(statement)  # type: ignore[call-overload]
        self.session.commit()
        return result.rowcount == 1

    def store_summary(self, room: Room, summary: str, expected_revision: int) -> bool:
        """Flip ``summary_generated`` false -> true together with ``summary``."""
        statement = (
            update(Room)
            .where(
                Room.id == room.id,
                Room.revision == expected_revision,
                Room.summary_generated == False,  # noqa: E712
            )
            .values(
                summary=summary,
                summary_generated=True,
                revision=expected_revision + 1,
                updated_at=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        result = self.session.exec(statement)  # type: ignore[call-overload]
        self.session.commit()
        return result.rowcount == 1
