from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from pydantic import BaseModel
from sqlalchemy import Column, JSON
from sqlmodel import SQLModel, Field


ANONYMOUS = "Anonymous"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Annotation(BaseModel):
    """One captured selection inside a room's ordered content."""

    content_id: int
    selection: str
    xpath: str
    page_url: str
    created_at: datetime
    created_by: str = ANONYMOUS

    def to_record(self) -> Dict[str, Any]:
        return self.model_dump(mode="json")


class Room(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    room_id: str = Field(index=True, unique=True)
    room_name: str
    content: List[Dict[str, Any]] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    summary_generated: bool = Field(default=False)
    summary: str = Field(default="")
    revision: int = Field(default=0)  # bumped on every write
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    def annotations(self) -> List[Annotation]:
        return [Annotation.model_validate(item) for item in (self.content or [])]

    def to_public(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "room_id": self.room_id,
            "room_name": self.room_name,
            "content": list(self.content or []),
            "summary_generated": self.summary_generated,
            "summary": self.summary,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
