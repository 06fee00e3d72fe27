"""Room lifecycle: creation, ordered annotation appends, the one-shot summary, deletion.

Every mutation goes through a conditional update keyed on ``Room.revision``, so
concurrent request handlers never read-modify-write over each other:

* an append that loses the race re-reads the room and retries, which keeps
  ``content_id`` dense and unique;
* a summary store that loses because another caller already summarized returns
  ``InvalidState`` and its result is dropped; one that loses because content
  grew while the model was running is regenerated from the new content.

The summarization call itself runs outside any store transaction.
"""

from __future__ import annotations

import logging
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError

from roomnotes.errors import (
    Conflict,
    InvalidInput,
    InvalidState,
    NotFound,
    StorageError,
    translate_storage_error,
)
from roomnotes.models.base import Database
from roomnotes.models.room import ANONYMOUS, Annotation, Room, utcnow
from roomnotes.repositories.rooms import RoomsRepository
from roomnotes.services.summarization_service import SummarizationService, build_summary_input

logger = logging.getLogger("roomnotes.lifecycle")


class RoomLifecycleManager:
    def __init__(
        self,
        database: Database,
        summarization: SummarizationService,
        append_max_attempts: int = 10,
        summary_max_attempts: int = 3,
    ) -> None:
        self.database = database
        self.summarization = summarization
        self.append_max_attempts = max(1, append_max_attempts)
        self.summary_max_attempts = max(1, summary_max_attempts)

    def _load(self, repo: RoomsRepository, room_id: str) -> Room:
        room = repo.get_by_room_id(room_id)
        if room is None:
            raise NotFound("Room not found", error=f"no room with id {room_id!r}")
        return room

    def create_room(self, room_id: object, room_name: str) -> Room:
        # Stored exactly as supplied; only blank ids are refused
        rid = "" if room_id is None else str(room_id)
        if not rid.strip():
            raise InvalidInput("Error creating room", error="roomId must not be empty")
        room = Room(room_id=rid, room_name=room_name, content=[], summary_generated=False, summary="")
        try:
            with self.database.session() as session:
                room = RoomsRepository(session).create(room)
        except SQLAlchemyError as exc:
            err = translate_storage_error(exc, "Error creating room")
            if isinstance(err, Conflict):
                err.message = f"Room with ID {rid} already exists"
            raise err from exc
        logger.info("Room created room_id=%s name=%r", rid, room_name)
        return room

    def get_room(self, room_id: str) -> Room:
        try:
            with self.database.session() as session:
                return self._load(RoomsRepository(session), room_id)
        except SQLAlchemyError as exc:
            raise translate_storage_error(exc, "Error fetching room") from exc

    def list_rooms(self, limit: int = 50, offset: int = 0) -> List[Room]:
        try:
            with self.database.session() as session:
                return RoomsRepository(session).list(limit=limit, offset=offset)
        except SQLAlchemyError as exc:
            raise translate_storage_error(exc, "Error listing rooms") from exc

    def add_content(
        self,
        room_id: str,
        selection: str,
        xpath: str,
        page_url: str,
        created_by: Optional[str] = None,
    ) -> List[dict]:
        author = created_by or ANONYMOUS
        try:
            for attempt in range(1, self.append_max_attempts + 1):
                with self.database.session() as session:
                    repo = RoomsRepository(session)
                    room = self._load(repo, room_id)
                    if room.summary_generated:
                        raise InvalidState("Cannot modify room. Summary already generated.")

                    current = list(room.content or [])
                    annotation = Annotation(
                        content_id=len(current) + 1,
                        selection=selection,
                        xpath=xpath,
                        page_url=page_url,
                        created_at=utcnow(),
                        created_by=author,
                    )
                    updated = current + [annotation.to_record()]
                    if repo.append_content(room, updated, expected_revision=room.revision):
                        logger.info(
                            "Annotation appended room_id=%s content_id=%d by=%s",
                            room_id, annotation.content_id, author,
                        )
                        return updated
                logger.warning("Append lost a concurrent update room_id=%s attempt=%d", room_id, attempt)
        except SQLAlchemyError as exc:
            raise translate_storage_error(exc, "Error adding content") from exc

        raise StorageError(
            "Error adding content",
            error=f"room {room_id} kept changing; gave up after {self.append_max_attempts} attempts",
        )

    def generate_summary(self, room_id: str) -> str:
        for attempt in range(1, self.summary_max_attempts + 1):
            try:
                with self.database.session() as session:
                    room = self._load(RoomsRepository(session), room_id)
            except SQLAlchemyError as exc:
                raise translate_storage_error(exc, "Error generating summary") from exc
            if room.summary_generated:
                raise InvalidState("Summary already generated.")

            text = build_summary_input(room.annotations())
            logger.info(
                "Generating summary room_id=%s annotations=%d chars=%d",
                room_id, len(room.content or []), len(text),
            )
            # Raises UpstreamError; nothing has been written yet.
            summary = self.summarization.summarize(text)

            try:
                with self.database.session() as session:
                    repo = RoomsRepository(session)
                    if repo.store_summary(room, summary, expected_revision=room.revision):
                        logger.info("Summary stored room_id=%s chars=%d", room_id, len(summary))
                        return summary
                    latest = self._load(repo, room_id)
            except SQLAlchemyError as exc:
                raise translate_storage_error(exc, "Error generating summary") from exc

            if latest.summary_generated:
                logger.warning("Summary race lost room_id=%s; discarding result", room_id)
                raise InvalidState("Summary already generated.")
            logger.warning(
                "Content changed during summarization room_id=%s attempt=%d; regenerating",
                room_id, attempt,
            )

        raise StorageError(
            "Error generating summary",
            error=f"room {room_id} kept changing; gave up after {self.summary_max_attempts} attempts",
        )

    def delete_room(self, room_id: str) -> None:
        try:
            with self.database.session() as session:
                repo = RoomsRepository(session)
                repo.delete(self._load(repo, room_id))
        except SQLAlchemyError as exc:
            raise translate_storage_error(exc, "Error deleting room") from exc
        logger.info("Room deleted room_id=%s", room_id)
