"""
Tests for RoomsRepository conditional updates.
"""

import pytest
from sqlalchemy.exc import IntegrityError

from roomnotes.models.room import Room
from roomnotes.repositories.rooms import RoomsRepository


@pytest.fixture
def room(database):
    with database.session() as session:
        return RoomsRepository(session).create(Room(room_id="r1", room_name="Test"))


def _fetch(database, room_id="r1"):
    with database.session() as session:
        return RoomsRepository(session).get_by_room_id(room_id)


def test_create_starts_empty(room):
    assert room.id is not None
    assert room.content == []
    assert room.summary_generated is False
    assert room.summary == ""
    assert room.revision == 0


def test_duplicate_room_id_is_rejected(database, room):
    with database.session() as session:
        with pytest.raises(IntegrityError):
            RoomsRepository(session).create(Room(room_id="r1", room_name="Other"))
    assert _fetch(database).room_name == "Test"


def test_append_content_with_current_revision(database, room):
    with database.session() as session:
        ok = RoomsRepository(session).append_content(room, [{"content_id": 1}], expected_revision=0)
    assert ok is True
    stored = _fetch(database)
    assert stored.content == [{"content_id": 1}]
    assert stored.revision == 1


def test_append_content_with_stale_revision_is_refused(database, room):
    with database.session() as session:
        repo = RoomsRepository(session)
        assert repo.append_content(room, [{"content_id": 1}], expected_revision=0)
        assert repo.append_content(room, [{"content_id": 1}, {"content_id": 1}], expected_revision=0) is False
    assert _fetch(database).content == [{"content_id": 1}]


def test_store_summary_is_one_shot(database, room):
    with database.session() as session:
        repo = RoomsRepository(session)
        assert repo.store_summary(room, "first", expected_revision=0) is True
        assert repo.store_summary(room, "second", expected_revision=1) is False
    stored = _fetch(database)
    assert stored.summary_generated is True
    assert stored.summary == "first"


def test_append_after_summary_is_refused(database, room):
    with database.session() as session:
        repo = RoomsRepository(session)
        assert repo.store_summary(room, "done", expected_revision=0)
        assert repo.append_content(room, [{"content_id": 1}], expected_revision=1) is False
    assert _fetch(database).content == []


def test_list_and_delete(database, room):
    with database.session() as session:
        repo = RoomsRepository(session)
        repo.create(Room(room_id="r2", room_name="Second"))
        assert {r.room_id for r in repo.list()} == {"r1", "r2"}
        repo.delete(repo.get_by_room_id("r1"))
    assert _fetch(database) is None
    assert _fetch(database, "r2") is not None
