"""
Pytest configuration and fixtures for all tests.

Every test gets its own SQLite file under ``tmp_path`` and a scripted
summarizer, so nothing touches the network or a real model.
"""

import sys
import threading
from pathlib import Path
from typing import Callable, List, Optional

import pytest

# Add backend/ to Python path for runs without an editable install
backend_root = Path(__file__).parent.parent / "backend"
if str(backend_root) not in sys.path:
    sys.path.insert(0, str(backend_root))

from fastapi.testclient import TestClient

from roomnotes.config import Settings
from roomnotes.main import create_app
from roomnotes.models.base import Database
from roomnotes.services.room_lifecycle import RoomLifecycleManager
from roomnotes.services.summarization_service import SummarizationService, Summarizer


class FakeSummarizer(Summarizer):
    """Returns scripted responses; an Exception in the script is raised instead."""

    def __init__(self, responses: Optional[List[object]] = None) -> None:
        self.responses = list(responses or [])
        self.default = "<think>Let me read the selections first.</think>\n\nA concise summary of the room."
        self.calls: List[str] = []
        self.on_call: Optional[Callable[[str], None]] = None
        self._lock = threading.Lock()

    def complete(self, system: str, user: str) -> str:
        with self._lock:
            self.calls.append(user)
            response = self.responses.pop(0) if self.responses else self.default
        if self.on_call is not None:
            self.on_call(user)
        if isinstance(response, Exception):
            raise response
        return str(response)


@pytest.fixture
def settings(tmp_path):
    return Settings(
        data_dir=tmp_path / "data",
        logs_dir=tmp_path / "logs",
        database_url=f"sqlite:///{tmp_path / 'rooms.db'}",
        llm_timeout_seconds=5.0,
        append_max_attempts=100,
    )


@pytest.fixture
def database(settings):
    db = Database(settings)
    db.connect()
    yield db
    db.dispose()


@pytest.fixture
def summarizer():
    return FakeSummarizer()


@pytest.fixture
def manager(database, summarizer, settings):
    summarization = SummarizationService(summarizer, timeout=settings.llm_timeout_seconds)
    yield RoomLifecycleManager(
        database,
        summarization,
        append_max_attempts=settings.append_max_attempts,
        summary_max_attempts=settings.summary_max_attempts,
    )
    summarization.close()


@pytest.fixture
def client(settings, summarizer):
    app = create_app(settings=settings, summarizer=summarizer)
    with TestClient(app) as test_client:
        yield test_client
