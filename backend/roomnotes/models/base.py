from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy import event, text
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, SQLModel, create_engine

from roomnotes.config import Settings
from roomnotes.errors import StoreAuthenticationError

# Registers the tables on SQLModel.metadata
from roomnotes.models import room as _room  # noqa: F401

logger = logging.getLogger("roomnotes.store")


class Database:
    """Process-wide store handle with an explicit connect/dispose lifecycle.

    ``connect`` is called once before serving. Stale pooled connections are
    replaced on checkout (``pool_pre_ping``); there is no other re-init path.
    """

    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        self._engine: Optional[Engine] = None

    @property
    def engine(self) -> Engine:
        if self._engine is None:
            raise RuntimeError("Database is not connected; call connect() first")
        return self._engine

    @property
    def connected(self) -> bool:
        return self._engine is not None

    def _url(self):
        url = make_url(self.settings.resolved_database_url())
        if self.settings.admin_user:
            url = url.set(username=self.settings.admin_user, password=self.settings.admin_password)
        return url

    def connect(self) -> Engine:
        if self._engine is not None:
            raise RuntimeError("Database is already connected")
        url = self._url()
        is_sqlite = url.get_backend_name() == "sqlite"
        connect_args = {"check_same_thread": False, "timeout": 30} if is_sqlite else {}
        engine = create_engine(url, connect_args=connect_args, pool_pre_ping=True)
        if is_sqlite:
            event.listen(engine, "connect", _sqlite_pragmas)
        try:
            with engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            SQLModel.metadata.create_all(engine)
        except SQLAlchemyError as exc:
            engine.dispose()
            raise StoreAuthenticationError(
                f"Could not open an authenticated store session: {exc}"
            ) from exc
        self._engine = engine
        logger.info("Store session established (%s)", url.render_as_string(hide_password=True))
        return engine

    def session(self) -> Session:
        return Session(self.engine)

    def dispose(self) -> None:
        if self._engine is not None:
            self._engine.dispose()
            self._engine = None
            logger.info("Store session closed")


def _sqlite_pragmas(dbapi_conn, _record) -> None:
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA journal_mode=WAL;")
    cursor.execute("PRAGMA synchronous=NORMAL;")
    cursor.close()
