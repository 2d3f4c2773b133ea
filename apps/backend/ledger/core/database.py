from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator

from fastapi import Request
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, Session, declared_attr, sessionmaker

from .config import Settings


logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    @declared_attr.directive
    def __tablename__(cls) -> str:  # type: ignore[override]
        return cls.__name__.lower()


def _set_sqlite_pragma(dbapi_connection, connection_record):  # type: ignore[no-untyped-def]
    # SQLite stability: enforce FKs + WAL mode
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.close()


def build_engine(database_url: str, *, timeout: float | None = None) -> Engine:
    is_sqlite = database_url.startswith("sqlite")
    connect_args: dict[str, object] = {}
    if is_sqlite:
        connect_args["check_same_thread"] = False
        if timeout is not None:
            # driver busy timeout doubles as the store call timeout
            connect_args["timeout"] = timeout
    engine = create_engine(database_url, connect_args=connect_args)
    if is_sqlite:
        event.listen(engine, "connect", _set_sqlite_pragma)
    return engine


class Store:
    """Explicitly owned database handle.

    Opened once at process start (see ``ledger.main.lifespan``) and closed at
    shutdown. Services never reach for a module-level engine; they receive a
    ``Session`` produced by the store that is handed to them.
    """

    def __init__(self, database_url: str, *, timeout: float | None = None) -> None:
        self.database_url = database_url
        self.timeout = timeout
        self._engine: Engine | None = None
        self._sessionmaker: sessionmaker[Session] | None = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "Store":
        return cls(settings.DATABASE_URL, timeout=settings.STORE_TIMEOUT_SECONDS)

    @classmethod
    def from_engine(cls, engine: Engine) -> "Store":
        store = cls(str(engine.url))
        store._engine = engine
        store._sessionmaker = sessionmaker(bind=engine, autocommit=False, autoflush=False)
        return store

    @property
    def is_open(self) -> bool:
        return self._engine is not None

    @property
    def engine(self) -> Engine:
        if self._engine is None:
            raise RuntimeError("Store is not open")
        return self._engine

    def open(self) -> "Store":
        if self._engine is None:
            self._engine = build_engine(self.database_url, timeout=self.timeout)
            self._sessionmaker = sessionmaker(bind=self._engine, autocommit=False, autoflush=False)
            logger.info("Store opened: %s", self._engine.url.render_as_string(hide_password=True))
        return self

    def close(self) -> None:
        if self._engine is not None:
            self._engine.dispose()
            logger.info("Store closed")
        self._engine = None
        self._sessionmaker = None

    def create_all(self) -> None:
        Base.metadata.create_all(self.engine)

    def new_session(self) -> Session:
        if self._sessionmaker is None:
            raise RuntimeError("Store is not open")
        return self._sessionmaker()

    @contextmanager
    def session(self) -> Iterator[Session]:
        db = self.new_session()
        try:
            yield db
        finally:
            db.close()


def get_store(request: Request) -> Store:
    return request.app.state.store


def get_db(request: Request) -> Iterator[Session]:
    db = get_store(request).new_session()
    try:
        yield db
    finally:
        db.close()
