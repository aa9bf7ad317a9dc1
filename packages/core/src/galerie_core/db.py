"""Database setup.

Provides the declarative ``Base`` and the ``Database`` object that owns the
SQLAlchemy engine and session factory. One ``Database`` is built at process
startup and handed to the repository, the backup codec and the API
dependencies; nothing connects at import time.

Defaults to an on-disk SQLite database under ``data/galerie.sqlite`` at the
repository root, but respects an explicit ``GALERIE_DB_URL`` override (see
:class:`galerie_core.config.Settings`).
"""
from __future__ import annotations

import logging
import os
from contextlib import contextmanager
from typing import Iterator, Optional
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, declarative_base, sessionmaker

logger = logging.getLogger("galerie_core.db")

Base = declarative_base()


def _ensure_sqlite_dir(url: str) -> None:
    database = make_url(url).database
    if not database or database == ":memory:" or database.startswith("file:"):
        return
    directory = os.path.dirname(database)
    if directory:
        os.makedirs(directory, exist_ok=True)


def _sqlite_on_connect(dbapi_conn, _record) -> None:
    cursor = dbapi_conn.cursor()
    try:
        cursor.execute("PRAGMA foreign_keys = ON")
        cursor.execute("PRAGMA busy_timeout = 5000")
    finally:
        cursor.close()


class Database:
    """Engine + session factory with an explicit lifecycle."""

    def __init__(self, url: str, echo: bool = False):
        self.url = url
        self.echo = echo
        self._engine: Optional[Engine] = None
        self._sessionmaker: Optional[sessionmaker] = None

    @property
    def is_open(self) -> bool:
        return self._engine is not None

    def open(self) -> "Database":
        if self._engine is not None:
            return self
        connect_args = {}
        if self.url.startswith("sqlite"):
            _ensure_sqlite_dir(self.url)
            connect_args["check_same_thread"] = False
        engine = create_engine(self.url, connect_args=connect_args, echo=self.echo)
        if engine.dialect.name == "sqlite":
            event.listen(engine, "connect", _sqlite_on_connect)
        self._engine = engine
        self._sessionmaker = sessionmaker(
            bind=engine, autocommit=False, autoflush=False, expire_on_commit=False
        )
        logger.info("db.open url=%s", engine.url.render_as_string(hide_password=True))
        return self

    def close(self) -> None:
        if self._engine is None:
            return
        self._engine.dispose()
        self._engine = None
        self._sessionmaker = None
        logger.info("db.close")

    @property
    def engine(self) -> Engine:
        if self._engine is None:
            raise RuntimeError("Database is not open")
        return self._engine

    def session(self) -> Session:
        if self._sessionmaker is None:
            raise RuntimeError("Database is not open")
        return self._sessionmaker()

    @contextmanager
    def transaction(self) -> Iterator[Session]:
        """Yield a session inside one transaction; commit on success, roll back on error."""
        session = self.session()
        try:
            with session.begin():
                yield session
        finally:
            session.close()

    def __enter__(self) -> "Database":
        return self.open()

    def __exit__(self, *exc) -> None:
        self.close()


__all__ = [
    "Base",
    "Database",
]
