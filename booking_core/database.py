"""Database engine, session factory and the scoped unit of work."""
from __future__ import annotations

from contextlib import contextmanager
from typing import Callable, Generator

from sqlalchemy import Engine, create_engine, event
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from .config import get_settings

settings = get_settings()

# Execution option asking the unit of work to take the database write lock when it begins.
WRITE_LOCK_OPTION = "booking_write_lock"


class Base(DeclarativeBase):
    pass


def _engine_kwargs(url: str) -> dict:
    if url.startswith("sqlite"):
        # Admission runs on worker threads, each with its own session.
        return {"connect_args": {"check_same_thread": False, "timeout": 30}}
    return {"pool_pre_ping": True}


def _install_sqlite_write_lock(sqlite_engine: Engine) -> None:
    """Open write units of work with ``BEGIN IMMEDIATE`` on SQLite.

    SQLite ignores ``FOR UPDATE`` and pysqlite only issues ``BEGIN`` before the
    first write, so a read-then-insert would otherwise run unlocked across
    processes. Other transactions keep pysqlite's default behaviour.
    """

    @event.listens_for(sqlite_engine, "begin")
    def _begin(conn) -> None:
        if conn.get_execution_options().get(WRITE_LOCK_OPTION):
            conn.exec_driver_sql("BEGIN IMMEDIATE")


engine = create_engine(settings.database_url, **_engine_kwargs(settings.database_url))
if engine.dialect.name == "sqlite":
    _install_sqlite_write_lock(engine)
SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)


def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def transaction(
    session_factory: Callable[[], Session] = SessionLocal, write_lock: bool = False
) -> Generator[Session, None, None]:
    """Open a session and run one unit of work in it.

    Commits when the block exits normally and rolls back on every exception,
    re-raising it. The session is always closed. With ``write_lock`` the
    transaction holds the database write lock from its first statement on
    SQLite; other backends rely on row locks taken inside the block.
    """

    session = session_factory()
    try:
        if write_lock:
            session.connection(execution_options={WRITE_LOCK_OPTION: True})
        yield session
        session.commit()
    except BaseException:
        session.rollback()
        raise
    finally:
        session.close()
