"""
Engine and session management for the visits database.

One module-level engine and session factory, set up by
``init_engine_from_url``.  Sessions never expire loaded objects on commit,
so DTOs built after a commit stay readable.

PostgreSQL (deployment) and SQLite (tests, local runs) are both supported
and both honour the atomic ``UPDATE ... WHERE`` writes the coordinators
rely on.  SQLite connections may be shared across threads, and every
SQLite transaction starts with BEGIN IMMEDIATE, so concurrent writers
queue on the busy timeout instead of failing while upgrading a read lock.

Calling any accessor before ``init_engine_from_url`` raises RuntimeError.
"""

import atexit
from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.engine.url import make_url
from sqlalchemy.orm import Session, sessionmaker

from visit_kernel.logging_config import configure_logging, get_logger

logger = get_logger("db.engine")

_engine: Engine | None = None
_SessionFactory: sessionmaker[Session] | None = None


def _use_immediate_transactions(engine: Engine) -> None:
    """Take the SQLite write lock at BEGIN rather than at the first write."""

    @event.listens_for(engine, "connect")
    def _disable_driver_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def init_engine_from_url(
    database_url: str,
    echo: bool = False,
    pool_size: int = 10,
    max_overflow: int = 10,
    pool_pre_ping: bool = True,
    sqlite_busy_timeout: float = 30.0,
) -> Engine:
    """Create the engine for ``database_url`` and replace any previous one.

    Pool settings apply to server databases only; ``sqlite_busy_timeout`` is
    how long a SQLite writer waits for the file lock.
    """
    global _engine, _SessionFactory

    url = make_url(database_url)
    if url.get_backend_name() == "sqlite":
        _engine = create_engine(
            url,
            echo=echo,
            connect_args={
                "check_same_thread": False,
                "timeout": sqlite_busy_timeout,
            },
        )
        _use_immediate_transactions(_engine)
    else:
        _engine = create_engine(
            url,
            echo=echo,
            pool_size=pool_size,
            max_overflow=max_overflow,
            pool_pre_ping=pool_pre_ping,
            isolation_level="READ COMMITTED",
        )

    _SessionFactory = sessionmaker(bind=_engine, expire_on_commit=False)

    configure_logging()
    logger.info(
        "engine_initialized",
        extra={
            "dialect": _engine.dialect.name,
            "echo": echo,
        },
    )

    return _engine


def _not_initialized() -> RuntimeError:
    return RuntimeError("Engine not initialized. Call init_engine_from_url() first.")


def get_engine() -> Engine:
    if _engine is None:
        raise _not_initialized()
    return _engine


def get_session_factory() -> sessionmaker[Session]:
    """Session factory; each thread in a concurrent caller opens its own session."""
    if _SessionFactory is None:
        raise _not_initialized()
    return _SessionFactory


def get_session() -> Session:
    return get_session_factory()()


@contextmanager
def session_scope() -> Generator[Session, None, None]:
    """Commit on clean exit, roll back and re-raise on error, always close."""
    session = get_session()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        logger.warning("session_scope_rolled_back", exc_info=True)
        raise
    finally:
        session.close()


def _visit_metadata():
    from visit_kernel.db.base import Base
    import visit_kernel.models  # noqa: F401  registers VisitModel on Base

    return Base.metadata


def create_tables() -> None:
    _visit_metadata().create_all(get_engine())


def drop_tables() -> None:
    _visit_metadata().drop_all(get_engine())


def reset_engine() -> None:
    """Dispose the engine and forget the session factory (test teardown)."""
    global _engine, _SessionFactory
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _SessionFactory = None


atexit.register(reset_engine)
