"""
Module: cylinder_kernel.db.engine
Responsibility: Engine and session-factory lifecycle for the ledger
    database, plus table creation for tests and first-run setup.
Architecture position: Kernel > DB.  Imports db/base.py only; create_tables
    and drop_tables import the models package so metadata is complete.

Invariants enforced:
    - PostgreSQL runs at READ COMMITTED behind a pre-pinged QueuePool.
      Concurrent writers to one balance row are serialized by the unique
      constraints plus ON CONFLICT upserts in db/upsert.py, not by
      isolation level.
    - SQLite (tests, local runs) emits its own BEGIN so SAVEPOINTs nest the
      same way they do on PostgreSQL; ``:memory:`` URLs share one
      connection through a StaticPool.

Failure modes:
    - RuntimeError from get_engine / get_session / get_session_factory /
      session_scope before init_engine_from_url().
"""

import atexit
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import QueuePool, StaticPool

from cylinder_kernel.logging_config import configure_logging, get_logger

logger = get_logger("db.engine")

_NOT_INITIALIZED = "Ledger database not initialized; call init_engine_from_url() first."


@dataclass(frozen=True)
class PoolOptions:
    """Connection pool sizing.  Ignored for SQLite."""

    pool_size: int = 20
    max_overflow: int = 10
    pool_pre_ping: bool = True
    pool_timeout: int = 30
    pool_recycle: int = 1800


@dataclass
class _Registry:
    engine: Engine | None = None
    factory: sessionmaker[Session] | None = None


_registry = _Registry()


def _is_memory_sqlite(url: str) -> bool:
    return ":memory:" in url or url.rstrip("/") in ("sqlite:", "sqlite+pysqlite:")


def _sqlite_engine(url: str, echo: bool) -> Engine:
    options: dict = {
        "echo": echo,
        "connect_args": {"check_same_thread": False, "timeout": 30},
    }
    if _is_memory_sqlite(url):
        options["poolclass"] = StaticPool
    eng = create_engine(url, **options)

    @event.listens_for(eng, "connect")
    def _on_connect(dbapi_connection, _record):
        # Take transaction control away from pysqlite.
        dbapi_connection.isolation_level = None
        cur = dbapi_connection.cursor()
        cur.execute("PRAGMA foreign_keys=ON")
        cur.close()

    @event.listens_for(eng, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")

    return eng


def _postgres_engine(url: str, echo: bool, pool: PoolOptions) -> Engine:
    return create_engine(
        url,
        echo=echo,
        poolclass=QueuePool,
        isolation_level="READ COMMITTED",
        pool_size=pool.pool_size,
        max_overflow=pool.max_overflow,
        pool_pre_ping=pool.pool_pre_ping,
        pool_timeout=pool.pool_timeout,
        pool_recycle=pool.pool_recycle,
    )


def build_engine(database_url: str, echo: bool = False, **pool_kwargs) -> Engine:
    """
    Build a ledger engine without registering it.

    ``pool_kwargs`` are PoolOptions fields.  Tests use this for a second,
    file-backed database shared across threads.
    """
    if database_url.startswith("sqlite"):
        return _sqlite_engine(database_url, echo)
    return _postgres_engine(database_url, echo, PoolOptions(**pool_kwargs))


def init_engine_from_url(database_url: str, echo: bool = False, **pool_kwargs) -> Engine:
    """
    Build the process-wide engine and session factory.

    A second call replaces the first registration (the old engine is not
    disposed; call reset_engine() for that).
    """
    engine = build_engine(database_url, echo=echo, **pool_kwargs)
    _registry.engine = engine
    _registry.factory = sessionmaker(bind=engine, expire_on_commit=False)

    configure_logging()
    logger.info(
        "engine_initialized",
        extra={"dialect": engine.dialect.name, "echo": echo, **pool_kwargs},
    )
    return engine


def get_engine() -> Engine:
    if _registry.engine is None:
        raise RuntimeError(_NOT_INITIALIZED)
    return _registry.engine


def get_session_factory() -> sessionmaker[Session]:
    """The shared factory.  Worker threads each open their own session from it."""
    if _registry.factory is None:
        raise RuntimeError(_NOT_INITIALIZED)
    return _registry.factory


def get_session() -> Session:
    return get_session_factory()()


@contextmanager
def session_scope() -> Generator[Session, None, None]:
    """
    One transaction: commit on normal exit, roll back and re-raise on error.
    The session is closed either way.
    """
    session = get_session()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        logger.warning("session_rolled_back", exc_info=True)
        raise
    finally:
        session.close()


def _metadata():
    from cylinder_kernel.db.base import Base
    import cylinder_kernel.models  # noqa: F401  (registers every table)

    return Base.metadata


def create_tables(engine: Engine | None = None) -> None:
    """Create every ledger table on ``engine`` (default: the registered one)."""
    metadata = _metadata()
    metadata.create_all(engine or get_engine())
    logger.info("tables_created", extra={"table_count": len(metadata.tables)})


def drop_tables(engine: Engine | None = None) -> None:
    """Drop every ledger table.  Tests only."""
    _metadata().drop_all(engine or get_engine())


def reset_engine() -> None:
    """Dispose and forget the registered engine."""
    if _registry.engine is not None:
        _registry.engine.dispose()
    _registry.engine = None
    _registry.factory = None


atexit.register(lambda: _registry.engine.dispose() if _registry.engine is not None else None)
