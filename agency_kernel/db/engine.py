"""
Module: agency_kernel.db.engine
Responsibility: SQLAlchemy engine initialization, session factory management,
    and transactional scope utilities.  This is the single point of database
    connection configuration for the kernel.
Architecture position: Kernel > DB.  May import from db/base.py.  MUST NOT import
    from services/ or selectors/ (create_tables imports models lazily so every
    table is registered on Base.metadata).

Invariants enforced:
    - PostgreSQL runs at READ COMMITTED with explicit row locks
      (SELECT ... FOR UPDATE) and optimistic version columns where stronger
      guarantees are needed.
    - SQLite connections are set up so SAVEPOINT works: pysqlite's implicit
      transaction handling is disabled and BEGIN is emitted explicitly.
      Every kernel operation runs inside a savepoint.

Failure modes:
    - RuntimeError if get_engine/get_session/get_session_factory is called
      before init_engine_from_url().
"""

import atexit
from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import QueuePool, StaticPool

from agency_kernel.logging_config import configure_logging, get_logger

logger = get_logger("db.engine")

_engine: Engine | None = None
_SessionFactory: sessionmaker[Session] | None = None


def _enable_sqlite_savepoints(engine: Engine) -> None:
    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")


def create_engine_for_url(
    database_url: str,
    echo: bool = False,
    pool_size: int = 10,
    max_overflow: int = 10,
) -> Engine:
    """
    Build an engine for ``database_url`` without touching module state.

    SQLite in-memory URLs use a StaticPool so every session shares the one
    connection holding the database; file-backed SQLite gets a short busy
    timeout so racing writers wait instead of failing immediately.
    """
    if database_url.startswith("sqlite"):
        connect_args: dict = {"check_same_thread": False}
        if ":memory:" in database_url or database_url in ("sqlite://", "sqlite+pysqlite://"):
            engine = create_engine(
                database_url,
                echo=echo,
                connect_args=connect_args,
                poolclass=StaticPool,
            )
        else:
            connect_args["timeout"] = 15
            engine = create_engine(database_url, echo=echo, connect_args=connect_args)
        _enable_sqlite_savepoints(engine)
        return engine

    return create_engine(
        database_url,
        echo=echo,
        poolclass=QueuePool,
        pool_size=pool_size,
        max_overflow=max_overflow,
        pool_pre_ping=True,
        pool_recycle=1800,
        isolation_level="READ COMMITTED",
    )


def init_engine_from_url(
    database_url: str,
    echo: bool = False,
    pool_size: int = 10,
    max_overflow: int = 10,
) -> Engine:
    """
    Initialize the module-level engine and session factory.

    Calling it again replaces the previous engine.

    Args:
        database_url: SQLAlchemy URL (postgresql://... or sqlite://...).
        echo: If True, log all SQL statements.
        pool_size: Connections kept in the pool (PostgreSQL).
        max_overflow: Max connections beyond pool_size (PostgreSQL).

    Returns:
        SQLAlchemy Engine instance.
    """
    global _engine, _SessionFactory

    if _engine is not None:
        _engine.dispose()

    _engine = create_engine_for_url(
        database_url,
        echo=echo,
        pool_size=pool_size,
        max_overflow=max_overflow,
    )
    _SessionFactory = sessionmaker(bind=_engine, expire_on_commit=False)

    configure_logging()
    logger.info(
        "engine_initialized",
        extra={"dialect": _engine.dialect.name, "echo": echo},
    )
    return _engine


def get_engine() -> Engine:
    """
    Get the current engine instance.

    Raises:
        RuntimeError: If engine has not been initialized.
    """
    if _engine is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _engine


def get_session() -> Session:
    """
    Get a new session instance.

    Raises:
        RuntimeError: If engine has not been initialized.
    """
    if _SessionFactory is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _SessionFactory()


def get_session_factory() -> sessionmaker[Session]:
    """
    Get the session factory.

    Useful for multi-threaded callers where each thread needs its own session.

    Raises:
        RuntimeError: If engine has not been initialized.
    """
    if _SessionFactory is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _SessionFactory


@contextmanager
def session_scope(
    factory: sessionmaker[Session] | None = None,
) -> Generator[Session, None, None]:
    """
    Provide a transactional scope around a series of operations.

    Commits on normal exit; rolls back and re-raises on exception; always
    closes the session.

    Usage:
        with session_scope() as session:
            CaseService(session, auditor, clock, policy).transition_status(...)
    """
    session = factory() if factory is not None else get_session()
    logger.debug("transaction_started")
    try:
        yield session
        session.commit()
        logger.debug("transaction_committed")
    except Exception:
        session.rollback()
        logger.warning("transaction_rolled_back", exc_info=True)
        raise
    finally:
        session.close()


def create_tables(engine: Engine | None = None) -> None:
    """Create all kernel tables on ``engine`` (default: the module engine)."""
    from agency_kernel.db.base import Base
    from agency_kernel.models import import_all_models

    import_all_models()
    Base.metadata.create_all(engine or get_engine())


def drop_tables(engine: Engine | None = None) -> None:
    """Drop all tables. Use with caution - primarily for testing."""
    from agency_kernel.db.base import Base
    from agency_kernel.models import import_all_models

    import_all_models()
    Base.metadata.drop_all(engine or get_engine())


def reset_engine() -> None:
    """Reset the engine and session factory. Useful for test cleanup."""
    global _engine, _SessionFactory

    if _engine is not None:
        _engine.dispose()
        _engine = None

    _SessionFactory = None


def _atexit_dispose():
    """Dispose the engine on process exit to release all pooled connections."""
    if _engine is not None:
        _engine.dispose()


atexit.register(_atexit_dispose)


def is_postgres(engine: Engine | None = None) -> bool:
    target = engine or _engine
    if target is None:
        return False
    return target.dialect.name == "postgresql"
