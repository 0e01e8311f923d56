"""
Module: pharmacy_kernel.db.engine
Responsibility: build the process-wide engine and session factory, and hand
    out sessions to the coordinator, the ledgers and the module services.
Architecture position: Kernel > DB.  May import from db/base.py and, inside
    create_tables/drop_tables only, the model package.

Invariants enforced:
    - PostgreSQL sessions run at READ COMMITTED.  Stock and budget mutations
      never depend on isolation: they are single conditional UPDATE
      statements evaluated by the database against the latest committed row.
    - SQLite (file database) is supported for local runs and the test suite.
      Connections wait up to ``sqlite_timeout`` seconds for the write lock
      instead of failing immediately with "database is locked".
    - Sessions never expire attributes on commit; callers read columns that
      other transactions mutate with a fresh query.

Failure modes:
    - RuntimeError from any accessor called before init_engine_from_url().
"""

import atexit
from contextlib import contextmanager
from typing import Any, Generator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, URL, make_url
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import QueuePool

from pharmacy_kernel.logging_config import configure_logging, get_logger

logger = get_logger("db.engine")

_engine: Engine | None = None
_SessionFactory: sessionmaker[Session] | None = None


def _engine_options(
    url: URL,
    pool_pre_ping: bool,
    pool_recycle: int,
    sqlite_timeout: int,
) -> dict[str, Any]:
    if url.get_backend_name() == "sqlite":
        # One file shared by many terminal threads.
        return {
            "connect_args": {"check_same_thread": False, "timeout": sqlite_timeout},
        }
    return {
        "pool_pre_ping": pool_pre_ping,
        "pool_recycle": pool_recycle,
        "isolation_level": "READ COMMITTED",
    }


def init_engine_from_url(
    database_url: str,
    echo: bool = False,
    pool_size: int = 20,
    max_overflow: int = 10,
    pool_pre_ping: bool = True,
    pool_timeout: int = 30,
    pool_recycle: int = 1800,
    sqlite_timeout: int = 30,
) -> Engine:
    """
    Create the engine for ``database_url`` and the session factory bound to it.

    Accepts PostgreSQL URLs and file-backed SQLite URLs
    (``sqlite:///pharmacy.db``).  Pool sizing applies to both; the pool has
    to cover every terminal that may submit orders at the same time.  Calling
    it again replaces the previous engine without disposing it; use
    reset_engine() for that.
    """
    global _engine, _SessionFactory

    url = make_url(database_url)
    _engine = create_engine(
        url,
        echo=echo,
        poolclass=QueuePool,
        pool_size=pool_size,
        max_overflow=max_overflow,
        pool_timeout=pool_timeout,
        **_engine_options(url, pool_pre_ping, pool_recycle, sqlite_timeout),
    )
    _SessionFactory = sessionmaker(bind=_engine, expire_on_commit=False)

    configure_logging()
    logger.info(
        "engine_initialized",
        extra={
            "dialect": url.get_backend_name(),
            "database": url.database,
            "pool_size": pool_size,
            "max_overflow": max_overflow,
        },
    )
    return _engine


def _require_factory() -> sessionmaker[Session]:
    if _SessionFactory is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _SessionFactory


def get_engine() -> Engine:
    if _engine is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _engine


def get_session() -> Session:
    return _require_factory()()


def get_session_factory() -> sessionmaker[Session]:
    """
    The factory itself, for callers that open one session per step or per
    thread (OrderCoordinator, the module services, concurrent terminals).
    """
    return _require_factory()


@contextmanager
def session_scope() -> Generator[Session, None, None]:
    """
    Commit on normal exit, roll back and re-raise on error, always close.

    Usage:
        with session_scope() as session:
            ExpenseService(session, policy).create_expense(ctx, ...)
    """
    session = get_session()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        logger.warning("transaction_rolled_back", exc_info=True)
        raise
    finally:
        session.close()


def create_tables() -> None:
    """Create every kernel table; the model package is imported so metadata is complete."""
    from pharmacy_kernel.db.base import Base
    import pharmacy_kernel.models  # noqa: F401

    engine = get_engine()
    Base.metadata.create_all(engine)
    logger.info("tables_created", extra={"table_count": len(Base.metadata.tables)})


def drop_tables() -> None:
    from pharmacy_kernel.db.base import Base
    import pharmacy_kernel.models  # noqa: F401

    Base.metadata.drop_all(get_engine())


def reset_engine() -> None:
    """Dispose the engine and forget the factory (test teardown)."""
    global _engine, _SessionFactory

    if _engine is not None:
        _engine.dispose()
    _engine = None
    _SessionFactory = None


@atexit.register
def _dispose_on_exit() -> None:
    if _engine is not None:
        _engine.dispose()
