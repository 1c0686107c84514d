"""
Database engine and transaction scope for the payout ledger.

Two ways to get at the database:

    create_payout_engine(url)   a standalone engine; tests build one per
                                SQLite file and hand its sessionmaker to
                                the store directly.
    init_engine_from_url(url)   the process-wide engine used by the CLI and
                                ``PayoutRunOrchestrator.from_config``;
                                read back with ``get_session_factory()``.

Every Ledger Store call opens its own ``session_scope``: one short
transaction per operation, so a checkpoint commit is durable when the call
returns and worker threads never share a session.

PostgreSQL runs at READ COMMITTED with a pre-pinged pool; the conditional
UPDATEs in the store are what make concurrent runs safe.  SQLite is for
tests and local runs only.
"""

import atexit
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, sessionmaker

from payout_kernel.logging_config import get_logger

logger = get_logger("db.engine")

_engine: Engine | None = None
_session_factory: sessionmaker[Session] | None = None

_NOT_INITIALIZED = "Database not initialized; call init_engine_from_url() first"


def create_payout_engine(
    database_url: str,
    echo: bool = False,
    pool_size: int = 20,
    max_overflow: int = 10,
    busy_timeout: int = 30,
) -> Engine:
    """Build an engine for ``database_url`` without touching module state.

    ``pool_size`` and ``max_overflow`` apply to PostgreSQL only.  For SQLite,
    ``busy_timeout`` is how long a writer waits on a locked database file,
    which matters once sellers run on several worker threads.
    """
    url = make_url(database_url)
    if url.get_backend_name() == "sqlite":
        return create_engine(
            url,
            echo=echo,
            connect_args={"check_same_thread": False, "timeout": busy_timeout},
        )
    return create_engine(
        url,
        echo=echo,
        pool_size=pool_size,
        max_overflow=max_overflow,
        pool_pre_ping=True,
        pool_timeout=busy_timeout,
        pool_recycle=1800,
        isolation_level="READ COMMITTED",
    )


def init_engine_from_url(database_url: str, echo: bool = False, **options) -> Engine:
    """(Re)initialize the process-wide engine; a previous one is disposed."""
    global _engine, _session_factory

    reset_engine()
    _engine = create_payout_engine(database_url, echo=echo, **options)
    _session_factory = sessionmaker(bind=_engine, expire_on_commit=False)

    logger.info(
        "engine_initialized",
        extra={
            "dialect": _engine.dialect.name,
            "database": _engine.url.render_as_string(hide_password=True),
        },
    )
    return _engine


def get_engine() -> Engine:
    if _engine is None:
        raise RuntimeError(_NOT_INITIALIZED)
    return _engine


def get_session_factory() -> sessionmaker[Session]:
    if _session_factory is None:
        raise RuntimeError(_NOT_INITIALIZED)
    return _session_factory


@contextmanager
def session_scope(
    session_factory: sessionmaker[Session] | None = None,
) -> Iterator[Session]:
    """One transaction: commit on success, roll back and re-raise on error."""
    session = (session_factory or get_session_factory())()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        logger.debug("transaction_rolled_back", exc_info=True)
        raise
    finally:
        session.close()


def create_tables(engine: Engine | None = None) -> None:
    """Create the payout tables (sellers, products, entries, history)."""
    from payout_kernel.db.base import Base
    import payout_kernel.models  # noqa: F401  (registers the mappers)

    Base.metadata.create_all(engine or get_engine())


def reset_engine() -> None:
    """Dispose the process-wide engine, if any, and forget it."""
    global _engine, _session_factory

    if _engine is not None:
        _engine.dispose()
    _engine = None
    _session_factory = None


atexit.register(reset_engine)
