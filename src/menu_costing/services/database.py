"""
Engine, sessions and transaction boundaries of the costing engine.

One mutation, its validation and the cost cascade it triggers share a single
session_scope(): the whole unit commits or none of it does. The simulator and
ad-hoc pricing run in read_only_scope(), which always rolls back.
"""

from typing import Callable, Optional, TypeVar
from contextlib import contextmanager
import logging

from sqlalchemy import create_engine, event, inspect
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

from ..utils.config import get_config
from ..models.base import Base
from .exceptions import DatabaseError, ServiceError
from .logging_utils import log_operation

logger = logging.getLogger(__name__)

_engine: Optional[Engine] = None
_SessionFactory: Optional[sessionmaker] = None

T = TypeVar("T")

# A store missing any of these has never been initialized
REQUIRED_TABLES = ("workspaces", "units", "ingredients", "recipes", "products", "menus")


@event.listens_for(Engine, "connect")
def _set_sqlite_pragma(dbapi_connection, connection_record):
    """Turn on foreign keys for SQLite connections; other drivers enforce them already."""
    if type(dbapi_connection).__module__.split(".")[0] != "sqlite3":
        return
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def _engine_options(database_url: str) -> dict:
    if not database_url.startswith("sqlite"):
        return {}
    if ":memory:" in database_url or "mode=memory" in database_url:
        # every session must see the same in-memory database
        return {"connect_args": {"check_same_thread": False}, "poolclass": StaticPool}
    return {"connect_args": {"check_same_thread": False, "timeout": 30}}


def create_database_engine(database_url: Optional[str] = None, echo: bool = False) -> Engine:
    """
    Build an engine for the record store.

    Args:
        database_url: SQLAlchemy URL; the configured one when omitted
        echo: Log emitted SQL

    Returns:
        A new Engine (not installed as the process-wide one)
    """
    url = database_url or get_config().database_url
    logger.info("Opening record store at %s", url)
    return create_engine(url, echo=echo, **_engine_options(url))


def get_engine(force_recreate: bool = False) -> Engine:
    """Process-wide engine, created on first use."""
    global _engine
    if force_recreate or _engine is None:
        _engine = create_database_engine()
    return _engine


def get_session_factory() -> sessionmaker:
    """Process-wide session factory bound to get_engine()."""
    global _SessionFactory
    if _SessionFactory is None:
        _SessionFactory = sessionmaker(bind=get_engine(), expire_on_commit=False)
    return _SessionFactory


def get_session() -> Session:
    return get_session_factory()()


def _create_tables(engine: Engine) -> None:
    # importing the package registers every mapped class on Base.metadata
    from .. import models  # noqa: F401

    Base.metadata.create_all(engine)


def init_database(engine: Optional[Engine] = None) -> None:
    """
    Create any missing tables. Existing tables and their rows are left alone.

    Args:
        engine: Engine to initialize; the process-wide one when omitted
    """
    _create_tables(engine or get_engine())
    logger.info("Record store schema is in place")


@contextmanager
def session_scope():
    """
    Session that commits when the block completes and rolls back if it raises.

    Service functions accept ``session=`` so several calls can share one
    transaction:

        with session_scope() as session:
            ingredient_service.record_entry(flour_id, ..., session=session)
            variation_service.upsert_variation(flour_id, ..., session=session)
    """
    session = get_session()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


@contextmanager
def read_only_scope():
    """Session whose changes are rolled back on exit, whatever happens inside."""
    session = get_session()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


def run_in_session(
    impl: Callable[[Session], T],
    session: Optional[Session] = None,
    *,
    operation: str,
    service_logger: Optional[logging.Logger] = None,
) -> T:
    """
    Call ``impl(session)`` in the caller's session, or in a fresh session_scope().

    ServiceError subclasses are logged as rejected and propagate unchanged;
    SQLAlchemy failures surface as DatabaseError. A scope opened here rolls
    back in both cases.

    Args:
        impl: The body of the service operation
        session: Session of an enclosing transaction, if any
        operation: Name used in log records and error messages
        service_logger: Logger of the calling service module

    Returns:
        The value returned by impl
    """
    return _run(impl, session, session_scope, operation, service_logger)


def run_read_only(
    impl: Callable[[Session], T],
    session: Optional[Session] = None,
    *,
    operation: str,
    service_logger: Optional[logging.Logger] = None,
) -> T:
    """run_in_session() over read_only_scope(). A session passed in stays the caller's."""
    return _run(impl, session, read_only_scope, operation, service_logger)


def _run(impl, session, scope, operation, service_logger):
    try:
        if session is not None:
            return impl(session)
        with scope() as sess:
            return impl(sess)
    except ServiceError as e:
        if service_logger is not None:
            log_operation(
                service_logger, operation, "rejected", level=logging.WARNING, error=str(e)
            )
        raise
    except SQLAlchemyError as e:
        raise DatabaseError(f"{operation} failed", e)


def verify_database() -> bool:
    """True when the store answers and holds the core tables."""
    try:
        present = set(inspect(get_engine()).get_table_names())
    except SQLAlchemyError as e:
        logger.error("Record store is unreachable: %s", e)
        return False
    missing = [name for name in REQUIRED_TABLES if name not in present]
    if missing:
        logger.warning("Record store lacks tables: %s", ", ".join(missing))
    return not missing


def reset_database(confirm: bool = False) -> None:
    """
    Drop every table and build the schema again. All workspaces are lost.

    Raises:
        ValueError: Unless confirm=True
    """
    if not confirm:
        raise ValueError("reset_database() erases every workspace; pass confirm=True")

    engine = get_engine()
    logger.warning("Erasing record store %s", engine.url)

    from .. import models  # noqa: F401

    Base.metadata.drop_all(engine)
    _create_tables(engine)
    logger.info("Record store rebuilt empty")


def close_connections() -> None:
    """Dispose of the process-wide engine; the next session opens a new one."""
    global _engine, _SessionFactory

    _SessionFactory = None
    if _engine is None:
        return
    _engine.dispose()
    _engine = None
    logger.info("Record store connections closed")


def initialize_app_database() -> None:
    """Open the configured store at startup, creating the file and schema when absent."""
    config = get_config()
    state = "existing" if config.database_exists() else "new"
    logger.info("Using %s record store at %s", state, config.database_path)

    init_database(get_engine())
    if not verify_database():
        logger.warning("Record store schema is incomplete after initialization")
