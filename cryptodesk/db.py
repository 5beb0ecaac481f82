# cryptodesk/db.py
from contextlib import contextmanager
from typing import Iterator, Optional

from loguru import logger
from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from cryptodesk.config import DEFAULT_DATABASE_URL
from cryptodesk.errors import StoreUnavailableError

Base = declarative_base()


def _is_memory_sqlite(url: str) -> bool:
    return url in ("sqlite://", "sqlite:///:memory:")


def _use_immediate_transactions(engine: Engine) -> None:
    """
    Make every SQLite transaction start with BEGIN IMMEDIATE.

    pysqlite only opens a transaction right before the first write, so two
    sessions could both read a row and then both write it. Taking the write
    lock up front serializes units of work the way SELECT ... FOR UPDATE
    does on Postgres.
    """

    @event.listens_for(engine, "connect")
    def _disable_pysqlite_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def create_db_engine(url: Optional[str] = None, timeout: float = 5.0) -> Engine:
    """Build an engine whose lock waits are bounded by `timeout` seconds."""
    url = url or DEFAULT_DATABASE_URL

    if url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False, "timeout": timeout}}
        if _is_memory_sqlite(url):
            kwargs["poolclass"] = StaticPool
        engine = create_engine(url, **kwargs)
        _use_immediate_transactions(engine)
    else:
        engine = create_engine(url, pool_pre_ping=True, pool_timeout=timeout)

    logger.debug(f"Database engine ready: {engine.url.render_as_string(hide_password=True)}")
    return engine


def create_session_factory(engine: Engine) -> sessionmaker:
    # Records handed back to callers stay readable after the unit of work commits.
    return sessionmaker(autocommit=False, autoflush=False, bind=engine, expire_on_commit=False)


def init_db(engine: Engine) -> None:
    from cryptodesk import models  # noqa: F401

    Base.metadata.create_all(bind=engine)


def ping(db: Session) -> bool:
    try:
        db.execute(text("SELECT 1"))
        return True
    except SQLAlchemyError as e:
        logger.error(f"DB ping failed: {e}")
        return False


@contextmanager
def session_scope(session_factory: sessionmaker) -> Iterator[Session]:
    """
    One unit of work: commit on success, roll back on any failure.

    Driver and connection errors come out as StoreUnavailableError; domain
    errors raised inside the block pass through unchanged after the rollback.
    """
    db = session_factory()
    try:
        yield db
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Store failure, rolled back: {e}")
        raise StoreUnavailableError(f"Database unavailable: {e.__class__.__name__}") from e
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
