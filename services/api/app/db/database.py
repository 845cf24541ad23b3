from __future__ import annotations

import os
from collections.abc import Callable
from typing import TypeVar

import structlog
from sqlalchemy import Engine, create_engine, event
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session, sessionmaker

from services.api.app.services.errors import TransactionConflictError

logger = structlog.get_logger(__name__)

T = TypeVar("T")

_ENGINE: Engine | None = None
_ENGINE_URL: str | None = None
_SESSIONMAKER: sessionmaker | None = None


def _default_db_url() -> str:
    # Local-only default. Production must provide DATABASE_URL explicitly.
    return "sqlite+pysqlite:///.local/mesa.db"


def _install_sqlite_serializable(engine: Engine) -> None:
    """Make every SQLite transaction take the write lock up front.

    pysqlite defers BEGIN until the first DML statement, so a read-check-write
    sequence would otherwise run its reads outside any transaction.
    """

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record) -> None:  # noqa: ARG001
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _on_begin(conn) -> None:
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def get_engine() -> Engine:
    """Return a cached SQLAlchemy engine.

    We cache based on DATABASE_URL so tests can override DATABASE_URL before first use.
    """

    global _ENGINE, _ENGINE_URL, _SESSIONMAKER

    url = os.getenv("DATABASE_URL", _default_db_url())

    if _ENGINE is not None and _ENGINE_URL == url:
        return _ENGINE

    if url.startswith("sqlite"):
        connect_args = {"check_same_thread": False, "timeout": 30}
        _ENGINE = create_engine(url, future=True, connect_args=connect_args)
        _install_sqlite_serializable(_ENGINE)
    else:
        _ENGINE = create_engine(url, future=True, pool_pre_ping=True)

    _ENGINE_URL = url
    _SESSIONMAKER = sessionmaker(bind=_ENGINE, class_=Session, autocommit=False, autoflush=False)
    return _ENGINE


def db_session() -> Session:
    get_engine()  # ensure _SESSIONMAKER is created
    assert _SESSIONMAKER is not None
    return _SESSIONMAKER()


def max_tx_attempts() -> int:
    raw = os.getenv("MESA_TX_MAX_ATTEMPTS", "3").strip()
    try:
        return max(1, int(raw))
    except ValueError as e:
        raise ValueError(f"Invalid MESA_TX_MAX_ATTEMPTS={raw!r}. Expected an integer.") from e


def run_in_transaction(db: Session, work: Callable[[Session], T], *, name: str = "tx") -> T:
    """Run ``work`` as one atomic unit and commit it.

    Store-level contention (lock timeouts, serialization failures, a unique key
    claimed by a concurrent writer) rolls back and re-runs ``work`` from the top,
    so every unit of work must do its own reads. Anything else rolls back and
    propagates unchanged.
    """

    attempts = max_tx_attempts()

    # Start from a clean transaction so the first read happens under the lock.
    if db.in_transaction():
        db.rollback()

    for attempt in range(1, attempts + 1):
        try:
            result = work(db)
            db.commit()
            return result
        except (OperationalError, IntegrityError) as e:
            db.rollback()
            logger.warning(
                "transaction_conflict",
                tx=name,
                attempt=attempt,
                max_attempts=attempts,
                error=str(e.orig),
            )
            if attempt >= attempts:
                raise TransactionConflictError(name, attempts) from e
        except Exception:
            db.rollback()
            raise

    raise AssertionError("unreachable")
