import logging
import sqlite3
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from config import get_settings
from errors import ConstraintViolation, StorageError

logger = logging.getLogger(__name__)


def _create_engine() -> Engine:
    settings = get_settings()
    connect_args: dict[str, object] = {}
    if settings.database_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
    return create_engine(settings.database_url, connect_args=connect_args)


@event.listens_for(Engine, "connect")
def _enable_sqlite_pragmas(dbapi_conn, _record):
    # Registered on the Engine class so in-memory test engines get it too.
    if not isinstance(dbapi_conn, sqlite3.Connection):
        return
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA foreign_keys=ON;")
    cursor.close()


engine = _create_engine()
SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


class Base(DeclarativeBase):
    pass


def commit_or_raise(session: Session, message: str = "Could not save changes") -> None:
    """Commit, translating driver failures into the app's storage errors."""
    try:
        session.commit()
    except IntegrityError as exc:
        session.rollback()
        logger.warning(f"storage_constraint: {message} detail={exc.orig}")
        raise ConstraintViolation(message) from exc
    except SQLAlchemyError as exc:
        session.rollback()
        logger.error(f"storage_error: {message} detail={exc}")
        raise StorageError(message) from exc


@contextmanager
def session_scope() -> Iterator[Session]:
    session: Session = SessionLocal()
    try:
        yield session
        commit_or_raise(session)
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
