"""
Database engine and session management for the SQL cache backend.
"""

from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session


def create_db_engine(database_url: str) -> Engine:
    """
    Create an engine for database_url.

    SQLite URLs get check_same_thread disabled, since FastAPI may run
    sync code on a worker thread.
    """
    connect_args = {}
    if database_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False

    return create_engine(database_url, connect_args=connect_args)


@contextmanager
def session_scope(session_factory: sessionmaker) -> Iterator[Session]:
    """
    Context manager for database session.

    Usage:
        with session_scope(factory) as db:
            # Use db session
            pass
    """
    db = session_factory()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def init_db(engine: Engine):
    """
    Initialize the database by creating all tables.
    """
    from nftmeta.db_models import Base

    Base.metadata.create_all(bind=engine)
