import os
from contextlib import contextmanager
from typing import Iterator, Optional

from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

DATABASE_URL = os.getenv("ISP_LEDGER_DATABASE_URL", "sqlite://")


def build_engine(url: Optional[str] = None) -> Engine:
    """Create the ledger engine and its tables.

    The default URL is an in-memory SQLite database shared by every session
    through a single pooled connection.
    """
    url = url or DATABASE_URL
    if not url.startswith("sqlite"):
        raise RuntimeError("Only SQLite URLs are supported. Use sqlite:// to keep ledger state in memory.")
    engine = create_engine(
        url,
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(engine)
    return engine


def init_db(engine: Engine) -> None:
    """Create tables if they do not exist."""
    SQLModel.metadata.create_all(engine)


@contextmanager
def session_scope(engine: Engine) -> Iterator[Session]:
    """One unit of work: commit on success, roll back on any error."""
    with Session(engine, expire_on_commit=False) as session:
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
