from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from storefront.db.config import get_database_isolation_level, get_database_url


def build_engine(database_url: str | None = None) -> Engine:
    url = database_url or get_database_url()
    if url.startswith("sqlite"):
        # SQLite only knows SERIALIZABLE / READ UNCOMMITTED.
        return create_engine(url)
    return create_engine(
        url,
        isolation_level=get_database_isolation_level(),
        pool_pre_ping=True,
    )


def build_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
        bind=engine,
    )


@contextmanager
def transaction(session_factory: sessionmaker) -> Iterator[Session]:
    """Commit when the block finishes, roll back on any exception raised inside it."""
    db = session_factory()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
