"""
Engine and session plumbing for the validator store.

One engine per process, cached until reset_engine(). The store holds
validator runtimes, play sessions with their learning events, proof
receipts and stress-test runs (see server.db.models).
"""

import logging
from collections.abc import Generator
from contextlib import contextmanager
from pathlib import Path

from sqlalchemy import create_engine
from sqlalchemy.orm import Session as DBSession, sessionmaker

from server.config import Settings
from server.db.models import Base

logger = logging.getLogger("playops.db")

_engine = None
_SessionLocal = None


def _ensure_sqlite_dir(url: str) -> None:
    """Create the parent directory of a file-backed SQLite database."""
    prefix = "sqlite:///"
    if not url.startswith(prefix):
        return
    path = url[len(prefix):]
    if not path or path == ":memory:":
        return
    Path(path).parent.mkdir(parents=True, exist_ok=True)


def get_engine(settings: Settings):
    """The validator store engine, created on first use from settings.database_url.

    File-backed SQLite gets its directory created and check_same_thread off.
    """
    global _engine
    if _engine is None:
        url = settings.database_url
        if url.startswith("sqlite"):
            _ensure_sqlite_dir(url)
            _engine = create_engine(url, connect_args={"check_same_thread": False})
        else:
            _engine = create_engine(url)
    return _engine


def get_session_factory(settings: Settings) -> sessionmaker:
    """Session factory bound to the validator store engine."""
    global _SessionLocal
    if _SessionLocal is None:
        engine = get_engine(settings)
        _SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    return _SessionLocal


@contextmanager
def get_db(settings: Settings) -> Generator[DBSession, None, None]:
    """
    Unit of work for one request or CLI action.

    Runtime, session and proof writes made inside the block commit together
    on a clean exit and roll back together if anything raises.
    """
    factory = get_session_factory(settings)
    session = factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def reset_engine() -> None:
    """Dispose of the cached engine so the next call opens settings.database_url afresh.

    Each server test points the app at its own temporary SQLite file and
    calls this before and after.
    """
    global _engine, _SessionLocal
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _SessionLocal = None


def init_db(settings: Settings) -> None:
    """Create the runtime, session, event, proof and stress-test tables if missing."""
    engine = get_engine(settings)
    Base.metadata.create_all(bind=engine)
    logger.info("Database ready at %s", engine.url.render_as_string(hide_password=True))
