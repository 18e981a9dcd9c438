from __future__ import annotations

import os
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Generator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from dealflow.models import Base

_lock = threading.Lock()
_engine: Engine | None = None
_SessionLocal: sessionmaker | None = None

DATA_DIR = Path(__file__).parent / "data"


def default_db_url() -> str:
    """Database URL from ``DEALFLOW_DB_URL``, falling back to a local SQLite file."""
    url = os.environ.get("DEALFLOW_DB_URL", "").strip()
    if url:
        return url
    DATA_DIR.mkdir(parents=True, exist_ok=True)
    return f"sqlite:///{DATA_DIR / 'dealflow.db'}"


def init_db(db_url: str | None = None) -> Engine:
    global _engine, _SessionLocal
    with _lock:
        if _engine is not None:
            _engine.dispose()
        url = db_url or default_db_url()
        connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
        _engine = create_engine(url, connect_args=connect_args)
        Base.metadata.create_all(_engine)
        _SessionLocal = sessionmaker(bind=_engine, autoflush=False, expire_on_commit=False)
        return _engine


def get_session() -> Session:
    with _lock:
        if _SessionLocal is None:
            raise RuntimeError("init_db() has not been called")
        factory = _SessionLocal
    return factory()


@contextmanager
def session_scope() -> Generator[Session, None, None]:
    """Context manager providing a transactional session scope.

    Commits on a clean exit, rolls back if the body raises::

        with session_scope() as session:
            generate_for_fundraiser(session, 12)
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


def session_generator() -> Generator[Session, None, None]:
    """Generator-based session suitable for FastAPI ``Depends()``."""
    session = get_session()
    try:
        yield session
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
