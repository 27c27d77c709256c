from __future__ import annotations

import logging

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from .config import get_settings, on_reload

logger = logging.getLogger(__name__)

Base = declarative_base()

_DB_URL = None
engine: Engine | None = None
SessionLocal: sessionmaker | None = None


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def make_engine(url: str) -> Engine:
    """Create an engine; SQLite gets FK enforcement and a generous busy timeout
    so concurrent conditional updates queue instead of failing."""
    connect_args = {}
    if url.startswith("sqlite"):
        connect_args = {"check_same_thread": False, "timeout": 30}
    eng = create_engine(url, connect_args=connect_args, pool_pre_ping=True)
    if url.startswith("sqlite"):
        event.listen(eng, "connect", _enable_sqlite_foreign_keys)
    return eng


def _init_engine(url: str) -> None:
    global engine, SessionLocal, _DB_URL
    if engine is not None:
        engine.dispose()
    engine = make_engine(url)
    SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)
    _DB_URL = url
    logger.info(f"Database engine bound to {engine.url.render_as_string(hide_password=True)}")


def _ensure_engine_current() -> None:
    url = get_settings().database_url
    if _DB_URL != url:
        _init_engine(url)


@on_reload
def _on_settings_reload(new_settings) -> None:
    if new_settings.database_url != _DB_URL:
        _init_engine(new_settings.database_url)


# Initialize on module import
_ensure_engine_current()


def get_engine() -> Engine:
    _ensure_engine_current()
    return engine


def get_db():
    _ensure_engine_current()
    db: Session = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def ensure_tables(bind: Engine | None = None) -> None:
    Base.metadata.create_all(bind=bind or get_engine())
