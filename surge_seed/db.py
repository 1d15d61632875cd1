from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.engine.url import URL, make_url
from sqlalchemy.orm import Session, sessionmaker

from surge_seed.config import resolve_database_url

logger = logging.getLogger(__name__)

_ENGINE: Engine | None = None
_SessionLocal: sessionmaker | None = None


def _log_duration(event_name: str, start: float, **fields: object) -> None:
    elapsed_ms = (time.perf_counter() - start) * 1000.0
    if fields:
        field_text = " ".join(f"{key}={value}" for key, value in fields.items())
        logger.debug("db.timing event=%s ms=%.2f %s", event_name, elapsed_ms, field_text)
        return
    logger.debug("db.timing event=%s ms=%.2f", event_name, elapsed_ms)


def _sanitize_url(url: URL) -> str:
    return url.render_as_string(hide_password=True)


def build_engine(database_url: str | None = None) -> Engine:
    build_start = time.perf_counter()
    url = make_url(database_url or resolve_database_url())
    logger.info("Database target: %s", _sanitize_url(url))
    engine = create_engine(url, pool_pre_ping=True, future=True)
    _log_duration("build_engine.total", build_start, driver=url.drivername)
    return engine


def configure(database_url: str | None = None) -> Engine:
    """
    Point the module-level engine at `database_url` and drop any cached session factory.
    """
    global _ENGINE, _SessionLocal
    if _ENGINE is not None:
        _ENGINE.dispose()
    _ENGINE = build_engine(database_url)
    _SessionLocal = None
    return _ENGINE


def get_engine() -> Engine:
    global _ENGINE
    if _ENGINE is None:
        start = time.perf_counter()
        _ENGINE = build_engine()
        _log_duration("get_engine.initialize", start)
    return _ENGINE


def get_session_factory() -> sessionmaker:
    global _SessionLocal
    if _SessionLocal is None:
        init_start = time.perf_counter()
        engine = get_engine()
        try:
            connectivity_start = time.perf_counter()
            with engine.connect() as connection:
                connection.execute(text("SELECT 1"))
            _log_duration("session_factory.connectivity_check", connectivity_start)
        except Exception as exc:
            logger.error("Database connectivity check failed: %s", exc)
            raise
        _SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)
        _log_duration("session_factory.initialize_total", init_start)
    return _SessionLocal


@contextmanager
def session_scope(factory: sessionmaker | None = None) -> Iterator[Session]:
    """
    One transaction: commit when the block finishes, roll back and re-raise on any error.
    """
    scope_start = time.perf_counter()
    session: Session = (factory or get_session_factory())()
    try:
        yield session
        commit_start = time.perf_counter()
        session.commit()
        _log_duration("session_scope.commit", commit_start)
    except Exception as exc:
        rollback_start = time.perf_counter()
        session.rollback()
        _log_duration("session_scope.rollback", rollback_start)
        logger.error("Database transaction rolled back: %s", exc, exc_info=True)
        raise
    finally:
        session.close()
        _log_duration("session_scope.total", scope_start)


def advance_sequence(session: Session, table: str) -> int:
    """
    Move the serial sequence of `table`.id up to the largest id stored in the table,
    so rows created later by the application do not collide with seeded ids.
    """
    quoted = f'"{table}"'
    return int(
        session.execute(
            text(
                f"""
                SELECT setval(
                    pg_get_serial_sequence(:table_name, 'id'),
                    COALESCE((SELECT MAX(id) FROM {quoted}), 1),
                    true
                )
                """
            ),
            {"table_name": quoted},
        ).scalar_one()
    )
