"""Pytest fixtures: a migrated SQLite target and a fake Redis."""

from __future__ import annotations

from pathlib import Path

import pytest
from alembic import command
from alembic.config import Config
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker

from tests.helpers import FakeRedis

PROJECT_ROOT = Path(__file__).resolve().parents[1]


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
def database_url(tmp_path) -> str:
    url = f"sqlite:///{tmp_path / 'surge.db'}"
    cfg = Config(str(PROJECT_ROOT / "alembic.ini"))
    cfg.attributes["configure_logger"] = False
    cfg.set_main_option("script_location", str(PROJECT_ROOT / "alembic"))
    cfg.set_main_option("sqlalchemy.url", url)
    command.upgrade(cfg, "head")
    return url


@pytest.fixture
def sequence_calls() -> dict[str, int]:
    """Last value passed to setval() per sequence name."""
    return {}


@pytest.fixture
def engine(database_url, sequence_calls):
    engine = create_engine(database_url, future=True)

    @event.listens_for(engine, "connect")
    def _install_postgres_shims(dbapi_connection, connection_record):
        def pg_get_serial_sequence(table_name, column_name):
            bare_name = str(table_name).strip('"')
            return f"{bare_name}_{column_name}_seq"

        def setval(sequence_name, value, is_called):
            sequence_calls[sequence_name] = int(value)
            return int(value)

        dbapi_connection.create_function("pg_get_serial_sequence", 2, pg_get_serial_sequence)
        dbapi_connection.create_function("setval", 3, setval)
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine) -> sessionmaker:
    return sessionmaker(bind=engine, autoflush=False, future=True)
