# src/rowmapper/conftest.py
"""
Pytest configuration and shared fixtures.

Tests are co-located with implementation files using the *_test.py suffix.
Most tests run against an in-memory sqlite database; the PostgreSQL
integration tests run only when DATABASE_URL is set.
"""

import os

# Set environment BEFORE importing any app modules
os.environ["ROWMAPPER_ENV"] = "test"

import sqlite3
from pathlib import Path

import psycopg
import pytest

from rowmapper import db
from rowmapper.config import config
from rowmapper.mapping import clear_cache
from rowmapper.observability import configure_logging
from rowmapper.session import PsycopgSession, SqliteSession

configure_logging(level="DEBUG")

SQLITE_SCHEMA = """
CREATE TABLE employee (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    first_name TEXT NOT NULL,
    last_name TEXT,
    mgr_id INTEGER
);
CREATE TABLE user (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_name TEXT UNIQUE,
    email TEXT,
    age INTEGER,
    password TEXT
);
CREATE TABLE document (
    doc_id INTEGER PRIMARY KEY AUTOINCREMENT,
    title TEXT NOT NULL,
    revision INTEGER NOT NULL
);
CREATE TABLE note (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    body TEXT,
    written_on TEXT,
    updated_at TEXT
);
CREATE TABLE stamp (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    body TEXT,
    updated_at TEXT DEFAULT CURRENT_TIMESTAMP
);
"""

# =============================================================================
# Metadata Cache
# =============================================================================


@pytest.fixture(autouse=True)
def fresh_metadata_cache():
    """Each test resolves its record types from scratch."""
    clear_cache()
    yield
    clear_cache()


# =============================================================================
# SQLite Fixtures
# =============================================================================


@pytest.fixture
def sqlite_connection():
    """
    Provide an in-memory sqlite database with the test schema.

    The connection is installed as the db override so Row convenience
    methods called without a session use it too.
    """
    conn = sqlite3.connect(":memory:")
    conn.executescript(SQLITE_SCHEMA)
    db.set_connection_override(conn)

    yield conn

    db.clear_connection_override()
    conn.close()


@pytest.fixture
def session(sqlite_connection) -> SqliteSession:
    """A session over the shared sqlite connection; releasing it keeps the connection open."""
    return SqliteSession(sqlite_connection, owns_connection=False)


@pytest.fixture
def seeded_employees(sqlite_connection) -> list[int]:
    """Insert three employees directly and return their ids."""
    ids = []
    for first, last, mgr in [("Ann", "Archer", None), ("Bob", "Baker", 1), ("Cid", "Cole", 1)]:
        cur = sqlite_connection.execute(
            "INSERT INTO employee (first_name, last_name, mgr_id) VALUES (?, ?, ?)",
            (first, last, mgr),
        )
        ids.append(cur.lastrowid)
    sqlite_connection.commit()
    return ids


# =============================================================================
# PostgreSQL Fixtures
# =============================================================================


@pytest.fixture
def pg_connection():
    """
    Provide a PostgreSQL connection with transaction rollback.

    Applies the test schema, then runs the test in a transaction that is
    rolled back at the end. Skipped when DATABASE_URL is not configured.
    """
    if not config.database_url:
        pytest.skip("DATABASE_URL not set")

    schema_file = Path(__file__).parent.parent.parent / "migrations" / "001_initial_schema.sql"
    if not schema_file.exists():
        raise FileNotFoundError(f"Migration file not found: {schema_file}")

    with psycopg.connect(config.database_url) as setup:
        with setup.cursor() as cur:
            cur.execute(schema_file.read_text())
            cur.execute("TRUNCATE employee, document RESTART IDENTITY")
        setup.commit()

    conn = psycopg.connect(config.database_url)
    db.set_connection_override(conn)

    yield conn

    conn.rollback()
    db.clear_connection_override()
    conn.close()


@pytest.fixture
def pg_session(pg_connection) -> PsycopgSession:
    return PsycopgSession(pg_connection, owns_connection=False)
