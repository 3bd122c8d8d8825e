"""
Database connection and session management.

Provides sessions over psycopg connections for the configured database.
The engine releases a session when its unit of work is done; callers that
chain several operations use session_scope() and keep_open=True.

For testing, use set_connection_override() to inject a connection that
will be used instead of creating new ones. Sessions over the override never
commit, roll back or close it, so tests can roll back between cases.
"""

import sqlite3
from contextlib import contextmanager

import psycopg

from rowmapper.config import config
from rowmapper.session import PsycopgSession, Session, SqliteSession

# =============================================================================
# Connection Override (for testing)
# =============================================================================

_connection_override: psycopg.Connection | sqlite3.Connection | None = None


def set_connection_override(conn: psycopg.Connection | sqlite3.Connection) -> None:
    """
    Set a connection to use instead of creating new ones.

    Used by test fixtures to ensure all database operations run
    against a single connection the fixture controls.

    Args:
        conn: The connection to use for all subsequent operations
    """
    global _connection_override
    _connection_override = conn


def clear_connection_override() -> None:
    """Clear the connection override, restoring normal behavior."""
    global _connection_override
    _connection_override = None


# =============================================================================
# Session Management
# =============================================================================


def open_session() -> Session:
    """
    Open a session for one unit of work.

    In normal operation:
        - Opens a new psycopg connection to config.database_url
        - The session commits and closes it when released

    With override set (testing):
        - Wraps the override connection
        - Releasing the session does NOT commit, rollback, or close
    """
    if _connection_override is not None:
        if isinstance(_connection_override, sqlite3.Connection):
            return SqliteSession(_connection_override, owns_connection=False)
        return PsycopgSession(_connection_override, owns_connection=False)

    if not config.database_url:
        raise RuntimeError("DATABASE_URL is not configured")
    return PsycopgSession(psycopg.connect(config.database_url))


@contextmanager
def session_scope(session: Session = None):
    """
    Context manager for chaining several operations on one session.

    - Commits and releases on successful exit
    - Rolls back and releases on exception

    Usage:
        with session_scope() as session:
            executor = CrudExecutor(session, keep_open=True)
            executor.insert(rows)
            executor.update(rows[0])
    """
    session = session or open_session()
    try:
        yield session
    except Exception:
        session.close(commit=False)
        raise
    session.close()
