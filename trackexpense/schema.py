"""
Local SQLite Schema Initialization.

Defines the schema of the on-device database that backs local storage and
provides a single entry-point -- :func:`initialize_schema` -- that creates
the required tables idempotently.  A single-row ``schema_version`` table
records the applied version so later changes can be rolled forward.

Usage::

    import sqlite3
    from trackexpense.logger import StructuredLogger
    from trackexpense.schema import initialize_schema

    conn = sqlite3.connect("trackexpense_local.db")
    initialize_schema(conn, StructuredLogger(name="schema"))
"""

from __future__ import annotations

import sqlite3

from trackexpense.logger import StructuredLogger

__all__ = ["CURRENT_SCHEMA_VERSION", "initialize_schema"]

CURRENT_SCHEMA_VERSION: int = 1

_TABLE_DEFINITIONS: list[str] = [
    # -- key -> string durable storage (snapshots and session token) ----------
    """
    CREATE TABLE IF NOT EXISTS local_storage (
        key TEXT PRIMARY KEY,
        value TEXT NOT NULL,
        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
    """,
]


def _ensure_version_table(conn: sqlite3.Connection) -> None:
    """Create the ``schema_version`` table if it does not yet exist."""
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS schema_version (
            id INTEGER PRIMARY KEY CHECK (id = 1),
            version INTEGER NOT NULL,
            applied_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )
        """
    )
    conn.commit()


def _get_schema_version(conn: sqlite3.Connection) -> int:
    """Return the current schema version, or ``0`` for a fresh database."""
    row = conn.execute("SELECT version FROM schema_version WHERE id = 1").fetchone()
    return row[0] if row is not None else 0


def _set_schema_version(conn: sqlite3.Connection, version: int) -> None:
    """Upsert the version tracker.  Does **not** commit."""
    conn.execute(
        """
        INSERT INTO schema_version (id, version) VALUES (1, ?)
        ON CONFLICT(id) DO UPDATE SET version = excluded.version,
                                      applied_at = CURRENT_TIMESTAMP
        """,
        (version,),
    )


def initialize_schema(conn: sqlite3.Connection, logger: StructuredLogger) -> None:
    """Ensure the local SQLite database matches the current schema version.

    Safe to call on every startup.  The table creation and the version bump
    happen in one transaction; on failure it is rolled back and re-raised.
    """
    _ensure_version_table(conn)
    current: int = _get_schema_version(conn)

    if current >= CURRENT_SCHEMA_VERSION:
        logger.debug("Schema is up to date (version %d).", current)
        return

    try:
        for ddl in _TABLE_DEFINITIONS:
            conn.execute(ddl)
        _set_schema_version(conn, CURRENT_SCHEMA_VERSION)
        conn.commit()
    except sqlite3.Error:
        conn.rollback()
        logger.error(
            "Schema initialisation failed — rolled back to version %d.", current,
        )
        raise

    logger.info("Schema initialised at version %d.", CURRENT_SCHEMA_VERSION)
