"""
Local Key-Value Storage.

Synchronous ``key -> string`` durable storage on top of the local SQLite
database, with a hard capacity ceiling.  This is the on-device store the
record snapshots and the session token live in; it deliberately behaves
like a browser's ``localStorage``: writes that would push the total size
over the quota fail with :class:`QuotaExceededError` and leave the previous
value untouched.
"""

from __future__ import annotations

import sqlite3
import threading
from typing import Optional

from trackexpense.logger import StructuredLogger


class QuotaExceededError(Exception):
    """Raised when a write would exceed the storage capacity ceiling."""

    def __init__(self, key: str, required: int, quota: int) -> None:
        super().__init__(
            f"Writing '{key}' needs {required} bytes; the quota is {quota} bytes."
        )
        self.key = key
        self.required = required
        self.quota = quota


class KeyValueStorage:
    """Quota-limited string storage backed by the ``local_storage`` table.

    Parameters
    ----------
    conn:
        Open SQLite connection whose schema has been initialised.
    write_lock:
        Lock shared with every other writer of *conn*.
    quota_bytes:
        Maximum total UTF-8 size of all keys and values.
    logger:
        Structured logger.
    """

    def __init__(
        self,
        conn: sqlite3.Connection,
        write_lock: threading.RLock,
        quota_bytes: int,
        logger: StructuredLogger,
    ) -> None:
        self._conn = conn
        self._lock = write_lock
        self._quota = quota_bytes
        self._logger = logger

    @property
    def quota_bytes(self) -> int:
        return self._quota

    def get_item(self, key: str) -> Optional[str]:
        """Return the stored string for *key*, or ``None`` when absent."""
        with self._lock:
            row = self._conn.execute(
                "SELECT value FROM local_storage WHERE key = ?", (key,),
            ).fetchone()
        return row[0] if row is not None else None

    def set_item(self, key: str, value: str) -> None:
        """Store *value* under *key*.

        Raises
        ------
        QuotaExceededError
            If the new total size would exceed the quota.  Nothing is
            written in that case.
        """
        with self._lock:
            required = self.used_bytes(exclude_key=key) + _size(key) + _size(value)
            if required > self._quota:
                raise QuotaExceededError(key, required, self._quota)
            self._conn.execute(
                """
                INSERT INTO local_storage (key, value) VALUES (?, ?)
                ON CONFLICT(key) DO UPDATE SET value = excluded.value,
                                               updated_at = CURRENT_TIMESTAMP
                """,
                (key, value),
            )
            self._conn.commit()

    def remove_item(self, key: str) -> None:
        with self._lock:
            self._conn.execute("DELETE FROM local_storage WHERE key = ?", (key,))
            self._conn.commit()

    def used_bytes(self, exclude_key: Optional[str] = None) -> int:
        """Total stored size in bytes, optionally ignoring one key."""
        with self._lock:
            row = self._conn.execute(
                """
                SELECT COALESCE(SUM(LENGTH(CAST(key AS BLOB))
                                    + LENGTH(CAST(value AS BLOB))), 0)
                FROM local_storage
                WHERE key IS NOT ?
                """,
                (exclude_key,),
            ).fetchone()
        return int(row[0])


def _size(text: str) -> int:
    return len(text.encode("utf-8"))
