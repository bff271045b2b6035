"""
Database Abstraction Layer.

Owns the backing stores and decides, once at startup, which one the
record layer talks to:

- **Cloud mode** (Supabase): used when a Supabase client can be built from
  configuration.  Multi-client, with changes redelivered to subscribers.
- **Local mode** (SQLite key-value storage): used when no cloud store is
  configured.  Single-writer, durable on this device.

The mode is fixed for the lifetime of the process with one exception: a
failing cloud subscription may demote the process to local mode
(:meth:`DatabaseManager.demote_to_local`).  Demotion is one-way; there is
no re-probing of the cloud store.

The local SQLite database is always opened because the session token and
the local snapshots live there regardless of mode.

Usage (dependency injection at app startup)::

    db = DatabaseManager(
        supabase_url=config.SUPABASE_URL,
        supabase_key=config.SUPABASE_ANON_KEY.get_secret_value(),
        sqlite_path=Path(config.LOCAL_DB_PATH),
        logger=StructuredLogger(name="database"),
        storage_quota_bytes=config.LOCAL_STORAGE_QUOTA_BYTES,
        storage_keys={"expenses": "track_expense_data", "users": "track_expense_users"},
    )
    # Inject `db` into the repositories.
"""

from __future__ import annotations

import sqlite3
import threading
from pathlib import Path
from typing import Callable, Mapping, Optional

from supabase import Client as SupabaseClient, create_client

from trackexpense.logger import StructuredLogger
from trackexpense.models.enums import StoreMode
from trackexpense.schema import initialize_schema
from trackexpense.storage.cloud_store import AlertCallback, CloudRecordStore
from trackexpense.storage.local_storage import KeyValueStorage
from trackexpense.storage.local_store import LocalRecordStore
from trackexpense.storage.persistence import LocalPersistence
from trackexpense.storage.record_store import RecordStore

DemotionListener = Callable[[LocalRecordStore], None]


class DatabaseManager:
    """Builds the backing stores and tracks the active store mode.

    Parameters
    ----------
    supabase_url, supabase_key:
        Supabase project settings.  Either may be empty, in which case the
        process runs in local mode.
    sqlite_path:
        Filesystem path for the local SQLite database file.
    logger:
        Structured logger.
    storage_quota_bytes:
        Capacity ceiling of the local key-value storage.
    storage_keys:
        Collection name -> local snapshot key.
    alert:
        User-facing advisory message sink, passed to the cloud store.
    poll_interval_s:
        Cloud change-feed poll interval.
    supabase_client:
        Pre-built client; takes precedence over *supabase_url*/*supabase_key*.
    """

    def __init__(
        self,
        supabase_url: str,
        supabase_key: str,
        sqlite_path: Path,
        logger: StructuredLogger,
        *,
        storage_quota_bytes: int = 5_000_000,
        storage_keys: Optional[Mapping[str, str]] = None,
        alert: Optional[AlertCallback] = None,
        poll_interval_s: float = 5.0,
        supabase_client: Optional[SupabaseClient] = None,
    ) -> None:
        self._logger: StructuredLogger = logger
        self._write_lock: threading.RLock = threading.RLock()
        self._storage_keys: dict[str, str] = dict(storage_keys or {})
        self._demotion_listeners: list[DemotionListener] = []
        self._closed = False

        # --- SQLite (always required) ---
        self._sqlite_conn: sqlite3.Connection = self._connect_sqlite(sqlite_path)
        initialize_schema(self._sqlite_conn, logger)
        self._storage = KeyValueStorage(
            conn=self._sqlite_conn,
            write_lock=self._write_lock,
            quota_bytes=storage_quota_bytes,
            logger=logger,
        )
        self._persistence = LocalPersistence(storage=self._storage, logger=logger)
        self._local_store: Optional[LocalRecordStore] = None
        self._cloud_store: Optional[CloudRecordStore] = None

        # --- Supabase (optional) ---
        client = supabase_client or self._create_supabase_client(supabase_url, supabase_key)
        if client is not None:
            self._cloud_store = CloudRecordStore(
                client=client,
                logger=logger,
                alert=alert,
                poll_interval_s=poll_interval_s,
            )
            self._store: RecordStore = self._cloud_store
        else:
            self._store = self._get_local_store()
        self._logger.info("Record store running in %s mode.", self._store.mode)

    # ------------------------------------------------------------------
    # Public properties
    # ------------------------------------------------------------------

    @property
    def store(self) -> RecordStore:
        """The record store currently in effect."""
        with self._write_lock:
            return self._store

    @property
    def mode(self) -> StoreMode:
        return self.store.mode

    @property
    def storage(self) -> KeyValueStorage:
        """Local key-value storage (session token, snapshots)."""
        return self._storage

    # ------------------------------------------------------------------
    # Mode changes
    # ------------------------------------------------------------------

    def add_demotion_listener(self, listener: DemotionListener) -> None:
        """Register *listener* to be called with the local store on demotion."""
        with self._write_lock:
            self._demotion_listeners.append(listener)

    def remove_demotion_listener(self, listener: DemotionListener) -> None:
        with self._write_lock:
            if listener in self._demotion_listeners:
                self._demotion_listeners.remove(listener)

    def demote_to_local(self, reason: str) -> LocalRecordStore:
        """Switch to local mode for the rest of the session.

        Idempotent.  Each registered listener is called once, with the local
        store, so it can move its state over.
        """
        with self._write_lock:
            if self._store.mode == StoreMode.LOCAL:
                return self._get_local_store()
            self._logger.warning(
                "Cloud store unavailable (%s) — switching to local storage "
                "for the rest of this session.",
                reason,
            )
            local = self._get_local_store()
            self._store = local
            if self._cloud_store is not None:
                # Called from the cloud writer thread: do not join it here.
                self._cloud_store.stop_polling()
            listeners = list(self._demotion_listeners)

        for listener in listeners:
            listener(local)
        return local

    # ------------------------------------------------------------------
    # Lifecycle helpers
    # ------------------------------------------------------------------

    def close(self) -> None:
        """Stop the cloud store and close SQLite.

        Safe to call multiple times; subsequent calls are no-ops.
        """
        with self._write_lock:
            if self._closed:
                return
            self._closed = True
        if self._cloud_store is not None:
            self._cloud_store.close()
        with self._write_lock:
            try:
                self._sqlite_conn.close()
                self._logger.info("SQLite connection closed.")
            except sqlite3.ProgrammingError:
                pass

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _get_local_store(self) -> LocalRecordStore:
        if self._local_store is None:
            self._local_store = LocalRecordStore(
                persistence=self._persistence,
                storage_keys=self._storage_keys,
                logger=self._logger,
            )
        return self._local_store

    def _create_supabase_client(
        self, supabase_url: str, supabase_key: str,
    ) -> Optional[SupabaseClient]:
        if not (supabase_url and supabase_key):
            self._logger.warning(
                "Supabase credentials not configured — using local storage."
            )
            return None
        try:
            client = create_client(supabase_url, supabase_key)
            self._logger.info("Supabase client initialized.")
            return client
        except (ValueError, TypeError) as exc:
            self._logger.warning(
                "Supabase credential format error: %s. Using local storage.", exc,
            )
        except Exception as exc:
            self._logger.error(
                "Unexpected Supabase initialization failure: %s. Using local storage.",
                exc,
                exc_info=True,
            )
        return None

    def _connect_sqlite(self, path: Path) -> sqlite3.Connection:
        """Open (or create) the local SQLite database.

        Raises
        ------
        PermissionError
            If the OS denies access to the database file or its directory,
            re-raised with a message the entry point can show as is.
        """
        try:
            conn = sqlite3.connect(str(path), check_same_thread=False)
            conn.execute("PRAGMA journal_mode=WAL;")
            self._logger.info("SQLite database opened at %s", path)
            return conn
        except PermissionError as exc:
            msg = (
                f"Cannot open the local database at '{path}'. "
                "The file or its directory may be read-only or locked by "
                "another process."
            )
            self._logger.error(msg)
            raise PermissionError(msg) from exc
