"""
Session State.

Provides an injectable ``SessionManager`` that remembers which user is
signed in.  The session is only a user identifier persisted as a bare
string in local storage; the user record itself is always looked up in
the :class:`~trackexpense.repositories.user_repository.UserRepository`,
so role or avatar changes show up in the session immediately.  A restored
identifier whose user is missing from the repository's first delivery
is dropped by the repository.

Usage::

    session = SessionManager(storage=db.storage, storage_key="billboard_user_id")
    session.start("u-123")
    session.user_id  # "u-123", also after a restart
    session.end()
"""

from __future__ import annotations

import sqlite3
import threading
from typing import Optional

from trackexpense.logger import StructuredLogger
from trackexpense.storage.local_storage import KeyValueStorage, QuotaExceededError


class SessionManager:
    """Injectable holder for the signed-in user's identifier.

    Each instance maintains its own session state; pass a single
    ``SessionManager`` to every component that needs it.
    """

    def __init__(
        self,
        storage: KeyValueStorage,
        storage_key: str,
        logger: StructuredLogger,
    ) -> None:
        self._lock: threading.RLock = threading.RLock()
        self._storage = storage
        self._storage_key = storage_key
        self._logger = logger
        self._user_id: Optional[str] = storage.get_item(storage_key)
        if self._user_id:
            self._logger.info("Restored session for user %s", self._user_id)

    @property
    def user_id(self) -> Optional[str]:
        """Identifier of the signed-in user, or ``None``."""
        with self._lock:
            return self._user_id

    @property
    def is_authenticated(self) -> bool:
        with self._lock:
            return self._user_id is not None

    def start(self, user_id: str) -> None:
        """Record *user_id* as the signed-in user and persist it."""
        with self._lock:
            self._user_id = user_id
            try:
                self._storage.set_item(self._storage_key, user_id)
            except (QuotaExceededError, sqlite3.Error) as exc:
                # The in-process session still works; it just won't survive a restart.
                self._logger.warning("Could not persist session token: %s", exc)

    def end(self) -> None:
        """End the session and forget the persisted token."""
        with self._lock:
            self._user_id = None
            try:
                self._storage.remove_item(self._storage_key)
            except sqlite3.Error as exc:
                self._logger.warning("Could not clear session token: %s", exc)
