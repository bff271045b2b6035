"""
Base Repository.

Shared infrastructure for the record repositories:

- owns the in-memory collection and the lock guarding it
- subscribes to the active record store and rebuilds the collection from
  every delivery (the only way the collection changes)
- moves the collection into the local store when the process is demoted
  from cloud mode
- releases the subscription on :meth:`close`

Callers only ever get copies of the collection; all mutation goes through
repository methods, which go through the store.
"""

from __future__ import annotations

import threading
from typing import Generic, Optional, Protocol, TypeVar

from pydantic import ValidationError

from trackexpense.database import DatabaseManager
from trackexpense.logger import StructuredLogger
from trackexpense.storage.local_store import LocalRecordStore
from trackexpense.storage.record_store import RecordStore, SeedFactory, Subscription
from trackexpense.utils.general import JsonRecord


class _Record(Protocol):
    id: str

    def to_record(self) -> JsonRecord: ...  # noqa: E704


M = TypeVar("M", bound=_Record)


class BaseRepository(Generic[M]):
    """Base class for repositories.  Receives dependencies via __init__.

    Parameters
    ----------
    db:
        Provides the active record store and demotion notifications.
    logger:
        Structured logger.
    collection:
        Collection (cloud table) name.
    seed:
        Records to start from when local storage holds no snapshot.
    """

    def __init__(
        self,
        db: DatabaseManager,
        logger: StructuredLogger,
        collection: str,
        seed: Optional[SeedFactory] = None,
    ) -> None:
        self._db = db
        self._logger = logger
        self._collection = collection
        self._seed = seed
        self._lock = threading.RLock()
        self._items: list[M] = []
        self._loaded = threading.Event()
        self._closed = False
        self._subscription: Optional[Subscription] = None

        self._db.add_demotion_listener(self._move_to_local)
        self._subscription = self._subscribe(self._db.store)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def collection(self) -> str:
        return self._collection

    @property
    def store(self) -> RecordStore:
        """The record store currently in effect."""
        return self._db.store

    def wait_until_loaded(self, timeout: Optional[float] = None) -> bool:
        """Block until the first delivery has been applied."""
        return self._loaded.wait(timeout)

    def close(self) -> None:
        """Unsubscribe from the store.  Safe to call more than once."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            if self._subscription is not None:
                self._subscription.unsubscribe()
                self._subscription = None
        self._db.remove_demotion_listener(self._move_to_local)

    def __enter__(self):
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Hooks for subclasses
    # ------------------------------------------------------------------

    def _parse(self, record: JsonRecord) -> M:
        """Build a model from a stored record.  Raise ``ValidationError`` if invalid."""
        raise NotImplementedError

    def _order(self, items: list[M]) -> list[M]:
        """Visible order of the collection; store order by default."""
        return items

    def _after_delivery(self, first: bool) -> None:
        """Called with the lock held after each delivery has been applied."""

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _subscribe(self, store: RecordStore) -> Subscription:
        return store.subscribe(
            self._collection,
            self._on_records,
            on_error=self._on_store_error,
            seed=self._seed,
        )

    def _on_records(self, records: list[JsonRecord]) -> None:
        items: list[M] = []
        for record in records:
            try:
                items.append(self._parse(record))
            except ValidationError as exc:
                self._logger.warning(
                    "Skipping malformed %s record %s: %s",
                    self._collection,
                    record.get("id", "<no id>"),
                    exc.errors(include_url=False),
                )
        with self._lock:
            if self._closed:
                return
            self._items = self._order(items)
            first = not self._loaded.is_set()
            self._loaded.set()
            self._after_delivery(first)

    def _on_store_error(self, exc: Exception) -> None:
        self._logger.error("Subscription to '%s' failed: %s", self._collection, exc)
        self._db.demote_to_local(f"{self._collection} subscription failed: {exc}")

    def _move_to_local(self, local: LocalRecordStore) -> None:
        # The local store delivers while holding its own lock, so the
        # repository lock must not be held across adopt/subscribe.
        with self._lock:
            if self._closed:
                return
            previous, self._subscription = self._subscription, None
            records = [item.to_record() for item in self._items]
        if previous is not None:
            previous.unsubscribe()
        local.adopt(self._collection, records)
        subscription = self._subscribe(local)
        with self._lock:
            if self._closed:
                subscription.unsubscribe()
                return
            self._subscription = subscription
        self._logger.info(
            "Moved %d %s record(s) to local storage.", len(records), self._collection,
        )

    def _find(self, record_id: str) -> Optional[M]:
        with self._lock:
            for item in self._items:
                if item.id == record_id:
                    return item
        return None

    def _snapshot(self) -> list[M]:
        with self._lock:
            return list(self._items)
