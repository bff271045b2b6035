"""
Record Store Adapter Interface.

Uniform ``put``/``patch``/``delete``/``delete_where``/``subscribe``
operations over a backing store, so repositories never branch on whether
they talk to the cloud document store or to local storage.

Write visibility is part of the contract and differs by mode:

- **Cloud** (:class:`~trackexpense.storage.cloud_store.CloudRecordStore`):
  writes return ``PersistOutcome.DEFERRED`` immediately.  Nothing is applied
  optimistically; a subscriber sees the write only when the store delivers
  the refreshed collection after the server acknowledged it.
- **Local** (:class:`~trackexpense.storage.local_store.LocalRecordStore`):
  writes are applied and delivered to subscribers before the call returns,
  and the return value reports how durable the write is.

Subscribers always receive the *whole* collection as a list of records.
"""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from typing import Callable, Optional

from trackexpense.models.enums import PersistOutcome, StoreMode
from trackexpense.utils.general import JsonRecord, JsonValue

ChangeCallback = Callable[[list[JsonRecord]], None]
ErrorCallback = Callable[[Exception], None]
SeedFactory = Callable[[], list[JsonRecord]]


class Subscription:
    """Handle returned by :meth:`RecordStore.subscribe`.

    ``unsubscribe()`` is idempotent.  After it returns no further
    callbacks are delivered through this handle.
    """

    def __init__(self, collection: str, cancel: Callable[["Subscription"], None]) -> None:
        self.collection = collection
        self._cancel = cancel
        self._active = True
        self._lock = threading.Lock()

    @property
    def active(self) -> bool:
        return self._active

    def unsubscribe(self) -> None:
        with self._lock:
            if not self._active:
                return
            self._active = False
        self._cancel(self)


class RecordStore(ABC):
    """Abstract record store.  See the module docstring for visibility rules."""

    mode: StoreMode

    @abstractmethod
    def put(
        self,
        collection: str,
        record_id: str,
        record: JsonRecord,
        *,
        prepend: bool = False,
    ) -> PersistOutcome:
        """Insert or replace the record keyed by *record_id*.

        *prepend* asks that a new record be placed at the head of the
        collection's natural order.  Stores without an intrinsic order ignore it.
        """

    @abstractmethod
    def patch(self, collection: str, record_id: str, changes: JsonRecord) -> PersistOutcome:
        """Overwrite the given fields of an existing record; no-op when absent."""

    @abstractmethod
    def delete(self, collection: str, record_id: str) -> PersistOutcome:
        """Remove one record; no-op when absent."""

    @abstractmethod
    def delete_where(self, collection: str, field: str, value: JsonValue) -> PersistOutcome:
        """Remove every record whose *field* equals *value*, as one atomic step."""

    @abstractmethod
    def subscribe(
        self,
        collection: str,
        on_change: ChangeCallback,
        *,
        on_error: Optional[ErrorCallback] = None,
        seed: Optional[SeedFactory] = None,
    ) -> Subscription:
        """Register *on_change* for the collection's current and future contents.

        *seed* supplies initial records when the store holds no snapshot
        for the collection at all; stores that cannot tell "absent" from
        "empty" ignore it.
        """

    def close(self) -> None:
        """Release background resources.  Safe to call more than once."""
