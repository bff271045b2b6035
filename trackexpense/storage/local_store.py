"""
Local Record Store.

Single-process store used when no cloud store is configured, or after the
cloud store became unreachable.  Each collection's working snapshot is
held here in serialized (record dict) form; every write is applied to it,
delivered synchronously to subscribers and then persisted through
:class:`~trackexpense.storage.persistence.LocalPersistence`.

Writes are strictly ordered by call order.
"""

from __future__ import annotations

import threading
from typing import Mapping, Optional

from trackexpense.logger import StructuredLogger
from trackexpense.models.enums import PersistOutcome, StoreMode
from trackexpense.storage.persistence import LocalPersistence
from trackexpense.storage.record_store import (
    ChangeCallback,
    ErrorCallback,
    RecordStore,
    SeedFactory,
    Subscription,
)
from trackexpense.utils.general import JsonRecord, JsonValue, clone_records


class LocalRecordStore(RecordStore):
    """Record store over local durable storage.

    Parameters
    ----------
    persistence:
        Snapshot load/save with degrade-and-retry.
    storage_keys:
        Maps a collection name to the storage key its snapshot lives under.
        Unmapped collections use their own name as key.
    logger:
        Structured logger.
    """

    mode = StoreMode.LOCAL

    def __init__(
        self,
        persistence: LocalPersistence,
        storage_keys: Mapping[str, str],
        logger: StructuredLogger,
    ) -> None:
        self._persistence = persistence
        self._storage_keys = dict(storage_keys)
        self._logger = logger
        self._lock = threading.RLock()
        self._collections: dict[str, list[JsonRecord]] = {}
        self._subscribers: dict[str, dict[Subscription, ChangeCallback]] = {}

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def put(
        self,
        collection: str,
        record_id: str,
        record: JsonRecord,
        *,
        prepend: bool = False,
    ) -> PersistOutcome:
        with self._lock:
            records = self._working(collection)
            index = _index_of(records, record_id)
            stored = clone_records([record])[0]
            if index is not None:
                records[index] = stored
            elif prepend:
                records.insert(0, stored)
            else:
                records.append(stored)
            return self._commit(collection)

    def patch(self, collection: str, record_id: str, changes: JsonRecord) -> PersistOutcome:
        with self._lock:
            records = self._working(collection)
            index = _index_of(records, record_id)
            if index is None:
                self._logger.debug("patch %s/%s: no such record", collection, record_id)
                return PersistOutcome.NOOP
            records[index] = {**records[index], **clone_records([changes])[0]}
            return self._commit(collection)

    def delete(self, collection: str, record_id: str) -> PersistOutcome:
        with self._lock:
            records = self._working(collection)
            index = _index_of(records, record_id)
            if index is None:
                return PersistOutcome.NOOP
            del records[index]
            return self._commit(collection)

    def delete_where(self, collection: str, field: str, value: JsonValue) -> PersistOutcome:
        with self._lock:
            records = self._working(collection)
            kept = [r for r in records if r.get(field) != value]
            if len(kept) == len(records):
                return PersistOutcome.NOOP
            self._collections[collection] = kept
            self._logger.info(
                "Removed %d record(s) from %s where %s=%s",
                len(records) - len(kept), collection, field, value,
            )
            return self._commit(collection)

    def adopt(self, collection: str, records: list[JsonRecord]) -> PersistOutcome:
        """Replace the collection with *records* and persist it.

        Used when the process falls back from the cloud store, so the last
        collection seen from the cloud becomes the local working copy.
        """
        with self._lock:
            self._collections[collection] = clone_records(records)
            return self._commit(collection)

    # ------------------------------------------------------------------
    # Subscription
    # ------------------------------------------------------------------

    def subscribe(
        self,
        collection: str,
        on_change: ChangeCallback,
        *,
        on_error: Optional[ErrorCallback] = None,
        seed: Optional[SeedFactory] = None,
    ) -> Subscription:
        # on_error is unused: local delivery cannot fail after the initial load.
        with self._lock:
            records = self._working(collection, seed)
            handle = Subscription(collection, self._unsubscribe)
            self._subscribers.setdefault(collection, {})[handle] = on_change
            on_change(clone_records(records))
            return handle

    def _unsubscribe(self, handle: Subscription) -> None:
        with self._lock:
            self._subscribers.get(handle.collection, {}).pop(handle, None)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _working(
        self, collection: str, seed: Optional[SeedFactory] = None,
    ) -> list[JsonRecord]:
        records = self._collections.get(collection)
        if records is not None:
            return records

        key = self._key(collection)
        loaded = self._persistence.load(key)
        if loaded is None:
            records = seed() if seed is not None else []
            self._logger.info(
                "No usable snapshot for '%s'; starting with %d seed record(s).",
                collection, len(records),
            )
            self._collections[collection] = records
            if records:
                self._persistence.save(key, records)
        else:
            self._collections[collection] = loaded
            self._logger.info("Loaded %d record(s) for '%s'.", len(loaded), collection)
        return self._collections[collection]

    def _commit(self, collection: str) -> PersistOutcome:
        records = self._collections[collection]
        for callback in list(self._subscribers.get(collection, {}).values()):
            callback(clone_records(records))
        return self._persistence.save(self._key(collection), records)

    def _key(self, collection: str) -> str:
        return self._storage_keys.get(collection, collection)


def _index_of(records: list[JsonRecord], record_id: str) -> Optional[int]:
    for index, record in enumerate(records):
        if record.get("id") == record_id:
            return index
    return None
