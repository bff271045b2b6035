"""
Cloud Record Store.

Supabase-backed record store: one table per collection, one row per
record keyed by ``id``.  Writes never touch local state.  They are queued
on a single writer thread (per-client FIFO) and, once the server has
acknowledged one, the collection is re-read and delivered to every
subscriber.  A background poller re-reads subscribed collections at a
fixed interval so writes made by other clients are observed too.

All deliveries (initial load, post-write refresh, poll) run on the writer
thread, so subscribers never receive two deliveries concurrently.

Ordering: a client's own writes are applied and redelivered in call
order.  Nothing is guaranteed about ordering relative to other clients'
writes beyond per-record last-write-wins on the server.
"""

from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, NamedTuple, Optional

from supabase import Client as SupabaseClient

from trackexpense.logger import StructuredLogger
from trackexpense.models.enums import PersistOutcome, StoreMode
from trackexpense.storage.record_store import (
    ChangeCallback,
    ErrorCallback,
    RecordStore,
    SeedFactory,
    Subscription,
)
from trackexpense.utils.general import JsonRecord, JsonValue, clone_records

CLOUD_SAVE_FAILED_MESSAGE: str = "Failed to save to cloud. Check console."

AlertCallback = Callable[[str], None]


class _Listener(NamedTuple):
    on_change: ChangeCallback
    on_error: Optional[ErrorCallback]


class CloudRecordStore(RecordStore):
    """Record store over Supabase tables.

    Parameters
    ----------
    client:
        An initialised Supabase client.
    logger:
        Structured logger.
    alert:
        User-facing advisory message sink, called when a write is rejected.
    poll_interval_s:
        Seconds between change-feed polls; ``0`` disables polling.
    """

    mode = StoreMode.CLOUD

    def __init__(
        self,
        client: SupabaseClient,
        logger: StructuredLogger,
        alert: Optional[AlertCallback] = None,
        poll_interval_s: float = 5.0,
    ) -> None:
        self._client = client
        self._logger = logger
        self._alert: AlertCallback = alert or (lambda message: logger.warning("ALERT: %s", message))
        self._poll_interval_s = poll_interval_s
        self._lock = threading.RLock()
        self._subscribers: dict[str, dict[Subscription, _Listener]] = {}
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="CloudWriter")
        self._stop_event = threading.Event()
        self._poller: Optional[threading.Thread] = None
        self._closed = False

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
        payload = clone_records([record])[0]
        return self._enqueue(
            collection,
            f"put {collection}/{record_id}",
            lambda: self._client.table(collection).upsert(payload).execute(),
        )

    def patch(self, collection: str, record_id: str, changes: JsonRecord) -> PersistOutcome:
        payload = clone_records([changes])[0]
        return self._enqueue(
            collection,
            f"patch {collection}/{record_id}",
            lambda: self._client.table(collection).update(payload).eq("id", record_id).execute(),
        )

    def delete(self, collection: str, record_id: str) -> PersistOutcome:
        return self._enqueue(
            collection,
            f"delete {collection}/{record_id}",
            lambda: self._client.table(collection).delete().eq("id", record_id).execute(),
        )

    def delete_where(self, collection: str, field: str, value: JsonValue) -> PersistOutcome:
        # One filtered DELETE statement: the server applies it atomically.
        return self._enqueue(
            collection,
            f"delete {collection} where {field}={value}",
            lambda: self._client.table(collection).delete().eq(field, value).execute(),
        )

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
        # seed is ignored: an empty table is a valid cloud state.
        handle = Subscription(collection, self._unsubscribe)
        with self._lock:
            self._subscribers.setdefault(collection, {})[handle] = _Listener(on_change, on_error)
            if not self._closed:
                self._executor.submit(self._refresh, collection)
        self._ensure_poller()
        return handle

    def _unsubscribe(self, handle: Subscription) -> None:
        with self._lock:
            self._subscribers.get(handle.collection, {}).pop(handle, None)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def flush(self, timeout: Optional[float] = None) -> None:
        """Block until every write and delivery queued so far has run."""
        with self._lock:
            if self._closed:
                return
            marker = self._executor.submit(lambda: None)
        marker.result(timeout=timeout)

    def stop_polling(self) -> None:
        """Stop the change-feed poller without waiting for it."""
        self._stop_event.set()

    def close(self) -> None:
        """Stop polling and drain the writer.  Safe to call more than once."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
        self._stop_event.set()
        if self._poller is not None:
            self._poller.join(timeout=10.0)
            if self._poller.is_alive():
                self._logger.warning("Cloud poller did not terminate within 10 s.")
            self._poller = None
        self._executor.shutdown(wait=True)
        self._logger.info("Cloud record store closed.")

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _enqueue(
        self,
        collection: str,
        label: str,
        operation: Callable[[], object],
    ) -> PersistOutcome:
        with self._lock:
            if self._closed:
                self._logger.warning("Cloud store closed; dropping %s.", label)
                return PersistOutcome.FAILED
            self._executor.submit(self._run_write, collection, label, operation)
        return PersistOutcome.DEFERRED

    def _run_write(
        self,
        collection: str,
        label: str,
        operation: Callable[[], object],
    ) -> None:
        try:
            operation()
        except Exception as exc:
            self._logger.exception("Cloud write failed (%s): %s", label, exc)
            self._alert(CLOUD_SAVE_FAILED_MESSAGE)
            return
        self._logger.debug("Cloud write acknowledged: %s", label)
        self._refresh(collection)

    def _refresh(self, collection: str) -> None:
        with self._lock:
            listeners = list(self._subscribers.get(collection, {}).items())
        if not listeners:
            return

        try:
            response = self._client.table(collection).select("*").execute()
            records: list[JsonRecord] = list(response.data or [])
        except Exception as exc:
            self._logger.warning("Cloud refresh of '%s' failed: %s", collection, exc)
            for handle, listener in listeners:
                if handle.active and listener.on_error is not None:
                    listener.on_error(exc)
            return

        for handle, listener in listeners:
            if not handle.active:
                continue
            try:
                listener.on_change(clone_records(records))
            except Exception:
                self._logger.exception(
                    "Subscriber of '%s' failed to apply a delivery.", collection,
                )

    def _ensure_poller(self) -> None:
        if self._poll_interval_s <= 0:
            return
        with self._lock:
            if self._closed or self._stop_event.is_set():
                return
            if self._poller is not None and self._poller.is_alive():
                return
            self._poller = threading.Thread(
                target=self._poll_loop, name="CloudPoller", daemon=True,
            )
            self._poller.start()

    def _poll_loop(self) -> None:
        try:
            while not self._stop_event.wait(timeout=self._poll_interval_s):
                with self._lock:
                    if self._closed:
                        break
                    collections = [c for c, subs in self._subscribers.items() if subs]
                    for collection in collections:
                        self._executor.submit(self._refresh, collection)
        except Exception:
            self._logger.error(
                "Cloud poller terminated due to unhandled exception.", exc_info=True,
            )
