"""
Local Persistence Fallback.

Reads and writes whole-collection snapshots (JSON arrays) to the local
key-value storage.

Saving follows a two-tier degrade-and-retry policy: when the full
snapshot does not fit, every inline image payload is blanked and the save
is retried once.  Images dominate snapshot size, so the stripped copy
usually fits; only the persisted copy is stripped, never the caller's
records.  If the stripped retry also fails the write is reported as
``FAILED`` and logged; the in-memory state stays correct.
"""

from __future__ import annotations

import json
import sqlite3
from typing import Iterable, Optional

from trackexpense.logger import StructuredLogger
from trackexpense.models.enums import PersistOutcome
from trackexpense.storage.local_storage import KeyValueStorage, QuotaExceededError
from trackexpense.utils.general import JsonRecord, is_data_uri

DEFAULT_IMAGE_FIELDS: frozenset[str] = frozenset({"receiptImage", "avatar"})


class LocalPersistence:
    """Snapshot ``load``/``save`` over :class:`KeyValueStorage`.

    Parameters
    ----------
    storage:
        The quota-limited key-value storage.
    logger:
        Structured logger.
    image_fields:
        Record keys that may carry inline ``data:`` image payloads.
    """

    def __init__(
        self,
        storage: KeyValueStorage,
        logger: StructuredLogger,
        image_fields: Iterable[str] = DEFAULT_IMAGE_FIELDS,
    ) -> None:
        self._storage = storage
        self._logger = logger
        self._image_fields = frozenset(image_fields)

    def load(self, key: str) -> Optional[list[JsonRecord]]:
        """Return the snapshot stored under *key*.

        Returns ``None`` when nothing is stored, when the stored text is not
        valid JSON, or when it is not a JSON array of objects.  Callers treat
        ``None`` as "start from seed data".
        """
        raw = self._storage.get_item(key)
        if raw is None:
            return None
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError as exc:
            self._logger.warning("Discarding unreadable snapshot '%s': %s", key, exc)
            return None
        if not isinstance(parsed, list) or not all(isinstance(r, dict) for r in parsed):
            self._logger.warning(
                "Discarding snapshot '%s': expected a JSON array of objects.", key,
            )
            return None
        return parsed

    def save(self, key: str, records: list[JsonRecord]) -> PersistOutcome:
        """Persist *records* under *key* with degrade-and-retry."""
        try:
            self._storage.set_item(key, json.dumps(records))
            return PersistOutcome.SAVED
        except QuotaExceededError as exc:
            self._logger.warning(
                "Local storage full while saving '%s' (%s); retrying without images.",
                key,
                exc,
            )
        except sqlite3.Error as exc:
            self._logger.error("Local storage write failed for '%s': %s", key, exc)
            return PersistOutcome.FAILED

        try:
            self._storage.set_item(key, json.dumps(self.strip_images(records)))
        except (QuotaExceededError, sqlite3.Error) as exc:
            self._logger.error(
                "Snapshot '%s' could not be saved even without images: %s. "
                "Changes are kept in memory only.",
                key,
                exc,
            )
            return PersistOutcome.FAILED

        self._logger.warning("Snapshot '%s' saved without image payloads.", key)
        return PersistOutcome.DEGRADED

    def strip_images(self, records: list[JsonRecord]) -> list[JsonRecord]:
        """Copies of *records* with every inline image blanked."""
        stripped: list[JsonRecord] = []
        for record in records:
            copy_ = dict(record)
            for field in self._image_fields:
                if is_data_uri(copy_.get(field)):
                    copy_[field] = ""
            stripped.append(copy_)
        return stripped
