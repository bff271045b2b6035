"""
Storage Package.

Backing stores for record collections:

- :class:`KeyValueStorage` -- quota-limited ``key -> string`` storage in SQLite.
- :class:`LocalPersistence` -- snapshot load/save with degrade-and-retry.
- :class:`RecordStore` -- the store interface repositories talk to, with
  :class:`LocalRecordStore` and :class:`CloudRecordStore` variants.
"""

from trackexpense.storage.cloud_store import CLOUD_SAVE_FAILED_MESSAGE, CloudRecordStore
from trackexpense.storage.local_storage import KeyValueStorage, QuotaExceededError
from trackexpense.storage.local_store import LocalRecordStore
from trackexpense.storage.persistence import LocalPersistence
from trackexpense.storage.record_store import RecordStore, Subscription

__all__ = [
    "CLOUD_SAVE_FAILED_MESSAGE",
    "CloudRecordStore",
    "KeyValueStorage",
    "LocalPersistence",
    "LocalRecordStore",
    "QuotaExceededError",
    "RecordStore",
    "Subscription",
]
